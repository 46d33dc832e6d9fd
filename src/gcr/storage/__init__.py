"""Coverage history persistence."""
