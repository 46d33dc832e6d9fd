"""Coverage input adapters."""
