"""Report rendering and GitHub reporters."""
