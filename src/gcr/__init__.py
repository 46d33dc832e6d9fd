"""gcr: post code coverage to GitHub pull requests and track it over time."""

__version__ = "0.1.0"
