"""News monitor: tiered feed source tracking with scheduled fetching."""

__version__ = "0.1.0"
