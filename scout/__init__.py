"""AI Trends Scout — keyword discovery, research runs and trend alerts."""

__version__ = "1.0.0"
