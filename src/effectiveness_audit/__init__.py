"""Progressive website effectiveness scoring."""

__version__ = "0.1.0"
