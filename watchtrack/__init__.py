"""Personal watch-tracking library with status classification and sync."""

__version__ = "0.1.0"
