"""Draft social posts from news items, with duplicate detection and a 280-character budget."""

__version__ = "0.1.0"
