"""Bulk remove/lock moderation for Reddit comment trees."""

__version__ = "0.1.0"
