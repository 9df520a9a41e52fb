"""Batch deletion of stale rows from PostgreSQL tables."""

__version__ = "1.0.0"
