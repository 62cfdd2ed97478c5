"""SQLAlchemy models package."""

from .cache import CacheEntry, RemoteSyncJournalEntry  # noqa: F401
