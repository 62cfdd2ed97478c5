"""Local durable cache tables backing the offline persistence mode."""

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from levelup_api.db.base import Base


class CacheEntry(Base):
    """One structured-text value stored under a fixed cache key."""

    __tablename__ = "cache_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class RemoteSyncJournalEntry(Base):
    """Collection whose latest local state has not reached the remote service.

    One row per collection; the row is removed in the transaction that records
    a successful delivery.
    """

    __tablename__ = "remote_sync_journal"

    collection = Column(String, primary_key=True)
    pending_changes = Column(Integer, nullable=False, default=1, server_default="1")
    last_description = Column(String, nullable=True)
    first_pending_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_pending_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
