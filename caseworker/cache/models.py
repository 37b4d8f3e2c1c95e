"""
Database models for the cache stores.
SQLAlchemy ORM models for named stores and the responses they hold.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, LargeBinary, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheStoreRecord(Base):
    """
    Named store - one record per store name (e.g. static-v1)
    Deleting a store deletes every response it holds
    """
    __tablename__ = "cache_stores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=_utcnow)

    # Relationships
    entries = relationship(
        "CachedResponseRecord",
        back_populates="store",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<CacheStoreRecord(id={self.id}, name='{self.name}')>"


class CachedResponseRecord(Base):
    """
    Stored response - one record per request key per store
    """
    __tablename__ = "cached_responses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column(Integer, ForeignKey("cache_stores.id", ondelete="CASCADE"), nullable=False)
    key = Column(String, nullable=False, index=True)
    url = Column(String, nullable=False)
    status = Column(Integer, nullable=False)
    reason = Column(String, nullable=True)
    headers = Column(Text, nullable=False)  # JSON list of [name, value]
    body = Column(LargeBinary, nullable=False)
    stored_at = Column(DateTime, default=_utcnow, nullable=False)

    # Relationships
    store = relationship("CacheStoreRecord", back_populates="entries")

    # Constraints - last write for a key replaces the previous one
    __table_args__ = (
        UniqueConstraint("store_id", "key", name="uix_store_key"),
    )

    def __repr__(self):
        return f"<CachedResponseRecord(store_id={self.store_id}, key='{self.key}', status={self.status})>"
