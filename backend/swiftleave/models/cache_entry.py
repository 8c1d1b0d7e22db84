"""CacheEntry ORM model — last successful remote read per logical dataset."""
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func
from swiftleave.database import Base


class CacheEntry(Base):
    __tablename__ = "cache_entries"

    dataset_key = Column(String(100), primary_key=True)
    payload = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
