from sqlalchemy import JSON, Column, Float, Index, Text

from qlbot.database import Base


class CacheEntry(Base):
    __tablename__ = "cache_entries"

    partition_key = Column(Text, primary_key=True)  # chat:<id> or conversation-state
    cache_key = Column(Text, primary_key=True)  # <resourceClass>[:<qualifier>]
    payload = Column(JSON, nullable=False)
    expires_at = Column(Float, nullable=False)  # unix seconds

    __table_args__ = (Index("ix_cache_entries_expires_at", "expires_at"),)
