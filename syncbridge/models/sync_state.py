"""Sync state model"""
from sqlalchemy import JSON, Column, DateTime, Enum, Index, Integer, String, UniqueConstraint

from syncbridge.models.base import Base, utcnow
from syncbridge.models.connection import TrackerSystem


class SyncState(Base):
    """Last known correspondence between a source issue and its mirror"""

    __tablename__ = "sync_state"
    __table_args__ = (
        UniqueConstraint(
            "source_system",
            "source_issue_id",
            "target_system",
            "target_issue_id",
            name="unique_sync_state",
        ),
        Index("ix_sync_state_source", "source_system", "source_issue_id"),
        Index("ix_sync_state_target", "target_system", "target_issue_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    source_system = Column(Enum(TrackerSystem), nullable=False)
    source_issue_id = Column(String, nullable=False)
    source_updated_at = Column(DateTime, nullable=True)

    target_system = Column(Enum(TrackerSystem), nullable=False)
    target_issue_id = Column(String, nullable=False)
    target_updated_at = Column(DateTime, nullable=True)

    # Sync metadata
    last_synced_data = Column(JSON, nullable=True)  # Source issue as last pushed
    last_synced_at = Column(DateTime, default=utcnow)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return (
            f"<SyncState({self.source_system}:{self.source_issue_id} -> "
            f"{self.target_system}:{self.target_issue_id})>"
        )
