"""Sync log model"""
import enum

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from syncbridge.models.base import Base, utcnow
from syncbridge.models.connection import TrackerSystem


class SyncStatus(str, enum.Enum):
    """Sync attempt status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"
    RETRYING = "retrying"


class SyncType(str, enum.Enum):
    """What the inbound event looked like (audit label only)"""
    CREATE = "create"
    UPDATE = "update"
    STATUS_CHANGE = "status_change"


class SyncLog(Base):
    """One synchronization attempt chain for one source issue event"""

    __tablename__ = "sync_logs"
    __table_args__ = (
        Index("ix_sync_logs_source", "source_system", "source_issue_id"),
        Index("ix_sync_logs_target", "target_system", "target_issue_id"),
    )

    id = Column(Integer, primary_key=True, index=True)

    project_mapping_id = Column(Integer, ForeignKey("project_mappings.id"), nullable=True)

    # Issue information
    source_system = Column(Enum(TrackerSystem), nullable=False)
    target_system = Column(Enum(TrackerSystem), nullable=False)
    source_issue_id = Column(String, nullable=False)
    target_issue_id = Column(String, nullable=True)

    # Sync details
    sync_type = Column(Enum(SyncType), nullable=False, index=True)
    status = Column(Enum(SyncStatus), nullable=False, default=SyncStatus.PENDING, index=True)
    retry_count = Column(Integer, nullable=False, default=0)
    # Attempts made in the current chain; a manual retry starts a new chain at 0.
    attempt = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    error_details = Column(JSON, nullable=True)
    sync_data = Column(JSON, nullable=True)  # Raw webhook issue payload
    processed_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    project_mapping = relationship("ProjectMapping")

    def mark_success(self, target_issue_id=None):
        self.status = SyncStatus.SUCCESS
        if target_issue_id is not None:
            self.target_issue_id = str(target_issue_id)
        self.processed_at = utcnow()

    def mark_failed(self, error_message: str, error_details=None):
        self.status = SyncStatus.FAILED
        self.error_message = error_message
        self.error_details = error_details
        self.processed_at = utcnow()

    def __repr__(self):
        return (
            f"<SyncLog({self.source_system}:{self.source_issue_id} -> {self.target_system}, "
            f"status={self.status})>"
        )
