"""Project mapping model"""

import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from syncbridge.models.base import Base, utcnow
from syncbridge.models.connection import TrackerSystem


class SyncDirection(str, enum.Enum):
    """Which way issues are allowed to flow for a project mapping"""
    REDMINE_TO_JIRA = "redmine_to_jira"
    JIRA_TO_REDMINE = "jira_to_redmine"
    BIDIRECTIONAL = "bidirectional"


class ProjectMapping(Base):
    """Pairs a Redmine project with a Jira project"""

    __tablename__ = "project_mappings"
    __table_args__ = (
        UniqueConstraint(
            "redmine_connection_id",
            "jira_connection_id",
            "redmine_project_id",
            "jira_project_key",
            name="unique_project_mapping",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)

    redmine_connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False)
    jira_connection_id = Column(Integer, ForeignKey("connections.id"), nullable=False)

    redmine_project_id = Column(String, nullable=False, index=True)
    redmine_project_name = Column(String, nullable=True)
    jira_project_key = Column(String, nullable=False, index=True)
    jira_project_name = Column(String, nullable=True)

    sync_direction = Column(Enum(SyncDirection), nullable=False, default=SyncDirection.BIDIRECTIONAL)
    is_enabled = Column(Boolean, default=True, index=True)
    sync_config = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    redmine_connection = relationship("Connection", foreign_keys=[redmine_connection_id])
    jira_connection = relationship("Connection", foreign_keys=[jira_connection_id])

    def can_sync_from(self, system: TrackerSystem) -> bool:
        """Whether issues originating in `system` may be pushed to the other side."""
        if self.sync_direction == SyncDirection.BIDIRECTIONAL:
            return True
        if system == TrackerSystem.REDMINE:
            return self.sync_direction == SyncDirection.REDMINE_TO_JIRA
        return self.sync_direction == SyncDirection.JIRA_TO_REDMINE

    def connection_for(self, system: TrackerSystem):
        if system == TrackerSystem.REDMINE:
            return self.redmine_connection
        return self.jira_connection

    def project_for(self, system: TrackerSystem) -> str:
        if system == TrackerSystem.REDMINE:
            return self.redmine_project_id
        return self.jira_project_key

    def __repr__(self):
        return (
            f"<ProjectMapping(redmine={self.redmine_project_id}, jira={self.jira_project_key}, "
            f"direction={self.sync_direction})>"
        )
