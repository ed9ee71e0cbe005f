"""Tracker connection model"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Integer, String

from syncbridge.models.base import Base, utcnow


class TrackerSystem(str, enum.Enum):
    """Supported issue tracker types"""
    REDMINE = "redmine"
    JIRA = "jira"

    @property
    def other(self) -> "TrackerSystem":
        return TrackerSystem.JIRA if self is TrackerSystem.REDMINE else TrackerSystem.REDMINE


@dataclass(frozen=True)
class ConnectionInfo:
    """Capability bundle handed to the sync engine.

    Credentials are already decrypted: Redmine expects ``{"api_key"}``,
    Jira expects ``{"email", "api_token"}``.
    """

    type: TrackerSystem
    base_url: str
    credentials: Dict[str, Any] = field(default_factory=dict)


class Connection(Base):
    """Remote tracker connection (managed by the admin layer)"""

    __tablename__ = "connections"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(Enum(TrackerSystem), nullable=False, index=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    # Stored decrypted here; encryption at rest belongs to the storage layer.
    credentials = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def as_info(self) -> ConnectionInfo:
        return ConnectionInfo(
            type=TrackerSystem(self.type),
            base_url=self.url,
            credentials=dict(self.credentials or {}),
        )

    def __repr__(self):
        return f"<Connection(type={self.type}, name='{self.name}', url='{self.url}')>"
