"""Database models"""

from syncbridge.models.base import Base
from syncbridge.models.connection import Connection, ConnectionInfo, TrackerSystem
from syncbridge.models.field_mapping import FieldMapping, MappingType
from syncbridge.models.project_mapping import ProjectMapping, SyncDirection
from syncbridge.models.sync_log import SyncLog, SyncStatus, SyncType
from syncbridge.models.sync_state import SyncState

__all__ = [
    "Base",
    "Connection",
    "ConnectionInfo",
    "TrackerSystem",
    "FieldMapping",
    "MappingType",
    "ProjectMapping",
    "SyncDirection",
    "SyncLog",
    "SyncStatus",
    "SyncType",
    "SyncState",
]
