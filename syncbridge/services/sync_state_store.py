"""Durable source/target issue correspondence"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from syncbridge.models import SyncState, TrackerSystem
from syncbridge.models.base import utcnow
from syncbridge.services.errors import StoreConflict

logger = logging.getLogger(__name__)

# "+0000" style offsets (Jira) -> "+00:00"
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")


def normalize_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize a datetime to UTC tz-naive (safe for comparisons)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse Redmine/Jira ISO-8601 timestamps into UTC tz-naive datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return normalize_utc_naive(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET_RE.sub(r"\1:\2", text)
    return normalize_utc_naive(datetime.fromisoformat(text))


def _timestamp_or_none(value: Any) -> Optional[datetime]:
    try:
        return parse_timestamp(value)
    except ValueError:
        logger.warning(f"Unparseable timestamp {value!r}; storing none")
        return None


class SyncStateStore:
    """Create/find/update SyncState rows.

    Rows are only ever overwritten, never merged or deleted.
    """

    def __init__(self, db: Session):
        self.db = db

    def find(self, source_system: TrackerSystem, source_issue_id: str) -> Optional[SyncState]:
        return (
            self.db.query(SyncState)
            .filter(
                SyncState.source_system == TrackerSystem(source_system),
                SyncState.source_issue_id == str(source_issue_id),
            )
            .order_by(SyncState.id)
            .first()
        )

    def create(
        self,
        *,
        source_system: TrackerSystem,
        source_issue_id: str,
        target_system: TrackerSystem,
        target_issue_id: str,
        source_updated_at: Any = None,
        target_updated_at: Any = None,
        snapshot: Optional[Dict[str, Any]] = None,
    ) -> SyncState:
        """Insert a new correspondence; StoreConflict if the tuple already exists."""
        row = SyncState(
            source_system=TrackerSystem(source_system),
            source_issue_id=str(source_issue_id),
            target_system=TrackerSystem(target_system),
            target_issue_id=str(target_issue_id),
            source_updated_at=_timestamp_or_none(source_updated_at),
            target_updated_at=_timestamp_or_none(target_updated_at),
            last_synced_data=snapshot,
            last_synced_at=utcnow(),
        )
        try:
            self.db.add(row)
            self.db.commit()
        except IntegrityError as e:
            # Another worker created the mapping first.
            self.db.rollback()
            raise StoreConflict(
                f"Sync state already exists for {row.source_system.value}:{row.source_issue_id} -> "
                f"{row.target_system.value}:{row.target_issue_id}",
                {"constraint": "unique_sync_state", "error": str(e.orig)},
            ) from e
        self.db.refresh(row)
        return row

    def update(
        self,
        state_id: int,
        source_updated_at: Any,
        target_updated_at: Any,
        snapshot: Optional[Dict[str, Any]],
    ) -> SyncState:
        """Overwrite timestamps and snapshot of an existing row."""
        row = self.db.query(SyncState).filter(SyncState.id == state_id).first()
        if row is None:
            raise StoreConflict(f"Sync state {state_id} disappeared", {"state_id": state_id})
        row.source_updated_at = _timestamp_or_none(source_updated_at)
        row.target_updated_at = _timestamp_or_none(target_updated_at)
        row.last_synced_data = snapshot
        row.last_synced_at = utcnow()
        self.db.commit()
        return row

    @staticmethod
    def is_stale(state: SyncState, incoming_updated_at: Any) -> bool:
        """True when the incoming source update carries no newer information.

        Unparseable or missing timestamps are never considered stale.
        """
        stored = normalize_utc_naive(state.source_updated_at)
        try:
            incoming = parse_timestamp(incoming_updated_at)
        except ValueError:
            logger.warning(f"Unparseable source timestamp {incoming_updated_at!r}")
            return False
        if stored is None or incoming is None:
            return False
        return incoming <= stored
