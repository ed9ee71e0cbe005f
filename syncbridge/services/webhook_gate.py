"""Webhook intake: authenticity, routing and idempotency"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from syncbridge.models import ProjectMapping, SyncLog, SyncStatus, SyncType, TrackerSystem
from syncbridge.models.base import utcnow
from syncbridge.security import verify_signature
from syncbridge.services.errors import (
    AuthenticationFailed,
    DuplicateEvent,
    MalformedPayload,
    NotConfigured,
)
from syncbridge.services.jobs import JobDispatcher, SyncJob

logger = logging.getLogger(__name__)


@dataclass
class WebhookEvent:
    """Identifiers extracted from a tracker's native webhook payload"""

    source_system: TrackerSystem
    project_id: str
    issue_id: str
    sync_type: SyncType
    issue: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class IngestResult:
    accepted: bool
    message: str
    sync_log_id: Optional[int] = None
    reason: Optional[str] = None


def parse_redmine_event(payload: Dict[str, Any]) -> WebhookEvent:
    # Some Redmine webhook plugins wrap the event in a "payload" envelope.
    if "issue" not in payload and isinstance(payload.get("payload"), dict):
        payload = payload["payload"]

    issue = payload.get("issue")
    if not isinstance(issue, dict) or not issue:
        raise MalformedPayload("No issue data")

    project_id = (issue.get("project") or {}).get("id")
    issue_id = issue.get("id")
    if not project_id or not issue_id:
        raise MalformedPayload("Missing project or issue ID")

    action = payload.get("action")
    if action in ("opened", "created"):
        sync_type = SyncType.CREATE
    elif "status" in issue:
        sync_type = SyncType.STATUS_CHANGE
    else:
        sync_type = SyncType.UPDATE

    return WebhookEvent(TrackerSystem.REDMINE, str(project_id), str(issue_id), sync_type, issue)


def parse_jira_event(payload: Dict[str, Any]) -> WebhookEvent:
    issue = payload.get("issue")
    if not isinstance(issue, dict) or not issue:
        raise MalformedPayload("No issue data")

    project_key = (((issue.get("fields") or {}).get("project")) or {}).get("key")
    issue_key = issue.get("key")
    if not project_key or not issue_key:
        raise MalformedPayload("Missing project or issue key")

    webhook_event = payload.get("webhookEvent")
    sync_type = SyncType.UPDATE
    if webhook_event == "jira:issue_created":
        sync_type = SyncType.CREATE
    elif webhook_event == "jira:issue_updated":
        items = (payload.get("changelog") or {}).get("items") or []
        if any(item.get("field") == "status" for item in items if isinstance(item, dict)):
            sync_type = SyncType.STATUS_CHANGE

    return WebhookEvent(TrackerSystem.JIRA, str(project_key), str(issue_key), sync_type, issue)


@dataclass(frozen=True)
class WebhookSource:
    system: TrackerSystem
    signature_header: str
    signature_prefix: str
    secret_setting: str
    parse: Callable[[Dict[str, Any]], WebhookEvent]
    project_column: Any


WEBHOOK_SOURCES: Dict[TrackerSystem, WebhookSource] = {
    TrackerSystem.REDMINE: WebhookSource(
        system=TrackerSystem.REDMINE,
        signature_header="X-Redmine-Signature",
        signature_prefix="",
        secret_setting="redmine_webhook_secret",
        parse=parse_redmine_event,
        project_column=ProjectMapping.redmine_project_id,
    ),
    TrackerSystem.JIRA: WebhookSource(
        system=TrackerSystem.JIRA,
        signature_header="X-Hub-Signature",
        signature_prefix="sha256=",
        secret_setting="jira_webhook_secret",
        parse=parse_jira_event,
        project_column=ProjectMapping.jira_project_key,
    ),
}


class WebhookGate:
    """Validates inbound events and turns accepted ones into pending sync logs"""

    def __init__(
        self,
        db: Session,
        dispatcher: JobDispatcher,
        *,
        settings=None,
        now: Callable[[], datetime] = utcnow,
    ):
        if settings is None:
            from syncbridge.config import settings
        self.db = db
        self.dispatcher = dispatcher
        self.settings = settings
        self._now = now

    def ingest(self, source_system: TrackerSystem, body: bytes, headers: Mapping[str, str]) -> IngestResult:
        """Process one webhook delivery.

        Raises AuthenticationFailed / MalformedPayload before touching the database.
        Unroutable and duplicate events are acknowledged without queuing work.
        """
        source = WEBHOOK_SOURCES[TrackerSystem(source_system)]

        self._verify(source, body, headers)
        event = source.parse(self._decode(body))
        logger.info(
            f"{source.system.value} webhook received: project={event.project_id} "
            f"issue={event.issue_id} type={event.sync_type.value}"
        )

        try:
            mapping = self._resolve_mapping(source, event)
            self._check_duplicate(event)
        except (NotConfigured, DuplicateEvent) as e:
            logger.info(f"{e.message}: {source.system.value} issue {event.issue_id}")
            return IngestResult(accepted=False, message=e.message, reason=e.reason)

        sync_log = SyncLog(
            project_mapping_id=mapping.id,
            source_system=event.source_system,
            target_system=event.source_system.other,
            source_issue_id=event.issue_id,
            sync_type=event.sync_type,
            status=SyncStatus.PENDING,
            retry_count=0,
            attempt=0,
            sync_data=event.issue,
            created_at=self._now(),
        )
        self.db.add(sync_log)
        self.db.commit()
        self.db.refresh(sync_log)

        self.dispatcher.enqueue(SyncJob(sync_log_id=sync_log.id))
        return IngestResult(
            accepted=True, message="Webhook received and queued", sync_log_id=sync_log.id
        )

    def _verify(self, source: WebhookSource, body: bytes, headers: Mapping[str, str]) -> None:
        secret = getattr(self.settings, source.secret_setting, None)
        if not secret:
            return

        lowered = {str(k).lower(): v for k, v in headers.items()}
        signature = lowered.get(source.signature_header.lower())
        if not verify_signature(body, signature, secret, prefix=source.signature_prefix):
            logger.warning(f"Invalid {source.system.value} webhook signature")
            raise AuthenticationFailed("Invalid signature")

    @staticmethod
    def _decode(body: bytes) -> Dict[str, Any]:
        try:
            payload = json.loads(body or b"")
        except (ValueError, UnicodeDecodeError):
            raise MalformedPayload("Request body is not valid JSON") from None
        if not isinstance(payload, dict):
            raise MalformedPayload("Request body must be a JSON object")
        return payload

    def _resolve_mapping(self, source: WebhookSource, event: WebhookEvent) -> ProjectMapping:
        candidates = (
            self.db.query(ProjectMapping)
            .filter(
                ProjectMapping.is_enabled == True,  # noqa: E712
                source.project_column == event.project_id,
            )
            .order_by(ProjectMapping.id)
            .all()
        )
        for mapping in candidates:
            if mapping.can_sync_from(event.source_system):
                return mapping
        raise NotConfigured("Sync not configured", {"project_id": event.project_id})

    def _check_duplicate(self, event: WebhookEvent) -> None:
        window_start = self._now() - timedelta(minutes=self.settings.idempotency_window_minutes)
        existing = (
            self.db.query(SyncLog)
            .filter(
                SyncLog.source_system == event.source_system,
                SyncLog.source_issue_id == event.issue_id,
                SyncLog.status == SyncStatus.PENDING,
                SyncLog.created_at > window_start,
            )
            .first()
        )
        if existing is not None:
            raise DuplicateEvent("Already processing", {"sync_log_id": existing.id})
