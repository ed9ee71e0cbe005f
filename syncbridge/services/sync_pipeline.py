"""Sync job pipeline: drives one sync log from pending to a terminal state"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from syncbridge.models import ProjectMapping, SyncLog, SyncState, SyncStatus, TrackerSystem
from syncbridge.models.base import utcnow
from syncbridge.services.backoff import RetryPolicy
from syncbridge.services.clients import build_client
from syncbridge.services.errors import (
    ConfigurationError,
    InvalidStateError,
    RemoteNotFound,
    RemoteWriteRejected,
    SyncError,
    SyncLogNotFound,
)
from syncbridge.services.field_translator import FieldTranslator
from syncbridge.services.jobs import JobDispatcher, SyncJob
from syncbridge.services.sync_state_store import SyncStateStore
from syncbridge.services.tracker_client import IssueSnapshot, IssueTrackerClient

logger = logging.getLogger(__name__)

# Statuses a job may claim: fresh intake / manual retry, or a scheduled automatic retry.
CLAIMABLE_STATUSES = (SyncStatus.PENDING, SyncStatus.RETRYING)


class SyncPipeline:
    """Executes sync jobs and owns all SyncLog/SyncState mutations after intake"""

    def __init__(
        self,
        db: Session,
        dispatcher: Optional[JobDispatcher] = None,
        *,
        client_factory: Callable[..., IssueTrackerClient] = build_client,
        policy: Optional[RetryPolicy] = None,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.client_factory = client_factory
        self.policy = policy or RetryPolicy.from_settings()
        self.translator = FieldTranslator(db)
        self.states = SyncStateStore(db)

    # ------------------------------------------------------------------
    # Job execution
    # ------------------------------------------------------------------

    def issue_key(self, sync_log_id: int) -> Optional[Tuple[TrackerSystem, str]]:
        """(source_system, source_issue_id) of a log, or None if it is gone."""
        sync_log = self._get_log(sync_log_id)
        if sync_log is None:
            return None
        return TrackerSystem(sync_log.source_system), sync_log.source_issue_id

    def run(self, job: SyncJob) -> Optional[SyncStatus]:
        """Run one attempt. Returns the resulting status, or None if the job was stale."""
        if not self._claim(job):
            logger.info(f"Sync log {job.sync_log_id} not claimable; skipping attempt {job.attempt}")
            return None

        sync_log = self._get_log(job.sync_log_id)
        logger.info(
            f"Processing sync log {sync_log.id} ({sync_log.source_system.value}:"
            f"{sync_log.source_issue_id}), attempt {job.attempt}"
        )

        try:
            target_issue_id = self._attempt(sync_log)
        except Exception as e:
            self.db.rollback()
            return self._handle_failure(job, e)

        sync_log.mark_success(target_issue_id)
        self.db.commit()
        logger.info(
            f"Sync log {sync_log.id} succeeded: {sync_log.source_system.value}:"
            f"{sync_log.source_issue_id} -> {sync_log.target_system.value}:{target_issue_id}"
        )
        return SyncStatus.SUCCESS

    def _claim(self, job: SyncJob) -> bool:
        """Atomically move the log to processing if nobody else owns it."""
        claimed = (
            self.db.query(SyncLog)
            .filter(SyncLog.id == job.sync_log_id, SyncLog.status.in_(CLAIMABLE_STATUSES))
            .update(
                {
                    SyncLog.status: SyncStatus.PROCESSING,
                    SyncLog.attempt: job.attempt,
                    SyncLog.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        return claimed == 1

    def _attempt(self, sync_log: SyncLog) -> str:
        source_system = TrackerSystem(sync_log.source_system)
        target_system = TrackerSystem(sync_log.target_system)

        mapping = self._get_mapping(sync_log)
        source_client = self._client_for(mapping, source_system)
        target_client = self._client_for(mapping, target_system)

        issue = source_client.get_issue(sync_log.source_issue_id)
        if not issue:
            raise RemoteNotFound(
                f"{source_system.value.capitalize()} issue {sync_log.source_issue_id} not found",
                {"source_system": source_system.value, "source_issue_id": sync_log.source_issue_id},
            )
        snapshot = source_client.snapshot(issue)

        state = self.states.find(source_system, sync_log.source_issue_id)
        if state is None:
            return self._create_target(mapping, target_client, snapshot)
        return self._update_target(state, target_client, snapshot)

    def _create_target(
        self, mapping: ProjectMapping, target_client: IssueTrackerClient, snapshot: IssueSnapshot
    ) -> str:
        fields = target_client.build_fields(self.translator.translate_issue(snapshot))
        target_system = snapshot.system.other

        result = target_client.create_issue(mapping.project_for(target_system), fields)
        if not result.success or not result.issue:
            raise RemoteWriteRejected(
                f"Failed to create {target_system.value} issue",
                status_code=result.status_code,
                error=result.error,
            )

        target_issue_id = target_client.issue_id(result.issue)
        self.states.create(
            source_system=snapshot.system,
            source_issue_id=snapshot.issue_id,
            target_system=target_system,
            target_issue_id=target_issue_id,
            source_updated_at=snapshot.updated_at,
            target_updated_at=target_client.updated_at(result.issue) or utcnow(),
            snapshot=snapshot.raw,
        )
        return target_issue_id

    def _update_target(
        self, state: SyncState, target_client: IssueTrackerClient, snapshot: IssueSnapshot
    ) -> str:
        # Last-write-wins: a stale source update is still pushed.
        if self.states.is_stale(state, snapshot.updated_at):
            logger.info(
                f"Conflict detected, using last-write-wins: {snapshot.system.value}:{snapshot.issue_id} "
                f"updated {snapshot.updated_at} <= last synced {state.source_updated_at} "
                f"(target {state.target_system.value}:{state.target_issue_id})"
            )

        fields = target_client.build_fields(self.translator.translate_issue(snapshot))
        result = target_client.update_issue(state.target_issue_id, fields)
        if not result.success:
            raise RemoteWriteRejected(
                f"Failed to update {state.target_system.value} issue {state.target_issue_id}",
                status_code=result.status_code,
                error=result.error,
            )

        self.states.update(state.id, snapshot.updated_at, utcnow(), snapshot.raw)
        return state.target_issue_id

    def _handle_failure(self, job: SyncJob, exc: Exception) -> SyncStatus:
        sync_log = self._get_log(job.sync_log_id)
        if sync_log is None:
            logger.error(f"Sync log {job.sync_log_id} vanished while failing: {exc}")
            return SyncStatus.FAILED

        details: Dict[str, Any] = {"type": type(exc).__name__, "attempt": job.attempt}
        if isinstance(exc, SyncError):
            details.update(exc.details)
            message = exc.message
        else:
            message = str(exc) or type(exc).__name__

        logger.error(f"Sync log {sync_log.id} failed on attempt {job.attempt}: {message}")
        sync_log.mark_failed(message, details)
        # retry_count records every failed attempt of the chain.
        sync_log.retry_count = (sync_log.retry_count or 0) + 1
        self.db.commit()

        if self.dispatcher is None or not self.policy.should_retry(job.attempt):
            logger.warning(f"Sync log {sync_log.id} failed permanently after {job.attempt} attempt(s)")
            return SyncStatus.FAILED

        delay = self.policy.next_delay(job.attempt - 1)
        sync_log.status = SyncStatus.RETRYING
        self.db.commit()
        self.dispatcher.schedule(job.next_attempt(), delay)
        logger.info(f"Sync log {sync_log.id} retrying in {delay}s (attempt {job.attempt + 1})")
        return SyncStatus.RETRYING

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def request_retry(self, sync_log_id: int) -> SyncLog:
        """Reset a failed log to pending and queue a fresh job."""
        reset = (
            self.db.query(SyncLog)
            .filter(SyncLog.id == sync_log_id, SyncLog.status == SyncStatus.FAILED)
            .update(
                {
                    SyncLog.status: SyncStatus.PENDING,
                    SyncLog.error_message: None,
                    SyncLog.error_details: None,
                    SyncLog.attempt: 0,
                    SyncLog.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()

        sync_log = self._get_log(sync_log_id)
        if sync_log is None:
            raise SyncLogNotFound(f"Sync log {sync_log_id} not found")
        if reset != 1:
            raise InvalidStateError(
                "Only failed syncs can be retried.", {"status": SyncStatus(sync_log.status).value}
            )

        if self.dispatcher is not None:
            self.dispatcher.cancel(sync_log_id)
            self.dispatcher.enqueue(SyncJob(sync_log_id=sync_log_id))
        logger.info(f"Sync log {sync_log_id} queued for manual retry")
        return sync_log

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_log(self, sync_log_id: int) -> Optional[SyncLog]:
        # Claims and resets go through bulk UPDATEs; drop cached instances first.
        self.db.expire_all()
        return self.db.query(SyncLog).filter(SyncLog.id == sync_log_id).first()

    def _get_mapping(self, sync_log: SyncLog) -> ProjectMapping:
        mapping = None
        if sync_log.project_mapping_id is not None:
            mapping = (
                self.db.query(ProjectMapping)
                .filter(ProjectMapping.id == sync_log.project_mapping_id)
                .first()
            )
        if mapping is None:
            raise ConfigurationError(
                "Project mapping not found", {"project_mapping_id": sync_log.project_mapping_id}
            )
        return mapping

    def _client_for(self, mapping: ProjectMapping, system: TrackerSystem) -> IssueTrackerClient:
        connection = mapping.connection_for(system)
        if connection is None:
            raise ConfigurationError(
                f"No {system.value} connection on project mapping {mapping.id}",
                {"project_mapping_id": mapping.id},
            )
        return self.client_factory(connection.as_info())
