"""Background job dispatcher for sync jobs"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Hashable, Optional, Set

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from syncbridge.config import settings
from syncbridge.models import SyncLog, SyncStatus
from syncbridge.models.base import SessionLocal
from syncbridge.services.backoff import RetryPolicy
from syncbridge.services.jobs import SyncJob
from syncbridge.services.sync_pipeline import SyncPipeline

logger = logging.getLogger(__name__)


class IssueLeases:
    """In-process mutual exclusion per (source_system, source_issue_id)."""

    def __init__(self):
        self._held: Set[Hashable] = set()
        self._lock = threading.Lock()

    def acquire(self, key: Hashable) -> bool:
        with self._lock:
            if key in self._held:
                return False
            self._held.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._lock:
            self._held.discard(key)


class SyncDispatcher:
    """Runs sync jobs on a thread pool; owns immediate and delayed job timers"""

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        *,
        max_workers: Optional[int] = None,
        scheduler=None,
        pipeline_factory: Callable[..., SyncPipeline] = SyncPipeline,
    ):
        self.scheduler = scheduler or BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers or settings.worker_max_concurrent)},
            job_defaults={"coalesce": False, "misfire_grace_time": None},
        )
        self.session_factory = session_factory
        self.pipeline_factory = pipeline_factory
        self.leases = IssueLeases()

    @staticmethod
    def _job_id(sync_log_id: int) -> str:
        return f"sync_log_{sync_log_id}"

    def start(self):
        """Start the scheduler and pick up work persisted before a restart"""
        self.scheduler.start()
        logger.info("Sync dispatcher started")
        self.recover_pending()

    def stop(self):
        """Stop the scheduler"""
        self.scheduler.shutdown(wait=False)
        logger.info("Sync dispatcher stopped")

    def enqueue(self, job: SyncJob) -> None:
        self.schedule(job, 0)

    def schedule(self, job: SyncJob, delay_seconds: float) -> None:
        """Run `job` after `delay_seconds`, replacing any timer for the same log"""
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(delay_seconds, 0))
        self.scheduler.add_job(
            func=self._run_job,
            trigger=DateTrigger(run_date=run_date),
            id=self._job_id(job.sync_log_id),
            args=[job.sync_log_id, job.attempt],
            replace_existing=True,
        )
        logger.debug(f"Scheduled sync log {job.sync_log_id} attempt {job.attempt} in {delay_seconds}s")

    def cancel(self, sync_log_id: int) -> None:
        """Drop a pending timer for a log (no-op if none)"""
        try:
            self.scheduler.remove_job(self._job_id(sync_log_id))
            logger.info(f"Cancelled scheduled job for sync log {sync_log_id}")
        except JobLookupError:
            pass

    @staticmethod
    def _release_interrupted(db) -> Set[int]:
        """Hand processing logs back to the queue.

        Workers live in this process, so at start-up every processing log
        belongs to a worker that died with the previous one.
        """
        interrupted = db.query(SyncLog).filter(SyncLog.status == SyncStatus.PROCESSING).all()
        ids = {sync_log.id for sync_log in interrupted}
        for sync_log in interrupted:
            sync_log.status = SyncStatus.RETRYING
        if ids:
            db.commit()
            logger.warning(f"Released {len(ids)} interrupted sync log(s): {sorted(ids)}")
        return ids

    def recover_pending(self):
        """Re-queue pending logs and re-arm retry timers from the database"""
        policy = RetryPolicy.from_settings()
        db = self.session_factory()
        try:
            interrupted = self._release_interrupted(db)
            logs = (
                db.query(SyncLog)
                .filter(SyncLog.status.in_((SyncStatus.PENDING, SyncStatus.RETRYING)))
                .order_by(SyncLog.id)
                .all()
            )
            for sync_log in logs:
                # attempt is the last attempt claimed in the current chain
                attempts = max(sync_log.attempt or 0, 1)
                if sync_log.status == SyncStatus.PENDING:
                    self.enqueue(SyncJob(sync_log_id=sync_log.id))
                elif sync_log.id in interrupted:
                    # The interrupted attempt never recorded an outcome; run it again.
                    self.enqueue(SyncJob(sync_log_id=sync_log.id, attempt=attempts))
                else:
                    self.schedule(
                        SyncJob(sync_log_id=sync_log.id, attempt=attempts + 1),
                        policy.next_delay(attempts - 1),
                    )
            if logs:
                logger.info(f"Recovered {len(logs)} queued sync log(s)")
        finally:
            db.close()

    def _run_job(self, sync_log_id: int, attempt: int):
        """Job function executed on the worker pool"""
        job = SyncJob(sync_log_id=sync_log_id, attempt=attempt)
        db = self.session_factory()
        key = None
        try:
            pipeline = self.pipeline_factory(db, self)
            key = pipeline.issue_key(sync_log_id)
            if key is None:
                logger.warning(f"Sync log {sync_log_id} no longer exists; dropping job")
                return
            if not self.leases.acquire(key):
                logger.info(f"Issue {key[0].value}:{key[1]} busy; deferring sync log {sync_log_id}")
                key = None
                self.schedule(job, settings.lease_retry_seconds)
                return
            status = pipeline.run(job)
            logger.info(f"Sync log {sync_log_id} attempt {attempt} finished: {status}")
        except Exception as e:
            logger.exception(f"Sync job for log {sync_log_id} crashed: {e}")
        finally:
            if key is not None:
                self.leases.release(key)
            db.close()


# Global dispatcher instance
dispatcher = SyncDispatcher()


def get_dispatcher() -> SyncDispatcher:
    return dispatcher
