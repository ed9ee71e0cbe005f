"""Sync job value and the dispatcher interface the engine pushes jobs onto"""
from dataclasses import dataclass, replace
from typing import Protocol


@dataclass(frozen=True)
class SyncJob:
    """One execution request for a sync log.

    `attempt` is 1-based and travels with the job, so the retry decision never
    depends on state kept by the queue runtime.
    """

    sync_log_id: int
    attempt: int = 1

    def next_attempt(self) -> "SyncJob":
        return replace(self, attempt=self.attempt + 1)


class JobDispatcher(Protocol):
    def enqueue(self, job: SyncJob) -> None:
        ...

    def schedule(self, job: SyncJob, delay_seconds: float) -> None:
        ...

    def cancel(self, sync_log_id: int) -> None:
        ...
