"""Retry/backoff policy for failed sync jobs"""
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

DEFAULT_DELAYS: Tuple[int, ...] = (60, 300, 900)
DEFAULT_MAX_ATTEMPTS = 3


def parse_delays(value: str) -> Tuple[int, ...]:
    """Parse a comma-separated list of delays in seconds ("60,300,900")."""
    delays = tuple(int(part.strip()) for part in (value or "").split(",") if part.strip())
    if not delays:
        return DEFAULT_DELAYS
    if any(d < 0 for d in delays):
        raise ValueError(f"Backoff delays must be non-negative: {value!r}")
    return delays


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with a fixed escalating delay table.

    `attempt_index` is the number of attempts already made for the job.
    """

    delays: Sequence[int] = DEFAULT_DELAYS
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    @classmethod
    def from_settings(cls, settings=None) -> "RetryPolicy":
        if settings is None:
            from syncbridge.config import settings
        return cls(
            delays=parse_delays(settings.sync_backoff_seconds),
            max_attempts=settings.sync_max_attempts,
        )

    def next_delay(self, attempt_index: int) -> int:
        """Delay (seconds) before retry number `attempt_index` (0-based)."""
        if not self.delays:
            return 0
        index = min(max(attempt_index, 0), len(self.delays) - 1)
        return int(self.delays[index])

    def should_retry(self, attempt_index: int, max_attempts: Optional[int] = None) -> bool:
        limit = self.max_attempts if max_attempts is None else max_attempts
        return attempt_index < limit
