"""Sync engine error taxonomy"""
from typing import Any, Dict, Optional


class SyncError(Exception):
    """Base error; `details` ends up in SyncLog.error_details."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Webhook intake


class AuthenticationFailed(SyncError):
    """Bad or missing webhook signature (HTTP 403)."""


class MalformedPayload(SyncError):
    """Webhook payload lacks the issue/project identifiers (HTTP 400)."""


class NotConfigured(SyncError):
    """No enabled project mapping accepts this event (acknowledged, not queued)."""

    reason = "not_configured"


class DuplicateEvent(SyncError):
    """A pending sync for the same issue is inside the idempotency window."""

    reason = "duplicate"


# Job execution


class ConfigurationError(SyncError):
    """Project mapping, connection or credentials missing for a job."""


class RemoteFetchFailed(SyncError):
    """Source issue could not be fetched (HTTP error, timeout, bad response)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message, {"status_code": status_code, "error": body})
        self.status_code = status_code
        self.body = body


class RemoteNotFound(SyncError):
    """Source issue does not exist (or is not visible) on the remote side."""


class RemoteWriteRejected(SyncError):
    """Target tracker refused a create/update."""

    def __init__(self, message: str, status_code: Optional[int] = None, error: Any = None):
        super().__init__(message, {"status_code": status_code, "error": error})
        self.status_code = status_code
        self.error = error


class StoreConflict(SyncError):
    """Unique constraint hit while persisting sync state (concurrent sync of one issue)."""


# Operator actions


class SyncLogNotFound(SyncError):
    """Referenced sync log does not exist."""


class InvalidStateError(SyncError):
    """Requested transition is not allowed from the log's current status."""
