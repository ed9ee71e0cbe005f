"""Common issue tracker client interface"""
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

from syncbridge.config import settings
from syncbridge.models.connection import ConnectionInfo, TrackerSystem
from syncbridge.models.field_mapping import MappingType
from syncbridge.services.errors import ConfigurationError, RemoteFetchFailed

logger = logging.getLogger(__name__)


@dataclass
class RemoteResult:
    """Outcome of a remote write. `error` holds the remote error payload verbatim."""

    success: bool
    issue: Optional[Dict[str, Any]] = None
    error: Any = None
    status_code: Optional[int] = None


@dataclass
class IssueSnapshot:
    """Tracker-neutral view of the fields the engine synchronizes."""

    system: TrackerSystem
    issue_id: str
    title: str
    description: str = ""
    tracker: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee: Optional[str] = None
    custom_fields: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass(frozen=True)
class TargetFieldValue:
    value: str
    id: Optional[str] = None
    # Only set for custom fields: the target system's field identifier.
    field_id: Optional[str] = None


@dataclass
class TranslatedIssue:
    source_system: TrackerSystem
    target_system: TrackerSystem
    title: str
    description: str = ""
    fields: Dict[MappingType, TargetFieldValue] = field(default_factory=dict)
    custom_fields: List[TargetFieldValue] = field(default_factory=list)


class IssueTrackerClient(ABC):
    """Fetch/create/update issues on one remote tracker.

    Remote failures never escape as raw transport exceptions: reads raise
    RemoteFetchFailed (with HTTP status and body), writes return a RemoteResult.
    """

    system: TrackerSystem

    def __init__(
        self,
        base_url: str,
        *,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        if timeout is None:
            timeout = settings.http_timeout_seconds
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    @classmethod
    @abstractmethod
    def from_connection(
        cls, connection: ConnectionInfo, *, session: Optional[requests.Session] = None
    ) -> "IssueTrackerClient":
        ...

    @abstractmethod
    def get_issue(self, issue_id: str) -> Optional[Dict[str, Any]]:
        """Return the issue, or None if it does not exist."""

    @abstractmethod
    def create_issue(self, project_id: str, fields: Dict[str, Any]) -> RemoteResult:
        ...

    @abstractmethod
    def update_issue(self, issue_id: str, fields: Dict[str, Any]) -> RemoteResult:
        ...

    @abstractmethod
    def snapshot(self, issue: Dict[str, Any]) -> IssueSnapshot:
        ...

    @abstractmethod
    def build_fields(self, translated: TranslatedIssue) -> Dict[str, Any]:
        """Native create/update payload for translated values."""

    @abstractmethod
    def issue_id(self, issue: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    def updated_at(self, issue: Dict[str, Any]) -> Optional[str]:
        ...

    @staticmethod
    def _require_credentials(connection: ConnectionInfo, *names: str) -> List[str]:
        creds = connection.credentials or {}
        missing = [name for name in names if not creds.get(name)]
        if missing:
            raise ConfigurationError(
                f"{connection.type.value} connection is missing credentials: {', '.join(missing)}"
            )
        return [creds[name] for name in names]

    @staticmethod
    def _should_retry(response: requests.Response) -> bool:
        """Best-effort retry predicate for transient remote failures."""
        return response.status_code in (429, 502, 503, 504)

    def _with_retries(
        self, fn: Callable[[], requests.Response], *, max_attempts: int = 3, base_delay_s: float = 0.5
    ) -> requests.Response:
        """Run an idempotent request with small exponential backoff on transient errors."""
        attempt = 1
        while True:
            response = fn()
            if attempt >= max_attempts or not self._should_retry(response):
                return response
            time.sleep(base_delay_s * (2 ** (attempt - 1)))
            attempt += 1

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        kwargs.setdefault("timeout", self.timeout)

        def send():
            return self.session.request(method, url, **kwargs)

        # POST is not idempotent (would duplicate issues), so only reads/updates are retried.
        if method in ("GET", "PUT"):
            return self._with_retries(send)
        return send()

    @staticmethod
    def _response_body(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    def _error_payload(self, response: requests.Response) -> Any:
        return self._response_body(response)

    def _fetch(self, path: str, *, params=None, unwrap: Optional[str] = None) -> Optional[Dict[str, Any]]:
        try:
            response = self._request("GET", path, params=params)
        except requests.RequestException as e:
            logger.error(f"{self.system.value} GET {path} failed: {e}")
            raise RemoteFetchFailed(f"Failed to fetch {path}: {e}", body=str(e)) from e

        if response.status_code == 404:
            return None
        if not response.ok:
            body = self._error_payload(response)
            logger.error(f"{self.system.value} GET {path} returned {response.status_code}: {body}")
            raise RemoteFetchFailed(
                f"Failed to fetch {path}: HTTP {response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        data = self._response_body(response)
        if not isinstance(data, dict):
            raise RemoteFetchFailed(
                f"Unexpected response for {path}", status_code=response.status_code, body=data
            )
        return data.get(unwrap) if unwrap else data

    def _write(self, method: str, path: str, payload: Dict[str, Any], *, unwrap: Optional[str] = None) -> RemoteResult:
        try:
            response = self._request(method, path, json=payload)
        except requests.RequestException as e:
            logger.error(f"{self.system.value} {method} {path} failed: {e}")
            return RemoteResult(success=False, error=str(e))

        if not response.ok:
            error = self._error_payload(response)
            logger.error(f"{self.system.value} {method} {path} returned {response.status_code}: {error}")
            return RemoteResult(success=False, error=error, status_code=response.status_code)

        issue = None
        if response.content:
            body = self._response_body(response)
            if isinstance(body, dict):
                issue = body.get(unwrap) if unwrap else body
        return RemoteResult(success=True, issue=issue, status_code=response.status_code)
