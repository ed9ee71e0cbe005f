"""Shared fixtures for unit tests: in-memory database and fake collaborators."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from syncbridge.models import (
    Base,
    Connection,
    FieldMapping,
    MappingType,
    ProjectMapping,
    SyncDirection,
    TrackerSystem,
)
from syncbridge.services.jira_client import JiraClient
from syncbridge.services.redmine_client import RedmineClient
from syncbridge.services.tracker_client import RemoteResult


def make_session_factory():
    """Fresh in-memory SQLite database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_mapping(
    db,
    *,
    direction=SyncDirection.BIDIRECTIONAL,
    enabled=True,
    redmine_project_id="42",
    jira_project_key="PROJ",
):
    redmine = Connection(
        type=TrackerSystem.REDMINE,
        name="redmine",
        url="https://redmine.example",
        credentials={"api_key": "redmine-key"},
    )
    jira = Connection(
        type=TrackerSystem.JIRA,
        name="jira",
        url="https://jira.example",
        credentials={"email": "bot@example.com", "api_token": "jira-token"},
    )
    db.add_all([redmine, jira])
    db.flush()

    mapping = ProjectMapping(
        redmine_connection_id=redmine.id,
        jira_connection_id=jira.id,
        redmine_project_id=redmine_project_id,
        redmine_project_name="Backend",
        jira_project_key=jira_project_key,
        jira_project_name="Project",
        sync_direction=direction,
        is_enabled=enabled,
    )
    db.add(mapping)
    db.commit()
    return mapping


def add_field_mapping(db, mapping_type, redmine_value, jira_value, **kwargs):
    row = FieldMapping(
        mapping_type=MappingType(mapping_type),
        redmine_value=redmine_value,
        jira_value=jira_value,
        **kwargs,
    )
    db.add(row)
    db.commit()
    return row


class FakeDispatcher:
    def __init__(self):
        self.enqueued = []
        self.scheduled = []
        self.cancelled = []

    def enqueue(self, job):
        self.enqueued.append(job)

    def schedule(self, job, delay_seconds):
        self.scheduled.append((job, delay_seconds))

    def cancel(self, sync_log_id):
        self.cancelled.append(sync_log_id)


class _RecordingMixin:
    """Replaces the network calls of a real client, keeping snapshot/build_fields."""

    def _setup_fake(self, issues=None):
        self.issues = dict(issues or {})
        self.created = []
        self.updated = []
        self.create_results = []
        self.update_results = []
        self.fetch_error = None

    def get_issue(self, issue_id):
        if self.fetch_error is not None:
            raise self.fetch_error
        return self.issues.get(str(issue_id))

    def create_issue(self, project_id, fields):
        self.created.append((project_id, fields))
        return self.create_results.pop(0) if self.create_results else RemoteResult(success=False)

    def update_issue(self, issue_id, fields):
        self.updated.append((issue_id, fields))
        if self.update_results:
            return self.update_results.pop(0)
        return RemoteResult(success=True, status_code=204)


class FakeRedmine(_RecordingMixin, RedmineClient):
    def __init__(self, issues=None):
        super().__init__("https://redmine.example", "redmine-key")
        self._setup_fake(issues)


class FakeJira(_RecordingMixin, JiraClient):
    def __init__(self, issues=None):
        super().__init__("https://jira.example", "bot@example.com", "jira-token")
        self._setup_fake(issues)


class StubResponse:
    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.content = b"" if json_data is None and not text else b"x"

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class StubSession:
    """Minimal stand-in for requests.Session returning queued responses."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.calls = []
        self.headers = {}
        self.auth = None

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response
