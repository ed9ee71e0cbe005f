import logging
import unittest

import requests

from syncbridge.models import ConnectionInfo, MappingType, TrackerSystem
from syncbridge.services.clients import build_client
from syncbridge.services.errors import ConfigurationError, RemoteFetchFailed
from syncbridge.services.jira_client import JiraClient
from syncbridge.services.redmine_client import RedmineClient
from syncbridge.services.tracker_client import TargetFieldValue, TranslatedIssue

from tests.support import StubResponse, StubSession


class RedmineClientTests(unittest.TestCase):
    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def _client(self, *responses):
        session = StubSession(responses)
        return RedmineClient("https://redmine.example/", "key", session=session, timeout=5), session

    def test_get_issue_unwraps_issue(self):
        client, session = self._client(StubResponse(200, {"issue": {"id": 77, "subject": "Crash"}}))

        issue = client.get_issue("77")

        self.assertEqual(issue["subject"], "Crash")
        method, url, kwargs = session.calls[0]
        self.assertEqual((method, url), ("GET", "https://redmine.example/issues/77.json"))
        self.assertEqual(kwargs["params"], {"include": "attachments,relations,journals"})
        self.assertEqual(kwargs["timeout"], 5)
        self.assertEqual(session.headers["X-Redmine-API-Key"], "key")

    def test_get_issue_404_returns_none(self):
        client, _ = self._client(StubResponse(404, {"errors": ["Not found"]}))
        self.assertIsNone(client.get_issue("77"))

    def test_get_issue_error_raises_remote_fetch_failed(self):
        client, _ = self._client(StubResponse(500, None, text="Internal error"))

        with self.assertRaises(RemoteFetchFailed) as ctx:
            client.get_issue("77")
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.body, "Internal error")
        self.assertEqual(ctx.exception.details["status_code"], 500)

    def test_transport_error_raises_remote_fetch_failed(self):
        client, _ = self._client(requests.Timeout("timed out"))

        with self.assertRaises(RemoteFetchFailed) as ctx:
            client.get_issue("77")
        self.assertIsNone(ctx.exception.status_code)

    def test_create_issue_posts_project_and_fields(self):
        client, session = self._client(StubResponse(201, {"issue": {"id": 501}}))

        result = client.create_issue("42", {"subject": "Crash", "tracker_id": 1})

        self.assertTrue(result.success)
        self.assertEqual(result.issue, {"id": 501})
        method, url, kwargs = session.calls[0]
        self.assertEqual((method, url), ("POST", "https://redmine.example/issues.json"))
        self.assertEqual(kwargs["json"], {"issue": {"project_id": 42, "subject": "Crash", "tracker_id": 1}})

    def test_create_issue_failure_keeps_remote_errors(self):
        client, _ = self._client(StubResponse(422, {"errors": ["Subject cannot be blank"]}))

        result = client.create_issue("42", {"subject": ""})

        self.assertFalse(result.success)
        self.assertEqual(result.status_code, 422)
        self.assertEqual(result.error, ["Subject cannot be blank"])

    def test_update_issue_accepts_no_content(self):
        client, session = self._client(StubResponse(204))

        result = client.update_issue("501", {"subject": "Crash"})

        self.assertTrue(result.success)
        self.assertIsNone(result.issue)
        self.assertEqual(session.calls[0][2]["json"], {"issue": {"subject": "Crash"}})

    def test_snapshot(self):
        client, _ = self._client()
        snapshot = client.snapshot(
            {
                "id": 77,
                "subject": "Crash",
                "tracker": {"id": 1, "name": "Bug"},
                "status": {"id": 2, "name": "In Progress"},
                "assigned_to": {"id": 5, "name": "Alice"},
                "custom_fields": [{"id": 7, "value": "Web"}, {"id": 8, "value": ""}],
                "updated_on": "2025-03-01T10:00:00Z",
            }
        )
        self.assertEqual(snapshot.issue_id, "77")
        self.assertEqual(snapshot.tracker, "Bug")
        self.assertEqual(snapshot.status, "In Progress")
        self.assertIsNone(snapshot.priority)
        self.assertEqual(snapshot.assignee, "Alice")
        self.assertEqual(snapshot.custom_fields, {"7": "Web"})
        self.assertEqual(snapshot.updated_at, "2025-03-01T10:00:00Z")

    def test_build_fields_requires_ids(self):
        client, _ = self._client()
        translated = TranslatedIssue(
            source_system=TrackerSystem.JIRA,
            target_system=TrackerSystem.REDMINE,
            title="Crash",
            fields={
                MappingType.TRACKER: TargetFieldValue("Bug", id="1"),
                MappingType.PRIORITY: TargetFieldValue("High"),
                MappingType.USER: TargetFieldValue("Alice", id="5"),
            },
            custom_fields=[TargetFieldValue("Web", field_id="7")],
        )

        self.assertEqual(
            client.build_fields(translated),
            {
                "subject": "Crash",
                "description": "",
                "tracker_id": 1,
                "assigned_to_id": 5,
                "custom_fields": [{"id": 7, "value": "Web"}],
            },
        )


class JiraClientTests(unittest.TestCase):
    def setUp(self):
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        logging.disable(logging.NOTSET)

    def _client(self, *responses):
        session = StubSession(responses)
        return JiraClient("https://jira.example", "bot@example.com", "token", session=session), session

    def test_uses_basic_auth_and_api_v2(self):
        client, session = self._client(StubResponse(200, {"key": "PROJ-12", "fields": {}}))

        issue = client.get_issue("PROJ-12")

        self.assertEqual(issue["key"], "PROJ-12")
        self.assertEqual(session.auth, ("bot@example.com", "token"))
        method, url, kwargs = session.calls[0]
        self.assertEqual(url, "https://jira.example/rest/api/2/issue/PROJ-12")
        self.assertEqual(kwargs["params"], {"expand": "changelog"})

    def test_create_issue_transitions_to_status(self):
        client, session = self._client(
            StubResponse(201, {"id": "10001", "key": "PROJ-13"}),
            StubResponse(200, {"transitions": [{"id": "31", "name": "Start", "to": {"name": "In Progress"}}]}),
            StubResponse(204),
        )

        result = client.create_issue("PROJ", {"summary": "Crash", "status": "In Progress"})

        self.assertTrue(result.success)
        self.assertEqual(result.issue["key"], "PROJ-13")
        create_call, transitions_call, post_call = session.calls
        self.assertEqual(create_call[2]["json"], {"fields": {"project": {"key": "PROJ"}, "summary": "Crash"}})
        self.assertEqual(transitions_call[1], "https://jira.example/rest/api/2/issue/PROJ-13/transitions")
        self.assertEqual(post_call[0], "POST")
        self.assertEqual(post_call[2]["json"], {"transition": {"id": "31"}})

    def test_create_issue_failure_returns_error_payload(self):
        client, _ = self._client(StubResponse(400, {"errorMessages": [], "errors": {"summary": "required"}}))

        result = client.create_issue("PROJ", {"summary": ""})

        self.assertFalse(result.success)
        self.assertEqual(result.status_code, 400)
        self.assertEqual(result.error, {"summary": "required"})

    def test_update_issue_without_matching_transition(self):
        client, session = self._client(
            StubResponse(204),
            StubResponse(200, {"transitions": [{"id": "11", "name": "Close", "to": {"name": "Done"}}]}),
        )

        result = client.update_issue("PROJ-12", {"summary": "Crash", "status": "Blocked"})

        self.assertTrue(result.success)
        self.assertEqual(len(session.calls), 2)
        self.assertEqual(session.calls[0][2]["json"], {"fields": {"summary": "Crash"}})

    def test_snapshot_flattens_adf_and_custom_fields(self):
        client, _ = self._client()
        snapshot = client.snapshot(
            {
                "key": "PROJ-12",
                "fields": {
                    "summary": "Login broken",
                    "description": {
                        "type": "doc",
                        "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Steps"}]}],
                    },
                    "issuetype": {"name": "Bug"},
                    "priority": {"name": "High"},
                    "customfield_10001": {"value": "web"},
                    "customfield_10002": None,
                    "updated": "2025-03-01T10:00:00.000+0000",
                },
            }
        )
        self.assertEqual(snapshot.issue_id, "PROJ-12")
        self.assertEqual(snapshot.description, "Steps")
        self.assertEqual(snapshot.tracker, "Bug")
        self.assertIsNone(snapshot.assignee)
        self.assertEqual(snapshot.custom_fields, {"customfield_10001": "web"})

    def test_build_fields(self):
        client, _ = self._client()
        translated = TranslatedIssue(
            source_system=TrackerSystem.REDMINE,
            target_system=TrackerSystem.JIRA,
            title="Crash",
            description="Details",
            fields={
                MappingType.TRACKER: TargetFieldValue("Bug"),
                MappingType.STATUS: TargetFieldValue("In Progress"),
                MappingType.USER: TargetFieldValue("Alice"),
            },
            custom_fields=[TargetFieldValue("web", field_id="customfield_10001")],
        )

        self.assertEqual(
            client.build_fields(translated),
            {
                "summary": "Crash",
                "description": "Details",
                "issuetype": {"name": "Bug"},
                "status": "In Progress",
                "customfield_10001": "web",
            },
        )


class BuildClientTests(unittest.TestCase):
    def test_selects_client_by_type(self):
        redmine = build_client(
            ConnectionInfo(TrackerSystem.REDMINE, "https://redmine.example", {"api_key": "k"}),
            session=StubSession(),
        )
        jira = build_client(
            ConnectionInfo(TrackerSystem.JIRA, "https://jira.example", {"email": "a@b.c", "api_token": "t"}),
            session=StubSession(),
        )
        self.assertIsInstance(redmine, RedmineClient)
        self.assertIsInstance(jira, JiraClient)

    def test_missing_credentials(self):
        with self.assertRaises(ConfigurationError):
            build_client(ConnectionInfo(TrackerSystem.JIRA, "https://jira.example", {"email": "a@b.c"}))

    def test_unknown_type(self):
        with self.assertRaises(ConfigurationError):
            build_client(ConnectionInfo("gitlab", "https://gitlab.example", {}))


if __name__ == "__main__":
    unittest.main()
