"""Jira REST API client"""
import logging
from typing import Any, Dict, List, Optional

import requests

from syncbridge.models.connection import ConnectionInfo, TrackerSystem
from syncbridge.models.field_mapping import MappingType
from syncbridge.services.errors import RemoteFetchFailed
from syncbridge.services.tracker_client import (
    IssueSnapshot,
    IssueTrackerClient,
    RemoteResult,
    TranslatedIssue,
)

logger = logging.getLogger(__name__)

# API v2 takes plain-text descriptions (v3 requires ADF documents).
API_PREFIX = "/rest/api/2"


def _adf_text(node: Any) -> str:
    """Flatten an Atlassian Document Format node into plain text."""
    if isinstance(node, str):
        return node
    if isinstance(node, list):
        return "".join(_adf_text(child) for child in node)
    if not isinstance(node, dict):
        return ""
    if node.get("type") == "text":
        return node.get("text", "")
    text = _adf_text(node.get("content") or [])
    if node.get("type") in ("paragraph", "heading", "listItem", "codeBlock"):
        text += "\n"
    return text


def _custom_value(value: Any) -> Any:
    """Reduce a Jira custom field value (option, user, list, scalar) to something mappable."""
    if isinstance(value, dict):
        return value.get("value") or value.get("name") or value.get("displayName")
    if isinstance(value, list):
        return [_custom_value(v) for v in value]
    return value


class JiraClient(IssueTrackerClient):
    """Wrapper for Jira issue operations"""

    system = TrackerSystem.JIRA

    def __init__(self, base_url: str, email: str, api_token: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self.session.auth = (email, api_token)
        self.session.headers.update({"Content-Type": "application/json"})

    @classmethod
    def from_connection(
        cls, connection: ConnectionInfo, *, session: Optional[requests.Session] = None
    ) -> "JiraClient":
        email, api_token = cls._require_credentials(connection, "email", "api_token")
        return cls(connection.base_url, email, api_token, session=session)

    def _error_payload(self, response: requests.Response) -> Any:
        body = self._response_body(response)
        if isinstance(body, dict):
            if body.get("errors"):
                return body["errors"]
            if body.get("errorMessages"):
                return body["errorMessages"]
        return body

    def get_issue(self, issue_key: str) -> Optional[Dict[str, Any]]:
        """Get a single issue with its changelog"""
        return self._fetch(f"{API_PREFIX}/issue/{issue_key}", params={"expand": "changelog"})

    def create_issue(self, project_key: str, fields: Dict[str, Any]) -> RemoteResult:
        fields = dict(fields)
        status = fields.pop("status", None)
        payload = {"fields": {"project": {"key": project_key}, **fields}}

        result = self._write("POST", f"{API_PREFIX}/issue", payload)
        if not result.success:
            return result

        issue_key = (result.issue or {}).get("key")
        logger.info(f"Created Jira issue {issue_key} in project {project_key}")

        # New issues always start in the workflow's initial status.
        if status and issue_key:
            transition = self.transition_to_status(issue_key, status)
            if not transition.success:
                # The issue exists now; failing here would create a duplicate on retry.
                logger.warning(f"Created {issue_key} but could not move it to '{status}': {transition.error}")
        return result

    def update_issue(self, issue_key: str, fields: Dict[str, Any]) -> RemoteResult:
        fields = dict(fields)
        status = fields.pop("status", None)

        result = RemoteResult(success=True)
        if fields:
            # Jira answers 204 No Content on success.
            result = self._write("PUT", f"{API_PREFIX}/issue/{issue_key}", {"fields": fields})
            if not result.success:
                return result
            logger.info(f"Updated Jira issue {issue_key}")

        if status:
            return self.transition_to_status(issue_key, status)
        return result

    def get_transitions(self, issue_key: str) -> List[Dict[str, Any]]:
        data = self._fetch(f"{API_PREFIX}/issue/{issue_key}/transitions") or {}
        return data.get("transitions") or []

    def transition_to_status(self, issue_key: str, status_name: str) -> RemoteResult:
        """Move an issue to `status_name` through a matching workflow transition."""
        wanted = status_name.strip().lower()
        try:
            transitions = self.get_transitions(issue_key)
        except RemoteFetchFailed as e:
            return RemoteResult(success=False, error=e.body, status_code=e.status_code)

        for transition in transitions:
            to_name = ((transition.get("to") or {}).get("name") or "").lower()
            if to_name == wanted or (transition.get("name") or "").lower() == wanted:
                result = self._write(
                    "POST",
                    f"{API_PREFIX}/issue/{issue_key}/transitions",
                    {"transition": {"id": transition["id"]}},
                )
                if result.success:
                    logger.info(f"Transitioned Jira issue {issue_key} to '{status_name}'")
                return result

        logger.warning(f"No transition to status '{status_name}' available for {issue_key}; skipping")
        return RemoteResult(success=True)

    def snapshot(self, issue: Dict[str, Any]) -> IssueSnapshot:
        fields = issue.get("fields") or {}

        custom_fields = {}
        for key, value in fields.items():
            if key.startswith("customfield_") and value not in (None, "", []):
                custom_fields[key] = _custom_value(value)

        description = fields.get("description") or ""
        if not isinstance(description, str):
            description = _adf_text(description).strip()

        return IssueSnapshot(
            system=self.system,
            issue_id=self.issue_id(issue),
            title=fields.get("summary") or "",
            description=description,
            tracker=(fields.get("issuetype") or {}).get("name"),
            status=(fields.get("status") or {}).get("name"),
            priority=(fields.get("priority") or {}).get("name"),
            assignee=(fields.get("assignee") or {}).get("displayName"),
            custom_fields=custom_fields,
            updated_at=self.updated_at(issue),
            raw=issue,
        )

    def build_fields(self, translated: TranslatedIssue) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            "summary": translated.title,
            "description": translated.description or "",
        }

        tracker = translated.fields.get(MappingType.TRACKER)
        if tracker is not None:
            fields["issuetype"] = {"name": tracker.value}

        priority = translated.fields.get(MappingType.PRIORITY)
        if priority is not None:
            fields["priority"] = {"name": priority.value}

        # Jira assigns by account id; a display name alone is not enough.
        user = translated.fields.get(MappingType.USER)
        if user is not None and user.id:
            fields["assignee"] = {"id": user.id}

        # Applied through a workflow transition by create_issue/update_issue.
        status = translated.fields.get(MappingType.STATUS)
        if status is not None:
            fields["status"] = status.value

        for cf in translated.custom_fields:
            if cf.field_id:
                fields[cf.field_id] = cf.value
        return fields

    def issue_id(self, issue: Dict[str, Any]) -> str:
        return str(issue["key"])

    def updated_at(self, issue: Dict[str, Any]) -> Optional[str]:
        return (issue.get("fields") or {}).get("updated")
