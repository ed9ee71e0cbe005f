"""Redmine REST API client"""
import logging
from typing import Any, Dict, Optional

import requests

from syncbridge.models.connection import ConnectionInfo, TrackerSystem
from syncbridge.models.field_mapping import MappingType
from syncbridge.services.tracker_client import (
    IssueSnapshot,
    IssueTrackerClient,
    RemoteResult,
    TranslatedIssue,
)

logger = logging.getLogger(__name__)

# Translated field -> Redmine payload key. Redmine expects numeric ids for these.
_ID_FIELDS = {
    MappingType.TRACKER: "tracker_id",
    MappingType.PRIORITY: "priority_id",
    MappingType.USER: "assigned_to_id",
    MappingType.STATUS: "status_id",
}


def _as_id(value: Any) -> Any:
    text = str(value)
    return int(text) if text.isdigit() else text


def _name(obj: Any) -> Optional[str]:
    if isinstance(obj, dict):
        return obj.get("name")
    return None


class RedmineClient(IssueTrackerClient):
    """Wrapper for Redmine issue operations"""

    system = TrackerSystem.REDMINE

    def __init__(self, base_url: str, api_key: str, **kwargs):
        super().__init__(base_url, **kwargs)
        self.session.headers.update({"X-Redmine-API-Key": api_key})

    @classmethod
    def from_connection(
        cls, connection: ConnectionInfo, *, session: Optional[requests.Session] = None
    ) -> "RedmineClient":
        (api_key,) = cls._require_credentials(connection, "api_key")
        return cls(connection.base_url, api_key, session=session)

    def _error_payload(self, response: requests.Response) -> Any:
        body = self._response_body(response)
        if isinstance(body, dict) and body.get("errors"):
            return body["errors"]
        return body

    def get_issue(self, issue_id: str) -> Optional[Dict[str, Any]]:
        """Get a single issue with journals"""
        return self._fetch(
            f"/issues/{issue_id}.json",
            params={"include": "attachments,relations,journals"},
            unwrap="issue",
        )

    def create_issue(self, project_id: str, fields: Dict[str, Any]) -> RemoteResult:
        payload = {"issue": {"project_id": _as_id(project_id), **fields}}
        result = self._write("POST", "/issues.json", payload, unwrap="issue")
        if result.success:
            logger.info(f"Created Redmine issue #{(result.issue or {}).get('id')} in project {project_id}")
        return result

    def update_issue(self, issue_id: str, fields: Dict[str, Any]) -> RemoteResult:
        # Redmine answers 204 No Content on success.
        result = self._write("PUT", f"/issues/{issue_id}.json", {"issue": fields})
        if result.success:
            logger.info(f"Updated Redmine issue #{issue_id}")
        return result

    def snapshot(self, issue: Dict[str, Any]) -> IssueSnapshot:
        custom_fields = {}
        for cf in issue.get("custom_fields") or []:
            if cf.get("id") is not None and cf.get("value") not in (None, ""):
                custom_fields[str(cf["id"])] = cf["value"]

        return IssueSnapshot(
            system=self.system,
            issue_id=self.issue_id(issue),
            title=issue.get("subject") or "",
            description=issue.get("description") or "",
            tracker=_name(issue.get("tracker")),
            status=_name(issue.get("status")),
            priority=_name(issue.get("priority")),
            assignee=_name(issue.get("assigned_to")),
            custom_fields=custom_fields,
            updated_at=self.updated_at(issue),
            raw=issue,
        )

    def build_fields(self, translated: TranslatedIssue) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            "subject": translated.title,
            "description": translated.description or "",
        }
        for mapping_type, key in _ID_FIELDS.items():
            target = translated.fields.get(mapping_type)
            # Redmine has no by-name lookup for these; a mapping without an id is unusable.
            if target is not None and target.id:
                fields[key] = _as_id(target.id)

        custom = [
            {"id": _as_id(cf.field_id), "value": cf.value}
            for cf in translated.custom_fields
            if cf.field_id
        ]
        if custom:
            fields["custom_fields"] = custom
        return fields

    def issue_id(self, issue: Dict[str, Any]) -> str:
        return str(issue["id"])

    def updated_at(self, issue: Dict[str, Any]) -> Optional[str]:
        return issue.get("updated_on")
