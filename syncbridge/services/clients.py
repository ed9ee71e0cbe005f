"""Tracker client selection by connection type"""
from typing import Dict, Optional, Type

import requests

from syncbridge.models.connection import ConnectionInfo, TrackerSystem
from syncbridge.services.errors import ConfigurationError
from syncbridge.services.jira_client import JiraClient
from syncbridge.services.redmine_client import RedmineClient
from syncbridge.services.tracker_client import IssueTrackerClient

CLIENT_TYPES: Dict[TrackerSystem, Type[IssueTrackerClient]] = {
    TrackerSystem.REDMINE: RedmineClient,
    TrackerSystem.JIRA: JiraClient,
}


def build_client(
    connection: ConnectionInfo, *, session: Optional[requests.Session] = None
) -> IssueTrackerClient:
    """Instantiate the client matching `connection.type`."""
    try:
        client_cls = CLIENT_TYPES[TrackerSystem(connection.type)]
    except (KeyError, ValueError):
        raise ConfigurationError(f"Unsupported tracker type: {connection.type}") from None
    return client_cls.from_connection(connection, session=session)
