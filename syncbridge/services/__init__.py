"""Services"""

from syncbridge.services.clients import build_client
from syncbridge.services.jira_client import JiraClient
from syncbridge.services.redmine_client import RedmineClient
from syncbridge.services.sync_pipeline import SyncPipeline
from syncbridge.services.webhook_gate import WebhookGate

__all__ = ["build_client", "JiraClient", "RedmineClient", "SyncPipeline", "WebhookGate"]
