"""API routes"""

from syncbridge.api import dashboard, sync, webhooks

__all__ = ["webhooks", "sync", "dashboard"]
