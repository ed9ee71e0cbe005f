"""Inbound webhook endpoints"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from syncbridge.models import TrackerSystem
from syncbridge.models.base import get_db
from syncbridge.scheduler import SyncDispatcher, get_dispatcher
from syncbridge.services.errors import AuthenticationFailed, MalformedPayload
from syncbridge.services.webhook_gate import WebhookGate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def raw_body(request: Request) -> bytes:
    """The signature covers the exact bytes sent."""
    return await request.body()


def _ingest(system: TrackerSystem, request: Request, body: bytes, db: Session, dispatcher: SyncDispatcher):
    gate = WebhookGate(db, dispatcher)
    try:
        result = gate.ingest(system, body, request.headers)
    except AuthenticationFailed as e:
        return JSONResponse(status_code=403, content={"error": e.message})
    except MalformedPayload as e:
        return JSONResponse(status_code=400, content={"error": e.message})
    return {"message": result.message}


@router.post("/redmine")
def redmine_webhook(
    request: Request,
    body: bytes = Depends(raw_body),
    db: Session = Depends(get_db),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
):
    """Handle Redmine issue events"""
    return _ingest(TrackerSystem.REDMINE, request, body, db, dispatcher)


@router.post("/jira")
def jira_webhook(
    request: Request,
    body: bytes = Depends(raw_body),
    db: Session = Depends(get_db),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
):
    """Handle Jira issue events"""
    return _ingest(TrackerSystem.JIRA, request, body, db, dispatcher)
