"""Sync log and sync state endpoints"""
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from syncbridge.models import SyncLog, SyncState, SyncStatus, SyncType, TrackerSystem
from syncbridge.models.base import get_db
from syncbridge.scheduler import SyncDispatcher, get_dispatcher
from syncbridge.services.errors import InvalidStateError, SyncLogNotFound
from syncbridge.services.sync_pipeline import SyncPipeline

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncLogResponse(BaseModel):
    id: int
    project_mapping_id: Optional[int] = None
    source_system: TrackerSystem
    target_system: TrackerSystem
    source_issue_id: str
    target_issue_id: Optional[str] = None
    sync_type: SyncType
    status: SyncStatus
    retry_count: int
    attempt: int
    error_message: Optional[str] = None
    error_details: Optional[Any] = None
    processed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class SyncStateResponse(BaseModel):
    id: int
    source_system: TrackerSystem
    source_issue_id: str
    target_system: TrackerSystem
    target_issue_id: str
    source_updated_at: Optional[datetime] = None
    target_updated_at: Optional[datetime] = None
    last_synced_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/logs", response_model=List[SyncLogResponse])
def list_sync_logs(
    limit: int = 100,
    status: Optional[SyncStatus] = None,
    project_mapping_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    """List sync logs, newest first"""
    query = db.query(SyncLog).order_by(SyncLog.created_at.desc(), SyncLog.id.desc())
    if status is not None:
        query = query.filter(SyncLog.status == status)
    if project_mapping_id:
        query = query.filter(SyncLog.project_mapping_id == project_mapping_id)
    return query.limit(limit).all()


@router.get("/logs/{log_id}", response_model=SyncLogResponse)
def get_sync_log(log_id: int, db: Session = Depends(get_db)):
    """Get a specific sync log"""
    sync_log = db.query(SyncLog).filter(SyncLog.id == log_id).first()
    if not sync_log:
        raise HTTPException(status_code=404, detail="Sync log not found")
    return sync_log


@router.post("/logs/{log_id}/retry")
def retry_sync_log(
    log_id: int,
    db: Session = Depends(get_db),
    dispatcher: SyncDispatcher = Depends(get_dispatcher),
):
    """Manually retry a failed sync"""
    pipeline = SyncPipeline(db, dispatcher)
    try:
        pipeline.request_retry(log_id)
    except SyncLogNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidStateError as e:
        raise HTTPException(status_code=422, detail=e.message)
    return {"success": True, "message": "Sync queued for retry."}


@router.get("/states", response_model=List[SyncStateResponse])
def list_sync_states(
    source_system: Optional[TrackerSystem] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    """List synced issue correspondences"""
    query = db.query(SyncState).order_by(SyncState.last_synced_at.desc())
    if source_system is not None:
        query = query.filter(SyncState.source_system == source_system)
    return query.limit(limit).all()
