"""Dashboard and statistics endpoints"""

from datetime import timedelta

from fastapi import APIRouter, Depends
from sqlalchemy import case, desc, func
from sqlalchemy.orm import Session

from syncbridge.models import Connection, ProjectMapping, SyncLog, SyncState, SyncStatus
from syncbridge.models.base import get_db, utcnow

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def _status_sum(status: SyncStatus):
    return func.sum(case((SyncLog.status == status, 1), else_=0))


def _log_entry(log: SyncLog) -> dict:
    return {
        "id": log.id,
        "project_mapping_id": log.project_mapping_id,
        "source_system": log.source_system,
        "target_system": log.target_system,
        "source_issue_id": log.source_issue_id,
        "target_issue_id": log.target_issue_id,
        "sync_type": log.sync_type,
        "status": log.status,
        "retry_count": log.retry_count,
        "attempt": log.attempt,
        "error_message": log.error_message,
        "created_at": log.created_at,
    }


@router.get("/stats")
def get_dashboard_stats(db: Session = Depends(get_db)):
    """Get dashboard statistics"""
    status_counts = {status.value: 0 for status in SyncStatus}
    for status, count in db.query(SyncLog.status, func.count(SyncLog.id)).group_by(SyncLog.status):
        status_counts[SyncStatus(status).value] = count

    active_mappings = db.query(ProjectMapping).filter(ProjectMapping.is_enabled == True).count()
    active_connections = db.query(Connection).filter(Connection.is_active == True).count()
    total_synced_issues = db.query(SyncState).count()

    # Per project mapping stats
    by_mapping = []
    rows = (
        db.query(
            SyncLog.project_mapping_id,
            func.count(SyncLog.id),
            _status_sum(SyncStatus.SUCCESS),
            _status_sum(SyncStatus.FAILED),
            _status_sum(SyncStatus.PENDING),
        )
        .filter(SyncLog.project_mapping_id.isnot(None))
        .group_by(SyncLog.project_mapping_id)
        .all()
    )
    for mapping_id, total, success, failed, pending in rows:
        mapping = db.query(ProjectMapping).filter(ProjectMapping.id == mapping_id).first()
        by_mapping.append(
            {
                "project_mapping_id": mapping_id,
                "redmine_project": mapping.redmine_project_name or mapping.redmine_project_id
                if mapping
                else None,
                "jira_project": mapping.jira_project_name or mapping.jira_project_key
                if mapping
                else None,
                "total": total,
                "success": int(success or 0),
                "failed": int(failed or 0),
                "pending": int(pending or 0),
            }
        )

    recent_failures = (
        db.query(SyncLog)
        .filter(SyncLog.status == SyncStatus.FAILED)
        .order_by(desc(SyncLog.created_at))
        .limit(10)
        .all()
    )

    return {
        "total_synced": status_counts[SyncStatus.SUCCESS.value],
        "pending": status_counts[SyncStatus.PENDING.value],
        "failed": status_counts[SyncStatus.FAILED.value],
        "by_status": status_counts,
        "active_mappings": active_mappings,
        "active_connections": active_connections,
        "total_synced_issues": total_synced_issues,
        "by_project_mapping": by_mapping,
        "recent_failures": [_log_entry(log) for log in recent_failures],
    }


@router.get("/activity")
def get_recent_activity(limit: int = 20, db: Session = Depends(get_db)):
    """Get recent sync activity"""
    logs = db.query(SyncLog).order_by(desc(SyncLog.created_at), desc(SyncLog.id)).limit(limit).all()
    return [_log_entry(log) for log in logs]


@router.get("/daily")
def get_daily_stats(days: int = 7, db: Session = Depends(get_db)):
    """Per-day sync totals for the last `days` days"""
    since = utcnow() - timedelta(days=days)
    day = func.date(SyncLog.created_at)
    rows = (
        db.query(
            day,
            func.count(SyncLog.id),
            _status_sum(SyncStatus.SUCCESS),
            _status_sum(SyncStatus.FAILED),
        )
        .filter(SyncLog.created_at >= since)
        .group_by(day)
        .order_by(day)
        .all()
    )
    return {
        "stats": [
            {"date": str(date), "total": total, "success": int(success or 0), "failed": int(failed or 0)}
            for date, total, success, failed in rows
        ]
    }
