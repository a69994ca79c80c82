"""Activity logging service: records state-changing operations.

Entries are immutable. The service provides a write-only interface for the
application and a filtered read interface for admins.

Usage in service layer:
    activity_service.record(db, "SHARE_MINDMAP", "Mindmap", mindmap.id,
                            user_id=owner_id, metadata={"sharedWith": email})
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import sqlalchemy.exc
from sqlalchemy.orm import Session, joinedload

from ..models.user import ActivityLog
from ..repositories.base import paginate
from ..schemas.common import Page, PaginationMeta
from ..schemas.user import ActivityLogQuery, ActivityLogResponse

logger = logging.getLogger(__name__)


def record(
    db: Session,
    action: str,
    entity: str,
    entity_id: Optional[str] = None,
    user_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    """Write an activity entry. Never raises; failures are logged but don't break operations.

    Call after the primary operation has committed; this commits on its own.
    """
    try:
        entry = ActivityLog(
            action=action,
            entity=entity,
            entity_id=entity_id,
            user_id=user_id,
            details=metadata or None,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.add(entry)
        db.commit()
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.warning("Failed to write activity log (%s): %s", action, e)
        db.rollback()


def get_logs(db: Session, query: ActivityLogQuery) -> Page[ActivityLogResponse]:
    """Filtered, newest-first page of activity entries."""
    q = db.query(ActivityLog).options(joinedload(ActivityLog.user))
    if query.user_id:
        q = q.filter(ActivityLog.user_id == query.user_id)
    if query.action:
        q = q.filter(ActivityLog.action == query.action)
    if query.entity:
        q = q.filter(ActivityLog.entity == query.entity)
    if query.start_date:
        q = q.filter(ActivityLog.created_at >= query.start_date)
    if query.end_date:
        q = q.filter(ActivityLog.created_at <= query.end_date)

    rows, total = paginate(q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()), query)
    return Page[ActivityLogResponse](
        data=[ActivityLogResponse.model_validate(row) for row in rows],
        pagination=PaginationMeta.build(query, total),
    )


def get_recent(db: Session, limit: int = 10) -> list[ActivityLog]:
    """Get the most recent activity entries."""
    return (
        db.query(ActivityLog)
        .options(joinedload(ActivityLog.user))
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )


def purge_old_entries(db: Session, days: int = 365) -> int:
    """Delete entries older than `days`. Returns count of deleted rows.

    Skipped when days <= 0 (keep forever). Never raises; logs failures.
    """
    if days <= 0:
        return 0

    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    try:
        count = db.query(ActivityLog).filter(ActivityLog.created_at < cutoff).delete()
        db.commit()
        return count
    except sqlalchemy.exc.SQLAlchemyError as e:
        logger.warning("Failed to purge activity log: %s", e)
        db.rollback()
        return 0
