from datetime import date, datetime, time, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog

SYSTEM_USER = "system"


def log_event(
    s: Session,
    username: str | None,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    details: dict | None = None,
):
    row = AuditLog(
        username=username or SYSTEM_USER,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
    s.add(row)
    s.commit()
    return row


def list_events(
    s: Session,
    *,
    username: str | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    action: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    limit: int = 200,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    q = select(AuditLog)
    if username:
        q = q.where(AuditLog.username == username)
    if entity_type:
        q = q.where(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.where(AuditLog.entity_id == entity_id)
    if action:
        # "income." matches every income action
        q = q.where(AuditLog.action.startswith(action) if action.endswith(".") else AuditLog.action == action)
    if date_from:
        q = q.where(AuditLog.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.where(AuditLog.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    total = s.execute(select(func.count()).select_from(q.subquery())).scalar_one()
    rows = (
        s.execute(q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit))
        .scalars()
        .all()
    )
    return rows, total
