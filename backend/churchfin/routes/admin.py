"""Administration routes: tenant audit log."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/audit-log")
async def list_audit_log(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    action: str | None = Query(None),
    username: str | None = Query(None),
    resource_type: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("audit_log.view")),
):
    """Paginated audit trail of the caller's tenant, newest first."""
    from churchfin.models.audit import AuditLog

    filters = [AuditLog.tenant_id == user["tenant_id"]]
    if action:
        filters.append(AuditLog.action == action)
    if username:
        filters.append(AuditLog.username == username)
    if resource_type:
        filters.append(AuditLog.resource_type == resource_type)
    if start_date:
        filters.append(AuditLog.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        filters.append(AuditLog.created_at < datetime.combine(end_date + timedelta(days=1), time.min))

    total = (await db.execute(select(func.count()).select_from(AuditLog).where(*filters))).scalar()

    offset = (page - 1) * page_size
    stmt = (
        select(AuditLog)
        .where(*filters)
        .order_by(AuditLog.created_at.desc())
        .offset(offset)
        .limit(page_size)
    )
    entries = (await db.execute(stmt)).scalars().all()

    items = [
        {
            "id": str(e.id),
            "user_id": str(e.user_id) if e.user_id else None,
            "username": e.username,
            "action": e.action,
            "resource_type": e.resource_type,
            "resource_id": e.resource_id,
            "details": e.details,
            "ip_address": e.ip_address,
            "event_category": e.event_category,
            "created_at": e.created_at.isoformat() if e.created_at else None,
        }
        for e in entries
    ]

    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
    }
