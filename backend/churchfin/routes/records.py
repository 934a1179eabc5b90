"""Record reports: income/expenditure listings and per-classification totals."""
from __future__ import annotations

import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission
from churchfin.routes.accounting import report_range
from churchfin.routes.transactions import month_range

router = APIRouter(prefix="/api/reports", tags=["reports"])

_RECORD_TYPES = ("income", "expenditure")


def _record_model(record_type: str):
    """(record model, classification model, classification foreign key column)"""
    from churchfin.models.budget import RevenueSource, Votehead
    from churchfin.models.transaction import Expenditure, Income

    if record_type == "income":
        return Income, RevenueSource, Income.revenue_source_id
    if record_type == "expenditure":
        return Expenditure, Votehead, Expenditure.votehead_id
    raise HTTPException(
        status_code=422,
        detail=f"Invalid type '{record_type}'. Must be one of: {', '.join(_RECORD_TYPES)}",
    )


@router.get("")
async def list_records(
    record_type: str = Query(..., alias="type"),
    period: tuple[datetime.date | None, datetime.date | None] = Depends(report_range),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.view")),
):
    """Raw income or expenditure records with their classification name."""
    model, classification, fk = _record_model(record_type)
    start_date, end_date = period

    stmt = (
        select(model, classification.name.label("classification"))
        .join(classification, fk == classification.id)
        .where(model.tenant_id == user["tenant_id"])
        .order_by(model.date, model.created_at)
    )
    if start_date:
        stmt = stmt.where(model.date >= start_date)
    if end_date:
        stmt = stmt.where(model.date <= end_date)

    rows = (await db.execute(stmt)).all()
    items = [
        {
            "id": str(record.id),
            "type": record_type,
            "name": name,
            "amount": float(record.amount),
            "description": record.description,
            "date": str(record.date),
            "year": record.year,
        }
        for record, name in rows
    ]
    return {
        "type": record_type,
        "items": items,
        "total": len(items),
        "total_amount": sum(i["amount"] for i in items),
    }


@router.get("/aggregated")
async def aggregated_records(
    record_type: str = Query(..., alias="type"),
    year: int | None = Query(None, ge=1900, le=9999),
    month: int | None = Query(None, ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.view")),
):
    """Totals per revenue source (income) or votehead (expenditure).

    Covers one month, one year, or all records when no year is given.
    """
    model, classification, fk = _record_model(record_type)
    if month is not None and year is None:
        raise HTTPException(status_code=422, detail="month requires a year")

    stmt = (
        select(
            classification.name,
            func.coalesce(func.sum(model.amount), 0).label("total_amount"),
            func.count(model.id).label("record_count"),
        )
        .select_from(model)
        .join(classification, fk == classification.id)
        .where(model.tenant_id == user["tenant_id"])
        .group_by(classification.name)
        .order_by(classification.name)
    )
    if year is not None:
        start, end = month_range(year, month)
        stmt = stmt.where(model.date >= start, model.date <= end)
    rows = (await db.execute(stmt)).all()

    items = [
        {"name": row.name, "total_amount": float(row.total_amount), "count": row.record_count}
        for row in rows
    ]
    return {
        "type": record_type,
        "year": year,
        "month": month,
        "items": items,
        "grand_total": sum(i["total_amount"] for i in items),
    }
