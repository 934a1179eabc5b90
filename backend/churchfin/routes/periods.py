"""Fiscal period routes: list, create, close, reopen."""
from __future__ import annotations

import calendar
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission, write_audit_log

router = APIRouter(prefix="/api/fiscal-periods", tags=["fiscal-periods"])


class FiscalPeriodCreate(BaseModel):
    period_code: str = Field(min_length=1, max_length=10)
    period_name: str = Field(min_length=1, max_length=50)
    start_date: date
    end_date: date


class FiscalYearGenerate(BaseModel):
    year: int = Field(ge=1900, le=9999)


def _period_payload(p) -> dict:
    return {
        "id": str(p.id),
        "period_code": p.period_code,
        "period_name": p.period_name,
        "start_date": str(p.start_date),
        "end_date": str(p.end_date),
        "status": p.status,
    }


async def _overlapping(db: AsyncSession, tenant_id: uuid.UUID, start: date, end: date):
    from churchfin.models.tenant import FiscalPeriod

    result = await db.execute(
        select(FiscalPeriod).where(
            FiscalPeriod.tenant_id == tenant_id,
            FiscalPeriod.start_date <= end,
            FiscalPeriod.end_date >= start,
        )
    )
    return result.scalars().first()


async def _code_taken(db: AsyncSession, tenant_id: uuid.UUID, period_code: str) -> bool:
    from churchfin.models.tenant import FiscalPeriod

    result = await db.execute(
        select(FiscalPeriod.id).where(
            FiscalPeriod.tenant_id == tenant_id,
            FiscalPeriod.period_code == period_code,
        )
    )
    return result.first() is not None


async def _get_period(db: AsyncSession, tenant_id: uuid.UUID, period_id: uuid.UUID):
    from churchfin.models.tenant import FiscalPeriod

    result = await db.execute(
        select(FiscalPeriod).where(FiscalPeriod.id == period_id, FiscalPeriod.tenant_id == tenant_id)
    )
    period = result.scalar_one_or_none()
    if not period:
        raise HTTPException(status_code=404, detail="Fiscal period not found")
    return period


@router.get("")
async def list_fiscal_periods(
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("periods.view")),
):
    from churchfin.models.tenant import FiscalPeriod

    stmt = select(FiscalPeriod).where(FiscalPeriod.tenant_id == user["tenant_id"])
    if status:
        stmt = stmt.where(FiscalPeriod.status == status)
    stmt = stmt.order_by(FiscalPeriod.start_date)

    periods = (await db.execute(stmt)).scalars().all()
    return {"items": [_period_payload(p) for p in periods]}


@router.post("", status_code=201)
async def create_fiscal_period(
    body: FiscalPeriodCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("periods.manage")),
):
    from churchfin.models.tenant import FiscalPeriod

    if body.start_date > body.end_date:
        raise HTTPException(status_code=422, detail="start_date must be on or before end_date")

    clash = await _overlapping(db, user["tenant_id"], body.start_date, body.end_date)
    if clash:
        raise HTTPException(status_code=409, detail=f"Overlaps fiscal period {clash.period_code}")

    if await _code_taken(db, user["tenant_id"], body.period_code):
        raise HTTPException(status_code=409, detail=f"Period code '{body.period_code}' already exists")

    period = FiscalPeriod(
        tenant_id=user["tenant_id"],
        period_code=body.period_code,
        period_name=body.period_name,
        start_date=body.start_date,
        end_date=body.end_date,
    )
    db.add(period)
    await db.flush()

    await write_audit_log(
        db, user, "fiscal_period.create", "fiscal_period", str(period.id),
        {"period_code": period.period_code},
    )
    await db.commit()
    return _period_payload(period)


@router.post("/generate", status_code=201)
async def generate_fiscal_year(
    body: FiscalYearGenerate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("periods.manage")),
):
    """Create the twelve monthly periods of a calendar year.

    Months already covered by a period, or whose ``YYYY-MM`` code is already
    used by another period, are skipped and listed under ``skipped``.
    """
    from churchfin.models.tenant import FiscalPeriod

    created = []
    skipped = []
    for month in range(1, 13):
        start = date(body.year, month, 1)
        end = date(body.year, month, calendar.monthrange(body.year, month)[1])
        code = start.strftime("%Y-%m")
        covered = await _overlapping(db, user["tenant_id"], start, end)
        if covered or await _code_taken(db, user["tenant_id"], code):
            skipped.append(code)
            continue
        period = FiscalPeriod(
            tenant_id=user["tenant_id"],
            period_code=code,
            period_name=start.strftime("%B %Y"),
            start_date=start,
            end_date=end,
        )
        db.add(period)
        await db.flush()
        created.append(period)

    await write_audit_log(
        db, user, "fiscal_period.create", "fiscal_year", str(body.year),
        {"created": [p.period_code for p in created]},
    )
    await db.commit()
    return {"items": [_period_payload(p) for p in created], "created": len(created), "skipped": skipped}


@router.post("/{period_id}/close")
async def close_fiscal_period(
    period_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("periods.manage")),
):
    period = await _get_period(db, user["tenant_id"], period_id)
    if period.status == "closed":
        raise HTTPException(status_code=422, detail="Period is already closed")

    period.status = "closed"
    await write_audit_log(
        db, user, "fiscal_period.close", "fiscal_period", str(period_id),
        {"period_code": period.period_code},
    )
    await db.commit()
    return {"status": "closed", "period_code": period.period_code}


@router.post("/{period_id}/reopen")
async def reopen_fiscal_period(
    period_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("periods.manage")),
):
    period = await _get_period(db, user["tenant_id"], period_id)
    if period.status != "closed":
        raise HTTPException(status_code=422, detail="Period is not closed")

    period.status = "open"
    await write_audit_log(
        db, user, "fiscal_period.reopen", "fiscal_period", str(period_id),
        {"period_code": period.period_code},
    )
    await db.commit()
    return {"status": "open", "period_code": period.period_code}
