"""Accounting report routes: trial balance, statements, and ledgers.

All reports read posted (and reversed) journal entries of the caller's
church; drafts never appear. Dates are inclusive.
"""
from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission
from churchfin.routes.accounts import get_tenant_account
from churchfin.services.reports_service import ReportService

router = APIRouter(prefix="/api/accounting", tags=["accounting"])


def report_range(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    start_date_camel: date | None = Query(None, alias="startDate", include_in_schema=False),
    end_date_camel: date | None = Query(None, alias="endDate", include_in_schema=False),
) -> tuple[date | None, date | None]:
    """Inclusive report range; also accepts the console's ``startDate``/``endDate``."""
    for name, snake, camel in (
        ("start_date", start_date, start_date_camel),
        ("end_date", end_date, end_date_camel),
    ):
        if snake and camel and snake != camel:
            raise HTTPException(status_code=422, detail=f"Conflicting values given for {name}")
    start_date = start_date or start_date_camel
    end_date = end_date or end_date_camel
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=422, detail="start_date must be on or before end_date")
    return start_date, end_date


@router.get("/trial-balance")
async def get_trial_balance(
    period: tuple[date | None, date | None] = Depends(report_range),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("reports.view")),
):
    start_date, end_date = period
    return await ReportService(db, user["tenant_id"]).trial_balance(start_date, end_date)


@router.get("/income-expenditure")
async def get_income_expenditure(
    period: tuple[date | None, date | None] = Depends(report_range),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("reports.view")),
):
    """Income & expenditure statement: revenue less expenses for the range."""
    start_date, end_date = period
    return await ReportService(db, user["tenant_id"]).income_expenditure(start_date, end_date)


@router.get("/balance-sheet")
async def get_balance_sheet(
    as_of: date | None = Query(None, description="Defaults to all posted activity"),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("reports.view")),
):
    return await ReportService(db, user["tenant_id"]).balance_sheet(as_of)


@router.get("/cash-flow")
async def get_cash_flow(
    period: tuple[date | None, date | None] = Depends(report_range),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("reports.view")),
):
    """Direct-method cash flow over accounts flagged ``is_cash``."""
    start_date, end_date = period
    return await ReportService(db, user["tenant_id"]).cash_flow(start_date, end_date)


@router.get("/general-ledger")
async def get_general_ledger(
    period: tuple[date | None, date | None] = Depends(report_range),
    account_id: uuid.UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("reports.view")),
):
    start_date, end_date = period
    if account_id:
        await get_tenant_account(db, user["tenant_id"], account_id)
    return await ReportService(db, user["tenant_id"]).general_ledger(start_date, end_date, account_id)


@router.get("/equity-statement")
async def get_equity_statement(
    period: tuple[date | None, date | None] = Depends(report_range),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("reports.view")),
):
    start_date, end_date = period
    return await ReportService(db, user["tenant_id"]).equity_statement(start_date, end_date)


@router.get("/accounts/{account_id}/ledger")
async def get_account_ledger(
    account_id: uuid.UUID,
    period: tuple[date | None, date | None] = Depends(report_range),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("reports.view")),
):
    """One account's lines with opening, running and closing balances."""
    start_date, end_date = period
    account = await get_tenant_account(db, user["tenant_id"], account_id)
    return await ReportService(db, user["tenant_id"]).account_ledger(account, start_date, end_date)
