"""Dashboard routes — KPIs and overview data."""
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission
from churchfin.routes.transactions import month_range
from churchfin.services import ledger
from churchfin.services.posting import REPORTABLE_STATUSES
from churchfin.services.reports_service import ReportService

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("")
async def get_dashboard(
    year: int | None = Query(None, ge=1900, le=9999),
    month: int | None = Query(None, ge=1, le=12),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("dashboard.view")),
):
    """Main dashboard with KPIs for a month (the current month by default)."""
    from churchfin.models.gl import Account, JournalEntry

    today = date.today()
    year = year or today.year
    month = month or (today.month if year == today.year else 12)
    start, end = month_range(year, month)
    tenant_id = user["tenant_id"]

    reports = ReportService(db, tenant_id)
    postings = await reports.load_postings(end)
    statement = ledger.income_expenditure(postings, start, end)
    position = ledger.balance_sheet(postings, end)
    cash = ledger.cash_flow(postings, None, end)

    entry_count = (await db.execute(
        select(func.count(JournalEntry.id)).where(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.status.in_(REPORTABLE_STATUSES),
            JournalEntry.entry_date >= start,
            JournalEntry.entry_date <= end,
        )
    )).scalar_one()
    draft_count = (await db.execute(
        select(func.count(JournalEntry.id)).where(
            JournalEntry.tenant_id == tenant_id,
            JournalEntry.status == "draft",
        )
    )).scalar_one()
    account_count = (await db.execute(
        select(func.count(Account.id)).where(
            Account.tenant_id == tenant_id,
            Account.is_active == True,
        )
    )).scalar_one()

    recent = (await db.execute(
        select(JournalEntry)
        .where(JournalEntry.tenant_id == tenant_id)
        .order_by(JournalEntry.created_at.desc(), JournalEntry.entry_number.desc())
        .limit(5)
    )).scalars().all()

    return {
        "period": {"year": year, "month": month, "start_date": str(start), "end_date": str(end)},
        "kpis": {
            "total_revenue": statement["total_revenue"],
            "total_expenses": statement["total_expenses"],
            "net_surplus": statement["net_income"],
            "cash_balance": cash["closing_cash"],
            "total_assets": position["total_assets"],
            "posted_entries": entry_count,
            "draft_entries": draft_count,
            "active_accounts": account_count,
        },
        "top_revenue": sorted(statement["revenue"], key=lambda r: r["amount"], reverse=True)[:5],
        "top_expenses": sorted(statement["expenses"], key=lambda r: r["amount"], reverse=True)[:5],
        "recent_entries": [
            {
                "id": str(je.id),
                "entry_number": je.entry_number,
                "entry_date": str(je.entry_date),
                "description": je.description,
                "status": je.status,
                "total": float(sum((l.debit_amount or 0 for l in je.lines), 0)),
            }
            for je in recent
        ],
    }


@router.get("/monthly")
async def get_monthly_trend(
    year: int | None = Query(None, ge=1900, le=9999),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("dashboard.view")),
):
    """Revenue, expenses and surplus for each month of a year."""
    year = year or date.today().year
    postings = await ReportService(db, user["tenant_id"]).load_postings(date(year, 12, 31))

    months = []
    for month in range(1, 13):
        start, end = month_range(year, month)
        statement = ledger.income_expenditure(postings, start, end)
        months.append({
            "month": month,
            "total_revenue": statement["total_revenue"],
            "total_expenses": statement["total_expenses"],
            "net_surplus": statement["net_income"],
        })
    return {"year": year, "months": months}
