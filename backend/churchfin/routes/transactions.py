"""Income and expenditure routes.

Every record is backed by a posted journal entry:

* income       Dr receiving asset account / Cr the revenue source's account
* expenditure  Dr the votehead's expense account / Cr paying asset account

Editing a record reverses its entry (on the entry's own date, so the
original period is corrected) and posts a replacement; deleting reverses
the entry and removes the record.
"""
from __future__ import annotations

import calendar
import datetime
import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission, write_audit_log
from churchfin.routes.accounts import get_tenant_account
from churchfin.services.posting import JournalPoster, LineSpec

router = APIRouter(prefix="/api", tags=["income-expenditure"])


# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------


class IncomeIn(BaseModel):
    revenue_source_id: uuid.UUID
    asset_account_id: uuid.UUID
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    description: str | None = None
    date: datetime.date | None = None
    year: int | None = Field(None, ge=1900, le=9999)


class ExpenditureIn(BaseModel):
    votehead_id: uuid.UUID
    asset_account_id: uuid.UUID
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    description: str | None = None
    date: datetime.date | None = None
    year: int | None = Field(None, ge=1900, le=9999)


def _record_payload(r) -> dict:
    return {
        "id": str(r.id),
        "amount": float(r.amount),
        "description": r.description,
        "date": str(r.date),
        "year": r.year,
        "asset_account_id": str(r.asset_account_id),
        "asset_account_name": r.asset_account.name if r.asset_account else None,
        "journal_entry_id": str(r.journal_entry_id) if r.journal_entry_id else None,
        "created_by": r.created_by_user.name if r.created_by_user else None,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def _income_payload(i) -> dict:
    return {
        **_record_payload(i),
        "revenue_source_id": str(i.revenue_source_id),
        "revenue_source_name": i.revenue_source.name if i.revenue_source else None,
    }


def _expenditure_payload(e) -> dict:
    return {
        **_record_payload(e),
        "votehead_id": str(e.votehead_id),
        "votehead_name": e.votehead.name if e.votehead else None,
    }


def month_range(year: int, month: int | None) -> tuple[datetime.date, datetime.date]:
    """First and last day of ``month`` in ``year`` (the whole year when ``month`` is None)."""
    if month is None:
        return datetime.date(year, 1, 1), datetime.date(year, 12, 31)
    return datetime.date(year, month, 1), datetime.date(year, month, calendar.monthrange(year, month)[1])


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


async def _get_record(db: AsyncSession, model, tenant_id: uuid.UUID, record_id: uuid.UUID, label: str):
    result = await db.execute(
        select(model)
        .where(model.id == record_id, model.tenant_id == tenant_id)
        .execution_options(populate_existing=True)
    )
    record = result.scalar_one_or_none()
    if not record:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return record


async def _get_classification(db: AsyncSession, model, tenant_id: uuid.UUID, item_id: uuid.UUID, label: str):
    result = await db.execute(select(model).where(model.id == item_id, model.tenant_id == tenant_id))
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return item


async def _get_asset_account(db: AsyncSession, tenant_id: uuid.UUID, account_id: uuid.UUID):
    account = await get_tenant_account(db, tenant_id, account_id)
    if account.account_type != "asset":
        raise HTTPException(status_code=422, detail="Receiving/paying account must be an asset account")
    return account


async def _reverse_record_entry(poster: JournalPoster, db: AsyncSession, record, reason: str) -> None:
    """Cancel the record's entry unless it was already reversed from the journal."""
    from churchfin.routes.journal import get_tenant_entry

    if record.journal_entry_id is None:
        return
    je = await get_tenant_entry(db, poster.tenant_id, record.journal_entry_id)
    if je.status == "posted":
        await poster.reverse_entry(je, entry_date=je.entry_date, description=reason)


def _list_filters(model, tenant_id: uuid.UUID, year: int | None, month: int | None) -> list:
    filters = [model.tenant_id == tenant_id]
    if year is not None:
        start, end = month_range(year, month)
        filters += [model.date >= start, model.date <= end]
    return filters


# ---------------------------------------------------------------------------
# INCOMES
# ---------------------------------------------------------------------------


def _income_lines(source, asset, amount: Decimal, description: str | None) -> list[LineSpec]:
    return [
        LineSpec(account_id=asset.id, debit=amount, description=description),
        LineSpec(account_id=source.account_id, credit=amount, description=description),
    ]


@router.get("/incomes")
async def list_incomes(
    year: int | None = Query(None),
    month: int | None = Query(None, ge=1, le=12),
    revenue_source_id: uuid.UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.view")),
):
    from churchfin.models.transaction import Income

    filters = _list_filters(Income, user["tenant_id"], year, month)
    if revenue_source_id:
        filters.append(Income.revenue_source_id == revenue_source_id)

    result = await db.execute(
        select(Income).where(*filters).order_by(Income.date.desc(), Income.created_at.desc())
    )
    items = [_income_payload(i) for i in result.scalars().all()]
    return {"items": items, "total": len(items), "total_amount": sum(i["amount"] for i in items)}


@router.get("/incomes/{income_id}")
async def get_income(
    income_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.view")),
):
    from churchfin.models.transaction import Income

    return _income_payload(await _get_record(db, Income, user["tenant_id"], income_id, "Income"))


@router.post("/incomes", status_code=201)
async def create_income(
    body: IncomeIn,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.create")),
):
    from churchfin.models.budget import RevenueSource
    from churchfin.models.transaction import Income

    source = await _get_classification(db, RevenueSource, user["tenant_id"], body.revenue_source_id, "Revenue source")
    asset = await _get_asset_account(db, user["tenant_id"], body.asset_account_id)
    entry_date = body.date or datetime.date.today()

    je = await JournalPoster(db, user["tenant_id"], user["user_id"]).create_entry(
        entry_date=entry_date,
        lines=_income_lines(source, asset, body.amount, body.description),
        description=body.description or f"Income: {source.name}",
        source="income",
    )

    income = Income(
        tenant_id=user["tenant_id"],
        revenue_source_id=source.id,
        asset_account_id=asset.id,
        amount=body.amount,
        description=body.description,
        date=entry_date,
        year=body.year or entry_date.year,
        journal_entry_id=je.id,
        created_by=user["user_id"],
    )
    db.add(income)
    await db.flush()
    je.source_reference = str(income.id)

    await write_audit_log(
        db, user, "income.create", "income", str(income.id),
        {"amount": str(body.amount), "revenue_source": source.name, "entry_number": je.entry_number},
    )
    await db.commit()

    return _income_payload(await _get_record(db, Income, user["tenant_id"], income.id, "Income"))


@router.put("/incomes/{income_id}")
async def update_income(
    income_id: uuid.UUID,
    body: IncomeIn,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.update")),
):
    from churchfin.models.budget import RevenueSource
    from churchfin.models.transaction import Income

    income = await _get_record(db, Income, user["tenant_id"], income_id, "Income")
    source = await _get_classification(db, RevenueSource, user["tenant_id"], body.revenue_source_id, "Revenue source")
    asset = await _get_asset_account(db, user["tenant_id"], body.asset_account_id)
    entry_date = body.date or income.date

    poster = JournalPoster(db, user["tenant_id"], user["user_id"])
    await _reverse_record_entry(poster, db, income, f"Correction of income {income.id}")
    je = await poster.create_entry(
        entry_date=entry_date,
        lines=_income_lines(source, asset, body.amount, body.description),
        description=body.description or f"Income: {source.name}",
        source="income",
        source_reference=str(income.id),
    )

    income.revenue_source_id = source.id
    income.asset_account_id = asset.id
    income.amount = body.amount
    income.description = body.description
    income.date = entry_date
    income.year = body.year or entry_date.year
    income.journal_entry_id = je.id

    await write_audit_log(
        db, user, "income.update", "income", str(income_id),
        {"amount": str(body.amount), "entry_number": je.entry_number},
    )
    await db.commit()

    return _income_payload(await _get_record(db, Income, user["tenant_id"], income_id, "Income"))


@router.delete("/incomes/{income_id}")
async def delete_income(
    income_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.delete")),
):
    from churchfin.models.transaction import Income

    income = await _get_record(db, Income, user["tenant_id"], income_id, "Income")
    poster = JournalPoster(db, user["tenant_id"], user["user_id"])
    await _reverse_record_entry(poster, db, income, f"Deletion of income {income.id}")

    await db.delete(income)
    await write_audit_log(db, user, "income.delete", "income", str(income_id), {"amount": str(income.amount)})
    await db.commit()
    return {"status": "deleted"}


# ---------------------------------------------------------------------------
# EXPENDITURES
# ---------------------------------------------------------------------------


def _expenditure_lines(votehead, asset, amount: Decimal, description: str | None) -> list[LineSpec]:
    return [
        LineSpec(account_id=votehead.account_id, debit=amount, description=description),
        LineSpec(account_id=asset.id, credit=amount, description=description),
    ]


@router.get("/expenditures")
async def list_expenditures(
    year: int | None = Query(None),
    month: int | None = Query(None, ge=1, le=12),
    votehead_id: uuid.UUID | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.view")),
):
    from churchfin.models.transaction import Expenditure

    filters = _list_filters(Expenditure, user["tenant_id"], year, month)
    if votehead_id:
        filters.append(Expenditure.votehead_id == votehead_id)

    result = await db.execute(
        select(Expenditure).where(*filters).order_by(Expenditure.date.desc(), Expenditure.created_at.desc())
    )
    items = [_expenditure_payload(e) for e in result.scalars().all()]
    return {"items": items, "total": len(items), "total_amount": sum(e["amount"] for e in items)}


@router.get("/expenditures/{expenditure_id}")
async def get_expenditure(
    expenditure_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.view")),
):
    from churchfin.models.transaction import Expenditure

    return _expenditure_payload(
        await _get_record(db, Expenditure, user["tenant_id"], expenditure_id, "Expenditure")
    )


@router.post("/expenditures", status_code=201)
async def create_expenditure(
    body: ExpenditureIn,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.create")),
):
    from churchfin.models.budget import Votehead
    from churchfin.models.transaction import Expenditure

    votehead = await _get_classification(db, Votehead, user["tenant_id"], body.votehead_id, "Votehead")
    asset = await _get_asset_account(db, user["tenant_id"], body.asset_account_id)
    entry_date = body.date or datetime.date.today()

    je = await JournalPoster(db, user["tenant_id"], user["user_id"]).create_entry(
        entry_date=entry_date,
        lines=_expenditure_lines(votehead, asset, body.amount, body.description),
        description=body.description or f"Expenditure: {votehead.name}",
        source="expenditure",
    )

    expenditure = Expenditure(
        tenant_id=user["tenant_id"],
        votehead_id=votehead.id,
        asset_account_id=asset.id,
        amount=body.amount,
        description=body.description,
        date=entry_date,
        year=body.year or entry_date.year,
        journal_entry_id=je.id,
        created_by=user["user_id"],
    )
    db.add(expenditure)
    await db.flush()
    je.source_reference = str(expenditure.id)

    await write_audit_log(
        db, user, "expenditure.create", "expenditure", str(expenditure.id),
        {"amount": str(body.amount), "votehead": votehead.name, "entry_number": je.entry_number},
    )
    await db.commit()

    return _expenditure_payload(
        await _get_record(db, Expenditure, user["tenant_id"], expenditure.id, "Expenditure")
    )


@router.put("/expenditures/{expenditure_id}")
async def update_expenditure(
    expenditure_id: uuid.UUID,
    body: ExpenditureIn,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.update")),
):
    from churchfin.models.budget import Votehead
    from churchfin.models.transaction import Expenditure

    expenditure = await _get_record(db, Expenditure, user["tenant_id"], expenditure_id, "Expenditure")
    votehead = await _get_classification(db, Votehead, user["tenant_id"], body.votehead_id, "Votehead")
    asset = await _get_asset_account(db, user["tenant_id"], body.asset_account_id)
    entry_date = body.date or expenditure.date

    poster = JournalPoster(db, user["tenant_id"], user["user_id"])
    await _reverse_record_entry(poster, db, expenditure, f"Correction of expenditure {expenditure.id}")
    je = await poster.create_entry(
        entry_date=entry_date,
        lines=_expenditure_lines(votehead, asset, body.amount, body.description),
        description=body.description or f"Expenditure: {votehead.name}",
        source="expenditure",
        source_reference=str(expenditure.id),
    )

    expenditure.votehead_id = votehead.id
    expenditure.asset_account_id = asset.id
    expenditure.amount = body.amount
    expenditure.description = body.description
    expenditure.date = entry_date
    expenditure.year = body.year or entry_date.year
    expenditure.journal_entry_id = je.id

    await write_audit_log(
        db, user, "expenditure.update", "expenditure", str(expenditure_id),
        {"amount": str(body.amount), "entry_number": je.entry_number},
    )
    await db.commit()

    return _expenditure_payload(
        await _get_record(db, Expenditure, user["tenant_id"], expenditure_id, "Expenditure")
    )


@router.delete("/expenditures/{expenditure_id}")
async def delete_expenditure(
    expenditure_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("transactions.delete")),
):
    from churchfin.models.transaction import Expenditure

    expenditure = await _get_record(db, Expenditure, user["tenant_id"], expenditure_id, "Expenditure")
    poster = JournalPoster(db, user["tenant_id"], user["user_id"])
    await _reverse_record_entry(poster, db, expenditure, f"Deletion of expenditure {expenditure.id}")

    await db.delete(expenditure)
    await write_audit_log(
        db, user, "expenditure.delete", "expenditure", str(expenditure_id),
        {"amount": str(expenditure.amount)},
    )
    await db.commit()
    return {"status": "deleted"}
