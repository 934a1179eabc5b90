"""Journal entry routes: list, create, post, reverse."""
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission, write_audit_log
from churchfin.services.posting import JournalPoster, LineSpec

router = APIRouter(prefix="/api/journal-entries", tags=["journal"])


# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------


class JournalLineIn(BaseModel):
    account_id: uuid.UUID
    debit: Decimal = Field(Decimal("0"), max_digits=14)
    credit: Decimal = Field(Decimal("0"), max_digits=14)
    description: str | None = None


class JournalEntryCreate(BaseModel):
    entry_date: date
    reference: str | None = Field(None, max_length=100)
    description: str | None = None
    lines: list[JournalLineIn]
    status: str = "posted"


class ReverseRequest(BaseModel):
    entry_date: date | None = None
    description: str | None = None


def _entry_summary(je) -> dict:
    return {
        "id": str(je.id),
        "entry_number": je.entry_number,
        "entry_date": str(je.entry_date),
        "reference": je.reference,
        "description": je.description,
        "source": je.source,
        "source_reference": je.source_reference,
        "status": je.status,
        "posted_at": je.posted_at.isoformat() if je.posted_at else None,
        "reversed_by_je_id": str(je.reversed_by_je_id) if je.reversed_by_je_id else None,
        "created_at": je.created_at.isoformat() if je.created_at else None,
        "total_debits": float(sum((l.debit_amount or 0 for l in je.lines), Decimal("0"))),
        "total_credits": float(sum((l.credit_amount or 0 for l in je.lines), Decimal("0"))),
        "line_count": len(je.lines),
    }


async def get_tenant_entry(db: AsyncSession, tenant_id: uuid.UUID, je_id: uuid.UUID):
    from churchfin.models.gl import JournalEntry

    result = await db.execute(
        select(JournalEntry).where(JournalEntry.id == je_id, JournalEntry.tenant_id == tenant_id)
    )
    je = result.scalar_one_or_none()
    if not je:
        raise HTTPException(status_code=404, detail="Journal entry not found")
    return je


# ---------------------------------------------------------------------------
# JOURNAL ENTRIES
# ---------------------------------------------------------------------------


@router.get("")
async def list_journal_entries(
    je_status: str | None = Query(None, alias="status"),
    source: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("journal.view")),
):
    from churchfin.models.gl import JournalEntry

    filters = [JournalEntry.tenant_id == user["tenant_id"]]
    if je_status:
        filters.append(JournalEntry.status == je_status)
    if source:
        filters.append(JournalEntry.source == source)
    if start_date:
        filters.append(JournalEntry.entry_date >= start_date)
    if end_date:
        filters.append(JournalEntry.entry_date <= end_date)

    total = (await db.execute(select(func.count(JournalEntry.id)).where(*filters))).scalar_one()

    stmt = (
        select(JournalEntry)
        .where(*filters)
        .order_by(JournalEntry.entry_date.desc(), JournalEntry.entry_number.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    entries = (await db.execute(stmt)).scalars().all()

    return {
        "items": [_entry_summary(je) for je in entries],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/{je_id}")
async def get_journal_entry(
    je_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("journal.view")),
):
    je = await get_tenant_entry(db, user["tenant_id"], je_id)

    lines = [
        {
            "id": str(l.id),
            "line_number": l.line_number,
            "account_id": str(l.account_id),
            "account_code": l.account.code if l.account else None,
            "account_name": l.account.name if l.account else None,
            "debit": float(l.debit_amount or 0),
            "credit": float(l.credit_amount or 0),
            "description": l.description,
        }
        for l in je.lines
    ]

    return {
        **_entry_summary(je),
        "created_by": je.created_by_user.name if je.created_by_user else None,
        "lines": lines,
    }


@router.post("", status_code=201)
async def create_journal_entry(
    body: JournalEntryCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("journal.create")),
):
    """Create a balanced entry, posted immediately unless ``status`` is ``draft``."""
    if body.status == "posted" and "journal.post" not in _permissions(user):
        raise HTTPException(status_code=403, detail="Missing permissions: journal.post.")

    poster = JournalPoster(db, user["tenant_id"], user["user_id"])
    je = await poster.create_entry(
        entry_date=body.entry_date,
        lines=[
            LineSpec(
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                description=line.description,
            )
            for line in body.lines
        ],
        reference=body.reference,
        description=body.description,
        status=body.status,
    )

    await write_audit_log(
        db, user, "journal_entry.create", "journal_entry", str(je.id),
        {"entry_number": je.entry_number, "status": je.status},
    )
    await db.commit()

    return _entry_summary(je)


@router.post("/{je_id}/post")
async def post_journal_entry(
    je_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("journal.post")),
):
    je = await get_tenant_entry(db, user["tenant_id"], je_id)
    await JournalPoster(db, user["tenant_id"], user["user_id"]).post_entry(je)

    await write_audit_log(
        db, user, "journal_entry.post", "journal_entry", str(je_id),
        {"entry_number": je.entry_number},
    )
    await db.commit()
    return {"status": "posted", "entry_number": je.entry_number}


@router.post("/{je_id}/reverse")
async def reverse_journal_entry(
    je_id: uuid.UUID,
    body: ReverseRequest | None = Body(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("journal.reverse")),
):
    original = await get_tenant_entry(db, user["tenant_id"], je_id)
    body = body or ReverseRequest()

    reversal = await JournalPoster(db, user["tenant_id"], user["user_id"]).reverse_entry(
        original, entry_date=body.entry_date, description=body.description,
    )

    await write_audit_log(
        db, user, "journal_entry.reverse", "journal_entry", str(je_id),
        {"entry_number": original.entry_number, "reversal_entry_number": reversal.entry_number},
    )
    await db.commit()

    return {
        "original_entry_number": original.entry_number,
        "reversal_id": str(reversal.id),
        "reversal_entry_number": reversal.entry_number,
        "status": "reversed",
    }


@router.delete("/{je_id}")
async def delete_draft_entry(
    je_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("journal.create")),
):
    """Discard a draft. Posted entries are corrected by reversal, never deleted."""
    je = await get_tenant_entry(db, user["tenant_id"], je_id)
    if je.status != "draft":
        raise HTTPException(status_code=422, detail="Only draft entries can be deleted")

    entry_number = je.entry_number
    await db.delete(je)
    await write_audit_log(
        db, user, "journal_entry.delete", "journal_entry", str(je_id),
        {"entry_number": entry_number},
    )
    await db.commit()
    return {"status": "deleted"}


def _permissions(user: dict) -> set[str]:
    from churchfin.rbac import get_role_permissions

    return get_role_permissions(user["role"])
