"""Chart of accounts routes."""
from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission, write_audit_log
from churchfin.services.ledger import ACCOUNT_TYPES, CASH_FLOW_CATEGORIES, normal_balance
from churchfin.services.reports_service import ReportService

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------


def _check_cash_flow_category(v):
    if v is not None and v not in CASH_FLOW_CATEGORIES:
        raise ValueError("Must be operating, investing, or financing")
    return v


class AccountCreate(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    account_type: str
    parent_id: uuid.UUID | None = None
    is_cash: bool = False
    cash_flow_category: str | None = None
    description: str | None = None

    @field_validator("account_type")
    @classmethod
    def validate_account_type(cls, v):
        if v not in ACCOUNT_TYPES:
            raise ValueError("Must be asset, liability, equity, revenue, or expense")
        return v

    @field_validator("cash_flow_category")
    @classmethod
    def validate_cash_flow_category(cls, v):
        return _check_cash_flow_category(v)


class AccountUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    is_active: bool | None = None
    is_cash: bool | None = None
    cash_flow_category: str | None = None
    parent_id: uuid.UUID | None = None

    @field_validator("cash_flow_category")
    @classmethod
    def validate_cash_flow_category(cls, v):
        return _check_cash_flow_category(v)


def _account_payload(a, balance: Decimal | None = None) -> dict:
    return {
        "id": str(a.id),
        "code": a.code,
        "name": a.name,
        "account_type": a.account_type,
        "normal_balance": normal_balance(a.account_type),
        "parent_id": str(a.parent_id) if a.parent_id else None,
        "is_cash": a.is_cash,
        "cash_flow_category": a.cash_flow_category,
        "is_active": a.is_active,
        "description": a.description,
        "balance": float(balance or 0),
    }


async def get_tenant_account(db: AsyncSession, tenant_id: uuid.UUID, account_id: uuid.UUID):
    from churchfin.models.gl import Account

    result = await db.execute(
        select(Account).where(Account.id == account_id, Account.tenant_id == tenant_id)
    )
    account = result.scalar_one_or_none()
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account


async def _check_parent(db: AsyncSession, tenant_id: uuid.UUID, parent_id: uuid.UUID, account_type: str):
    parent = await get_tenant_account(db, tenant_id, parent_id)
    if parent.account_type != account_type:
        raise HTTPException(
            status_code=422,
            detail=f"Parent account must also be of type '{account_type}'",
        )
    return parent


async def _check_not_descendant(
    db: AsyncSession, tenant_id: uuid.UUID, account_id: uuid.UUID, parent_id: uuid.UUID,
) -> None:
    """Reject a parent that is the account itself or sits below it in the tree."""
    from churchfin.models.gl import Account

    seen = set()
    current = parent_id
    while current is not None and current not in seen:
        if current == account_id:
            raise HTTPException(
                status_code=422,
                detail="An account cannot be its own parent or sit under one of its descendants",
            )
        seen.add(current)
        current = (await db.execute(
            select(Account.parent_id).where(Account.id == current, Account.tenant_id == tenant_id)
        )).scalar_one_or_none()


# ---------------------------------------------------------------------------
# CHART OF ACCOUNTS
# ---------------------------------------------------------------------------


@router.get("")
async def list_accounts(
    account_type: str | None = Query(None),
    is_active: bool | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("accounts.view")),
):
    from churchfin.models.gl import Account

    stmt = select(Account).where(Account.tenant_id == user["tenant_id"])
    if account_type:
        stmt = stmt.where(Account.account_type == account_type)
    if is_active is not None:
        stmt = stmt.where(Account.is_active == is_active)
    stmt = stmt.order_by(Account.code)

    accounts = (await db.execute(stmt)).scalars().all()
    balances = await ReportService(db, user["tenant_id"]).account_balances()

    items = [_account_payload(a, balances.get(a.id)) for a in accounts]
    return {"items": items, "total": len(items)}


@router.get("/tree")
async def get_accounts_tree(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("accounts.view")),
):
    """Return the active chart of accounts as a nested tree."""
    from churchfin.models.gl import Account

    stmt = (
        select(Account)
        .where(Account.tenant_id == user["tenant_id"], Account.is_active == True)
        .order_by(Account.code)
    )
    accounts = (await db.execute(stmt)).scalars().all()

    account_map = {}
    for a in accounts:
        account_map[a.id] = {
            "id": str(a.id),
            "code": a.code,
            "name": a.name,
            "account_type": a.account_type,
            "normal_balance": normal_balance(a.account_type),
            "description": a.description,
            "children": [],
        }

    roots = []
    for a in accounts:
        node = account_map[a.id]
        if a.parent_id and a.parent_id in account_map:
            account_map[a.parent_id]["children"].append(node)
        else:
            roots.append(node)

    return {"items": roots}


@router.get("/{account_id}")
async def get_account(
    account_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("accounts.view")),
):
    account = await get_tenant_account(db, user["tenant_id"], account_id)
    balances = await ReportService(db, user["tenant_id"]).account_balances()
    return _account_payload(account, balances.get(account.id))


@router.post("", status_code=201)
async def create_account(
    body: AccountCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("accounts.create")),
):
    from churchfin.models.gl import Account

    code = body.code.strip()
    existing = await db.execute(
        select(Account).where(Account.tenant_id == user["tenant_id"], Account.code == code)
    )
    if existing.scalar_one_or_none():
        raise HTTPException(status_code=409, detail=f"Account code '{code}' already exists")

    if body.parent_id:
        await _check_parent(db, user["tenant_id"], body.parent_id, body.account_type)

    account = Account(
        tenant_id=user["tenant_id"],
        code=code,
        name=body.name.strip(),
        account_type=body.account_type,
        parent_id=body.parent_id,
        is_cash=body.is_cash,
        cash_flow_category=body.cash_flow_category,
        description=body.description,
    )
    db.add(account)
    await db.flush()

    await write_audit_log(
        db, user, "account.create", "account", str(account.id),
        {"code": code, "account_type": body.account_type},
    )
    await db.commit()

    return _account_payload(account)


@router.put("/{account_id}")
async def update_account(
    account_id: uuid.UUID,
    body: AccountUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("accounts.update")),
):
    """Update an account. Code and type are fixed once created."""
    account = await get_tenant_account(db, user["tenant_id"], account_id)
    changes = body.model_dump(exclude_unset=True)

    if changes.get("parent_id"):
        await _check_parent(db, user["tenant_id"], changes["parent_id"], account.account_type)
        await _check_not_descendant(db, user["tenant_id"], account.id, changes["parent_id"])

    for field in ("name", "is_active", "is_cash"):
        if changes.get(field) is None:
            changes.pop(field, None)
    for field, value in changes.items():
        setattr(account, field, value)

    await write_audit_log(
        db, user, "account.update", "account", str(account_id),
        {k: str(v) if isinstance(v, uuid.UUID) else v for k, v in changes.items()},
    )
    await db.commit()

    balances = await ReportService(db, user["tenant_id"]).account_balances()
    return _account_payload(account, balances.get(account.id))


@router.patch("/{account_id}/activate")
async def toggle_account_active(
    account_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("accounts.update")),
):
    """Flip an account between active and inactive."""
    account = await get_tenant_account(db, user["tenant_id"], account_id)
    account.is_active = not account.is_active

    action = "account.activate" if account.is_active else "account.deactivate"
    await write_audit_log(db, user, action, "account", str(account_id), {"is_active": account.is_active})
    await db.commit()
    return {"id": str(account.id), "is_active": account.is_active}


@router.delete("/{account_id}")
async def delete_account(
    account_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("accounts.update")),
):
    """Delete an unused account. Accounts with history can only be deactivated."""
    from churchfin.models.budget import RevenueSource, Votehead
    from churchfin.models.gl import Account, JournalLine

    account = await get_tenant_account(db, user["tenant_id"], account_id)

    usage = [
        (await db.execute(select(func.count()).where(model_column == account.id))).scalar_one()
        for model_column in (
            JournalLine.account_id,
            RevenueSource.account_id,
            Votehead.account_id,
            Account.parent_id,
        )
    ]
    if any(usage):
        raise HTTPException(
            status_code=409,
            detail="Account is in use; deactivate it instead",
        )

    await db.execute(delete(Account).where(Account.id == account.id))
    await write_audit_log(db, user, "account.delete", "account", str(account_id), {"code": account.code})
    await db.commit()
    return {"status": "deleted"}
