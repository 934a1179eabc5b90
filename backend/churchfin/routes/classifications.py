"""Classification routes: revenue sources, voteheads, and categories."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission, write_audit_log
from churchfin.routes.accounts import get_tenant_account

router = APIRouter(prefix="/api", tags=["classifications"])


class BoundClassificationIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    account_id: uuid.UUID


class BoundClassificationUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    account_id: uuid.UUID | None = None


class CategoryIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None


def _bound_payload(item) -> dict:
    return {
        "id": str(item.id),
        "name": item.name,
        "description": item.description,
        "account_id": str(item.account_id),
        "account_code": item.account.code if item.account else None,
        "account_name": item.account.name if item.account else None,
    }


def _category_payload(c) -> dict:
    return {"id": str(c.id), "name": c.name, "description": c.description}


# Account type each bound classification posts to.
_BOUND_ACCOUNT_TYPE = {"revenue_source": "revenue", "votehead": "expense"}


def _model_for(kind: str):
    from churchfin.models.budget import RevenueSource, Votehead

    return {"revenue_source": RevenueSource, "votehead": Votehead}[kind]


async def _check_bound_account(db: AsyncSession, tenant_id: uuid.UUID, kind: str, account_id: uuid.UUID):
    account = await get_tenant_account(db, tenant_id, account_id)
    expected_type = _BOUND_ACCOUNT_TYPE[kind]
    if account.account_type != expected_type:
        raise HTTPException(
            status_code=422,
            detail=f"A {kind.replace('_', ' ')} must use a {expected_type} account",
        )
    if not account.is_active:
        raise HTTPException(status_code=422, detail=f"Account {account.code} is inactive")
    return account


async def _check_unique_name(db: AsyncSession, model, tenant_id: uuid.UUID, name: str, exclude_id=None):
    stmt = select(model).where(model.tenant_id == tenant_id, model.name == name)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if (await db.execute(stmt)).scalar_one_or_none():
        raise HTTPException(status_code=409, detail=f"'{name}' already exists")


async def _get_item(db: AsyncSession, model, tenant_id: uuid.UUID, item_id: uuid.UUID, label: str):
    result = await db.execute(select(model).where(model.id == item_id, model.tenant_id == tenant_id))
    item = result.scalar_one_or_none()
    if not item:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return item


# ---------------------------------------------------------------------------
# Shared handlers for revenue sources and voteheads
# ---------------------------------------------------------------------------


async def _list_bound(db: AsyncSession, kind: str, tenant_id: uuid.UUID) -> dict:
    model = _model_for(kind)
    result = await db.execute(select(model).where(model.tenant_id == tenant_id).order_by(model.name))
    items = [_bound_payload(i) for i in result.scalars().all()]
    return {"items": items, "total": len(items)}


async def _create_bound(db: AsyncSession, kind: str, body: BoundClassificationIn, user: dict) -> dict:
    model = _model_for(kind)
    name = body.name.strip()
    await _check_unique_name(db, model, user["tenant_id"], name)
    account = await _check_bound_account(db, user["tenant_id"], kind, body.account_id)

    item = model(
        tenant_id=user["tenant_id"],
        name=name,
        description=body.description,
        account_id=account.id,
        account=account,
    )
    db.add(item)
    await db.flush()

    await write_audit_log(db, user, f"{kind}.create", kind, str(item.id), {"name": name, "account": account.code})
    await db.commit()
    return _bound_payload(item)


async def _update_bound(
    db: AsyncSession, kind: str, item_id: uuid.UUID, body: BoundClassificationUpdate, user: dict, label: str,
) -> dict:
    model = _model_for(kind)
    item = await _get_item(db, model, user["tenant_id"], item_id, label)

    changes = {}
    if body.name is not None and body.name.strip() != item.name:
        name = body.name.strip()
        await _check_unique_name(db, model, user["tenant_id"], name, exclude_id=item.id)
        item.name = changes["name"] = name
    if body.description is not None:
        item.description = changes["description"] = body.description
    if body.account_id is not None and body.account_id != item.account_id:
        account = await _check_bound_account(db, user["tenant_id"], kind, body.account_id)
        item.account_id = account.id
        item.account = account
        changes["account"] = account.code

    await write_audit_log(db, user, f"{kind}.update", kind, str(item_id), changes)
    await db.commit()
    return _bound_payload(item)


async def _delete_bound(db: AsyncSession, kind: str, item_id: uuid.UUID, user: dict, label: str) -> dict:
    from churchfin.models.transaction import Expenditure, Income

    model = _model_for(kind)
    item = await _get_item(db, model, user["tenant_id"], item_id, label)

    usage_column = Income.revenue_source_id if kind == "revenue_source" else Expenditure.votehead_id
    in_use = (await db.execute(select(func.count()).where(usage_column == item.id))).scalar_one()
    if in_use:
        raise HTTPException(status_code=409, detail=f"{label} is used by recorded transactions")

    await db.delete(item)
    await write_audit_log(db, user, f"{kind}.delete", kind, str(item_id), {"name": item.name})
    await db.commit()
    return {"status": "deleted"}


# ---------------------------------------------------------------------------
# REVENUE SOURCES
# ---------------------------------------------------------------------------


@router.get("/revenue-sources")
async def list_revenue_sources(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.view")),
):
    return await _list_bound(db, "revenue_source", user["tenant_id"])


@router.post("/revenue-sources", status_code=201)
async def create_revenue_source(
    body: BoundClassificationIn,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    return await _create_bound(db, "revenue_source", body, user)


@router.put("/revenue-sources/{item_id}")
async def update_revenue_source(
    item_id: uuid.UUID,
    body: BoundClassificationUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    return await _update_bound(db, "revenue_source", item_id, body, user, "Revenue source")


@router.delete("/revenue-sources/{item_id}")
async def delete_revenue_source(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    return await _delete_bound(db, "revenue_source", item_id, user, "Revenue source")


# ---------------------------------------------------------------------------
# VOTEHEADS
# ---------------------------------------------------------------------------


@router.get("/voteheads")
async def list_voteheads(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.view")),
):
    return await _list_bound(db, "votehead", user["tenant_id"])


@router.post("/voteheads", status_code=201)
async def create_votehead(
    body: BoundClassificationIn,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    return await _create_bound(db, "votehead", body, user)


@router.put("/voteheads/{item_id}")
async def update_votehead(
    item_id: uuid.UUID,
    body: BoundClassificationUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    return await _update_bound(db, "votehead", item_id, body, user, "Votehead")


@router.delete("/voteheads/{item_id}")
async def delete_votehead(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    return await _delete_bound(db, "votehead", item_id, user, "Votehead")


# ---------------------------------------------------------------------------
# CATEGORIES
# ---------------------------------------------------------------------------


@router.get("/categories")
async def list_categories(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.view")),
):
    from churchfin.models.budget import Category

    result = await db.execute(
        select(Category).where(Category.tenant_id == user["tenant_id"]).order_by(Category.name)
    )
    items = [_category_payload(c) for c in result.scalars().all()]
    return {"items": items, "total": len(items)}


@router.post("/categories", status_code=201)
async def create_category(
    body: CategoryIn,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    from churchfin.models.budget import Category

    name = body.name.strip()
    await _check_unique_name(db, Category, user["tenant_id"], name)

    category = Category(tenant_id=user["tenant_id"], name=name, description=body.description)
    db.add(category)
    await db.flush()

    await write_audit_log(db, user, "category.create", "category", str(category.id), {"name": name})
    await db.commit()
    return _category_payload(category)


@router.put("/categories/{item_id}")
async def update_category(
    item_id: uuid.UUID,
    body: CategoryIn,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    from churchfin.models.budget import Category

    category = await _get_item(db, Category, user["tenant_id"], item_id, "Category")
    name = body.name.strip()
    await _check_unique_name(db, Category, user["tenant_id"], name, exclude_id=category.id)

    category.name = name
    category.description = body.description
    await write_audit_log(db, user, "category.update", "category", str(item_id), {"name": name})
    await db.commit()
    return _category_payload(category)


@router.delete("/categories/{item_id}")
async def delete_category(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("classifications.manage")),
):
    from churchfin.models.budget import Category

    category = await _get_item(db, Category, user["tenant_id"], item_id, "Category")
    await db.delete(category)
    await write_audit_log(db, user, "category.delete", "category", str(item_id), {"name": category.name})
    await db.commit()
    return {"status": "deleted"}
