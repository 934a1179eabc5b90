"""Tenant routes: the caller's church."""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import require_permission, write_audit_log

router = APIRouter(prefix="/api/tenants", tags=["tenants"])


class TenantUpdate(BaseModel):
    name: str | None = Field(None, min_length=1)
    currency: str | None = Field(None, min_length=3, max_length=3)
    address: str | None = None


def _tenant_payload(t) -> dict:
    return {
        "id": str(t.id),
        "name": t.name,
        "currency": t.currency,
        "address": t.address,
        "is_active": t.is_active,
        "created_at": t.created_at.isoformat() if t.created_at else None,
    }


async def _get_own_tenant(db: AsyncSession, user: dict, tenant_id: uuid.UUID):
    from churchfin.models.tenant import Tenant

    # Another church's id is reported as missing, not forbidden.
    if tenant_id != user["tenant_id"]:
        raise HTTPException(status_code=404, detail="Tenant not found")
    tenant = (await db.execute(select(Tenant).where(Tenant.id == tenant_id))).scalar_one_or_none()
    if not tenant:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


@router.get("/current")
async def get_current_tenant(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("tenant.view")),
):
    return _tenant_payload(await _get_own_tenant(db, user, user["tenant_id"]))


@router.get("/{tenant_id}")
async def get_tenant(
    tenant_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("tenant.view")),
):
    return _tenant_payload(await _get_own_tenant(db, user, tenant_id))


@router.put("/{tenant_id}")
async def update_tenant(
    tenant_id: uuid.UUID,
    body: TenantUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("tenant.update")),
):
    from churchfin.models.tenant import Tenant

    tenant = await _get_own_tenant(db, user, tenant_id)
    changes = {
        field: value
        for field, value in body.model_dump(exclude_unset=True).items()
        if value is not None or field == "address"
    }

    if "name" in changes and changes["name"] != tenant.name:
        clash = await db.execute(select(Tenant).where(Tenant.name == changes["name"]))
        if clash.scalar_one_or_none():
            raise HTTPException(status_code=409, detail="A church with this name is already registered")
    if changes.get("currency"):
        changes["currency"] = changes["currency"].upper()

    for field, value in changes.items():
        setattr(tenant, field, value)

    await write_audit_log(db, user, "tenant.update", "tenant", str(tenant_id), changes)
    await db.commit()
    return _tenant_payload(tenant)
