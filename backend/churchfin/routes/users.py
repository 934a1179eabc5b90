"""User routes: registration, login, and user management within a tenant."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.database import get_db
from churchfin.middleware.auth import (
    create_access_token,
    get_current_user,
    hash_password,
    require_permission,
    verify_password,
    write_audit_log,
)
from churchfin.rbac import ROLE_PERMISSIONS, VALID_ROLES, get_role_permissions, permission_description
from churchfin.services.audit_service import AuditEvent, AuditEventCategory, get_audit_writer

router = APIRouter(prefix="/api/users", tags=["users"])


def _log_failed_auth(email: str, request: Request) -> None:
    """Fire-and-forget a SYSTEM audit event for a failed login attempt."""
    get_audit_writer().fire_and_forget(AuditEvent(
        id=uuid4(),
        timestamp=datetime.now(timezone.utc),
        category=AuditEventCategory.SYSTEM,
        tenant_id=None,
        user_id=None,
        username=email,
        action="auth.failed",
        resource_type="auth",
        resource_id=None,
        details={"reason": "invalid_credentials"},
        ip_address=request.client.host if request.client else None,
    ))


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    tenant_name: str = Field(min_length=1)
    currency: str = Field("KES", min_length=3, max_length=3)


class LoginRequest(BaseModel):
    email: str
    password: str


class InviteRequest(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    role: str = "user"


class UserUpdate(BaseModel):
    name: str | None = None
    role: str | None = None
    is_active: bool | None = None


def _normalise_email(email: str) -> str:
    return email.strip().lower()


def _validate_role(role: str) -> None:
    if role not in VALID_ROLES:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid role '{role}'. Valid roles: {', '.join(VALID_ROLES)}",
        )


def _user_payload(u) -> dict[str, Any]:
    return {
        "id": str(u.id),
        "tenant_id": str(u.tenant_id),
        "name": u.name,
        "email": u.email,
        "role": u.role,
        "is_active": u.is_active,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


def _token_response(u) -> dict[str, Any]:
    token = create_access_token({"sub": u.id, "tenant_id": u.tenant_id, "role": u.role})
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": {
            **_user_payload(u),
            "permissions": sorted(get_role_permissions(u.role)),
        },
    }


def _audit_identity(u) -> dict[str, Any]:
    return {"user_id": u.id, "tenant_id": u.tenant_id, "username": u.email}


async def _authenticate(db: AsyncSession, email: str, password: str, request: Request):
    from churchfin.models.user import User

    result = await db.execute(
        select(User).where(User.email == _normalise_email(email), User.is_active == True)
    )
    user = result.scalar_one_or_none()

    if not user or not verify_password(password, user.password_hash) or not user.tenant.is_active:
        _log_failed_auth(email, request)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    await write_audit_log(
        db,
        _audit_identity(user),
        "auth.login",
        resource_type="user",
        resource_id=str(user.id),
        ip_address=request.client.host if request.client else None,
    )
    await db.commit()
    return user


# ---------------------------------------------------------------------------
# REGISTRATION & LOGIN
# ---------------------------------------------------------------------------


@router.post("/register", status_code=201)
async def register(body: RegisterRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Create a church (tenant) and its first admin user."""
    from churchfin.models.tenant import Tenant
    from churchfin.models.user import User

    email = _normalise_email(body.email)
    tenant_name = body.tenant_name.strip()

    if (await db.execute(select(Tenant).where(Tenant.name == tenant_name))).scalar_one_or_none():
        raise HTTPException(status_code=409, detail="A church with this name is already registered")
    if (await db.execute(select(User).where(User.email == email))).scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Email already registered")

    tenant = Tenant(name=tenant_name, currency=body.currency.upper())
    db.add(tenant)
    await db.flush()

    user = User(
        tenant_id=tenant.id,
        name=body.name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        role="admin",
    )
    db.add(user)
    await db.flush()

    await write_audit_log(
        db,
        _audit_identity(user),
        "user.register",
        resource_type="tenant",
        resource_id=str(tenant.id),
        details={"tenant_name": tenant.name, "email": email},
        ip_address=request.client.host if request.client else None,
    )
    await db.commit()

    return _token_response(user)


@router.post("/login")
async def login(body: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    user = await _authenticate(db, body.email, body.password, request)
    return _token_response(user)


@router.post("/login/form")
async def login_form(
    request: Request,
    form: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    """OAuth2 password flow used by the interactive API docs (username = email)."""
    user = await _authenticate(db, form.username, form.password, request)
    return {"access_token": _token_response(user)["access_token"], "token_type": "bearer"}


@router.get("/me")
async def get_me(user: dict = Depends(get_current_user)):
    return {
        "id": str(user["user_id"]),
        "tenant_id": str(user["tenant_id"]),
        "tenant_name": user["tenant_name"],
        "name": user["name"],
        "email": user["email"],
        "role": user["role"],
        "permissions": sorted(get_role_permissions(user["role"])),
    }


@router.get("/roles")
async def list_roles(_user: dict = Depends(get_current_user)):
    """List all roles with their permissions."""
    return {
        "roles": [
            {
                "code": role_code,
                "permissions": [
                    {"code": p, "description": permission_description(p)}
                    for p in sorted(ROLE_PERMISSIONS[role_code])
                ],
            }
            for role_code in VALID_ROLES
        ]
    }


# ---------------------------------------------------------------------------
# USER MANAGEMENT
# ---------------------------------------------------------------------------


@router.get("")
async def list_users(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("users.view")),
):
    """List users of the caller's church."""
    from churchfin.models.user import User

    result = await db.execute(
        select(User).where(User.tenant_id == user["tenant_id"]).order_by(User.name)
    )
    items = [_user_payload(u) for u in result.scalars().all()]
    return {"items": items, "total": len(items)}


@router.post("/invite", status_code=201)
async def invite_user(
    body: InviteRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("users.manage")),
):
    """Add a user to the caller's church."""
    from churchfin.models.user import User

    _validate_role(body.role)
    email = _normalise_email(body.email)

    if (await db.execute(select(User).where(User.email == email))).scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Email already registered")

    new_user = User(
        tenant_id=user["tenant_id"],
        name=body.name.strip(),
        email=email,
        password_hash=hash_password(body.password),
        role=body.role,
    )
    db.add(new_user)
    await db.flush()

    await write_audit_log(
        db,
        user,
        action="user.invite",
        resource_type="user",
        resource_id=str(new_user.id),
        details={"email": email, "role": body.role},
    )
    await db.commit()

    return _user_payload(new_user)


async def _get_tenant_user(db: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID):
    from churchfin.models.user import User

    result = await db.execute(
        select(User).where(User.id == user_id, User.tenant_id == tenant_id)
    )
    target = result.scalar_one_or_none()
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    return target


async def _ensure_other_admin(db: AsyncSession, target) -> None:
    """Refuse to leave a church without an active admin."""
    from churchfin.models.user import User

    if target.role != "admin" or not target.is_active:
        return
    remaining = (await db.execute(
        select(func.count(User.id)).where(
            User.tenant_id == target.tenant_id,
            User.role == "admin",
            User.is_active == True,
            User.id != target.id,
        )
    )).scalar_one()
    if remaining == 0:
        raise HTTPException(status_code=422, detail="A church must keep at least one active admin")


@router.put("/{user_id}")
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("users.manage")),
):
    target = await _get_tenant_user(db, user["tenant_id"], user_id)

    changes: dict[str, Any] = {}
    if body.role is not None and body.role != target.role:
        _validate_role(body.role)
        await _ensure_other_admin(db, target)
        changes["role"] = body.role
        target.role = body.role
    if body.is_active is False and target.is_active:
        await _ensure_other_admin(db, target)
    if body.is_active is not None:
        changes["is_active"] = body.is_active
        target.is_active = body.is_active
    if body.name is not None:
        changes["name"] = body.name
        target.name = body.name

    await write_audit_log(
        db,
        user,
        action="user.update",
        resource_type="user",
        resource_id=str(user_id),
        details=changes,
    )
    await db.commit()
    return _user_payload(target)


@router.delete("/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_permission("users.manage")),
):
    """Deactivate a user. Users are never hard-deleted; their entries reference them."""
    target = await _get_tenant_user(db, user["tenant_id"], user_id)
    if target.id == user["user_id"]:
        raise HTTPException(status_code=422, detail="You cannot remove your own account")
    await _ensure_other_admin(db, target)

    target.is_active = False
    await write_audit_log(
        db,
        user,
        action="user.deactivate",
        resource_type="user",
        resource_id=str(user_id),
        details={"email": target.email},
    )
    await db.commit()
    return {"status": "deactivated", "id": str(user_id)}
