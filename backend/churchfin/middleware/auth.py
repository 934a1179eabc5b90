"""Authentication and authorization for churchfin.

Provides:
- Password hashing (bcrypt)
- JWT creation / validation
- ``get_current_user()`` dependency (carries the user's tenant)
- ``require_permission()`` dependency factory
- Audit-log helper
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.config import settings
from churchfin.database import get_db
from churchfin.rbac import get_role_permissions

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

_pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def verify_password(plain: str, hashed: str) -> bool:
    """Compare a plain-text password against a bcrypt hash."""
    return _pwd_context.verify(plain, hashed)


def hash_password(plain: str) -> str:
    """Return the bcrypt hash of a plain-text password."""
    return _pwd_context.hash(plain)


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT containing *sub* (user id), *tenant_id*, *role* and *exp*."""
    to_encode = {
        key: str(value) if isinstance(value, uuid.UUID) else value
        for key, value in data.items()
    }
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRY_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login/form")

# ---------------------------------------------------------------------------
# Current-user dependency
# ---------------------------------------------------------------------------


async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Decode the JWT, look up the user and return a dict describing them.

    Raises ``HTTPException(401)`` when the token is invalid or the user
    cannot be found, and 403 when the user or their tenant is deactivated.

    Also stores the user dict on ``request.state._audit_user`` so the
    read-access audit middleware can correlate requests to users.
    """
    from churchfin.models.user import User

    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        user_id = uuid.UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        raise credentials_exception

    user: User | None = (
        await db.execute(select(User).where(User.id == user_id))
    ).scalar_one_or_none()
    if user is None:
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )
    if not user.tenant.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Church account is deactivated",
        )

    user_dict = {
        "user_id": user.id,
        "tenant_id": user.tenant_id,
        "tenant_name": user.tenant.name,
        "username": user.email,
        "name": user.name,
        "email": user.email,
        "role": user.role,
    }

    # Store on request for read-access audit middleware
    request.state._audit_user = user_dict

    return user_dict


# ---------------------------------------------------------------------------
# Permission-checking dependency factory
# ---------------------------------------------------------------------------


def require_permission(*permissions: str):
    """Return a FastAPI dependency that ensures the authenticated user's
    role grants ALL of the specified permissions.

    Usage::

        @router.post("/api/accounts", status_code=201)
        async def create_account(
            body: AccountCreate,
            db: AsyncSession = Depends(get_db),
            user: dict = Depends(require_permission("accounts.create")),
        ):
            ...
    """
    required = set(permissions)

    async def _check_permission(
        current_user: dict[str, Any] = Depends(get_current_user),
    ) -> dict[str, Any]:
        missing = required - get_role_permissions(current_user["role"])
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(sorted(missing))}.",
            )
        return current_user

    return _check_permission


# ---------------------------------------------------------------------------
# Audit-log helper
# ---------------------------------------------------------------------------


async def write_audit_log(
    db: AsyncSession,
    user: dict[str, Any] | None,
    action: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
) -> None:
    """Add an ``audit_log`` row (flushed, committed by the caller) and mirror it to JSONL."""
    from churchfin.models.audit import AuditLog
    from churchfin.services.audit_service import AuditEvent, classify_action, get_audit_writer

    category = classify_action(action)

    tenant_id = user.get("tenant_id") if user else None
    user_id = user.get("user_id") if user else None
    username = user.get("username") if user else None

    entry = AuditLog(
        tenant_id=tenant_id,
        user_id=user_id,
        username=username,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
        event_category=category.value,
    )
    db.add(entry)
    await db.flush()

    get_audit_writer().fire_and_forget(AuditEvent(
        id=entry.id,
        timestamp=datetime.now(timezone.utc),
        category=category,
        tenant_id=str(tenant_id) if tenant_id else None,
        user_id=str(user_id) if user_id else None,
        username=username,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
        ip_address=ip_address,
    ))
