"""Middleware that logs read-access events for report endpoints.

Intercepts successful GET requests to configurable route prefixes and
fires a ``READ_ACCESS`` audit event to the JSONL mirror (fire-and-forget,
so it does not slow down the response).

User information is read from ``request.state._audit_user``, which is
set by ``get_current_user()`` in ``middleware/auth.py``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from churchfin.services.audit_service import (
    AuditEvent,
    AuditEventCategory,
    AuditJsonlWriter,
)


def read_access_event(request: Request, status_code: int) -> AuditEvent:
    path = request.url.path
    user_info = getattr(request.state, "_audit_user", None) or {}
    return AuditEvent(
        id=uuid4(),
        timestamp=datetime.now(timezone.utc),
        category=AuditEventCategory.READ_ACCESS,
        tenant_id=str(user_info["tenant_id"]) if user_info.get("tenant_id") else None,
        user_id=str(user_info["user_id"]) if user_info.get("user_id") else None,
        username=user_info.get("username"),
        action=f"read.{path.strip('/').replace('/', '.')}",
        resource_type="endpoint",
        resource_id=path,
        details={
            "query_params": dict(request.query_params),
            "status_code": status_code,
        },
        ip_address=request.client.host if request.client else None,
    )


class AuditReadAccessMiddleware(BaseHTTPMiddleware):
    """Log read-access events for sensitive data views."""

    def __init__(self, app, writer: AuditJsonlWriter, prefixes: list[str]) -> None:
        super().__init__(app)
        self.writer = writer
        self.prefixes = prefixes

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.method != "GET" or not any(
            request.url.path.startswith(p) for p in self.prefixes
        ):
            return await call_next(request)

        response = await call_next(request)

        if 200 <= response.status_code < 300:
            self.writer.fire_and_forget(read_access_event(request, response.status_code))

        return response
