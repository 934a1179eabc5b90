"""Audit event mirroring to daily JSONL files.

The ``audit_log`` table is the primary record (see ``write_audit_log``);
every event is also appended to ``<AUDIT_STORAGE_PATH>/jsonl/YYYY-MM-DD.jsonl``
so the trail survives outside the database. Each event is categorised for
tiered retention:

* **MUTATION** -- kept forever (create, update, delete, post, login, etc.)
* **READ_ACCESS** -- purged after 90 days (report views)
* **SYSTEM** -- purged after 30 days (scheduler runs, startup)

``AuditJsonlWriter.fire_and_forget`` schedules the file I/O on the default
thread-pool so the calling endpoint returns immediately.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)

SYSTEM_NAME = "churchfin"


class AuditEventCategory(str, enum.Enum):
    MUTATION = "mutation"  # Never deleted
    READ_ACCESS = "read_access"  # 90-day retention
    SYSTEM = "system"  # 30-day retention


@dataclasses.dataclass(frozen=True)
class AuditEvent:
    id: UUID
    timestamp: datetime
    category: AuditEventCategory
    tenant_id: str | None
    user_id: str | None
    username: str | None
    action: str
    resource_type: str | None
    resource_id: str | None
    details: dict | None
    ip_address: str | None
    system_name: str = SYSTEM_NAME

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "timestamp": self.timestamp.isoformat(),
            "category": self.category.value,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "username": self.username,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "details": self.details,
            "ip_address": self.ip_address,
            "system_name": self.system_name,
        }

    def to_json_line(self) -> str:
        return json.dumps(self.to_dict(), default=str, sort_keys=True)


# ---------------------------------------------------------------------------
# Action → category classifier
# ---------------------------------------------------------------------------

_MUTATION_KEYWORDS = {
    "create",
    "update",
    "delete",
    "post",
    "reverse",
    "close",
    "reopen",
    "register",
    "invite",
    "deactivate",
    "login",
    "record",
    "remove",
    "run",
}

_SYSTEM_PREFIXES = (
    "system.",
    "scheduler.",
    "auth.failed",
)

_READ_KEYWORDS = ("view", "read", "list", "report")


def classify_action(action: str) -> AuditEventCategory:
    """Map an action string to a retention category."""
    action_lower = action.lower()

    for prefix in _SYSTEM_PREFIXES:
        if action_lower.startswith(prefix):
            return AuditEventCategory.SYSTEM

    parts = action_lower.replace(".", "_").split("_")
    for part in parts:
        if part in _MUTATION_KEYWORDS:
            return AuditEventCategory.MUTATION

    if any(kw in action_lower for kw in _READ_KEYWORDS):
        return AuditEventCategory.READ_ACCESS

    # Unknown actions are never purged.
    return AuditEventCategory.MUTATION


# ---------------------------------------------------------------------------
# JSONL writer
# ---------------------------------------------------------------------------


class AuditJsonlWriter:
    """Appends audit events to one JSONL file per day."""

    def __init__(self, base_path: str, enabled: bool = True) -> None:
        self.jsonl_dir = Path(base_path) / "jsonl"
        self.enabled = enabled
        if enabled:
            self.jsonl_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, dt: datetime) -> Path:
        return self.jsonl_dir / f"{dt.strftime('%Y-%m-%d')}.jsonl"

    def write_sync(self, event: AuditEvent) -> None:
        with open(self.path_for(event.timestamp), "a", encoding="utf-8") as f:
            f.write(event.to_json_line() + "\n")

    async def write_async(self, event: AuditEvent) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.write_sync, event)

    def fire_and_forget(self, event: AuditEvent) -> None:
        """Schedule the write without awaiting.  Failures are logged only."""
        if not self.enabled:
            return
        try:
            loop = asyncio.get_running_loop()
            loop.create_task(self._safe_write(event))
        except RuntimeError:
            # No event loop (e.g. during shutdown)
            try:
                self.write_sync(event)
            except OSError:
                logger.exception("Audit JSONL write failed (sync fallback)")

    async def _safe_write(self, event: AuditEvent) -> None:
        try:
            await self.write_async(event)
        except OSError:
            logger.exception("Audit JSONL write failed for event %s", event.id)


_writer: AuditJsonlWriter | None = None


def get_audit_writer() -> AuditJsonlWriter:
    """Process-wide writer configured from settings."""
    global _writer
    if _writer is None:
        from churchfin.config import settings

        _writer = AuditJsonlWriter(
            base_path=settings.AUDIT_STORAGE_PATH,
            enabled=settings.AUDIT_JSONL_ENABLED,
        )
    return _writer
