"""Retention purge for audit events.

Deletes expired events from the JSONL mirror and the ``audit_log`` table
based on the event category:

* MUTATION  -- never deleted
* READ_ACCESS -- deleted after 90 days
* SYSTEM -- deleted after 30 days
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from churchfin.models.audit import AuditLog
from churchfin.services.audit_service import AuditEventCategory

logger = logging.getLogger(__name__)

# Retention windows (days).  None = never purge.
RETENTION_DAYS: dict[AuditEventCategory, int | None] = {
    AuditEventCategory.MUTATION: None,
    AuditEventCategory.READ_ACCESS: 90,
    AuditEventCategory.SYSTEM: 30,
}

_SHORTEST_RETENTION = min(d for d in RETENTION_DAYS.values() if d is not None)


def purge_jsonl(jsonl_dir: Path, now: datetime) -> int:
    """Drop expired lines from daily JSONL files; returns lines removed."""
    removed_total = 0
    if not jsonl_dir.exists():
        return removed_total

    for jsonl_file in sorted(jsonl_dir.glob("*.jsonl")):
        try:
            file_date = datetime.strptime(jsonl_file.stem, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        except ValueError:
            continue

        age_days = (now - file_date).days
        if age_days < _SHORTEST_RETENTION:
            continue

        lines_to_keep: list[str] = []
        lines_removed = 0
        with open(jsonl_file, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                    category = AuditEventCategory(record.get("category", "mutation"))
                except ValueError:
                    # Malformed lines are kept.
                    lines_to_keep.append(line)
                    continue
                retention = RETENTION_DAYS.get(category)
                if retention is not None and age_days >= retention:
                    lines_removed += 1
                else:
                    lines_to_keep.append(line)

        if lines_removed:
            removed_total += lines_removed
            if lines_to_keep:
                tmp = jsonl_file.with_suffix(".tmp")
                with open(tmp, "w", encoding="utf-8") as f:
                    f.write("\n".join(lines_to_keep) + "\n")
                tmp.replace(jsonl_file)
            else:
                jsonl_file.unlink()

    return removed_total


async def purge_audit_retention(
    audit_base_path: str,
    session_factory: Any,
    now: datetime | None = None,
) -> dict[str, int]:
    """Purge expired audit events from the JSONL mirror and ``audit_log``.

    ``session_factory`` is an ``async_sessionmaker`` (e.g. ``AsyncSessionLocal``).
    Returns a summary of lines/rows removed.
    """
    now = now or datetime.now(timezone.utc)
    summary: dict[str, int] = {
        "jsonl_lines_removed": purge_jsonl(Path(audit_base_path) / "jsonl", now),
        "db_deleted": 0,
    }

    try:
        async with session_factory() as db:
            for category, days in RETENTION_DAYS.items():
                if days is None:
                    continue
                # audit_log.created_at is stored as naive UTC
                cutoff = (now - timedelta(days=days)).replace(tzinfo=None)
                result = await db.execute(
                    delete(AuditLog).where(
                        AuditLog.event_category == category.value,
                        AuditLog.created_at < cutoff,
                    )
                )
                summary["db_deleted"] += result.rowcount
            await db.commit()
    except SQLAlchemyError:
        logger.exception("Database audit purge failed")

    return summary
