"""
Tests 89-104, 121: Fiscal Periods & Audit Trail

Closed fiscal periods block posting; every mutation lands in the audit
log; expired read-access and system events are purged on schedule.
"""
import json
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from churchfin.models.audit import AuditLog
from churchfin.services.audit_retention import purge_audit_retention, purge_jsonl
from churchfin.services.audit_service import (
    AuditEvent,
    AuditEventCategory,
    AuditJsonlWriter,
    classify_action,
)

from conftest import auth_headers, login

# Tests auto-detected by pytest-asyncio (asyncio_mode=auto in pyproject.toml)


async def _create_period(client, headers, code, start, end):
    return await client.post("/api/fiscal-periods", headers=headers, json={
        "period_code": code, "period_name": code, "start_date": start, "end_date": end,
    })


class TestFiscalPeriods:

    # ===================================================================
    # Test 89: Create and list periods
    # ===================================================================
    async def test_89_create_and_list(self, client, admin_headers):
        r = await _create_period(client, admin_headers, "2026-01", "2026-01-01", "2026-01-31")
        assert r.status_code == 201
        assert r.json()["status"] == "open"

        items = (await client.get("/api/fiscal-periods", headers=admin_headers)).json()["items"]
        assert [p["period_code"] for p in items] == ["2026-01"]

    # ===================================================================
    # Test 90: Overlapping periods are rejected
    # ===================================================================
    async def test_90_overlap_rejected(self, client, admin_headers):
        await _create_period(client, admin_headers, "2026-01", "2026-01-01", "2026-01-31")
        r = await _create_period(client, admin_headers, "2026-J", "2026-01-15", "2026-02-15")
        assert r.status_code == 409

    # ===================================================================
    # Test 91: Inverted period is rejected
    # ===================================================================
    async def test_91_inverted_period_rejected(self, client, admin_headers):
        r = await _create_period(client, admin_headers, "BAD", "2026-02-01", "2026-01-01")
        assert r.status_code == 422

    # ===================================================================
    # Test 92: Closed period blocks posting; reopening allows it
    # ===================================================================
    async def test_92_closed_period_blocks_posting(self, client, admin_headers, post_entry):
        period = (await _create_period(client, admin_headers, "2026-01", "2026-01-01", "2026-01-31")).json()

        r = await client.post(f"/api/fiscal-periods/{period['id']}/close", headers=admin_headers)
        assert r.status_code == 200

        r = await post_entry("2026-01-15", [("1000", 10, 0), ("4000", 0, 10)])
        assert r.status_code == 422
        assert "closed" in r.json()["detail"]

        r = await post_entry("2026-02-01", [("1000", 10, 0), ("4000", 0, 10)])
        assert r.status_code == 201

        r = await client.post(f"/api/fiscal-periods/{period['id']}/reopen", headers=admin_headers)
        assert r.status_code == 200
        r = await post_entry("2026-01-15", [("1000", 10, 0), ("4000", 0, 10)])
        assert r.status_code == 201

    # ===================================================================
    # Test 93: Draft in a period closed later cannot be posted
    # ===================================================================
    async def test_93_draft_in_closed_period(self, client, admin_headers, post_entry):
        draft = (await post_entry("2026-01-15", [("1000", 10, 0), ("4000", 0, 10)], status="draft")).json()
        period = (await _create_period(client, admin_headers, "2026-01", "2026-01-01", "2026-01-31")).json()
        await client.post(f"/api/fiscal-periods/{period['id']}/close", headers=admin_headers)

        r = await client.post(f"/api/journal-entries/{draft['id']}/post", headers=admin_headers)
        assert r.status_code == 422

    # ===================================================================
    # Test 94: Closing twice / reopening an open period
    # ===================================================================
    async def test_94_close_twice(self, client, admin_headers):
        period = (await _create_period(client, admin_headers, "2026-01", "2026-01-01", "2026-01-31")).json()
        r = await client.post(f"/api/fiscal-periods/{period['id']}/reopen", headers=admin_headers)
        assert r.status_code == 422
        await client.post(f"/api/fiscal-periods/{period['id']}/close", headers=admin_headers)
        r = await client.post(f"/api/fiscal-periods/{period['id']}/close", headers=admin_headers)
        assert r.status_code == 422

        closed = (await client.get("/api/fiscal-periods?status=closed", headers=admin_headers)).json()
        assert len(closed["items"]) == 1

    # ===================================================================
    # Test 95: Generating a year skips months already covered
    # ===================================================================
    async def test_95_generate_year(self, client, admin_headers):
        await _create_period(client, admin_headers, "JAN", "2026-01-01", "2026-01-31")
        r = await client.post("/api/fiscal-periods/generate", headers=admin_headers, json={"year": 2026})
        assert r.status_code == 201
        assert r.json()["created"] == 11
        assert r.json()["items"][0]["period_code"] == "2026-02"

    # ===================================================================
    # Test 96: Periods are per church
    # ===================================================================
    async def test_96_periods_per_church(self, client, admin_headers, other_headers):
        period = (await _create_period(client, admin_headers, "2026-01", "2026-01-01", "2026-01-31")).json()
        r = await client.post(f"/api/fiscal-periods/{period['id']}/close", headers=other_headers)
        assert r.status_code == 404
        r = await _create_period(client, other_headers, "2026-01", "2026-01-01", "2026-01-31")
        assert r.status_code == 201

    # ===================================================================
    # Test 121: Generating a year skips month codes already in use
    # ===================================================================
    async def test_121_generate_year_code_clash(self, client, admin_headers):
        await _create_period(client, admin_headers, "2026-01", "2025-12-01", "2025-12-31")
        r = await client.post("/api/fiscal-periods/generate", headers=admin_headers, json={"year": 2026})
        assert r.status_code == 201
        assert r.json()["created"] == 11
        assert r.json()["skipped"] == ["2026-01"]

        items = (await client.get("/api/fiscal-periods", headers=admin_headers)).json()["items"]
        assert len(items) == 12
        assert items[0]["end_date"] == "2025-12-31"


class TestAuditTrail:

    # ===================================================================
    # Test 97: Mutations are written to the audit log
    # ===================================================================
    async def test_97_audit_log_records_mutations(self, client, admin_headers, post_entry):
        await post_entry("2026-01-15", [("1000", 10, 0), ("4000", 0, 10)])

        r = await client.get("/api/admin/audit-log?action=journal_entry.create", headers=admin_headers)
        assert r.status_code == 200
        body = r.json()
        assert body["total"] == 1
        assert body["items"][0]["username"] == "treasurer@grace.example"
        assert body["items"][0]["event_category"] == "mutation"

        r = await client.get("/api/admin/audit-log?resource_type=account", headers=admin_headers)
        assert r.json()["total"] == 9

    # ===================================================================
    # Test 98: Audit log is per church
    # ===================================================================
    async def test_98_audit_log_per_church(self, client, admin_headers, other_headers, accounts):
        r = await client.get("/api/admin/audit-log?resource_type=account", headers=other_headers)
        assert r.json()["total"] == 0

    # ===================================================================
    # Test 99: Non-admins without the permission are refused
    # ===================================================================
    async def test_99_audit_log_permission(self, client, admin_headers):
        await client.post("/api/users/invite", headers=admin_headers, json={
            "name": "Viewer", "email": "v@grace.example", "password": "secret123", "role": "viewer",
        })
        viewer = auth_headers(await login(client, "v@grace.example"))
        r = await client.get("/api/admin/audit-log", headers=viewer)
        assert r.status_code == 403

    # ===================================================================
    # Test 100: Action classification
    # ===================================================================
    @pytest.mark.parametrize("action, category", [
        ("journal_entry.create", AuditEventCategory.MUTATION),
        ("journal_entry.reverse", AuditEventCategory.MUTATION),
        ("fiscal_period.close", AuditEventCategory.MUTATION),
        ("auth.login", AuditEventCategory.MUTATION),
        ("auth.failed", AuditEventCategory.SYSTEM),
        ("system.startup", AuditEventCategory.SYSTEM),
        ("read.api.accounting.trial-balance", AuditEventCategory.READ_ACCESS),
        ("something.unusual", AuditEventCategory.MUTATION),
    ])
    def test_100_classify_action(self, action, category):
        assert classify_action(action) == category

    # ===================================================================
    # Test 101: JSONL writer appends one line per event
    # ===================================================================
    async def test_101_jsonl_writer(self, tmp_path):
        writer = AuditJsonlWriter(str(tmp_path))
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id=uuid4(), timestamp=now, category=AuditEventCategory.MUTATION,
            tenant_id=None, user_id=None, username="system", action="test.create",
            resource_type=None, resource_id=None, details={"n": 1}, ip_address=None,
        )
        await writer.write_async(event)
        await writer.write_async(event)

        lines = writer.path_for(now).read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["system_name"] == "churchfin"

    # ===================================================================
    # Test 102: Disabled writer does nothing
    # ===================================================================
    def test_102_disabled_writer(self, tmp_path):
        writer = AuditJsonlWriter(str(tmp_path / "off"), enabled=False)
        writer.fire_and_forget(AuditEvent(
            id=uuid4(), timestamp=datetime.now(timezone.utc), category=AuditEventCategory.SYSTEM,
            tenant_id=None, user_id=None, username=None, action="system.startup",
            resource_type=None, resource_id=None, details=None, ip_address=None,
        ))
        assert not (tmp_path / "off").exists()

    # ===================================================================
    # Test 103: JSONL purge keeps mutations and recent files
    # ===================================================================
    def test_103_purge_jsonl(self, tmp_path):
        now = datetime(2026, 6, 30, tzinfo=timezone.utc)
        old = tmp_path / "2026-03-01.jsonl"
        old.write_text("\n".join(json.dumps({"category": c}) for c in (
            "mutation", "read_access", "system",
        )) + "\n", encoding="utf-8")
        recent = tmp_path / "2026-06-20.jsonl"
        recent.write_text(json.dumps({"category": "system"}) + "\n", encoding="utf-8")

        removed = purge_jsonl(tmp_path, now)
        assert removed == 2
        kept = [json.loads(line) for line in old.read_text(encoding="utf-8").splitlines()]
        assert kept == [{"category": "mutation"}]
        assert recent.read_text(encoding="utf-8").strip() == json.dumps({"category": "system"})

    # ===================================================================
    # Test 104: Database purge removes expired non-mutation rows only
    # ===================================================================
    async def test_104_purge_database(self, tmp_path, session_factory):
        now = datetime(2026, 6, 30, tzinfo=timezone.utc)
        long_ago = datetime(2026, 1, 1)
        async with session_factory() as db:
            db.add_all([
                AuditLog(action="read.api.dashboard", event_category="read_access", created_at=long_ago),
                AuditLog(action="system.startup", event_category="system", created_at=long_ago),
                AuditLog(action="account.create", event_category="mutation", created_at=long_ago),
                AuditLog(action="system.startup", event_category="system", created_at=datetime(2026, 6, 29)),
            ])
            await db.commit()

        summary = await purge_audit_retention(str(tmp_path), session_factory, now=now)
        assert summary == {"jsonl_lines_removed": 0, "db_deleted": 2}

        async with session_factory() as db:
            remaining = (await db.execute(select(func.count()).select_from(AuditLog))).scalar_one()
        assert remaining == 2
