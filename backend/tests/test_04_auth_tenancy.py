"""
Tests 51-70: Authentication, Roles & Church Isolation

Registration, login, role-based permissions, user management, and the
guarantee that one church can never see or touch another church's books.
"""
import uuid

from conftest import auth_headers, login, register

# Tests auto-detected by pytest-asyncio (asyncio_mode=auto in pyproject.toml)


async def _invite(client, headers, email, role):
    r = await client.post("/api/users/invite", headers=headers, json={
        "name": role.title(), "email": email, "password": "secret123", "role": role,
    })
    assert r.status_code == 201, r.text
    return r.json()


class TestAuthentication:

    # ===================================================================
    # Test 51: Registration creates a church and its admin
    # ===================================================================
    async def test_51_register(self, client, admin):
        assert admin["token_type"] == "bearer"
        assert admin["user"]["role"] == "admin"
        assert "users.manage" in admin["user"]["permissions"]

        me = (await client.get("/api/users/me", headers=auth_headers(admin["access_token"]))).json()
        assert me["tenant_name"] == "Grace Chapel"
        assert me["email"] == "treasurer@grace.example"

    # ===================================================================
    # Test 52: Duplicate email or church name is rejected
    # ===================================================================
    async def test_52_register_duplicates(self, client, admin):
        r = await client.post("/api/users/register", json={
            "name": "Someone", "email": "TREASURER@grace.example", "password": "secret123",
            "tenant_name": "Another Church",
        })
        assert r.status_code == 409

        r = await client.post("/api/users/register", json={
            "name": "Someone", "email": "new@grace.example", "password": "secret123",
            "tenant_name": "Grace Chapel",
        })
        assert r.status_code == 409

    # ===================================================================
    # Test 53: Login with valid and invalid credentials
    # ===================================================================
    async def test_53_login(self, client, admin):
        token = await login(client, "treasurer@grace.example")
        assert token

        r = await client.post("/api/users/login", json={
            "email": "treasurer@grace.example", "password": "wrong-password",
        })
        assert r.status_code == 401

    # ===================================================================
    # Test 54: OAuth2 form login
    # ===================================================================
    async def test_54_login_form(self, client, admin):
        r = await client.post("/api/users/login/form", data={
            "username": "treasurer@grace.example", "password": "secret123",
        })
        assert r.status_code == 200
        assert r.json()["token_type"] == "bearer"

    # ===================================================================
    # Test 55: Missing or invalid token is 401
    # ===================================================================
    async def test_55_unauthenticated(self, client):
        r = await client.get("/api/users/me")
        assert r.status_code == 401
        r = await client.get("/api/accounts", headers=auth_headers("not-a-jwt"))
        assert r.status_code == 401

    # ===================================================================
    # Test 56: Short passwords are rejected
    # ===================================================================
    async def test_56_short_password(self, client):
        r = await client.post("/api/users/register", json={
            "name": "A", "email": "a@b.example", "password": "123", "tenant_name": "Tiny",
        })
        assert r.status_code == 422


class TestRoles:

    # ===================================================================
    # Test 57: Viewer is read-only
    # ===================================================================
    async def test_57_viewer_read_only(self, client, admin_headers, accounts):
        await _invite(client, admin_headers, "viewer@grace.example", "viewer")
        viewer = auth_headers(await login(client, "viewer@grace.example"))

        r = await client.get("/api/accounting/trial-balance", headers=viewer)
        assert r.status_code == 200
        r = await client.post("/api/accounts", headers=viewer, json={
            "code": "9999", "name": "Nope", "account_type": "asset",
        })
        assert r.status_code == 403
        r = await client.post("/api/journal-entries", headers=viewer, json={
            "entry_date": "2026-01-01",
            "lines": [
                {"account_id": accounts["1000"]["id"], "debit": 1, "credit": 0},
                {"account_id": accounts["4000"]["id"], "debit": 0, "credit": 1},
            ],
        })
        assert r.status_code == 403

    # ===================================================================
    # Test 58: User role can post but not reverse or delete records
    # ===================================================================
    async def test_58_user_cannot_reverse(self, client, admin_headers, post_entry):
        await _invite(client, admin_headers, "clerk@grace.example", "user")
        clerk = auth_headers(await login(client, "clerk@grace.example"))

        r = await post_entry("2026-01-10", [("1000", 40, 0), ("4000", 0, 40)], headers=clerk)
        assert r.status_code == 201
        r = await client.post(f"/api/journal-entries/{r.json()['id']}/reverse", headers=clerk)
        assert r.status_code == 403
        r = await client.delete(f"/api/incomes/{uuid.uuid4()}", headers=clerk)
        assert r.status_code == 403

    # ===================================================================
    # Test 59: Invalid role on invite is rejected
    # ===================================================================
    async def test_59_invalid_role(self, client, admin_headers):
        r = await client.post("/api/users/invite", headers=admin_headers, json={
            "name": "X", "email": "x@grace.example", "password": "secret123", "role": "owner",
        })
        assert r.status_code == 422

    # ===================================================================
    # Test 60: Special user cannot manage users
    # ===================================================================
    async def test_60_special_user(self, client, admin_headers):
        await _invite(client, admin_headers, "special@grace.example", "special_user")
        special = auth_headers(await login(client, "special@grace.example"))

        r = await client.get("/api/users", headers=special)
        assert r.status_code == 200
        r = await client.post("/api/users/invite", headers=special, json={
            "name": "Y", "email": "y@grace.example", "password": "secret123", "role": "viewer",
        })
        assert r.status_code == 403

    # ===================================================================
    # Test 61: Roles listing
    # ===================================================================
    async def test_61_roles(self, client, admin_headers):
        roles = (await client.get("/api/users/roles", headers=admin_headers)).json()["roles"]
        assert [r["code"] for r in roles] == ["admin", "special_user", "user", "viewer"]


class TestUserManagement:

    # ===================================================================
    # Test 62: Deactivated user can no longer log in
    # ===================================================================
    async def test_62_deactivate_user(self, client, admin_headers):
        member = await _invite(client, admin_headers, "member@grace.example", "viewer")
        token = await login(client, "member@grace.example")

        r = await client.delete(f"/api/users/{member['id']}", headers=admin_headers)
        assert r.status_code == 200

        r = await client.post("/api/users/login", json={
            "email": "member@grace.example", "password": "secret123",
        })
        assert r.status_code == 401
        r = await client.get("/api/users/me", headers=auth_headers(token))
        assert r.status_code == 403

    # ===================================================================
    # Test 63: Admin cannot remove themselves
    # ===================================================================
    async def test_63_cannot_remove_self(self, client, admin, admin_headers):
        r = await client.delete(f"/api/users/{admin['user']['id']}", headers=admin_headers)
        assert r.status_code == 422

    # ===================================================================
    # Test 64: Last admin cannot be demoted
    # ===================================================================
    async def test_64_last_admin_guard(self, client, admin, admin_headers):
        r = await client.put(f"/api/users/{admin['user']['id']}", headers=admin_headers, json={"role": "viewer"})
        assert r.status_code == 422

        second = await _invite(client, admin_headers, "second@grace.example", "admin")
        r = await client.put(f"/api/users/{second['id']}", headers=admin_headers, json={"role": "user"})
        assert r.status_code == 200
        assert r.json()["role"] == "user"

    # ===================================================================
    # Test 65: User list is per church
    # ===================================================================
    async def test_65_user_list_per_church(self, client, admin_headers, other_headers):
        await _invite(client, admin_headers, "one@grace.example", "viewer")
        grace = (await client.get("/api/users", headers=admin_headers)).json()
        hope = (await client.get("/api/users", headers=other_headers)).json()
        assert grace["total"] == 2
        assert hope["total"] == 1


class TestChurchIsolation:

    # ===================================================================
    # Test 66: Another church's account is not found
    # ===================================================================
    async def test_66_foreign_account_404(self, client, accounts, other_headers):
        r = await client.get(f"/api/accounts/{accounts['1000']['id']}", headers=other_headers)
        assert r.status_code == 404
        r = await client.get("/api/accounts", headers=other_headers)
        assert r.json()["total"] == 0

    # ===================================================================
    # Test 67: Another church's accounts cannot be posted to
    # ===================================================================
    async def test_67_foreign_account_in_entry(self, client, accounts, other_headers):
        r = await client.post("/api/journal-entries", headers=other_headers, json={
            "entry_date": "2026-01-10",
            "lines": [
                {"account_id": accounts["1000"]["id"], "debit": 10, "credit": 0},
                {"account_id": accounts["4000"]["id"], "debit": 0, "credit": 10},
            ],
        })
        assert r.status_code == 422

    # ===================================================================
    # Test 68: Another church's entry is not found
    # ===================================================================
    async def test_68_foreign_entry_404(self, client, other_headers, post_entry):
        je = (await post_entry("2026-01-10", [("1000", 10, 0), ("4000", 0, 10)])).json()
        r = await client.get(f"/api/journal-entries/{je['id']}", headers=other_headers)
        assert r.status_code == 404
        r = await client.post(f"/api/journal-entries/{je['id']}/reverse", headers=other_headers)
        assert r.status_code == 404

    # ===================================================================
    # Test 69: Same account codes in two churches
    # ===================================================================
    async def test_69_codes_scoped_per_church(self, client, accounts, other_headers):
        r = await client.post("/api/accounts", headers=other_headers, json={
            "code": "1000", "name": "Petty Cash", "account_type": "asset", "is_cash": True,
        })
        assert r.status_code == 201

    # ===================================================================
    # Test 70: Tenant details
    # ===================================================================
    async def test_70_tenant_details(self, client, admin, admin_headers, other_headers):
        tenant_id = admin["user"]["tenant_id"]
        r = await client.get("/api/tenants/current", headers=admin_headers)
        assert r.status_code == 200
        assert r.json()["currency"] == "KES"

        r = await client.put(f"/api/tenants/{tenant_id}", headers=admin_headers, json={
            "address": "12 Church Road",
        })
        assert r.status_code == 200
        assert r.json()["address"] == "12 Church Road"

        r = await client.get(f"/api/tenants/{tenant_id}", headers=other_headers)
        assert r.status_code == 404
