"""
Test fixtures for the ChurchFin API.

Every test gets its own SQLite database and talks to the FastAPI app
in-process through ``httpx.ASGITransport``. Helpers register a church,
seed a small chart of accounts, and post journal entries.
"""
import os
import tempfile

_TMP_DIR = tempfile.mkdtemp(prefix="churchfin-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TMP_DIR}/default.db")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("AUDIT_JSONL_ENABLED", "false")
os.environ.setdefault("AUDIT_STORAGE_PATH", f"{_TMP_DIR}/audit")
os.environ.setdefault("JWT_SECRET", "test-secret")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import churchfin.models  # noqa: F401  (registers the mappers)
from churchfin.database import Base, get_db
from churchfin.main import app

BASE_URL = "http://testserver"

# code -> (name, type, extra fields)
CHART = {
    "1000": ("Cash on Hand", "asset", {"is_cash": True}),
    "1100": ("Bank Account", "asset", {"is_cash": True}),
    "1500": ("Equipment", "asset", {"cash_flow_category": "investing"}),
    "2000": ("Building Loan", "liability", {"cash_flow_category": "financing"}),
    "3000": ("General Fund", "equity", {}),
    "4000": ("Tithes", "revenue", {}),
    "4100": ("Offerings", "revenue", {}),
    "5000": ("Utilities", "expense", {}),
    "5100": ("Salaries", "expense", {}),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def auth_headers(token: str) -> dict:
    """Return auth header dict for a given token."""
    return {"Authorization": f"Bearer {token}"}


async def register(client: httpx.AsyncClient, email: str, tenant_name: str, password: str = "secret123") -> dict:
    """Register a church and return the token response."""
    r = await client.post("/api/users/register", json={
        "name": "Treasurer",
        "email": email,
        "password": password,
        "tenant_name": tenant_name,
    })
    assert r.status_code == 201, f"Register failed: {r.text}"
    return r.json()


async def login(client: httpx.AsyncClient, email: str, password: str = "secret123") -> str:
    """Login and return the JWT token."""
    r = await client.post("/api/users/login", json={"email": email, "password": password})
    assert r.status_code == 200, f"Login failed: {r.text}"
    return r.json()["access_token"]


# ---------------------------------------------------------------------------
# App / database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A fresh SQLite database with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'churchfin.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def client(session_factory):
    """Async HTTP client bound to the app, using the per-test database."""

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL, timeout=30.0) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Tenant fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def admin(client):
    """Token response for the admin of 'Grace Chapel'."""
    return await register(client, "treasurer@grace.example", "Grace Chapel")


@pytest_asyncio.fixture
async def admin_headers(admin):
    """Auth headers for the Grace Chapel admin."""
    return auth_headers(admin["access_token"])


@pytest_asyncio.fixture
async def other_headers(client):
    """Auth headers for the admin of a second church."""
    data = await register(client, "admin@hope.example", "Hope Fellowship")
    return auth_headers(data["access_token"])


@pytest_asyncio.fixture
async def accounts(client, admin_headers):
    """Seeded chart of accounts, keyed by code."""
    created = {}
    for code, (name, account_type, extra) in CHART.items():
        r = await client.post("/api/accounts", headers=admin_headers, json={
            "code": code, "name": name, "account_type": account_type, **extra,
        })
        assert r.status_code == 201, f"Account {code} failed: {r.text}"
        created[code] = r.json()
    return created


@pytest.fixture
def post_entry(client, admin_headers, accounts):
    """Return a coroutine that posts an entry from ``(code, debit, credit)`` tuples."""

    async def _post(entry_date: str, lines: list[tuple], status: str = "posted",
                    headers: dict | None = None, description: str | None = None):
        return await client.post("/api/journal-entries", headers=headers or admin_headers, json={
            "entry_date": entry_date,
            "description": description,
            "status": status,
            "lines": [
                {"account_id": accounts[code]["id"], "debit": debit, "credit": credit}
                for code, debit, credit in lines
            ],
        })

    return _post


@pytest_asyncio.fixture
async def classifications(client, admin_headers, accounts):
    """A revenue source bound to Tithes and a votehead bound to Utilities."""
    r = await client.post("/api/revenue-sources", headers=admin_headers, json={
        "name": "Sunday Tithes", "account_id": accounts["4000"]["id"],
    })
    assert r.status_code == 201, r.text
    source = r.json()

    r = await client.post("/api/voteheads", headers=admin_headers, json={
        "name": "Electricity", "account_id": accounts["5000"]["id"],
    })
    assert r.status_code == 201, r.text
    votehead = r.json()

    return {"source": source, "votehead": votehead}
