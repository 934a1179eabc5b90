"""ChurchFin — FastAPI Application."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from datetime import datetime, timezone
from uuid import uuid4
import logging

from churchfin.config import settings
from churchfin.database import async_engine, AsyncSessionLocal, create_tables
from churchfin.services.audit_service import AuditEvent, AuditEventCategory, get_audit_writer
from churchfin.services.ledger import EntryValidationError
from churchfin.services.posting import PostingError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _system_event(action: str, details: dict | None = None) -> None:
    """Fire a SYSTEM-category audit event (non-blocking)."""
    get_audit_writer().fire_and_forget(AuditEvent(
        id=uuid4(),
        timestamp=datetime.now(timezone.utc),
        category=AuditEventCategory.SYSTEM,
        tenant_id=None,
        user_id=None,
        username="system",
        action=action,
        resource_type="system",
        resource_id=None,
        details=details,
        ip_address=None,
    ))


scheduler = AsyncIOScheduler()


async def run_audit_retention_purge():
    """Purge expired read-access and system audit events."""
    from churchfin.services.audit_retention import purge_audit_retention

    _system_event("system.scheduler.audit_retention_purge", {"status": "started"})
    try:
        summary = await purge_audit_retention(
            settings.AUDIT_STORAGE_PATH,
            AsyncSessionLocal,
        )
        logger.info(f"Audit retention purge: {summary}")
        _system_event("system.scheduler.audit_retention_purge", {
            "status": "completed", **summary,
        })
    except Exception as e:
        logger.error(f"Audit retention purge failed: {e}")
        _system_event("system.scheduler.audit_retention_purge", {
            "status": "failed", "error": str(e),
        })


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting ChurchFin API...")
    _system_event("system.startup")

    try:
        if settings.AUTO_CREATE_TABLES:
            await create_tables()
            logger.info("Database tables verified")
        else:
            async with async_engine.begin() as conn:
                await conn.exec_driver_sql("SELECT 1")
            logger.info("Database connection verified")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")

    scheduler.add_job(run_audit_retention_purge, "interval", hours=24, id="audit_retention_purge")
    scheduler.start()
    logger.info("Scheduled jobs started (audit retention)")

    logger.info("ChurchFin API started successfully")
    yield

    _system_event("system.shutdown")
    scheduler.shutdown()
    await async_engine.dispose()
    logger.info("ChurchFin API shut down")


app = FastAPI(
    title="ChurchFin",
    description="Church financial management: double-entry journal, income and expenditure records, accounting reports",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Read-access audit middleware for financial report views
from churchfin.middleware.audit_middleware import AuditReadAccessMiddleware

SENSITIVE_PREFIXES = [
    "/api/accounting/",
    "/api/reports",
    "/api/dashboard",
    "/api/admin/audit-log",
]
app.add_middleware(
    AuditReadAccessMiddleware,
    writer=get_audit_writer(),
    prefixes=SENSITIVE_PREFIXES,
)


@app.exception_handler(EntryValidationError)
@app.exception_handler(PostingError)
async def ledger_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


from churchfin.routes import (
    accounting,
    accounts,
    admin,
    classifications,
    dashboard,
    journal,
    periods,
    records,
    tenants,
    transactions,
    users,
)

app.include_router(users.router)
app.include_router(tenants.router)
app.include_router(accounts.router)
app.include_router(journal.router)
app.include_router(accounting.router)
app.include_router(classifications.router)
app.include_router(transactions.router)
app.include_router(records.router)
app.include_router(periods.router)
app.include_router(dashboard.router)
app.include_router(admin.router)


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "ChurchFin API", "version": "1.0.0"}
