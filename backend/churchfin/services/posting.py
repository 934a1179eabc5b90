"""Journal entry lifecycle: create, post, reverse.

``JournalPoster`` is the only writer of ``journal_entries`` / ``journal_lines``.
It flushes but never commits; the calling route owns the transaction.
"""
from __future__ import annotations

import dataclasses
import logging
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.models.base import utcnow
from churchfin.models.gl import Account, JournalEntry, JournalLine
from churchfin.models.tenant import FiscalPeriod
from churchfin.services.ledger import ZERO, validate_entry_lines

logger = logging.getLogger(__name__)

# Statuses that count towards balances and reports.
REPORTABLE_STATUSES = ("posted", "reversed")


class PostingError(ValueError):
    """A journal entry operation that breaks a ledger rule."""


@dataclasses.dataclass(frozen=True)
class LineSpec:
    account_id: uuid.UUID
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: str | None = None


class JournalPoster:
    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID | None = None) -> None:
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id

    # ---- public API ----

    async def create_entry(
        self,
        *,
        entry_date: date,
        lines: list[LineSpec],
        reference: str | None = None,
        description: str | None = None,
        status: str = "posted",
        source: str = "manual",
        source_reference: str | None = None,
    ) -> JournalEntry:
        """Validate and insert an entry as ``draft`` or ``posted``."""
        if status not in ("draft", "posted"):
            raise PostingError(f"Invalid status '{status}'. Must be 'draft' or 'posted'")

        validate_entry_lines((line.debit, line.credit) for line in lines)
        await self._check_accounts({line.account_id for line in lines})
        await self._check_period_open(entry_date)

        je = JournalEntry(
            tenant_id=self.tenant_id,
            entry_number=await self._next_entry_number(),
            entry_date=entry_date,
            reference=reference,
            description=description,
            source=source,
            source_reference=source_reference,
            status="draft",
            created_by=self.user_id,
            lines=[
                JournalLine(
                    line_number=number,
                    account_id=line.account_id,
                    debit_amount=Decimal(line.debit or 0),
                    credit_amount=Decimal(line.credit or 0),
                    description=line.description,
                )
                for number, line in enumerate(lines, start=1)
            ],
        )
        if status == "posted":
            self._mark_posted(je)

        self.db.add(je)
        await self.db.flush()
        logger.info(
            "Journal entry #%s created (%s) for tenant %s",
            je.entry_number, je.status, self.tenant_id,
        )
        return je

    async def post_entry(self, je: JournalEntry) -> JournalEntry:
        """Move a draft to ``posted`` after re-checking it against the ledger."""
        if je.status != "draft":
            raise PostingError(f"Cannot post entry with status '{je.status}'. Must be 'draft'")

        validate_entry_lines((line.debit_amount, line.credit_amount) for line in je.lines)
        await self._check_accounts({line.account_id for line in je.lines})
        await self._check_period_open(je.entry_date)

        self._mark_posted(je)
        await self.db.flush()
        logger.info("Journal entry #%s posted", je.entry_number)
        return je

    async def reverse_entry(
        self,
        je: JournalEntry,
        entry_date: date | None = None,
        description: str | None = None,
    ) -> JournalEntry:
        """Post a mirror entry with debits and credits swapped.

        The original is marked ``reversed`` and stays in the ledger; the two
        entries cancel each other.
        """
        if je.status != "posted":
            raise PostingError(f"Cannot reverse entry with status '{je.status}'. Must be 'posted'")

        reversal_date = entry_date or date.today()
        reversal = await self.create_entry(
            entry_date=reversal_date,
            lines=[
                LineSpec(
                    account_id=line.account_id,
                    debit=line.credit_amount,
                    credit=line.debit_amount,
                    description=line.description,
                )
                for line in je.lines
            ],
            reference=f"REV-{je.reference or je.entry_number}",
            description=description or f"Reversal of JE #{je.entry_number}",
            status="posted",
            source="reversal",
            source_reference=str(je.id),
        )

        je.status = "reversed"
        je.reversed_by_je_id = reversal.id
        await self.db.flush()
        logger.info("Journal entry #%s reversed by #%s", je.entry_number, reversal.entry_number)
        return reversal

    # ---- helpers ----

    def _mark_posted(self, je: JournalEntry) -> None:
        je.status = "posted"
        je.posted_by = self.user_id
        je.posted_at = utcnow()

    async def _next_entry_number(self) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.max(JournalEntry.entry_number), 0)).where(
                JournalEntry.tenant_id == self.tenant_id
            )
        )
        return result.scalar_one() + 1

    async def _check_accounts(self, account_ids: set[uuid.UUID]) -> None:
        result = await self.db.execute(
            select(Account).where(
                Account.id.in_(account_ids),
                Account.tenant_id == self.tenant_id,
            )
        )
        found = {acct.id: acct for acct in result.scalars().all()}

        missing = account_ids - found.keys()
        if missing:
            raise PostingError(f"Account(s) not found: {', '.join(sorted(str(a) for a in missing))}")

        inactive = sorted(acct.code for acct in found.values() if not acct.is_active)
        if inactive:
            raise PostingError(f"Account(s) inactive: {', '.join(inactive)}")

    async def _check_period_open(self, entry_date: date) -> None:
        result = await self.db.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.tenant_id == self.tenant_id,
                FiscalPeriod.start_date <= entry_date,
                FiscalPeriod.end_date >= entry_date,
                FiscalPeriod.status == "closed",
            )
        )
        period = result.scalars().first()
        if period is not None:
            raise PostingError(
                f"Fiscal period {period.period_code} is closed; "
                f"cannot post entries dated {entry_date.isoformat()}"
            )
