"""Loads posted journal lines for a tenant and builds accounting reports."""
from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from churchfin.models.gl import Account, JournalEntry, JournalLine
from churchfin.services import ledger
from churchfin.services.posting import REPORTABLE_STATUSES


def to_ledger_account(account: Account) -> ledger.LedgerAccount:
    return ledger.LedgerAccount(
        id=account.id,
        code=account.code,
        name=account.name,
        account_type=account.account_type,
        is_cash=account.is_cash,
        cash_flow_category=account.cash_flow_category,
    )


class ReportService:
    def __init__(self, db: AsyncSession, tenant_id: uuid.UUID) -> None:
        self.db = db
        self.tenant_id = tenant_id

    async def load_postings(
        self,
        end_date: date | None = None,
        account_id: uuid.UUID | None = None,
    ) -> list[ledger.Posting]:
        """Every reportable line up to ``end_date``, in ledger order.

        Column-level select keeps the ORM's eager relationship loads out of
        report queries.
        """
        stmt = (
            select(
                JournalEntry.id.label("entry_id"),
                JournalEntry.entry_number,
                JournalEntry.entry_date,
                JournalEntry.reference,
                JournalEntry.description,
                JournalLine.debit_amount,
                JournalLine.credit_amount,
                JournalLine.description.label("memo"),
                Account.id.label("account_id"),
                Account.code,
                Account.name,
                Account.account_type,
                Account.is_cash,
                Account.cash_flow_category,
            )
            .select_from(JournalLine)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .join(Account, JournalLine.account_id == Account.id)
            .where(
                JournalEntry.tenant_id == self.tenant_id,
                JournalEntry.status.in_(REPORTABLE_STATUSES),
            )
            .order_by(JournalEntry.entry_date, JournalEntry.entry_number, JournalLine.line_number)
        )
        if end_date is not None:
            stmt = stmt.where(JournalEntry.entry_date <= end_date)
        if account_id is not None:
            stmt = stmt.where(JournalLine.account_id == account_id)

        result = await self.db.execute(stmt)
        accounts: dict[uuid.UUID, ledger.LedgerAccount] = {}
        postings = []
        for row in result.all():
            account = accounts.get(row.account_id)
            if account is None:
                account = accounts[row.account_id] = ledger.LedgerAccount(
                    id=row.account_id,
                    code=row.code,
                    name=row.name,
                    account_type=row.account_type,
                    is_cash=bool(row.is_cash),
                    cash_flow_category=row.cash_flow_category,
                )
            postings.append(ledger.Posting(
                entry_id=row.entry_id,
                entry_number=row.entry_number,
                entry_date=row.entry_date,
                reference=row.reference,
                description=row.description,
                account=account,
                debit=Decimal(row.debit_amount or 0),
                credit=Decimal(row.credit_amount or 0),
                memo=row.memo,
            ))
        return postings

    async def account_balances(self, as_of: date | None = None) -> dict[uuid.UUID, Decimal]:
        return ledger.account_balances(await self.load_postings(as_of), as_of)

    async def trial_balance(self, start_date: date | None, end_date: date | None) -> dict[str, Any]:
        return ledger.trial_balance(await self.load_postings(end_date), start_date, end_date)

    async def income_expenditure(self, start_date: date | None, end_date: date | None) -> dict[str, Any]:
        return ledger.income_expenditure(await self.load_postings(end_date), start_date, end_date)

    async def balance_sheet(self, as_of: date | None) -> dict[str, Any]:
        return ledger.balance_sheet(await self.load_postings(as_of), as_of)

    async def cash_flow(self, start_date: date | None, end_date: date | None) -> dict[str, Any]:
        return ledger.cash_flow(await self.load_postings(end_date), start_date, end_date)

    async def equity_statement(self, start_date: date | None, end_date: date | None) -> dict[str, Any]:
        return ledger.equity_statement(await self.load_postings(end_date), start_date, end_date)

    async def general_ledger(
        self,
        start_date: date | None,
        end_date: date | None,
        account_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        return ledger.general_ledger(await self.load_postings(end_date), start_date, end_date, account_id)

    async def account_ledger(
        self,
        account: Account,
        start_date: date | None,
        end_date: date | None,
    ) -> dict[str, Any]:
        postings = await self.load_postings(end_date, account_id=account.id)
        return ledger.account_ledger(to_ledger_account(account), postings, start_date, end_date)
