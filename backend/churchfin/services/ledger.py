"""Double-entry rules and accounting report derivation.

Everything in this module is pure: callers load posted journal lines as
``Posting`` records (see ``ReportService``) and the functions below
aggregate them into the trial balance, income & expenditure statement,
balance sheet, cash flow statement, equity statement and ledgers.

Sign conventions
----------------
* asset and expense accounts are debit-normal (balance = debits - credits)
* liability, equity and revenue accounts are credit-normal
  (balance = credits - debits)

Arithmetic is done in ``Decimal``; report payloads carry ``float`` values
rounded to cents, like the rest of the JSON API.
"""
from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Iterable
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

ACCOUNT_TYPES: tuple[str, ...] = ("asset", "liability", "equity", "revenue", "expense")
CASH_FLOW_CATEGORIES: tuple[str, ...] = ("operating", "investing", "financing")

_DEBIT_NORMAL_TYPES = {"asset", "expense"}

# Section used for a non-cash account when it does not name one itself.
_DEFAULT_CASH_FLOW_CATEGORY: dict[str, str] = {
    "revenue": "operating",
    "expense": "operating",
    "asset": "investing",
    "liability": "financing",
    "equity": "financing",
}

ZERO = Decimal("0")
CENT = Decimal("0.01")
# Largest amount a Numeric(14, 2) column holds.
MAX_AMOUNT = Decimal("999999999999.99")

SURPLUS_ROW_NAME = "Surplus/(Deficit) for the period"


class EntryValidationError(ValueError):
    """Raised when a set of journal lines cannot form a valid entry."""


# ---------------------------------------------------------------------------
# Ledger records
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class LedgerAccount:
    id: uuid.UUID
    code: str
    name: str
    account_type: str
    is_cash: bool = False
    cash_flow_category: str | None = None

    @property
    def normal_balance(self) -> str:
        return normal_balance(self.account_type)

    @property
    def flow_category(self) -> str:
        return self.cash_flow_category or _DEFAULT_CASH_FLOW_CATEGORY[self.account_type]


@dataclasses.dataclass(frozen=True)
class Posting:
    """One line of a posted journal entry, denormalised with its header."""
    entry_id: uuid.UUID
    entry_number: int
    entry_date: date
    reference: str | None
    description: str | None
    account: LedgerAccount
    debit: Decimal
    credit: Decimal
    memo: str | None = None


# ---------------------------------------------------------------------------
# Balance rules
# ---------------------------------------------------------------------------


def normal_balance(account_type: str) -> str:
    if account_type not in ACCOUNT_TYPES:
        raise ValueError(f"Unknown account type {account_type!r}")
    return "debit" if account_type in _DEBIT_NORMAL_TYPES else "credit"


def signed_balance(account_type: str, debit: Decimal, credit: Decimal) -> Decimal:
    """Express ``debit``/``credit`` totals as a balance on the account's normal side."""
    if normal_balance(account_type) == "debit":
        return debit - credit
    return credit - debit


def validate_entry_lines(lines: Iterable[tuple[Decimal, Decimal]]) -> tuple[Decimal, Decimal]:
    """Check that ``(debit, credit)`` pairs form a balanced journal entry.

    Returns ``(total_debits, total_credits)``. Raises
    ``EntryValidationError`` when there are fewer than two lines, a line is
    negative, above ``MAX_AMOUNT`` or not a number, has sub-cent precision,
    carries both or neither side, or when the debit and credit totals differ.
    """
    pairs = list(lines)
    if len(pairs) < 2:
        raise EntryValidationError("Journal entry must have at least 2 lines")

    total_debits = ZERO
    total_credits = ZERO
    for number, (debit, credit) in enumerate(pairs, start=1):
        try:
            debit = Decimal(debit or 0)
            credit = Decimal(credit or 0)
            if debit < 0 or credit < 0:
                raise EntryValidationError(f"Line {number}: amounts cannot be negative")
            if debit > MAX_AMOUNT or credit > MAX_AMOUNT:
                raise EntryValidationError(f"Line {number}: amounts cannot exceed {MAX_AMOUNT}")
            exact = debit.quantize(CENT) == debit and credit.quantize(CENT) == credit
        except InvalidOperation:
            raise EntryValidationError(f"Line {number}: amounts must be valid numbers") from None
        if not exact:
            raise EntryValidationError(f"Line {number}: amounts cannot have more than 2 decimal places")
        if debit and credit:
            raise EntryValidationError(f"Line {number}: a line cannot carry both a debit and a credit")
        if not debit and not credit:
            raise EntryValidationError(f"Line {number}: a debit or credit amount is required")
        total_debits += debit
        total_credits += credit

    if total_debits != total_credits:
        raise EntryValidationError(
            f"Debits ({total_debits}) must equal credits ({total_credits})"
        )
    return total_debits, total_credits


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _money(value: Decimal) -> float:
    return float(value.quantize(CENT))


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


def _in_range(value: date, start_date: date | None, end_date: date | None) -> bool:
    if start_date is not None and value < start_date:
        return False
    if end_date is not None and value > end_date:
        return False
    return True


def _account_payload(account: LedgerAccount) -> dict[str, Any]:
    return {
        "account_id": str(account.id),
        "account_code": account.code,
        "account_name": account.name,
    }


def _totals_by_account(
    postings: Iterable[Posting],
) -> list[tuple[LedgerAccount, Decimal, Decimal]]:
    """Sum debits and credits per account, ordered by account code."""
    totals: dict[uuid.UUID, list] = {}
    for p in postings:
        row = totals.setdefault(p.account.id, [p.account, ZERO, ZERO])
        row[1] += p.debit
        row[2] += p.credit
    return sorted(
        ((account, dr, cr) for account, dr, cr in totals.values()),
        key=lambda row: row[0].code,
    )


def _group_by_entry(postings: Iterable[Posting]) -> list[list[Posting]]:
    """Group lines by journal entry in (date, entry number) order."""
    ordered = sorted(postings, key=lambda p: (p.entry_date, p.entry_number))
    groups: dict[uuid.UUID, list[Posting]] = {}
    for p in ordered:
        groups.setdefault(p.entry_id, []).append(p)
    return list(groups.values())


def _surplus(postings: Iterable[Posting]) -> Decimal:
    """Revenue minus expenses over ``postings``."""
    total = ZERO
    for p in postings:
        if p.account.account_type == "revenue":
            total += p.credit - p.debit
        elif p.account.account_type == "expense":
            total -= p.debit - p.credit
    return total


# ---------------------------------------------------------------------------
# Balances
# ---------------------------------------------------------------------------


def account_balances(postings: Iterable[Posting], as_of: date | None = None) -> dict[uuid.UUID, Decimal]:
    """Normal-side balance per account, cumulative up to ``as_of``."""
    balances: dict[uuid.UUID, Decimal] = {}
    for account, debits, credits in _totals_by_account(
        p for p in postings if _in_range(p.entry_date, None, as_of)
    ):
        balances[account.id] = signed_balance(account.account_type, debits, credits)
    return balances


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def trial_balance(
    postings: Iterable[Posting],
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict[str, Any]:
    """Net balance of every account active in the range, in its debit or credit column."""
    items = []
    total_debits = ZERO
    total_credits = ZERO
    for account, debits, credits in _totals_by_account(
        p for p in postings if _in_range(p.entry_date, start_date, end_date)
    ):
        net = debits - credits
        debit_balance = net if net > 0 else ZERO
        credit_balance = -net if net < 0 else ZERO
        items.append({
            **_account_payload(account),
            "account_type": account.account_type,
            "debit": _money(debit_balance),
            "credit": _money(credit_balance),
        })
        total_debits += debit_balance
        total_credits += credit_balance

    return {
        "start_date": _iso(start_date),
        "end_date": _iso(end_date),
        "trial_balance": items,
        "total_debits": _money(total_debits),
        "total_credits": _money(total_credits),
        "is_balanced": total_debits == total_credits,
    }


def income_expenditure(
    postings: Iterable[Posting],
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict[str, Any]:
    """Revenue and expense accounts for the range; ``net_income`` is the surplus."""
    revenue: list[dict[str, Any]] = []
    expenses: list[dict[str, Any]] = []
    total_revenue = ZERO
    total_expenses = ZERO

    for account, debits, credits in _totals_by_account(
        p for p in postings
        if p.account.account_type in ("revenue", "expense")
        and _in_range(p.entry_date, start_date, end_date)
    ):
        amount = signed_balance(account.account_type, debits, credits)
        item = {**_account_payload(account), "amount": _money(amount)}
        if account.account_type == "revenue":
            revenue.append(item)
            total_revenue += amount
        else:
            expenses.append(item)
            total_expenses += amount

    return {
        "start_date": _iso(start_date),
        "end_date": _iso(end_date),
        "revenue": revenue,
        "expenses": expenses,
        "total_revenue": _money(total_revenue),
        "total_expenses": _money(total_expenses),
        "net_income": _money(total_revenue - total_expenses),
    }


def balance_sheet(postings: Iterable[Posting], as_of: date | None = None) -> dict[str, Any]:
    """Cumulative position at ``as_of``.

    Revenue and expense accounts are not listed; their net (the accumulated
    surplus) is reported as ``retained_surplus`` and counted in equity, so
    ``total_assets == total_liabilities + total_equity`` for any balanced
    ledger.
    """
    sections: dict[str, list[dict[str, Any]]] = {"asset": [], "liability": [], "equity": []}
    section_totals: dict[str, Decimal] = {"asset": ZERO, "liability": ZERO, "equity": ZERO}
    surplus = ZERO

    for account, debits, credits in _totals_by_account(
        p for p in postings if _in_range(p.entry_date, None, as_of)
    ):
        balance = signed_balance(account.account_type, debits, credits)
        if account.account_type == "revenue":
            surplus += balance
            continue
        if account.account_type == "expense":
            surplus -= balance
            continue
        sections[account.account_type].append({
            **_account_payload(account),
            "amount": _money(balance),
        })
        section_totals[account.account_type] += balance

    total_assets = section_totals["asset"]
    total_liabilities = section_totals["liability"]
    total_equity = section_totals["equity"] + surplus

    return {
        "as_of": _iso(as_of),
        "assets": sections["asset"],
        "liabilities": sections["liability"],
        "equity": sections["equity"],
        "retained_surplus": _money(surplus),
        "total_assets": _money(total_assets),
        "total_liabilities": _money(total_liabilities),
        "total_equity": _money(total_equity),
        "total_liabilities_and_equity": _money(total_liabilities + total_equity),
        "is_balanced": total_assets == total_liabilities + total_equity,
    }


def cash_flow(
    postings: Iterable[Posting],
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict[str, Any]:
    """Direct-method cash flow statement.

    An entry moves cash when its lines on ``is_cash`` accounts do not net to
    zero. Each non-cash line of such an entry contributes ``credit - debit``
    to the section of its account; because the entry balances, the
    contributions add up to the cash movement. Transfers between two cash
    accounts net to zero and are left out.
    """
    postings = list(postings)
    opening_cash = ZERO
    closing_cash = ZERO
    for p in postings:
        if not p.account.is_cash:
            continue
        if start_date is not None and p.entry_date < start_date:
            opening_cash += p.debit - p.credit
        if _in_range(p.entry_date, None, end_date):
            closing_cash += p.debit - p.credit

    sections: dict[str, list[dict[str, Any]]] = {c: [] for c in CASH_FLOW_CATEGORIES}
    section_totals: dict[str, Decimal] = {c: ZERO for c in CASH_FLOW_CATEGORIES}

    for lines in _group_by_entry(p for p in postings if _in_range(p.entry_date, start_date, end_date)):
        cash_movement = sum((p.debit - p.credit for p in lines if p.account.is_cash), ZERO)
        if cash_movement == ZERO:
            continue
        for p in lines:
            if p.account.is_cash:
                continue
            amount = p.credit - p.debit
            category = p.account.flow_category
            sections[category].append({
                "date": p.entry_date.isoformat(),
                "entry_number": p.entry_number,
                "reference": p.reference,
                "description": p.memo or p.description or p.account.name,
                **_account_payload(p.account),
                "amount": _money(amount),
                "type": "inflow" if amount > 0 else "outflow",
            })
            section_totals[category] += amount

    net_cash_flow = sum(section_totals.values(), ZERO)
    return {
        "start_date": _iso(start_date),
        "end_date": _iso(end_date),
        "operating_activities": sections["operating"],
        "investing_activities": sections["investing"],
        "financing_activities": sections["financing"],
        "net_operating": _money(section_totals["operating"]),
        "net_investing": _money(section_totals["investing"]),
        "net_financing": _money(section_totals["financing"]),
        "net_cash_flow": _money(net_cash_flow),
        "opening_cash": _money(opening_cash),
        "closing_cash": _money(closing_cash),
    }


def equity_statement(
    postings: Iterable[Posting],
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict[str, Any]:
    """Movement of each equity account plus the period surplus row.

    ``total_closing`` equals the balance sheet's ``total_equity`` at
    ``end_date``.
    """
    postings = list(postings)
    before = [p for p in postings if start_date is not None and p.entry_date < start_date]
    during = [p for p in postings if _in_range(p.entry_date, start_date, end_date)]

    rows: dict[uuid.UUID, dict[str, Any]] = {}

    def _row(account: LedgerAccount) -> dict[str, Any]:
        return rows.setdefault(account.id, {
            "account": account,
            "opening": ZERO,
            "additions": ZERO,
            "withdrawals": ZERO,
        })

    for p in before:
        if p.account.account_type == "equity":
            _row(p.account)["opening"] += p.credit - p.debit
    for p in during:
        if p.account.account_type == "equity":
            row = _row(p.account)
            row["additions"] += p.credit
            row["withdrawals"] += p.debit

    statement = []
    totals = {"opening": ZERO, "additions": ZERO, "withdrawals": ZERO, "closing": ZERO}
    for row in sorted(rows.values(), key=lambda r: r["account"].code):
        closing = row["opening"] + row["additions"] - row["withdrawals"]
        statement.append({
            **_account_payload(row["account"]),
            "opening": _money(row["opening"]),
            "additions": _money(row["additions"]),
            "withdrawals": _money(row["withdrawals"]),
            "closing": _money(closing),
        })
        for key in ("opening", "additions", "withdrawals"):
            totals[key] += row[key]
        totals["closing"] += closing

    surplus_opening = _surplus(before)
    period_surplus = _surplus(during)
    additions = period_surplus if period_surplus > 0 else ZERO
    withdrawals = -period_surplus if period_surplus < 0 else ZERO
    surplus_closing = surplus_opening + period_surplus
    statement.append({
        "account_id": None,
        "account_code": None,
        "account_name": SURPLUS_ROW_NAME,
        "opening": _money(surplus_opening),
        "additions": _money(additions),
        "withdrawals": _money(withdrawals),
        "closing": _money(surplus_closing),
    })
    totals["opening"] += surplus_opening
    totals["additions"] += additions
    totals["withdrawals"] += withdrawals
    totals["closing"] += surplus_closing

    return {
        "start_date": _iso(start_date),
        "end_date": _iso(end_date),
        "statement": statement,
        "total_opening": _money(totals["opening"]),
        "total_additions": _money(totals["additions"]),
        "total_withdrawals": _money(totals["withdrawals"]),
        "total_closing": _money(totals["closing"]),
    }


def general_ledger(
    postings: Iterable[Posting],
    start_date: date | None = None,
    end_date: date | None = None,
    account_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    """Posted entries in the range, in date order, with their lines.

    With ``account_id`` only entries touching that account are listed (all
    of their lines are still shown).
    """
    ledger = []
    total_debits = ZERO
    total_credits = ZERO
    for lines in _group_by_entry(p for p in postings if _in_range(p.entry_date, start_date, end_date)):
        if account_id is not None and not any(p.account.id == account_id for p in lines):
            continue
        head = lines[0]
        entry_debits = sum((p.debit for p in lines), ZERO)
        entry_credits = sum((p.credit for p in lines), ZERO)
        ledger.append({
            "entry_id": str(head.entry_id),
            "entry_number": head.entry_number,
            "date": head.entry_date.isoformat(),
            "reference": head.reference,
            "description": head.description,
            "entries": [
                {
                    **_account_payload(p.account),
                    "debit": _money(p.debit),
                    "credit": _money(p.credit),
                    "description": p.memo,
                }
                for p in lines
            ],
            "total_debit": _money(entry_debits),
            "total_credit": _money(entry_credits),
        })
        total_debits += entry_debits
        total_credits += entry_credits

    return {
        "start_date": _iso(start_date),
        "end_date": _iso(end_date),
        "ledger": ledger,
        "total_debits": _money(total_debits),
        "total_credits": _money(total_credits),
    }


def account_ledger(
    account: LedgerAccount,
    postings: Iterable[Posting],
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict[str, Any]:
    """Lines on one account with a running normal-side balance."""
    own = sorted(
        (p for p in postings if p.account.id == account.id),
        key=lambda p: (p.entry_date, p.entry_number),
    )
    opening = sum(
        (
            signed_balance(account.account_type, p.debit, p.credit)
            for p in own
            if start_date is not None and p.entry_date < start_date
        ),
        ZERO,
    )

    running = opening
    total_debits = ZERO
    total_credits = ZERO
    lines = []
    for p in own:
        if not _in_range(p.entry_date, start_date, end_date):
            continue
        running += signed_balance(account.account_type, p.debit, p.credit)
        total_debits += p.debit
        total_credits += p.credit
        lines.append({
            "entry_id": str(p.entry_id),
            "entry_number": p.entry_number,
            "date": p.entry_date.isoformat(),
            "reference": p.reference,
            "description": p.memo or p.description,
            "debit": _money(p.debit),
            "credit": _money(p.credit),
            "balance": _money(running),
        })

    return {
        "account": {
            **_account_payload(account),
            "account_type": account.account_type,
            "normal_balance": account.normal_balance,
        },
        "start_date": _iso(start_date),
        "end_date": _iso(end_date),
        "opening_balance": _money(opening),
        "lines": lines,
        "total_debits": _money(total_debits),
        "total_credits": _money(total_credits),
        "closing_balance": _money(running),
    }
