"""General Ledger models: chart of accounts, journal entries, and journal lines."""
from __future__ import annotations

import datetime
import decimal
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    false,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from churchfin.database import Base
from churchfin.models.base import UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from churchfin.models.user import User


class Account(UUIDPrimaryKeyMixin, Base):
    """Chart of Accounts entry."""
    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("tenant_id", "code"),)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
        index=True,
    )
    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    account_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
    )
    # Cash and bank accounts drive the cash flow statement.
    is_cash: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    cash_flow_category: Mapped[str | None] = mapped_column(String(20))
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    # ------ relationships ------
    parent: Mapped[Account | None] = relationship(
        "Account",
        remote_side="Account.id",
        back_populates="children",
    )
    children: Mapped[list[Account]] = relationship(
        "Account",
        back_populates="parent",
    )
    journal_lines: Mapped[list[JournalLine]] = relationship(
        "JournalLine",
        back_populates="account",
    )

    def __repr__(self) -> str:
        return f"<Account {self.code!r} {self.name!r}>"


class JournalEntry(UUIDPrimaryKeyMixin, Base):
    """A complete journal entry (header) containing two or more lines."""
    __tablename__ = "journal_entries"
    __table_args__ = (UniqueConstraint("tenant_id", "entry_number"),)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
        index=True,
    )
    entry_number: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text)
    source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="manual",
    )
    source_reference: Mapped[str | None] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="draft",
    )
    posted_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
    )
    posted_at: Mapped[datetime.datetime | None] = mapped_column()
    reversed_by_je_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("journal_entries.id"),
    )
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id"),
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ------ relationships ------
    lines: Mapped[list[JournalLine]] = relationship(
        "JournalLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalLine.line_number",
        lazy="selectin",
    )
    created_by_user: Mapped[User | None] = relationship(
        "User",
        foreign_keys=[created_by],
        lazy="selectin",
    )
    reversed_by_je: Mapped[JournalEntry | None] = relationship(
        "JournalEntry",
        remote_side="JournalEntry.id",
        foreign_keys=[reversed_by_je_id],
    )

    def __repr__(self) -> str:
        return f"<JournalEntry #{self.entry_number} status={self.status!r}>"


class JournalLine(UUIDPrimaryKeyMixin, Base):
    """Individual debit or credit line within a journal entry."""
    __tablename__ = "journal_lines"

    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("journal_entries.id"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    debit_amount: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=decimal.Decimal("0")
    )
    credit_amount: Mapped[decimal.Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=decimal.Decimal("0")
    )
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ------ relationships ------
    journal_entry: Mapped[JournalEntry] = relationship(
        "JournalEntry",
        back_populates="lines",
    )
    account: Mapped[Account] = relationship(
        "Account",
        back_populates="journal_lines",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<JournalLine #{self.line_number} "
            f"debit={self.debit_amount} credit={self.credit_amount}>"
        )
