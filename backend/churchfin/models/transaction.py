"""Income and expenditure records, each backed by a posted journal entry."""
from __future__ import annotations

import datetime
import decimal
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Date, ForeignKey, Integer, Numeric, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from churchfin.database import Base
from churchfin.models.base import UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from churchfin.models.budget import RevenueSource, Votehead
    from churchfin.models.gl import Account, JournalEntry
    from churchfin.models.user import User


class Income(UUIDPrimaryKeyMixin, Base):
    """Money received: Dr asset account, Cr the revenue source's account."""
    __tablename__ = "incomes"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
        index=True,
    )
    revenue_source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("revenue_sources.id"),
        nullable=False,
    )
    asset_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    amount: Mapped[decimal.Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    journal_entry_id: Mapped[uuid.UUID | None] = mapped_column(
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
    revenue_source: Mapped[RevenueSource] = relationship("RevenueSource", lazy="selectin")
    asset_account: Mapped[Account] = relationship("Account", lazy="selectin")
    journal_entry: Mapped[JournalEntry | None] = relationship("JournalEntry")
    created_by_user: Mapped[User | None] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Income {self.amount} on {self.date}>"


class Expenditure(UUIDPrimaryKeyMixin, Base):
    """Money paid out: Dr the votehead's expense account, Cr asset account."""
    __tablename__ = "expenditures"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
        index=True,
    )
    votehead_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("voteheads.id"),
        nullable=False,
    )
    asset_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    amount: Mapped[decimal.Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    journal_entry_id: Mapped[uuid.UUID | None] = mapped_column(
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
    votehead: Mapped[Votehead] = relationship("Votehead", lazy="selectin")
    asset_account: Mapped[Account] = relationship("Account", lazy="selectin")
    journal_entry: Mapped[JournalEntry | None] = relationship("JournalEntry")
    created_by_user: Mapped[User | None] = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Expenditure {self.amount} on {self.date}>"
