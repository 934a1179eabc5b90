"""Tenant models: the church organization and its fiscal periods."""
from __future__ import annotations

import datetime
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, ForeignKey, String, Text, UniqueConstraint, Uuid, func, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from churchfin.database import Base
from churchfin.models.base import UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from churchfin.models.user import User


class Tenant(UUIDPrimaryKeyMixin, Base):
    """A church organization. Every financial record belongs to exactly one tenant."""
    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KES")
    address: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ------ relationships ------
    users: Mapped[list[User]] = relationship(
        "User",
        back_populates="tenant",
    )
    fiscal_periods: Mapped[list[FiscalPeriod]] = relationship(
        "FiscalPeriod",
        back_populates="tenant",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Tenant {self.name!r}>"


class FiscalPeriod(UUIDPrimaryKeyMixin, Base):
    """A dated accounting period (usually a month). Closed periods reject postings."""
    __tablename__ = "fiscal_periods"
    __table_args__ = (UniqueConstraint("tenant_id", "period_code"),)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
    )
    period_code: Mapped[str] = mapped_column(String(10), nullable=False)
    period_name: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    end_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="open",
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ------ relationships ------
    tenant: Mapped[Tenant] = relationship(
        "Tenant",
        back_populates="fiscal_periods",
    )

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.period_code!r} status={self.status!r}>"
