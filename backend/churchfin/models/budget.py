"""Classification models: revenue sources, voteheads, and categories."""
from __future__ import annotations

import datetime
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from churchfin.database import Base
from churchfin.models.base import UUIDPrimaryKeyMixin, utcnow

if TYPE_CHECKING:
    from churchfin.models.gl import Account


class RevenueSource(UUIDPrimaryKeyMixin, Base):
    """An income category (tithes, offerings, donations) bound to a revenue account."""
    __tablename__ = "revenue_sources"
    __table_args__ = (UniqueConstraint("tenant_id", "name"),)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ------ relationships ------
    account: Mapped[Account] = relationship("Account", lazy="selectin")

    def __repr__(self) -> str:
        return f"<RevenueSource {self.name!r}>"


class Votehead(UUIDPrimaryKeyMixin, Base):
    """An expenditure budget line bound to an expense account."""
    __tablename__ = "voteheads"
    __table_args__ = (UniqueConstraint("tenant_id", "name"),)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    # ------ relationships ------
    account: Mapped[Account] = relationship("Account", lazy="selectin")

    def __repr__(self) -> str:
        return f"<Votehead {self.name!r}>"


class Category(UUIDPrimaryKeyMixin, Base):
    """Free-form classification label."""
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("tenant_id", "name"),)

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tenants.id"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime.datetime] = mapped_column(
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Category {self.name!r}>"
