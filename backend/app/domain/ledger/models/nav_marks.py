from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import SHARES, Base, CreatedMetaMixin, FundScopedMixin, IdMixin


class NAVMark(Base, IdMixin, FundScopedMixin, CreatedMetaMixin):
    """Point-in-time valuation produced by the NAV calculation subsystem (read-only here)."""

    __tablename__ = "nav_marks"

    # NULL = fund-level mark
    share_class_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("share_classes.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    calculation_date: Mapped[date] = mapped_column(nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    nav_per_share: Mapped[Decimal] = mapped_column(SHARES, nullable=False)
    total_shares_outstanding: Mapped[Decimal] = mapped_column(SHARES, nullable=False, default=Decimal("0"))

    __table_args__ = (
        UniqueConstraint("fund_id", "share_class_id", "calculation_date", "version", name="uq_nav_marks_scope_date_version"),
        Index("ix_nav_marks_fund_date", "fund_id", "calculation_date"),
    )
