from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, JSON, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import AuditMetaMixin, Base, FundScopedMixin, IdMixin
from app.domain.carry.enums import ClawbackStatus


class ClawbackProvision(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    __tablename__ = "clawback_provisions"

    carry_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("carried_interest_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    waterfall_calculation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("waterfall_calculations.id", ondelete="RESTRICT"),
        nullable=False,
    )
    calculation_date: Mapped[date] = mapped_column(nullable=False)

    total_carry_distributed: Mapped[Decimal] = mapped_column(nullable=False)
    total_carry_earned: Mapped[Decimal] = mapped_column(nullable=False)
    clawback_amount: Mapped[Decimal] = mapped_column(nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    payment_date: Mapped[date | None] = mapped_column(nullable=True)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    calculation_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[ClawbackStatus] = mapped_column(
        SAEnum(ClawbackStatus, name="clawback_status_enum"),
        nullable=False,
        default=ClawbackStatus.CALCULATED,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("carry_account_id", "calculation_date", name="uq_clawback_provisions_account_date"),
    )
