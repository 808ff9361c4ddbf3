from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, JSON, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import RATE, SHARES, AuditMetaMixin, Base, FundScopedMixin, IdMixin
from app.domain.fees.enums import FeeTransactionStatus


class FeeTransaction(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    __tablename__ = "fee_transactions"

    fee_schedule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("fee_schedules.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    capital_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("capital_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # Calendar window of the schedule's frequency; period_end alone identifies it.
    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False, index=True)

    base_amount: Mapped[Decimal] = mapped_column(nullable=False)
    rate_applied: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    # Performance fees only
    nav_per_share: Mapped[Decimal | None] = mapped_column(SHARES, nullable=True)
    high_water_mark: Mapped[Decimal | None] = mapped_column(SHARES, nullable=True)

    calculation_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    status: Mapped[FeeTransactionStatus] = mapped_column(
        SAEnum(FeeTransactionStatus, name="fee_transaction_status_enum"),
        nullable=False,
        default=FeeTransactionStatus.CALCULATED,
        index=True,
    )
    invoiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_date: Mapped[date | None] = mapped_column(nullable=True)
    fee_debit_transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("capital_transactions.id", ondelete="RESTRICT"),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint(
            "fee_schedule_id",
            "capital_account_id",
            "period_end",
            name="uq_fee_transactions_schedule_account_period",
        ),
        Index("ix_fee_transactions_fund_period", "fund_id", "period_end"),
    )
