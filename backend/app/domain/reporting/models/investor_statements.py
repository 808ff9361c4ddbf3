from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import SHARES, AuditMetaMixin, Base, FundScopedMixin, IdMixin
from app.domain.reporting.enums import StatementStatus, StatementType


class InvestorStatement(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    __tablename__ = "investor_statements"

    capital_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("capital_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    statement_type: Mapped[StatementType] = mapped_column(
        SAEnum(StatementType, name="statement_type_enum"),
        nullable=False,
    )

    beginning_shares: Mapped[Decimal] = mapped_column(SHARES, nullable=False)
    ending_shares: Mapped[Decimal] = mapped_column(SHARES, nullable=False)
    beginning_nav_per_share: Mapped[Decimal | None] = mapped_column(SHARES, nullable=True)
    ending_nav_per_share: Mapped[Decimal] = mapped_column(SHARES, nullable=False)

    beginning_balance: Mapped[Decimal] = mapped_column(nullable=False)
    contributions: Mapped[Decimal] = mapped_column(nullable=False)
    distributions: Mapped[Decimal] = mapped_column(nullable=False)
    fees: Mapped[Decimal] = mapped_column(nullable=False)
    ending_balance: Mapped[Decimal] = mapped_column(nullable=False)
    return_amount: Mapped[Decimal] = mapped_column(nullable=False)
    return_percent: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)

    status: Mapped[StatementStatus] = mapped_column(
        SAEnum(StatementStatus, name="statement_status_enum"),
        nullable=False,
        default=StatementStatus.DRAFT,
        index=True,
    )
    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "capital_account_id",
            "period_start",
            "period_end",
            "version",
            name="uq_investor_statements_account_period_version",
        ),
        Index("ix_investor_statements_fund_period", "fund_id", "period_end"),
    )
