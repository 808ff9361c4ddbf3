from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Enum as SAEnum, ForeignKey, Index, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import AuditMetaMixin, Base, FundScopedMixin, IdMixin
from app.domain.ledger.enums import CapitalAccountStatus


class CapitalAccount(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    """Investor position in one share class.

    Shares, cost basis and gains are never stored here; they are replayed
    from `capital_transactions` (see `capital_ledger.replay`).
    """

    __tablename__ = "capital_accounts"

    share_class_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("share_classes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    investor_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    account_number: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    commitment_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    inception_date: Mapped[date] = mapped_column(nullable=False)

    status: Mapped[CapitalAccountStatus] = mapped_column(
        SAEnum(CapitalAccountStatus, name="capital_account_status_enum"),
        nullable=False,
        default=CapitalAccountStatus.ACTIVE,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("fund_id", "share_class_id", "investor_id", name="uq_capital_accounts_fund_class_investor"),
        Index("ix_capital_accounts_fund_status", "fund_id", "status"),
    )
