from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Enum as SAEnum, ForeignKey, Index, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import SHARES, Base, CreatedMetaMixin, FundScopedMixin, IdMixin
from app.domain.ledger.enums import CapitalTransactionType


class CapitalTransaction(Base, IdMixin, FundScopedMixin, CreatedMetaMixin):
    """Immutable capital event. `amount` is a magnitude; `share_delta` carries the sign."""

    __tablename__ = "capital_transactions"

    capital_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("capital_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    transaction_type: Mapped[CapitalTransactionType] = mapped_column(
        SAEnum(CapitalTransactionType, name="capital_tx_type_enum"),
        nullable=False,
    )
    transaction_date: Mapped[date] = mapped_column(nullable=False, index=True)
    # Tie-break for same-date replay; strictly increasing per account.
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    share_delta: Mapped[Decimal] = mapped_column(SHARES, nullable=False, default=Decimal("0"))

    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        UniqueConstraint("capital_account_id", "sequence", name="uq_capital_transactions_account_sequence"),
        Index("ix_capital_transactions_account_date", "capital_account_id", "transaction_date"),
    )
