from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Enum as SAEnum, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import AuditMetaMixin, Base, CreatedMetaMixin, FundScopedMixin, IdMixin
from app.domain.carry.enums import CarryAccountStatus


class CarriedInterestAccount(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    __tablename__ = "carried_interest_accounts"

    waterfall_structure_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("waterfall_structures.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    gp_entity_name: Mapped[str] = mapped_column(String(200), nullable=False)

    total_carry_accrued: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_carry_distributed: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    clawback_reserve: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    # Never decreases; see carry_engine.accrue_carry.
    high_water_mark: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    last_calculation_date: Mapped[date | None] = mapped_column(nullable=True)

    status: Mapped[CarryAccountStatus] = mapped_column(
        SAEnum(CarryAccountStatus, name="carry_account_status_enum"),
        nullable=False,
        default=CarryAccountStatus.ACTIVE,
        index=True,
    )

    __table_args__ = (UniqueConstraint("fund_id", "gp_entity_name", name="uq_carry_accounts_fund_gp"),)


class CarryAccrual(Base, IdMixin, FundScopedMixin, CreatedMetaMixin):
    __tablename__ = "carry_accruals"

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

    earned_to_date: Mapped[Decimal] = mapped_column(nullable=False)
    delta_accrued: Mapped[Decimal] = mapped_column(nullable=False)
    high_water_mark_before: Mapped[Decimal] = mapped_column(nullable=False)
    high_water_mark_after: Mapped[Decimal] = mapped_column(nullable=False)

    __table_args__ = (
        UniqueConstraint("carry_account_id", "waterfall_calculation_id", name="uq_carry_accruals_account_calc"),
    )
