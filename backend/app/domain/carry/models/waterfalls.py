from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Enum as SAEnum, ForeignKey, JSON, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import RATE, AuditMetaMixin, Base, CreatedMetaMixin, FundScopedMixin, IdMixin
from app.domain.carry.enums import WaterfallStatus, WaterfallType


class WaterfallStructure(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    __tablename__ = "waterfall_structures"

    structure_name: Mapped[str] = mapped_column(String(200), nullable=False)
    waterfall_type: Mapped[WaterfallType] = mapped_column(
        SAEnum(WaterfallType, name="waterfall_type_enum"),
        nullable=False,
    )
    carry_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    hurdle_rate: Mapped[Decimal | None] = mapped_column(RATE, nullable=True)
    catch_up_rate: Mapped[Decimal | None] = mapped_column(RATE, nullable=True)
    tiers: Mapped[list | None] = mapped_column(JSON, nullable=True)
    clawback_provision: Mapped[bool] = mapped_column(default=True, nullable=False)

    status: Mapped[WaterfallStatus] = mapped_column(
        SAEnum(WaterfallStatus, name="waterfall_status_enum"),
        nullable=False,
        default=WaterfallStatus.ACTIVE,
    )


class WaterfallCalculation(Base, IdMixin, FundScopedMixin, CreatedMetaMixin):
    """Output of the waterfall engine for one date. Read-only input to carry accrual."""

    __tablename__ = "waterfall_calculations"

    waterfall_structure_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("waterfall_structures.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    calculation_date: Mapped[date] = mapped_column(nullable=False, index=True)

    total_contributions: Mapped[Decimal] = mapped_column(nullable=False)
    total_distributions: Mapped[Decimal] = mapped_column(nullable=False)
    current_nav: Mapped[Decimal] = mapped_column(nullable=False)
    lp_allocation: Mapped[Decimal] = mapped_column(nullable=False)
    gp_allocation: Mapped[Decimal] = mapped_column(nullable=False)
    tier_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("waterfall_structure_id", "calculation_date", name="uq_waterfall_calculations_structure_date"),
    )
