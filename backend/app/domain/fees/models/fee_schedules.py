from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Enum as SAEnum, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import RATE, AuditMetaMixin, Base, FundScopedMixin, IdMixin
from app.domain.fees.enums import FeeCalculationMethod, FeeFrequency, FeeScheduleStatus, FeeType


class FeeSchedule(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    __tablename__ = "fee_schedules"

    # NULL = applies fund-wide
    share_class_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("share_classes.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    fee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    fee_type: Mapped[FeeType] = mapped_column(SAEnum(FeeType, name="fee_type_enum"), nullable=False)
    calculation_method: Mapped[FeeCalculationMethod] = mapped_column(
        SAEnum(FeeCalculationMethod, name="fee_calculation_method_enum"),
        nullable=False,
    )
    annual_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False)
    frequency: Mapped[FeeFrequency] = mapped_column(SAEnum(FeeFrequency, name="fee_frequency_enum"), nullable=False)

    hurdle_rate: Mapped[Decimal | None] = mapped_column(RATE, nullable=True)
    high_water_mark: Mapped[bool] = mapped_column(default=False, nullable=False)

    start_date: Mapped[date] = mapped_column(nullable=False)
    end_date: Mapped[date | None] = mapped_column(nullable=True)

    status: Mapped[FeeScheduleStatus] = mapped_column(
        SAEnum(FeeScheduleStatus, name="fee_schedule_status_enum"),
        nullable=False,
        default=FeeScheduleStatus.ACTIVE,
        index=True,
    )

    __table_args__ = (Index("ix_fee_schedules_fund_status", "fund_id", "status"),)
