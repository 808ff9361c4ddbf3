from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Enum as SAEnum, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import RATE, AuditMetaMixin, Base, FundScopedMixin, IdMixin
from app.domain.ledger.enums import ShareClassStatus


class ShareClass(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    __tablename__ = "share_classes"

    class_code: Mapped[str] = mapped_column(String(32), nullable=False)
    class_name: Mapped[str] = mapped_column(String(200), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    management_fee_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    performance_fee_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    hurdle_rate: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    high_water_mark: Mapped[bool] = mapped_column(default=True, nullable=False)

    share_price_precision: Mapped[int] = mapped_column(Integer, nullable=False, default=4)

    status: Mapped[ShareClassStatus] = mapped_column(
        SAEnum(ShareClassStatus, name="share_class_status_enum"),
        nullable=False,
        default=ShareClassStatus.ACTIVE,
    )

    __table_args__ = (UniqueConstraint("fund_id", "class_code", name="uq_share_classes_fund_code"),)
