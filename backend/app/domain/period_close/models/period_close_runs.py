from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import DateTime, Enum as SAEnum, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import AuditMetaMixin, Base, FundScopedMixin, IdMixin
from app.domain.period_close.enums import PeriodCloseStatus


class PeriodCloseRun(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    """One row per (fund, period). Holding it in `running` is the close lock."""

    __tablename__ = "period_close_runs"

    period_start: Mapped[date] = mapped_column(nullable=False)
    period_end: Mapped[date] = mapped_column(nullable=False)

    status: Mapped[PeriodCloseStatus] = mapped_column(
        SAEnum(PeriodCloseStatus, name="period_close_status_enum"),
        nullable=False,
        default=PeriodCloseStatus.RUNNING,
        index=True,
    )
    attempt: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    started_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_error: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    last_summary: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("fund_id", "period_start", "period_end", name="uq_period_close_runs_fund_period"),
    )
