from __future__ import annotations

import uuid
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict

from app.domain.period_close.enums import PeriodCloseStatus
from app.shared.batch import CloseStage


class PeriodCloseRequest(BaseModel):
    period_start: date
    period_end: date
    stages: list[CloseStage] | None = None


class PeriodCloseRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fund_id: uuid.UUID
    period_start: date
    period_end: date
    status: PeriodCloseStatus
    attempt: int
    started_at: datetime
    finished_at: datetime | None
    started_by: str | None
    last_error: str | None
    last_summary: dict | None
