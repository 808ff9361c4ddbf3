from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.domain.fees.enums import FeeTransactionStatus


class FeePayment(BaseModel):
    paid_amount: Decimal = Field(gt=0)
    paid_date: date


class FeeWaive(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class FeeTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fund_id: uuid.UUID
    fee_schedule_id: uuid.UUID
    capital_account_id: uuid.UUID

    period_start: date
    period_end: date
    base_amount: Decimal
    rate_applied: Decimal
    fee_amount: Decimal
    paid_amount: Decimal
    nav_per_share: Decimal | None
    high_water_mark: Decimal | None
    calculation_details: dict | None

    status: FeeTransactionStatus
    invoiced_at: datetime | None
    paid_date: date | None
    fee_debit_transaction_id: uuid.UUID | None
