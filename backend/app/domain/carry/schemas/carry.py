from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.domain.carry.enums import CarryAccountStatus, ClawbackStatus


class CarryAccrueRequest(BaseModel):
    as_of: date


class CarryDistributionCreate(BaseModel):
    amount: Decimal = Field(gt=0)


class ClawbackRequest(BaseModel):
    calculation_date: date


class CarryAccountTransition(BaseModel):
    to_status: CarryAccountStatus


class ClawbackPayment(BaseModel):
    amount_paid: Decimal = Field(gt=0)
    payment_date: date


class ClawbackWaive(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class CarriedInterestAccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fund_id: uuid.UUID
    waterfall_structure_id: uuid.UUID
    gp_entity_name: str

    total_carry_accrued: Decimal
    total_carry_distributed: Decimal
    clawback_reserve: Decimal
    high_water_mark: Decimal
    last_calculation_date: date | None
    status: CarryAccountStatus


class CarryAccrualOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    carry_account_id: uuid.UUID
    waterfall_calculation_id: uuid.UUID
    calculation_date: date
    earned_to_date: Decimal
    delta_accrued: Decimal
    high_water_mark_before: Decimal
    high_water_mark_after: Decimal


class ClawbackProvisionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fund_id: uuid.UUID
    carry_account_id: uuid.UUID
    calculation_date: date

    total_carry_distributed: Decimal
    total_carry_earned: Decimal
    clawback_amount: Decimal
    amount_paid: Decimal
    payment_date: date | None
    notified_at: datetime | None
    status: ClawbackStatus


class ClawbackResult(BaseModel):
    provision: ClawbackProvisionOut | None
