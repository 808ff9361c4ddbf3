from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.domain.ledger.enums import CapitalTransactionType


class CapitalTransactionCreate(BaseModel):
    transaction_type: CapitalTransactionType
    transaction_date: date
    amount: Decimal = Field(ge=0)
    share_delta: Decimal = Decimal("0")
    reference: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=1000)


class CapitalTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fund_id: uuid.UUID
    capital_account_id: uuid.UUID

    transaction_type: CapitalTransactionType
    transaction_date: date
    sequence: int
    amount: Decimal
    share_delta: Decimal

    reference: str | None
    description: str | None


class AccountSnapshotOut(BaseModel):
    account_id: uuid.UUID
    as_of: date
    shares: Decimal
    cost_basis: Decimal
    contributions: Decimal
    distributions: Decimal
    fee_debits: Decimal
    realized_gain: Decimal
    nav_per_share: Decimal
    market_value: Decimal
    unrealized_gain: Decimal
    total_gain: Decimal


class LedgerAuditOut(BaseModel):
    account_id: uuid.UUID
    transaction_count: int
    final_shares: Decimal
    negative_share_dates: list[date]
    ok: bool
