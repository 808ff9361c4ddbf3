from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from app.domain.reporting.enums import StatementStatus, StatementType


class StatementGenerate(BaseModel):
    capital_account_id: uuid.UUID
    period_start: date
    period_end: date
    statement_type: StatementType | None = None
    new_version: bool = False


class InvestorStatementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fund_id: uuid.UUID
    capital_account_id: uuid.UUID
    period_start: date
    period_end: date
    version: int
    statement_type: StatementType

    beginning_shares: Decimal
    ending_shares: Decimal
    beginning_nav_per_share: Decimal | None
    ending_nav_per_share: Decimal
    beginning_balance: Decimal
    contributions: Decimal
    distributions: Decimal
    fees: Decimal
    ending_balance: Decimal
    return_amount: Decimal
    return_percent: Decimal

    status: StatementStatus
    finalized_at: datetime | None
    finalized_by: str | None
    sent_at: datetime | None
    sent_by: str | None
