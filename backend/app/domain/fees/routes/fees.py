from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.db.session import get_db
from app.core.security.dependencies import require_fund_access
from app.core.security.rbac import READ_ROLES, WRITE_ROLES, require_role
from app.domain.fees.schemas.fees import FeePayment, FeeTransactionOut, FeeWaive
from app.domain.fees.services import fee_engine


router = APIRouter(prefix="/funds/{fund_id}/fees", tags=["Fees"], dependencies=[Depends(require_fund_access())])


@router.get("", response_model=list[FeeTransactionOut])
def list_fees(
    fund_id: uuid.UUID,
    period_end: date | None = Query(default=None),
    account_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    actor=Depends(require_role(READ_ROLES)),
):
    return fee_engine.list_fees(db, fund_id=fund_id, period_end=period_end, account_id=account_id)


@router.post("/{fee_id}/invoice", response_model=FeeTransactionOut)
def invoice_fee(
    fund_id: uuid.UUID,
    fee_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    return fee_engine.invoice_fee(db, fund_id=fund_id, fee_id=fee_id, actor_id=actor.id)


@router.post("/{fee_id}/pay", response_model=FeeTransactionOut)
def pay_fee(
    fund_id: uuid.UUID,
    fee_id: uuid.UUID,
    payload: FeePayment,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    return fee_engine.pay_fee(
        db,
        fund_id=fund_id,
        fee_id=fee_id,
        paid_amount=payload.paid_amount,
        paid_date=payload.paid_date,
        actor_id=actor.id,
    )


@router.post("/{fee_id}/waive", response_model=FeeTransactionOut)
def waive_fee(
    fund_id: uuid.UUID,
    fee_id: uuid.UUID,
    payload: FeeWaive,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    return fee_engine.waive_fee(db, fund_id=fund_id, fee_id=fee_id, actor_id=actor.id, reason=payload.reason)
