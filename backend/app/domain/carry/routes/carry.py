from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.db.session import get_db
from app.core.security.dependencies import require_fund_access
from app.core.security.rbac import OVERSIGHT_ROLES, WRITE_ROLES, require_role
from app.domain.carry.schemas.carry import (
    CarriedInterestAccountOut,
    CarryAccountTransition,
    CarryAccrualOut,
    CarryAccrueRequest,
    CarryDistributionCreate,
    ClawbackPayment,
    ClawbackProvisionOut,
    ClawbackRequest,
    ClawbackResult,
    ClawbackWaive,
)
from app.domain.carry.services import carry_engine
from app.shared.enums import Role


router = APIRouter(prefix="/funds/{fund_id}/carry", tags=["Carried Interest"], dependencies=[Depends(require_fund_access())])


@router.get("/accounts", response_model=list[CarriedInterestAccountOut])
def list_accounts(
    fund_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES | OVERSIGHT_ROLES)),
):
    return carry_engine.list_carry_accounts(db, fund_id=fund_id)


@router.post("/accounts/{account_id}/accrue", response_model=CarryAccrualOut)
def accrue(
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    payload: CarryAccrueRequest,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    account = carry_engine.get_carry_account(db, fund_id=fund_id, account_id=account_id)
    return carry_engine.accrue_carry(db, account=account, as_of=payload.as_of, actor_id=actor.id)


@router.post("/accounts/{account_id}/distributions", response_model=CarriedInterestAccountOut)
def record_distribution(
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    payload: CarryDistributionCreate,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    return carry_engine.record_carry_distribution(
        db, fund_id=fund_id, account_id=account_id, amount=payload.amount, actor_id=actor.id
    )


@router.post("/accounts/{account_id}/clawback", response_model=ClawbackResult)
def calculate_clawback(
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    payload: ClawbackRequest,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    account = carry_engine.get_carry_account(db, fund_id=fund_id, account_id=account_id)
    provision = carry_engine.calculate_clawback(
        db, account=account, calculation_date=payload.calculation_date, actor_id=actor.id
    )
    return ClawbackResult(provision=ClawbackProvisionOut.model_validate(provision) if provision else None)


@router.post("/accounts/{account_id}/status", response_model=CarriedInterestAccountOut)
def transition_account(
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    payload: CarryAccountTransition,
    db: Session = Depends(get_db),
    actor=Depends(require_role([Role.GP])),
):
    return carry_engine.transition_carry_account(
        db, fund_id=fund_id, account_id=account_id, to_status=payload.to_status, actor_id=actor.id
    )


@router.post("/clawbacks/{provision_id}/notify", response_model=ClawbackProvisionOut)
def notify_clawback(
    fund_id: uuid.UUID,
    provision_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    return carry_engine.notify_clawback(db, fund_id=fund_id, provision_id=provision_id, actor_id=actor.id)


@router.post("/clawbacks/{provision_id}/pay", response_model=ClawbackProvisionOut)
def pay_clawback(
    fund_id: uuid.UUID,
    provision_id: uuid.UUID,
    payload: ClawbackPayment,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    return carry_engine.pay_clawback(
        db,
        fund_id=fund_id,
        provision_id=provision_id,
        amount_paid=payload.amount_paid,
        payment_date=payload.payment_date,
        actor_id=actor.id,
    )


@router.post("/clawbacks/{provision_id}/waive", response_model=ClawbackProvisionOut)
def waive_clawback(
    fund_id: uuid.UUID,
    provision_id: uuid.UUID,
    payload: ClawbackWaive,
    db: Session = Depends(get_db),
    actor=Depends(require_role([Role.GP])),
):
    return carry_engine.waive_clawback(
        db, fund_id=fund_id, provision_id=provision_id, actor_id=actor.id, reason=payload.reason
    )
