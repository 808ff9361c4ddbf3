from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.db.session import get_db
from app.core.security.dependencies import require_fund_access
from app.core.security.rbac import OVERSIGHT_ROLES, READ_ROLES, WRITE_ROLES, require_role
from app.domain.ledger.schemas.ledger import (
    AccountSnapshotOut,
    CapitalTransactionCreate,
    CapitalTransactionOut,
    LedgerAuditOut,
)
from app.domain.ledger.services import capital_ledger
from app.domain.ledger.services.nav_provider import nav_as_of


router = APIRouter(
    prefix="/funds/{fund_id}/capital-accounts",
    tags=["Capital Ledger"],
    dependencies=[Depends(require_fund_access())],
)


@router.post("/{account_id}/transactions", response_model=CapitalTransactionOut, status_code=status.HTTP_201_CREATED)
def append_transaction(
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    payload: CapitalTransactionCreate,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    account = capital_ledger.get_account(db, fund_id=fund_id, account_id=account_id)
    return capital_ledger.append_transaction(db, account=account, actor_id=actor.id, **payload.model_dump())


@router.get("/{account_id}/transactions", response_model=list[CapitalTransactionOut])
def list_transactions(
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    as_of: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor=Depends(require_role(READ_ROLES)),
):
    account = capital_ledger.get_account(db, fund_id=fund_id, account_id=account_id)
    return capital_ledger.transactions_through(db, account_id=account.id, as_of=as_of)


@router.get("/{account_id}/snapshot", response_model=AccountSnapshotOut)
def account_snapshot(
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    as_of: date = Query(...),
    db: Session = Depends(get_db),
    actor=Depends(require_role(READ_ROLES)),
):
    account = capital_ledger.get_account(db, fund_id=fund_id, account_id=account_id)
    quote = nav_as_of(db, fund_id=fund_id, as_of=as_of, share_class_id=account.share_class_id)
    snap = capital_ledger.snapshot(db, account, as_of, quote.nav_per_share)
    state = snap.state
    return AccountSnapshotOut(
        account_id=account.id,
        as_of=as_of,
        shares=state.shares,
        cost_basis=state.cost_basis,
        contributions=state.contributions,
        distributions=state.distributions,
        fee_debits=state.fee_debits,
        realized_gain=state.realized_gain,
        nav_per_share=snap.nav_per_share,
        market_value=snap.market_value,
        unrealized_gain=snap.unrealized_gain,
        total_gain=snap.total_gain,
    )


@router.get("/{account_id}/audit", response_model=LedgerAuditOut)
def audit_account(
    fund_id: uuid.UUID,
    account_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor=Depends(require_role(OVERSIGHT_ROLES)),
):
    account = capital_ledger.get_account(db, fund_id=fund_id, account_id=account_id)
    report = capital_ledger.audit_account(db, account)
    return LedgerAuditOut(
        account_id=report.account_id,
        transaction_count=report.transaction_count,
        final_shares=report.final_shares,
        negative_share_dates=report.negative_share_dates,
        ok=report.ok,
    )
