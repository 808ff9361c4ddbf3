from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.db.session import get_db
from app.core.security.dependencies import require_fund_access
from app.core.security.rbac import READ_ROLES, WRITE_ROLES, require_role
from app.domain.ledger.services.capital_ledger import get_account
from app.domain.reporting.schemas.statements import InvestorStatementOut, StatementGenerate
from app.domain.reporting.services import statement_generator


router = APIRouter(
    prefix="/funds/{fund_id}/statements",
    tags=["Investor Statements"],
    dependencies=[Depends(require_fund_access())],
)


@router.post("", response_model=InvestorStatementOut, status_code=status.HTTP_201_CREATED)
def generate_statement(
    fund_id: uuid.UUID,
    payload: StatementGenerate,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    account = get_account(db, fund_id=fund_id, account_id=payload.capital_account_id)
    return statement_generator.generate_statement(
        db,
        account=account,
        period_start=payload.period_start,
        period_end=payload.period_end,
        statement_type=payload.statement_type,
        new_version=payload.new_version,
        actor_id=actor.id,
    )


@router.get("", response_model=list[InvestorStatementOut])
def list_statements(
    fund_id: uuid.UUID,
    period_end: date | None = Query(default=None),
    account_id: uuid.UUID | None = Query(default=None),
    db: Session = Depends(get_db),
    actor=Depends(require_role(READ_ROLES)),
):
    return statement_generator.list_statements(db, fund_id=fund_id, period_end=period_end, account_id=account_id)


@router.post("/{statement_id}/finalize", response_model=InvestorStatementOut)
def finalize_statement(
    fund_id: uuid.UUID,
    statement_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    return statement_generator.finalize_statement(db, fund_id=fund_id, statement_id=statement_id, actor_id=actor.id)


@router.post("/{statement_id}/send", response_model=InvestorStatementOut)
def send_statement(
    fund_id: uuid.UUID,
    statement_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
):
    return statement_generator.mark_statement_sent(db, fund_id=fund_id, statement_id=statement_id, actor_id=actor.id)
