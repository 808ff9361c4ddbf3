from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.db.session import get_db
from app.core.security.dependencies import require_fund_access
from app.core.security.rbac import WRITE_ROLES, require_role
from app.domain.period_close.schemas.period_close import PeriodCloseRequest, PeriodCloseRunOut
from app.domain.period_close.services.period_close import get_run_by_id, run_period_close
from app.shared.enums import Role


router = APIRouter(
    prefix="/funds/{fund_id}/period-close",
    tags=["Period Close"],
    dependencies=[Depends(require_fund_access())],
)


@router.post("")
def run_close(
    fund_id: uuid.UUID,
    payload: PeriodCloseRequest,
    db: Session = Depends(get_db),
    actor=Depends(require_role([Role.GP])),
) -> dict:
    summary = run_period_close(
        db,
        fund_id=fund_id,
        period_start=payload.period_start,
        period_end=payload.period_end,
        actor_id=actor.id,
        stages=payload.stages,
    )
    return summary.to_dict()


@router.get("/{run_id}", response_model=PeriodCloseRunOut)
def get_run(
    fund_id: uuid.UUID,
    run_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES | {Role.AUDITOR})),
):
    return get_run_by_id(db, fund_id=fund_id, run_id=run_id)
