from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

import structlog
from structlog import contextvars
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.db.audit import audit_row
from app.domain.carry.services.carry_engine import run_carry_stage
from app.domain.fees.services.fee_engine import run_fee_engine
from app.domain.ledger.services.capital_ledger import list_active_accounts
from app.domain.ledger.services.nav_provider import fund_has_any_nav
from app.domain.period_close.enums import PeriodCloseStatus
from app.domain.period_close.models.period_close_runs import PeriodCloseRun
from app.domain.reporting.services.statement_generator import run_statements
from app.domain.tax.services.tax_documents import generate_tax_documents
from app.shared.batch import CloseStage, StageResult
from app.shared.exceptions import ConflictError, NotFound, PreconditionFailed


logger = structlog.get_logger(__name__)

DEFAULT_STAGES: tuple[CloseStage, ...] = (CloseStage.FEES, CloseStage.CARRY, CloseStage.STATEMENTS)


@dataclass
class PeriodCloseSummary:
    run_id: uuid.UUID
    fund_id: uuid.UUID
    period_start: date
    period_end: date
    status: PeriodCloseStatus
    attempt: int
    started_at: datetime
    finished_at: datetime | None = None
    stages: list[StageResult] = field(default_factory=list)

    def stage(self, stage: CloseStage) -> StageResult | None:
        for result in self.stages:
            if result.stage == stage:
                return result
        return None

    @property
    def processed(self) -> int:
        return sum(s.processed for s in self.stages)

    @property
    def failed(self) -> int:
        return sum(s.failed for s in self.stages)

    def to_dict(self) -> dict:
        return {
            "run_id": str(self.run_id),
            "fund_id": str(self.fund_id),
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "status": self.status.value,
            "attempt": self.attempt,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "processed": self.processed,
            "failed": self.failed,
            "stages": [s.to_dict() for s in self.stages],
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_run(db: Session, *, fund_id: uuid.UUID, period_start: date, period_end: date) -> PeriodCloseRun | None:
    return db.execute(
        select(PeriodCloseRun).where(
            PeriodCloseRun.fund_id == fund_id,
            PeriodCloseRun.period_start == period_start,
            PeriodCloseRun.period_end == period_end,
        )
    ).scalar_one_or_none()


def get_run_by_id(db: Session, *, fund_id: uuid.UUID, run_id: uuid.UUID) -> PeriodCloseRun:
    run = db.execute(
        select(PeriodCloseRun).where(PeriodCloseRun.fund_id == fund_id, PeriodCloseRun.id == run_id)
    ).scalar_one_or_none()
    if run is None:
        raise NotFound("Period close run not found")
    return run


def _acquire_lock(
    db: Session,
    *,
    fund_id: uuid.UUID,
    period_start: date,
    period_end: date,
    actor_id: str | None,
) -> PeriodCloseRun:
    """
    Take the (fund, period) close lock:
    - first run inserts the row in `running`
    - later runs flip a completed/failed row back to `running` with a conditional update
    - anything else means another run holds the lock
    """
    now = _utcnow()
    run = get_run(db, fund_id=fund_id, period_start=period_start, period_end=period_end)

    if run is None:
        run = PeriodCloseRun(
            fund_id=fund_id,
            access_level="internal",
            period_start=period_start,
            period_end=period_end,
            status=PeriodCloseStatus.RUNNING,
            attempt=1,
            started_at=now,
            started_by=actor_id,
            created_by=actor_id,
            updated_by=actor_id,
        )
        db.add(run)
        try:
            db.flush()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("A period close for this fund and period is already in progress") from e
        audit_row(db, run, action="PERIOD_CLOSE_STARTED", entity_type="period_close_run", actor_id=actor_id)
        db.commit()
        db.refresh(run)
        return run

    claimed = db.execute(
        update(PeriodCloseRun)
        .where(
            PeriodCloseRun.id == run.id,
            PeriodCloseRun.status.in_([PeriodCloseStatus.COMPLETED, PeriodCloseStatus.FAILED]),
        )
        .values(
            status=PeriodCloseStatus.RUNNING,
            attempt=PeriodCloseRun.attempt + 1,
            started_at=now,
            finished_at=None,
            started_by=actor_id,
            last_error=None,
            updated_by=actor_id,
        )
        .execution_options(synchronize_session=False)
    ).rowcount
    if claimed != 1:
        db.rollback()
        raise ConflictError("A period close for this fund and period is already in progress")

    db.commit()
    db.refresh(run)
    audit_row(db, run, action="PERIOD_CLOSE_STARTED", entity_type="period_close_run", actor_id=actor_id)
    db.commit()
    return run


def _release(
    db: Session,
    run: PeriodCloseRun,
    *,
    status: PeriodCloseStatus,
    summary: PeriodCloseSummary,
    actor_id: str | None,
    error: str | None = None,
) -> None:
    finished = _utcnow()
    summary.status = status
    summary.finished_at = finished

    run.status = status
    run.finished_at = finished
    run.last_summary = summary.to_dict()
    run.last_error = error
    run.updated_by = actor_id
    audit_row(
        db,
        run,
        action="PERIOD_CLOSE_COMPLETED" if status == PeriodCloseStatus.COMPLETED else "PERIOD_CLOSE_FAILED",
        entity_type="period_close_run",
        actor_id=actor_id,
    )
    db.commit()


def _run_stage(
    db: Session,
    stage: CloseStage,
    *,
    fund_id: uuid.UUID,
    period_start: date,
    period_end: date,
    actor_id: str | None,
) -> StageResult:
    if stage == CloseStage.FEES:
        return run_fee_engine(db, fund_id=fund_id, period_start=period_start, period_end=period_end, actor_id=actor_id)
    if stage == CloseStage.CARRY:
        return run_carry_stage(db, fund_id=fund_id, period_end=period_end, actor_id=actor_id)
    if stage == CloseStage.STATEMENTS:
        return run_statements(db, fund_id=fund_id, period_start=period_start, period_end=period_end, actor_id=actor_id)
    # Tax documents cover the calendar year the period ends in.
    return generate_tax_documents(db, fund_id=fund_id, tax_year=period_end.year, actor_id=actor_id)


def _check_preconditions(db: Session, *, fund_id: uuid.UUID, period_start: date, period_end: date) -> None:
    if period_end < period_start:
        raise PreconditionFailed("period_end must not precede period_start")
    if not list_active_accounts(db, fund_id=fund_id):
        raise PreconditionFailed(f"Fund {fund_id} has no active capital accounts")
    if not fund_has_any_nav(db, fund_id=fund_id, as_of=period_end):
        raise PreconditionFailed(f"Fund {fund_id} has no NAV mark at or before {period_end.isoformat()}")


def run_period_close(
    db: Session,
    *,
    fund_id: uuid.UUID,
    period_start: date,
    period_end: date,
    actor_id: str | None = None,
    stages: Iterable[CloseStage] | None = None,
) -> PeriodCloseSummary:
    """Close one (fund, period): take the lock, run each stage in order, release the lock.

    Per-account failures are collected in the stage results; only systemic
    problems raise. A rerun picks up where a previous attempt stopped.
    """
    selected = [CloseStage(s) for s in (stages or DEFAULT_STAGES)]
    _check_preconditions(db, fund_id=fund_id, period_start=period_start, period_end=period_end)

    run = _acquire_lock(db, fund_id=fund_id, period_start=period_start, period_end=period_end, actor_id=actor_id)
    summary = PeriodCloseSummary(
        run_id=run.id,
        fund_id=fund_id,
        period_start=period_start,
        period_end=period_end,
        status=PeriodCloseStatus.RUNNING,
        attempt=run.attempt,
        started_at=run.started_at,
    )

    with contextvars.bound_contextvars(period_close_run_id=str(run.id)):
        logger.info(
            "period_close.started",
            fund_id=str(fund_id),
            period_start=period_start.isoformat(),
            period_end=period_end.isoformat(),
            stages=[s.value for s in selected],
            attempt=run.attempt,
        )
        try:
            for stage in selected:
                summary.stages.append(
                    _run_stage(
                        db,
                        stage,
                        fund_id=fund_id,
                        period_start=period_start,
                        period_end=period_end,
                        actor_id=actor_id,
                    )
                )
        except Exception as e:
            db.rollback()
            run = db.get(PeriodCloseRun, summary.run_id)
            _release(db, run, status=PeriodCloseStatus.FAILED, summary=summary, actor_id=actor_id, error=str(e))
            logger.error("period_close.failed", fund_id=str(fund_id), error=str(e))
            raise

        run = db.get(PeriodCloseRun, summary.run_id)
        _release(db, run, status=PeriodCloseStatus.COMPLETED, summary=summary, actor_id=actor_id)
        logger.info(
            "period_close.completed",
            fund_id=str(fund_id),
            processed=summary.processed,
            failed=summary.failed,
        )
    return summary
