from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.fees.enums import FeeCalculationMethod, FeeFrequency, FeeType
from app.domain.fees.models import FeeSchedule, FeeTransaction
from app.domain.ledger.enums import CapitalTransactionType
from app.domain.period_close.enums import PeriodCloseStatus
from app.domain.period_close.models import PeriodCloseRun
from app.domain.period_close.services.period_close import get_run, run_period_close
from app.domain.reporting.models import InvestorStatement
from app.domain.tax.services.tax_documents import set_characterization
from app.shared.batch import CloseStage
from app.shared.exceptions import ConflictError, PreconditionFailed


JAN_START, JAN_END = date(2025, 1, 1), date(2025, 1, 31)


@pytest.fixture()
def ready_fund(db_session: Session, fund_id, account, post_tx, add_nav):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 100_000, 1_000)
    add_nav(date(2024, 12, 31), "100")
    add_nav(date(2025, 1, 31), "101")
    db_session.add(
        FeeSchedule(
            fund_id=fund_id,
            fee_name="Management",
            fee_type=FeeType.MANAGEMENT,
            calculation_method=FeeCalculationMethod.PCT_OF_NAV,
            annual_rate=Decimal("0.02"),
            frequency=FeeFrequency.MONTHLY,
            start_date=date(2024, 1, 1),
        )
    )
    db_session.commit()
    return fund_id


def _close(db: Session, fund_id, **kwargs):
    return run_period_close(
        db, fund_id=fund_id, period_start=JAN_START, period_end=JAN_END, actor_id="closer", **kwargs
    )


def test_close_runs_each_stage_and_records_the_run(db_session: Session, ready_fund):
    summary = _close(db_session, ready_fund)

    assert summary.status == PeriodCloseStatus.COMPLETED
    assert summary.attempt == 1
    assert [s.stage for s in summary.stages] == [CloseStage.FEES, CloseStage.CARRY, CloseStage.STATEMENTS]
    assert summary.stage(CloseStage.FEES).processed == 1
    assert summary.stage(CloseStage.CARRY).processed == 0
    assert summary.stage(CloseStage.STATEMENTS).processed == 1
    assert summary.failed == 0

    run = get_run(db_session, fund_id=ready_fund, period_start=JAN_START, period_end=JAN_END)
    assert run.status == PeriodCloseStatus.COMPLETED
    assert run.finished_at is not None
    assert run.started_by == "closer"
    assert run.last_summary["processed"] == 2


def test_rerun_is_idempotent(db_session: Session, ready_fund):
    _close(db_session, ready_fund)
    second = _close(db_session, ready_fund)

    assert second.attempt == 2
    assert second.stage(CloseStage.FEES).processed == 0
    assert second.stage(CloseStage.FEES).skipped == 1
    assert len(db_session.execute(select(FeeTransaction)).scalars().all()) == 1
    assert len(db_session.execute(select(InvestorStatement)).scalars().all()) == 1


def test_second_trigger_while_running_conflicts(db_session: Session, ready_fund):
    db_session.add(
        PeriodCloseRun(
            fund_id=ready_fund,
            period_start=JAN_START,
            period_end=JAN_END,
            status=PeriodCloseStatus.RUNNING,
            attempt=1,
            started_at=datetime.now(timezone.utc),
        )
    )
    db_session.commit()

    with pytest.raises(ConflictError):
        _close(db_session, ready_fund)

    run = get_run(db_session, fund_id=ready_fund, period_start=JAN_START, period_end=JAN_END)
    assert run.status == PeriodCloseStatus.RUNNING
    assert run.attempt == 1
    assert db_session.execute(select(FeeTransaction)).scalars().all() == []


def test_inverted_period_aborts(db_session: Session, ready_fund):
    with pytest.raises(PreconditionFailed):
        run_period_close(db_session, fund_id=ready_fund, period_start=JAN_END, period_end=JAN_START)


def test_fund_without_accounts_aborts(db_session: Session, fund_id):
    with pytest.raises(PreconditionFailed):
        _close(db_session, fund_id)
    assert db_session.execute(select(PeriodCloseRun)).scalars().all() == []


def test_fund_without_nav_aborts(db_session: Session, fund_id, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 100_000, 1_000)

    with pytest.raises(PreconditionFailed):
        _close(db_session, fund_id)
    assert db_session.execute(select(PeriodCloseRun)).scalars().all() == []


def test_failed_stage_releases_lock_for_retry(db_session: Session, ready_fund):
    with pytest.raises(PreconditionFailed):
        _close(db_session, ready_fund, stages=[CloseStage.TAX_DOCUMENTS])

    run = get_run(db_session, fund_id=ready_fund, period_start=JAN_START, period_end=JAN_END)
    assert run.status == PeriodCloseStatus.FAILED
    assert "tax characterization" in run.last_error

    set_characterization(db_session, fund_id=ready_fund, tax_year=2025, ordinary_income_fraction="1")
    summary = _close(db_session, ready_fund, stages=[CloseStage.TAX_DOCUMENTS])

    assert summary.status == PeriodCloseStatus.COMPLETED
    assert summary.attempt == 2
    assert summary.stage(CloseStage.TAX_DOCUMENTS).processed == 1


def test_per_account_errors_do_not_fail_the_run(db_session: Session, fund_id, make_account, post_tx, add_nav):
    ok = make_account()
    post_tx(ok, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 100_000, 1_000)
    # Only the period-end mark exists, so a statement that needs a beginning NAV fails.
    add_nav(date(2025, 1, 31), "101")

    summary = _close(db_session, fund_id, stages=[CloseStage.STATEMENTS])

    assert summary.status == PeriodCloseStatus.COMPLETED
    assert summary.failed == 1
    assert summary.stage(CloseStage.STATEMENTS).errors[0].entity_id == ok.id
