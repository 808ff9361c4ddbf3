from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.ledger.enums import CapitalTransactionType
from app.domain.reporting.enums import StatementStatus, StatementType
from app.domain.reporting.models import InvestorStatement
from app.domain.reporting.services import statement_generator
from app.shared.batch import ErrorKind
from app.shared.exceptions import ConflictError, PreconditionFailed, ValidationError


JAN_START, JAN_END = date(2025, 1, 1), date(2025, 1, 31)


@pytest.fixture()
def scenario_account(account, post_tx, add_nav):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 100_000, 1_000)
    add_nav(date(2024, 12, 31), "100")
    add_nav(date(2025, 1, 31), "102")
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2025, 1, 10), 10_000, 100)
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2025, 1, 20), 5_000, 0)
    post_tx(account, CapitalTransactionType.FEE_DEBIT, date(2025, 1, 25), 1_000, 0)
    return account


def _generate(db: Session, account, **kwargs):
    return statement_generator.generate_statement(
        db, account=account, period_start=JAN_START, period_end=JAN_END, actor_id="ops", **kwargs
    )


def test_statement_return_attribution(db_session: Session, scenario_account):
    st = _generate(db_session, scenario_account)

    assert st.beginning_shares == Decimal("1000.000000")
    assert st.ending_shares == Decimal("1100.000000")
    assert st.beginning_balance == Decimal("100000.00")
    assert st.ending_balance == Decimal("112200.00")
    assert st.contributions == Decimal("10000.00")
    assert st.distributions == Decimal("5000.00")
    assert st.fees == Decimal("1000.00")
    assert st.return_amount == Decimal("8200.00")
    assert st.return_percent == Decimal("8.2000")
    assert st.statement_type == StatementType.MONTHLY
    assert st.status == StatementStatus.DRAFT
    assert st.version == 1


def test_zero_beginning_balance_has_zero_return_percent(db_session: Session, account, post_tx, add_nav):
    # No prior NAV exists; none is needed when the account held no shares.
    add_nav(date(2025, 1, 31), "102")
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2025, 1, 10), 10_000, 100)

    st = _generate(db_session, account)

    assert st.beginning_balance == Decimal("0.00")
    assert st.beginning_nav_per_share is None
    assert st.ending_balance == Decimal("10200.00")
    assert st.return_amount == Decimal("200.00")
    assert st.return_percent == Decimal("0")


def test_missing_ending_nav_raises(db_session: Session, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 100_000, 1_000)
    with pytest.raises(PreconditionFailed):
        _generate(db_session, account)
    assert db_session.execute(select(InvestorStatement)).scalars().all() == []


def test_draft_is_regenerated_in_place(db_session: Session, scenario_account):
    first = _generate(db_session, scenario_account)
    again = _generate(db_session, scenario_account)

    assert again.id == first.id
    assert again.version == 1
    assert len(db_session.execute(select(InvestorStatement)).scalars().all()) == 1


def test_finalized_statement_requires_new_version(db_session: Session, fund_id, scenario_account):
    first = _generate(db_session, scenario_account)
    finalized = statement_generator.finalize_statement(db_session, fund_id=fund_id, statement_id=first.id, actor_id="ops")
    assert finalized.status == StatementStatus.FINALIZED
    assert finalized.finalized_by == "ops"

    with pytest.raises(ConflictError):
        _generate(db_session, scenario_account)

    v2 = _generate(db_session, scenario_account, new_version=True)
    assert v2.version == 2
    assert v2.status == StatementStatus.DRAFT
    assert v2.id != first.id

    db_session.refresh(first)
    assert first.status == StatementStatus.FINALIZED


def test_status_moves_forward_only(db_session: Session, fund_id, scenario_account):
    st = _generate(db_session, scenario_account)

    with pytest.raises(ValidationError):
        statement_generator.mark_statement_sent(db_session, fund_id=fund_id, statement_id=st.id)

    statement_generator.finalize_statement(db_session, fund_id=fund_id, statement_id=st.id)
    sent = statement_generator.mark_statement_sent(db_session, fund_id=fund_id, statement_id=st.id, actor_id="ops")
    assert sent.status == StatementStatus.SENT
    assert sent.sent_at is not None

    with pytest.raises(ValidationError):
        statement_generator.finalize_statement(db_session, fund_id=fund_id, statement_id=st.id)


def test_batch_skips_locked_and_isolates_failures(db_session: Session, fund_id, make_account, post_tx, add_nav):
    locked = make_account()
    ok = make_account()
    post_tx(locked, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 10_000, 100)
    post_tx(ok, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 10_000, 100)
    add_nav(date(2024, 12, 31), "100")
    add_nav(date(2025, 1, 31), "101")

    st = _generate(db_session, locked)
    statement_generator.finalize_statement(db_session, fund_id=fund_id, statement_id=st.id)

    result = statement_generator.run_statements(
        db_session, fund_id=fund_id, period_start=JAN_START, period_end=JAN_END
    )
    assert result.processed == 1
    assert result.skipped == 1
    assert result.failed == 0

    # Idempotent: the draft is rewritten, not duplicated.
    statement_generator.run_statements(db_session, fund_id=fund_id, period_start=JAN_START, period_end=JAN_END)
    assert len(db_session.execute(select(InvestorStatement)).scalars().all()) == 2


def test_batch_reports_missing_nav_per_account(db_session: Session, fund_id, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 10_000, 100)

    result = statement_generator.run_statements(
        db_session, fund_id=fund_id, period_start=JAN_START, period_end=JAN_END
    )

    assert result.processed == 0
    assert result.errors[0].kind == ErrorKind.PRECONDITION
    assert db_session.execute(select(InvestorStatement)).scalars().all() == []


def test_statement_type_inference():
    assert statement_generator.infer_statement_type(date(2025, 1, 1), date(2025, 3, 31)) == StatementType.QUARTERLY
    assert statement_generator.infer_statement_type(date(2025, 1, 1), date(2025, 12, 31)) == StatementType.ANNUAL
    assert statement_generator.infer_statement_type(date(2025, 1, 5), date(2025, 1, 31)) == StatementType.ON_DEMAND
    assert statement_generator.infer_statement_type(date(2025, 2, 1), date(2025, 4, 30)) == StatementType.ON_DEMAND
