from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db.models import AuditEvent
from app.domain.ledger.enums import CapitalAccountStatus, CapitalTransactionType
from app.domain.ledger.services import capital_ledger
from app.shared.exceptions import InvariantViolation, ValidationError


def test_append_assigns_increasing_sequence_and_audits(db_session: Session, account, post_tx):
    t1 = post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 15), 100_000, 1_000)
    t2 = post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 15), 50_000, 500)

    assert (t1.sequence, t2.sequence) == (1, 2)

    events = db_session.execute(
        select(AuditEvent).where(AuditEvent.action == "CAPITAL_TRANSACTION_APPENDED")
    ).scalars().all()
    assert len(events) == 2
    assert {e.after["amount"] for e in events} == {"100000.00", "50000.00"}


def test_replay_tracks_cost_basis_and_realized_gain(db_session: Session, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 15), 100_000, 1_000)
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2024, 6, 30), 60_000, -500)

    state = capital_ledger.replay(db_session, account, date(2024, 12, 31))
    assert state.shares == Decimal("500.000000")
    assert state.cost_basis == Decimal("50000.00")
    assert state.realized_gain == Decimal("10000.00")
    assert state.contributions == Decimal("100000.00")
    assert state.distributions == Decimal("60000.00")
    assert state.average_cost == Decimal("100")

    # Cutoff before the distribution sees only the contribution.
    early = capital_ledger.replay(db_session, account, date(2024, 3, 31))
    assert early.shares == Decimal("1000.000000")
    assert early.realized_gain == Decimal("0.00")


def test_snapshot_marks_to_nav(db_session: Session, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 15), 100_000, 1_000)

    snap = capital_ledger.snapshot(db_session, account, date(2024, 12, 31), Decimal("105"))
    assert snap.market_value == Decimal("105000.00")
    assert snap.unrealized_gain == Decimal("5000.00")
    assert snap.total_gain == Decimal("5000.00")


def test_share_conservation_over_a_period(db_session: Session, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 12, 1), 100_000, 1_000)
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2025, 1, 10), 10_000, 100)
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2025, 1, 20), 5_000, -40)
    post_tx(account, CapitalTransactionType.FEE_DEBIT, date(2025, 1, 25), 1_000, -9.5)

    start, end = date(2025, 1, 1), date(2025, 1, 31)
    beginning = capital_ledger.shares_as_of(db_session, account, date(2024, 12, 31))
    ending = capital_ledger.shares_as_of(db_session, account, end)
    flows = capital_ledger.net_flows_in_period(db_session, account, start, end)

    assert ending == beginning + flows.share_delta
    assert ending == Decimal("1050.500000")
    assert flows.contributions == Decimal("10000.00")
    assert flows.distributions == Decimal("5000.00")
    assert flows.fee_debits == Decimal("1000.00")


def test_rejects_negative_amount(account, post_tx):
    with pytest.raises(ValidationError):
        post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 15), -1, 0)


def test_rejects_sign_mismatch(account, post_tx):
    with pytest.raises(ValidationError):
        post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 15), 100, -1)
    with pytest.raises(ValidationError):
        post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2024, 1, 15), 100, 1)


def test_rejects_transaction_before_inception(account, post_tx):
    with pytest.raises(ValidationError):
        post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2023, 12, 31), 100, 1)


def test_rejects_closed_account(make_account, post_tx):
    closed = make_account(status=CapitalAccountStatus.CLOSED)
    with pytest.raises(ValidationError):
        post_tx(closed, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 15), 100, 1)


def test_rejects_overdrawn_distribution(db_session: Session, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 15), 1_000, 10)
    with pytest.raises(InvariantViolation):
        post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2024, 2, 1), 1_100, -11)
    db_session.rollback()
    assert capital_ledger.shares_as_of(db_session, account, date(2024, 12, 31)) == Decimal("10.000000")


def test_rejects_backdated_redemption_that_breaks_later_history(account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 10), 100_000, 1_000)
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2024, 3, 1), 80_000, -800)

    with pytest.raises(InvariantViolation):
        post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2024, 2, 1), 30_000, -300)


def test_audit_account_reports_clean_log(db_session: Session, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 1, 10), 100_000, 1_000)
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2024, 3, 1), 80_000, -800)

    report = capital_ledger.audit_account(db_session, account)
    assert report.ok
    assert report.transaction_count == 2
    assert report.final_shares == Decimal("200.000000")
