from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from app.domain.ledger.services.nav_provider import find_nav_as_of, fund_has_any_nav, nav_as_of
from app.shared.exceptions import PreconditionFailed


def test_latest_mark_at_or_before_cutoff(db_session: Session, fund_id, share_class, add_nav):
    add_nav(date(2025, 1, 31), "100")
    add_nav(date(2025, 2, 28), "101")

    quote = nav_as_of(db_session, fund_id=fund_id, as_of=date(2025, 2, 15), share_class_id=share_class.id)
    assert quote.calculation_date == date(2025, 1, 31)
    assert quote.nav_per_share == Decimal("100.0000")


def test_highest_version_wins(db_session: Session, fund_id, share_class, add_nav):
    add_nav(date(2025, 1, 31), "100", version=1)
    add_nav(date(2025, 1, 31), "99.5", version=2)

    quote = nav_as_of(db_session, fund_id=fund_id, as_of=date(2025, 1, 31), share_class_id=share_class.id)
    assert quote.nav_per_share == Decimal("99.5000")


def test_falls_back_to_fund_level_mark(db_session: Session, fund_id, share_class, add_nav):
    add_nav(date(2025, 1, 31), "50", class_level=False)

    quote = nav_as_of(db_session, fund_id=fund_id, as_of=date(2025, 1, 31), share_class_id=share_class.id)
    assert quote.share_class_id is None
    assert quote.nav_per_share == Decimal("50.0000")


def test_rounds_to_share_class_precision(db_session: Session, fund_id, share_class, add_nav):
    share_class.share_price_precision = 2
    db_session.commit()
    add_nav(date(2025, 1, 31), "101.23456")

    quote = nav_as_of(db_session, fund_id=fund_id, as_of=date(2025, 1, 31), share_class_id=share_class.id)
    assert quote.nav_per_share == Decimal("101.23")


def test_missing_nav(db_session: Session, fund_id, share_class, add_nav):
    add_nav(date(2025, 3, 31), "100")

    assert find_nav_as_of(db_session, fund_id=fund_id, as_of=date(2025, 1, 31), share_class_id=share_class.id) is None
    with pytest.raises(PreconditionFailed):
        nav_as_of(db_session, fund_id=fund_id, as_of=date(2025, 1, 31), share_class_id=share_class.id)
    assert not fund_has_any_nav(db_session, fund_id=fund_id, as_of=date(2025, 1, 31))
    assert fund_has_any_nav(db_session, fund_id=fund_id, as_of=date(2025, 3, 31))


def test_newer_fund_level_mark_beats_stale_class_mark(db_session: Session, fund_id, share_class, add_nav):
    add_nav(date(2024, 1, 31), "100")
    add_nav(date(2024, 3, 31), "120", class_level=False)

    quote = nav_as_of(db_session, fund_id=fund_id, as_of=date(2024, 3, 31), share_class_id=share_class.id)
    assert quote.calculation_date == date(2024, 3, 31)
    assert quote.share_class_id is None
    assert quote.nav_per_share == Decimal("120.0000")


def test_class_mark_wins_on_the_same_date(db_session: Session, fund_id, share_class, add_nav):
    add_nav(date(2024, 3, 31), "120", class_level=False)
    add_nav(date(2024, 3, 31), "118")

    quote = nav_as_of(db_session, fund_id=fund_id, as_of=date(2024, 3, 31), share_class_id=share_class.id)
    assert quote.share_class_id == share_class.id
    assert quote.nav_per_share == Decimal("118.0000")
