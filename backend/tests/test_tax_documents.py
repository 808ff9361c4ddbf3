from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.ledger.enums import CapitalTransactionType
from app.domain.tax.enums import TaxDocumentStatus, TaxDocumentType
from app.domain.tax.models import TaxDocument
from app.domain.tax.services import tax_documents
from app.shared.exceptions import ConflictError, PreconditionFailed, ValidationError


def _characterize(db: Session, fund_id, tax_year: int = 2025):
    return tax_documents.set_characterization(
        db,
        fund_id=fund_id,
        tax_year=tax_year,
        ordinary_income_fraction="0.3",
        qualified_dividends_fraction="0.2",
        long_term_gains_fraction="0.4",
        short_term_gains_fraction="0.1",
        return_of_capital_fraction="0",
        actor_id="tax-ops",
    )


def test_fractions_must_sum_to_one(db_session: Session, fund_id):
    with pytest.raises(ValidationError):
        tax_documents.set_characterization(
            db_session,
            fund_id=fund_id,
            tax_year=2025,
            ordinary_income_fraction="0.5",
            long_term_gains_fraction="0.4",
        )


def test_negative_fraction_rejected(db_session: Session, fund_id):
    with pytest.raises(ValidationError):
        tax_documents.set_characterization(
            db_session,
            fund_id=fund_id,
            tax_year=2025,
            ordinary_income_fraction="1.1",
            return_of_capital_fraction="-0.1",
        )


def test_one_characterization_per_year(db_session: Session, fund_id):
    _characterize(db_session, fund_id)
    with pytest.raises(ConflictError):
        _characterize(db_session, fund_id)


def test_generation_requires_characterization(db_session: Session, fund_id, account):
    with pytest.raises(PreconditionFailed):
        tax_documents.generate_tax_documents(db_session, fund_id=fund_id, tax_year=2025)


def test_split_adds_back_to_total(db_session: Session, fund_id, account, post_tx):
    post_tx(account, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 100_000, 1_000)
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2025, 3, 31), 600.005, -5)
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2025, 9, 30), 400, -4)
    # Outside the tax year.
    post_tx(account, CapitalTransactionType.DISTRIBUTION, date(2026, 1, 2), 999, -9)
    _characterize(db_session, fund_id)

    result = tax_documents.generate_tax_documents(db_session, fund_id=fund_id, tax_year=2025)

    assert result.processed == 1
    doc = db_session.execute(select(TaxDocument)).scalar_one()
    assert doc.document_type == TaxDocumentType.K1
    assert doc.status == TaxDocumentStatus.DRAFT
    assert doc.total_distributions == Decimal("1000.01")
    assert doc.ordinary_income == Decimal("300.00")
    assert doc.qualified_dividends == Decimal("200.00")
    assert doc.long_term_gains == Decimal("400.00")
    assert doc.short_term_gains == Decimal("100.00")
    assert doc.return_of_capital == Decimal("0.01")
    parts = (
        doc.ordinary_income
        + doc.qualified_dividends
        + doc.long_term_gains
        + doc.short_term_gains
        + doc.return_of_capital
    )
    assert parts == doc.total_distributions


def test_generation_is_idempotent(db_session: Session, fund_id, make_account, post_tx):
    existing = make_account()
    post_tx(existing, CapitalTransactionType.CONTRIBUTION, date(2024, 6, 1), 10_000, 100)
    # Opened after year end; no document for 2025.
    make_account(inception_date=date(2026, 2, 1))
    _characterize(db_session, fund_id)

    first = tax_documents.generate_tax_documents(db_session, fund_id=fund_id, tax_year=2025)
    second = tax_documents.generate_tax_documents(db_session, fund_id=fund_id, tax_year=2025)

    assert first.processed == 1
    assert second.processed == 0
    assert second.skipped == 1
    docs = tax_documents.list_tax_documents(db_session, fund_id=fund_id, tax_year=2025)
    assert len(docs) == 1
    assert docs[0].total_distributions == Decimal("0.00")
