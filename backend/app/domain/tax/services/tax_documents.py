from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.db.audit import audit_row
from app.domain.ledger.models.capital_accounts import CapitalAccount
from app.domain.ledger.services import capital_ledger
from app.domain.tax.enums import TaxDocumentStatus, TaxDocumentType
from app.domain.tax.models.tax_documents import TaxCharacterization, TaxDocument
from app.shared.batch import CloseStage, StageResult
from app.shared.exceptions import AppError, ConflictError, PreconditionFailed, ValidationError
from app.shared.utils import money, to_decimal


logger = structlog.get_logger(__name__)

ONE = Decimal("1")

# Category -> fraction column. Return of capital absorbs rounding and is handled last.
_CATEGORIES = [
    ("ordinary_income", "ordinary_income_fraction"),
    ("qualified_dividends", "qualified_dividends_fraction"),
    ("long_term_gains", "long_term_gains_fraction"),
    ("short_term_gains", "short_term_gains_fraction"),
]
_ALL_FRACTIONS = [f for _, f in _CATEGORIES] + ["return_of_capital_fraction"]


def _validate_fractions(values: dict[str, Decimal]) -> None:
    if any(v < 0 for v in values.values()):
        raise ValidationError("Characterization fractions must be non-negative")
    total = sum(values.values(), Decimal("0"))
    if total != ONE:
        raise ValidationError(f"Characterization fractions must sum to 1 (got {total})")


def set_characterization(
    db: Session,
    *,
    fund_id: uuid.UUID,
    tax_year: int,
    ordinary_income_fraction=0,
    qualified_dividends_fraction=0,
    long_term_gains_fraction=0,
    short_term_gains_fraction=0,
    return_of_capital_fraction=0,
    actor_id: str | None = None,
) -> TaxCharacterization:
    values = {
        "ordinary_income_fraction": to_decimal(ordinary_income_fraction),
        "qualified_dividends_fraction": to_decimal(qualified_dividends_fraction),
        "long_term_gains_fraction": to_decimal(long_term_gains_fraction),
        "short_term_gains_fraction": to_decimal(short_term_gains_fraction),
        "return_of_capital_fraction": to_decimal(return_of_capital_fraction),
    }
    _validate_fractions(values)

    row = TaxCharacterization(
        fund_id=fund_id,
        access_level="internal",
        tax_year=tax_year,
        created_by=actor_id,
        updated_by=actor_id,
        **values,
    )
    db.add(row)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"Tax characterization for {tax_year} already exists") from e

    audit_row(db, row, action="TAX_CHARACTERIZATION_SET", entity_type="tax_characterization", actor_id=actor_id)
    db.commit()
    db.refresh(row)
    return row


def get_characterization(db: Session, *, fund_id: uuid.UUID, tax_year: int) -> TaxCharacterization:
    row = db.execute(
        select(TaxCharacterization).where(
            TaxCharacterization.fund_id == fund_id,
            TaxCharacterization.tax_year == tax_year,
        )
    ).scalar_one_or_none()
    if row is None:
        raise PreconditionFailed(f"No tax characterization recorded for {tax_year}")
    _validate_fractions({f: to_decimal(getattr(row, f)) for f in _ALL_FRACTIONS})
    return row


def characterize(total: Decimal, characterization: TaxCharacterization) -> dict[str, Decimal]:
    """Split `total` by category; the categories always add back to `total` exactly."""
    split: dict[str, Decimal] = {}
    for category, fraction in _CATEGORIES:
        split[category] = money(total * to_decimal(getattr(characterization, fraction)))
    split["return_of_capital"] = money(total - sum(split.values(), Decimal("0")))
    return split


def list_tax_documents(db: Session, *, fund_id: uuid.UUID, tax_year: int | None = None) -> list[TaxDocument]:
    stmt = select(TaxDocument).where(TaxDocument.fund_id == fund_id)
    if tax_year is not None:
        stmt = stmt.where(TaxDocument.tax_year == tax_year)
    return list(db.execute(stmt.order_by(TaxDocument.tax_year.desc())).scalars().all())


def generate_tax_documents(
    db: Session,
    *,
    fund_id: uuid.UUID,
    tax_year: int,
    document_type: TaxDocumentType = TaxDocumentType.K1,
    actor_id: str | None = None,
) -> StageResult:
    characterization = get_characterization(db, fund_id=fund_id, tax_year=tax_year)
    year_start = date(tax_year, 1, 1)
    year_end = date(tax_year, 12, 31)

    result = StageResult(stage=CloseStage.TAX_DOCUMENTS)
    account_ids = [
        a.id for a in capital_ledger.list_active_accounts(db, fund_id=fund_id) if a.inception_date <= year_end
    ]

    for account_id in account_ids:
        account = db.get(CapitalAccount, account_id)
        try:
            existing = db.execute(
                select(TaxDocument.id).where(
                    TaxDocument.capital_account_id == account_id,
                    TaxDocument.tax_year == tax_year,
                )
            ).first()
            if existing is not None:
                result.record_skipped()
                continue

            total = capital_ledger.net_flows_in_period(db, account, year_start, year_end).distributions
            doc = TaxDocument(
                fund_id=fund_id,
                access_level="internal",
                capital_account_id=account_id,
                characterization_id=characterization.id,
                tax_year=tax_year,
                document_type=document_type,
                total_distributions=total,
                status=TaxDocumentStatus.DRAFT,
                created_by=actor_id,
                updated_by=actor_id,
                **characterize(total, characterization),
            )
            db.add(doc)
            try:
                db.flush()
            except IntegrityError as e:
                raise ConflictError(f"Tax document for {tax_year} already exists for account {account_id}") from e

            audit_row(db, doc, action="TAX_DOCUMENT_GENERATED", entity_type="tax_document", actor_id=actor_id)
            db.commit()
            result.record_created(doc.id)
        except AppError as e:
            db.rollback()
            result.record_error(account_id, e, context="capital_account")
            logger.warning(
                "tax_documents.account.failed",
                fund_id=str(fund_id),
                account_id=str(account_id),
                error=str(e),
            )
        except Exception as e:
            db.rollback()
            result.record_error(account_id, e, context="capital_account")
            logger.exception("tax_documents.account.unexpected_error", fund_id=str(fund_id), account_id=str(account_id))

    logger.info(
        "tax_documents.run.completed",
        fund_id=str(fund_id),
        tax_year=tax_year,
        processed=result.processed,
        skipped=result.skipped,
        failed=result.failed,
    )
    return result
