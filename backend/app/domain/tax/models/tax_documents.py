from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Enum as SAEnum, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db.base import RATE, AuditMetaMixin, Base, FundScopedMixin, IdMixin
from app.domain.tax.enums import TaxDocumentStatus, TaxDocumentType


class TaxCharacterization(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    """How a fund's distributions for one tax year split into income categories. Fractions sum to 1."""

    __tablename__ = "tax_characterizations"

    tax_year: Mapped[int] = mapped_column(Integer, nullable=False)

    ordinary_income_fraction: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    qualified_dividends_fraction: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    long_term_gains_fraction: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    short_term_gains_fraction: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))
    return_of_capital_fraction: Mapped[Decimal] = mapped_column(RATE, nullable=False, default=Decimal("0"))

    __table_args__ = (UniqueConstraint("fund_id", "tax_year", name="uq_tax_characterizations_fund_year"),)


class TaxDocument(Base, IdMixin, FundScopedMixin, AuditMetaMixin):
    __tablename__ = "tax_documents"

    capital_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("capital_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    characterization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tax_characterizations.id", ondelete="RESTRICT"),
        nullable=False,
    )
    tax_year: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    document_type: Mapped[TaxDocumentType] = mapped_column(
        SAEnum(TaxDocumentType, name="tax_document_type_enum"),
        nullable=False,
        default=TaxDocumentType.K1,
    )

    total_distributions: Mapped[Decimal] = mapped_column(nullable=False)
    ordinary_income: Mapped[Decimal] = mapped_column(nullable=False)
    qualified_dividends: Mapped[Decimal] = mapped_column(nullable=False)
    long_term_gains: Mapped[Decimal] = mapped_column(nullable=False)
    short_term_gains: Mapped[Decimal] = mapped_column(nullable=False)
    return_of_capital: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[TaxDocumentStatus] = mapped_column(
        SAEnum(TaxDocumentStatus, name="tax_document_status_enum"),
        nullable=False,
        default=TaxDocumentStatus.DRAFT,
    )

    __table_args__ = (UniqueConstraint("capital_account_id", "tax_year", name="uq_tax_documents_account_year"),)
