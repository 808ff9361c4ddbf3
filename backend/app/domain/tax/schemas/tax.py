from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.domain.tax.enums import TaxDocumentStatus, TaxDocumentType


class TaxCharacterizationCreate(BaseModel):
    tax_year: int = Field(ge=1900, le=2999)
    ordinary_income_fraction: Decimal = Decimal("0")
    qualified_dividends_fraction: Decimal = Decimal("0")
    long_term_gains_fraction: Decimal = Decimal("0")
    short_term_gains_fraction: Decimal = Decimal("0")
    return_of_capital_fraction: Decimal = Decimal("0")


class TaxCharacterizationOut(TaxCharacterizationCreate):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fund_id: uuid.UUID


class TaxDocumentsGenerate(BaseModel):
    tax_year: int = Field(ge=1900, le=2999)
    document_type: TaxDocumentType = TaxDocumentType.K1


class TaxDocumentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    fund_id: uuid.UUID
    capital_account_id: uuid.UUID
    tax_year: int
    document_type: TaxDocumentType

    total_distributions: Decimal
    ordinary_income: Decimal
    qualified_dividends: Decimal
    long_term_gains: Decimal
    short_term_gains: Decimal
    return_of_capital: Decimal
    status: TaxDocumentStatus
