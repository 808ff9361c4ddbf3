from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.db.session import get_db
from app.core.security.dependencies import require_fund_access
from app.core.security.rbac import READ_ROLES, WRITE_ROLES, require_role
from app.domain.tax.schemas.tax import (
    TaxCharacterizationCreate,
    TaxCharacterizationOut,
    TaxDocumentOut,
    TaxDocumentsGenerate,
)
from app.domain.tax.services import tax_documents
from app.shared.enums import Role


router = APIRouter(prefix="/funds/{fund_id}/tax", tags=["Tax Documents"], dependencies=[Depends(require_fund_access())])


@router.post("/characterizations", response_model=TaxCharacterizationOut, status_code=status.HTTP_201_CREATED)
def set_characterization(
    fund_id: uuid.UUID,
    payload: TaxCharacterizationCreate,
    db: Session = Depends(get_db),
    actor=Depends(require_role([Role.FUND_ADMIN])),
):
    return tax_documents.set_characterization(db, fund_id=fund_id, actor_id=actor.id, **payload.model_dump())


@router.post("/documents/generate")
def generate_documents(
    fund_id: uuid.UUID,
    payload: TaxDocumentsGenerate,
    db: Session = Depends(get_db),
    actor=Depends(require_role(WRITE_ROLES)),
) -> dict:
    result = tax_documents.generate_tax_documents(
        db,
        fund_id=fund_id,
        tax_year=payload.tax_year,
        document_type=payload.document_type,
        actor_id=actor.id,
    )
    return result.to_dict()


@router.get("/documents", response_model=list[TaxDocumentOut])
def list_documents(
    fund_id: uuid.UUID,
    tax_year: int | None = Query(default=None),
    db: Session = Depends(get_db),
    actor=Depends(require_role(READ_ROLES)),
):
    return tax_documents.list_tax_documents(db, fund_id=fund_id, tax_year=tax_year)
