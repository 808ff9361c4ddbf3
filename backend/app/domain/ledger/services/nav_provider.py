from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain.ledger.models.nav_marks import NAVMark
from app.domain.ledger.models.share_classes import ShareClass
from app.shared.exceptions import PreconditionFailed
from app.shared.utils import quantize


@dataclass(frozen=True)
class NAVQuote:
    """NAV resolved for a (fund, share class, cutoff), already rounded to class precision."""

    mark_id: uuid.UUID
    fund_id: uuid.UUID
    share_class_id: uuid.UUID | None
    calculation_date: date
    nav_per_share: Decimal


def _latest_mark(
    db: Session,
    *,
    fund_id: uuid.UUID,
    as_of: date,
    share_class_id: uuid.UUID | None,
) -> NAVMark | None:
    stmt = select(NAVMark).where(NAVMark.fund_id == fund_id, NAVMark.calculation_date <= as_of)
    if share_class_id is None:
        stmt = stmt.where(NAVMark.share_class_id.is_(None))
    else:
        stmt = stmt.where(NAVMark.share_class_id == share_class_id)
    stmt = stmt.order_by(NAVMark.calculation_date.desc(), NAVMark.version.desc()).limit(1)
    return db.execute(stmt).scalar_one_or_none()


def find_nav_as_of(
    db: Session,
    *,
    fund_id: uuid.UUID,
    as_of: date,
    share_class_id: uuid.UUID | None = None,
) -> NAVQuote | None:
    """Most recent mark at or before `as_of`. A class mark beats a fund-level mark of the same date."""
    mark = _latest_mark(db, fund_id=fund_id, as_of=as_of, share_class_id=None)
    precision: int | None = None
    if share_class_id is not None:
        class_mark = _latest_mark(db, fund_id=fund_id, as_of=as_of, share_class_id=share_class_id)
        if class_mark is not None and (mark is None or class_mark.calculation_date >= mark.calculation_date):
            mark = class_mark
        share_class = db.get(ShareClass, share_class_id)
        if share_class is not None:
            precision = share_class.share_price_precision
    if mark is None:
        return None

    nav = mark.nav_per_share
    if precision is not None:
        nav = quantize(nav, precision)
    return NAVQuote(
        mark_id=mark.id,
        fund_id=mark.fund_id,
        share_class_id=mark.share_class_id,
        calculation_date=mark.calculation_date,
        nav_per_share=nav,
    )


def nav_as_of(
    db: Session,
    *,
    fund_id: uuid.UUID,
    as_of: date,
    share_class_id: uuid.UUID | None = None,
) -> NAVQuote:
    quote = find_nav_as_of(db, fund_id=fund_id, as_of=as_of, share_class_id=share_class_id)
    if quote is None:
        raise PreconditionFailed(f"No NAV mark at or before {as_of.isoformat()} for fund {fund_id}")
    return quote


def fund_has_any_nav(db: Session, *, fund_id: uuid.UUID, as_of: date) -> bool:
    stmt = select(NAVMark.id).where(NAVMark.fund_id == fund_id, NAVMark.calculation_date <= as_of).limit(1)
    return db.execute(stmt).first() is not None
