from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import Date, DateTime, Numeric, String, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from app.shared.enums import AccessLevel


# Column types shared by every ledger table.
MONEY = Numeric(20, 2)
SHARES = Numeric(20, 6)
RATE = Numeric(10, 6)


class Base(DeclarativeBase):
    type_annotation_map: dict[Any, Any] = {
        dt.datetime: DateTime(timezone=True),
        dt.date: Date,
        Decimal: MONEY,
    }


class IdMixin:
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        default=uuid.uuid4,
        primary_key=True,
        index=True,
    )


class FundScopedMixin:
    fund_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), index=True)
    access_level: Mapped[str] = mapped_column(
        String(32),
        default=AccessLevel.internal.value,
        index=True,
    )


class CreatedMetaMixin:
    """Append-only rows: creation stamp only, never updated."""

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)


class AuditMetaMixin(CreatedMetaMixin):
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
    updated_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
