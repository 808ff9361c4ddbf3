from __future__ import annotations

import datetime as dt
import uuid
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from sqlalchemy import inspect

from app.core.config import settings


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() first so floats keep their printed value instead of binary noise.
    return Decimal(str(value))


def quantize(value, places: int) -> Decimal:
    exp = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exp, rounding=ROUND_HALF_UP)


def money(value) -> Decimal:
    return quantize(value, settings.MONEY_DECIMAL_PLACES)


def shares(value) -> Decimal:
    return quantize(value, settings.SHARE_DECIMAL_PLACES)


def sa_model_to_dict(obj) -> dict:
    """Shallow column-only serialization for audit before/after snapshots."""
    mapper = inspect(obj)
    data: dict = {}
    for attr in mapper.mapper.column_attrs:
        key = attr.key
        val = getattr(obj, key)
        if isinstance(val, uuid.UUID):
            data[key] = str(val)
        elif isinstance(val, (dt.date, dt.datetime)):
            data[key] = val.isoformat()
        elif isinstance(val, Decimal):
            # Preserve exact value (avoid float rounding).
            data[key] = str(val)
        elif isinstance(val, Enum):
            # Prefer stable wire/value representation.
            data[key] = val.value
        else:
            data[key] = val
    return data
