from __future__ import annotations

import datetime as dt
import uuid
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from app.core.db.models import AuditEvent
from app.core.middleware.audit import get_actor_id, get_actor_roles, get_request_id
from app.shared.utils import sa_model_to_dict


def _json_safe(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        # Ledger amounts stay exact in the audit trail.
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return str(value)


def write_audit_event(
    db: Session,
    *,
    fund_id: uuid.UUID,
    actor_id: str | None = None,
    actor_roles: list[str] | None = None,
    request_id: str | None = None,
    action: str,
    entity_type: str,
    entity_id: str | uuid.UUID,
    before: dict[str, Any] | None,
    after: dict[str, Any] | None,
    access_level: str = "internal",
) -> AuditEvent:
    request_id = request_id or get_request_id() or "batch"
    actor_id = actor_id or get_actor_id() or "system"
    actor_roles = actor_roles or get_actor_roles()

    event = AuditEvent(
        fund_id=fund_id,
        access_level=access_level,
        actor_id=actor_id,
        actor_roles=actor_roles,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before=_json_safe(before),
        after=_json_safe(after),
        request_id=request_id,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(event)
    db.flush()
    return event


def audit_row(
    db: Session,
    row: Any,
    *,
    action: str,
    entity_type: str,
    actor_id: str | None,
    before: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
) -> AuditEvent:
    """Audit a created or transitioned ORM row using its current column values as `after`."""
    after = sa_model_to_dict(row)
    if extra:
        after.update(extra)
    return write_audit_event(
        db,
        fund_id=row.fund_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=row.id,
        before=before,
        after=after,
    )
