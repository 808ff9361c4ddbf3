from __future__ import annotations

from collections.abc import Iterable

from fastapi import Depends, HTTPException, status

from app.core.config import settings
from app.core.security.auth import Actor
from app.core.security.dependencies import get_actor
from app.shared.enums import Role


# Mutations: period close, fee settlement, statement finalization, carry distribution.
WRITE_ROLES = frozenset({Role.GP, Role.FUND_ADMIN})
# Ledger audit and carry inspection.
OVERSIGHT_ROLES = frozenset({Role.FUND_ADMIN, Role.AUDITOR, Role.COMPLIANCE})
READ_ROLES = WRITE_ROLES | OVERSIGHT_ROLES | {Role.INVESTOR}


def require_role(allowed_roles: Iterable[Role]):
    """Route dependency returning the current Actor when it holds one of `allowed_roles`.

    ADMIN always passes. The dev bypass flag skips the check entirely.
    """
    allowed = frozenset(Role(r) for r in allowed_roles)

    def _inner(actor: Actor = Depends(get_actor)) -> Actor:
        if settings.AUTHZ_BYPASS_ENABLED:
            return actor
        held = set(actor.roles)
        if Role.ADMIN in held or held & allowed:
            return actor
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")

    return _inner
