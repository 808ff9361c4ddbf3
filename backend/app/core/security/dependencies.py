from __future__ import annotations

import uuid
from collections.abc import Callable

import structlog
from fastapi import Depends, HTTPException, Path, Request, status

from app.core.middleware.audit import set_actor
from app.core.security.auth import Actor, actor_from_request


logger = structlog.get_logger(__name__)


def get_actor(request: Request) -> Actor:
    try:
        actor = actor_from_request(request)
    except (PermissionError, NotImplementedError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    except Exception:
        logger.warning("auth.actor.rejected", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    set_actor(actor.actor_id, [r.value for r in actor.roles])
    return actor


def get_fund_id(fund_id: uuid.UUID = Path(...)) -> uuid.UUID:
    return fund_id


def require_fund_access() -> Callable[[uuid.UUID, Actor], uuid.UUID]:
    def _dep(fund_id: uuid.UUID = Depends(get_fund_id), actor: Actor = Depends(get_actor)) -> uuid.UUID:
        if not actor.can_access_fund(fund_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden for this fund")
        return fund_id

    return _dep
