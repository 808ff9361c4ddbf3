from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import jwt
from jwt import PyJWKClient
from sqlalchemy import select
from starlette.requests import Request

from app.core.config import settings
from app.core.db.models import User, UserFundRole
from app.core.db.session import get_session_local
from app.shared.enums import Env, Role


@dataclass(frozen=True)
class Actor:
    actor_id: str
    roles: tuple[Role, ...]
    fund_ids: tuple[uuid.UUID, ...]
    is_admin: bool = False

    @property
    def id(self) -> str:
        return self.actor_id

    def can_access_fund(self, fund_id: uuid.UUID) -> bool:
        return self.is_admin or fund_id in set(self.fund_ids)


def _parse_dev_actor_header(raw: str) -> Actor:
    """
    DEV ONLY: X-DEV-ACTOR header payload as JSON.

    Example:
      {"actor_id":"ops-user","roles":["FUND_ADMIN"],"fund_ids":["<fund uuid>"]}
    """
    payload = json.loads(raw)
    roles = tuple(Role(r) for r in payload.get("roles", []))
    fund_ids_raw = payload.get("fund_ids", [])
    fund_ids = tuple(uuid.UUID(str(v)) for v in fund_ids_raw if v != "*")
    return Actor(
        actor_id=str(payload["actor_id"]),
        roles=roles,
        fund_ids=fund_ids,
        is_admin=Role.ADMIN in roles or "*" in fund_ids_raw,
    )


def _get_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if not auth or not auth.lower().startswith("bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


@lru_cache(maxsize=1)
def _jwk_client() -> PyJWKClient:
    return PyJWKClient(str(settings.oidc_jwks_url))


def _verify_jwt(token: str) -> dict[str, Any]:
    """Verify an OIDC access token against the configured JWKS endpoint."""
    if not settings.oidc_jwks_url:
        raise NotImplementedError("OIDC JWKS URL is not configured")
    signing_key = _jwk_client().get_signing_key_from_jwt(token)
    options = {"verify_aud": bool(settings.oidc_audience), "verify_iss": bool(settings.oidc_issuer)}
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        audience=settings.oidc_audience,
        issuer=settings.oidc_issuer,
        options=options,
    )


def _claim_roles(claims: dict[str, Any]) -> set[Role]:
    out: set[Role] = set()
    for value in claims.get("roles") or []:
        try:
            out.add(Role(str(value)))
        except ValueError:
            continue
    return out


def _load_user_context(actor_id: str, email: str | None) -> tuple[set[Role], set[uuid.UUID]]:
    session = get_session_local()()
    try:
        user = session.execute(select(User).where(User.external_id == actor_id)).scalar_one_or_none()
        if user is None and email:
            user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if user is None:
            return set(), set()

        rows = session.execute(select(UserFundRole.role, UserFundRole.fund_id).where(UserFundRole.user_id == user.id)).all()
        roles: set[Role] = set()
        funds: set[uuid.UUID] = set()
        for role_value, fund_id in rows:
            try:
                roles.add(Role(str(role_value)))
            except ValueError:
                continue
            funds.add(fund_id)
        return roles, funds
    finally:
        session.close()


def actor_from_request(request: Request) -> Actor:
    if settings.env == Env.dev:
        raw = request.headers.get(settings.dev_actor_header)
        if raw:
            return _parse_dev_actor_header(raw)

    token = _get_bearer_token(request)
    if not token:
        raise PermissionError("Missing bearer token")

    claims = _verify_jwt(token)
    actor_id = str(claims.get("oid") or claims.get("sub") or "unknown")
    email = claims.get("email") or claims.get("preferred_username")

    db_roles, db_funds = _load_user_context(actor_id=actor_id, email=str(email) if email else None)
    roles = _claim_roles(claims).union(db_roles) or {Role.INVESTOR}
    return Actor(
        actor_id=actor_id,
        roles=tuple(sorted(roles, key=lambda value: value.value)),
        fund_ids=tuple(sorted(db_funds, key=str)),
        is_admin=Role.ADMIN in roles,
    )
