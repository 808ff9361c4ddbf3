from __future__ import annotations

from typing import Iterable

from structlog import contextvars


def bind_request(request_id: str, *, method: str | None = None, path: str | None = None) -> None:
    contextvars.bind_contextvars(request_id=request_id, http_method=method, http_path=path)


def set_actor(actor_id: str, roles: Iterable[str]) -> None:
    contextvars.bind_contextvars(actor_id=actor_id, actor_roles=list(roles))


def clear_request_context() -> None:
    contextvars.clear_contextvars()


def _bound(key: str) -> str | None:
    v = contextvars.get_contextvars().get(key)
    return str(v) if v is not None else None


def get_request_id() -> str | None:
    return _bound("request_id")


def get_actor_id() -> str | None:
    return _bound("actor_id")


def get_actor_roles() -> list[str]:
    roles = contextvars.get_contextvars().get("actor_roles")
    if isinstance(roles, list):
        return [str(r) for r in roles]
    return []
