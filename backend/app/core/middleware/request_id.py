from __future__ import annotations

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.middleware.audit import bind_request, clear_request_context


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Starts a fresh log context per request and echoes the request id back."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_request_context()
        request_id = request.headers.get(self.header_name) or uuid.uuid4().hex
        bind_request(request_id, method=request.method, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers[self.header_name] = request_id
        return response
