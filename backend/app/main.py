from __future__ import annotations

from fastapi import FastAPI

from app.core.http import register_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware.request_id import RequestIdMiddleware
from app.domain.carry.routes.carry import router as carry_router
from app.domain.fees.routes.fees import router as fees_router
from app.domain.ledger.routes.ledger import router as ledger_router
from app.domain.period_close.routes.period_close import router as period_close_router
from app.domain.reporting.routes.statements import router as statements_router
from app.domain.tax.routes.tax import router as tax_router


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Capital Ledger & Performance Attribution Engine", version="0.1.0")
    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    @app.get("/health", tags=["admin"])
    def health() -> dict[str, str]:
        return {"status": "ok"}

    for router in (
        ledger_router,
        fees_router,
        carry_router,
        statements_router,
        tax_router,
        period_close_router,
    ):
        app.include_router(router)

    return app


app = create_app()
