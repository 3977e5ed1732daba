from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.audit_middleware import audit_http_middleware
from app.core.config import Settings, get_settings
from app.core.errors import install_exception_handlers
from app.core.logging_config import configure_logging
from app.core.middleware import RequestContextMiddleware
from app.db.session import Database

from services.auth.api import router as auth_router
from services.factories.api import router as factories_router
from services.orders.api import send_router, receive_router
from services.payments.api import router as payments_router
from services.statement.api import router as statement_router


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_db = app.state.db is None
        if owns_db:
            app.state.db = Database(settings)
        try:
            yield
        finally:
            if owns_db:
                app.state.db.dispose()
                app.state.db = None

    app = FastAPI(title="Garment Factory Ledger", lifespan=lifespan)
    app.state.settings = settings
    # Injected databases (tests, scripts) are owned by the caller.
    app.state.db = database

    install_exception_handlers(app, settings)

    @app.middleware("http")
    async def _audit(request, call_next):
        return await audit_http_middleware(request, call_next)

    # Added last so it runs first and the request id is bound for everything below.
    app.add_middleware(RequestContextMiddleware)

    app.include_router(auth_router, prefix="/api")
    app.include_router(factories_router, prefix="/api")
    app.include_router(payments_router, prefix="/api")
    app.include_router(send_router, prefix="/api")
    app.include_router(receive_router, prefix="/api")
    app.include_router(statement_router, prefix="/api")

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
