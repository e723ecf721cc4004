
# main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.container import UNSET, build_services
from app.errors import GatewayUnavailable, PersistenceFailure, ValidationError
from app.notifications.notifier import Notifier
from app.scheduling import Clock, Scheduler
from app.transactions.store import TransactionStore
from middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from routes.health import router as health_router
from routes.metrics import router as metrics_router
from routes.payments import router as payments_router
from routes.webhooks import router as webhooks_router
from services.observability import configure_logging
from settings import Settings, settings as default_settings, validate_env_settings

logger = logging.getLogger("pushpay.app")


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[TransactionStore] = None,
    gateway: Any = UNSET,
    scheduler: Optional[Scheduler] = None,
    clock: Optional[Clock] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    if settings is None:
        validate_env_settings()
        settings = default_settings
    configure_logging(settings.LOG_LEVEL)

    services = build_services(
        settings,
        store=store,
        gateway=gateway,
        scheduler=scheduler,
        clock=clock,
        notifier=notifier,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services.start()
        logger.info("startup env=%s gateway_mode=%s", settings.ENV, services.gateway_mode)
        try:
            yield
        finally:
            services.close()
            logger.info("shutdown complete")

    app = FastAPI(title="PushPay API", version="1.0.0", lifespan=lifespan)
    app.state.services = services
    app.state.settings = settings

    # -----------------------------
    # MIDDLEWARE
    # -----------------------------
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(payments_router)
    app.include_router(webhooks_router)

    # -----------------------------
    # ERRORS
    # -----------------------------
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(400, exc.message, field=exc.field)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return _error(400, "Invalid request body")

    @app.exception_handler(GatewayUnavailable)
    async def gateway_unavailable_handler(request: Request, exc: GatewayUnavailable):
        return _error(502, exc.message)

    @app.exception_handler(PersistenceFailure)
    async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
        logger.error("persistence_failure path=%s error=%s", request.url.path, exc.message)
        return _error(503, "Storage unavailable, please retry")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()
