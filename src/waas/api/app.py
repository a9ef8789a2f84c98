"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from waas.api.middleware import RateLimitMiddleware, SecurityHeadersMiddleware
from waas.config import Settings, get_settings
from waas.custody.manager import CustodyManager
from waas.errors import WalletError
from waas.execution.engine import TransactionEngine
from waas.limits import SpendLimiter, get_spend_limiter
from waas.store.base import RecordStore
from waas.store.factory import create_record_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    yield
    await app.state.store.close()


async def wallet_error_handler(request: Request, exc: WalletError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": detail})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc!r}")
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal error"})


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RecordStore] = None,
    engine: Optional[TransactionEngine] = None,
    limiter: Optional[SpendLimiter] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators default to ones built from settings; tests pass their own.
    """
    if settings is None:
        settings = get_settings()
    if store is None:
        store = create_record_store(settings)
    if engine is None:
        engine = TransactionEngine.from_settings(settings, store)
    if limiter is None:
        limiter = get_spend_limiter()

    app = FastAPI(
        title="WaaS API",
        description="Custodial wallet backend",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.custody = CustodyManager.from_settings(store, settings)
    app.state.engine = engine
    app.state.limiter = limiter

    app.add_exception_handler(WalletError, wallet_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Middleware: last added runs first
    app.add_middleware(SecurityHeadersMiddleware)
    if settings.rate_limit_per_minute > 0:
        app.add_middleware(RateLimitMiddleware, limit_per_minute=settings.rate_limit_per_minute)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "x-api-key"],
    )

    from waas.api.routes import auth, health, wallet

    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router)
    app.include_router(wallet.router)

    return app
