"""
FastAPI application factory.

* Builds the process-wide clients (database engine, Redis, identity
  verifier, notifier) once and keeps them on ``app.state``.
* Registers routes for offers and admin.
* Starts / stops the offer expiry worker via lifespan events.
* Renders every error as ``{"success": false, "error", "code"}``.
* Applies CORS and rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
from http import HTTPStatus
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException as StarletteHTTPException

from offer_resolution.api.middleware import limiter
from offer_resolution.api.routes import admin, offers
from offer_resolution.config import Settings, settings as default_settings
from offer_resolution.domain.errors import (
    ErrorKind,
    InvalidRequest,
    OfferResolutionError,
    StorageFailure,
)
from offer_resolution.infrastructure.database import build_engine, build_session_factory
from offer_resolution.infrastructure.identity import HttpIdentityVerifier, IdentityVerifier
from offer_resolution.infrastructure.notifier import Notifier, RedisNotifier
from offer_resolution.infrastructure.redis_client import build_redis
from offer_resolution.services.acceptance import AcceptanceEngine
from offer_resolution.services.fanout import NotificationFanout
from offer_resolution.workers.offer_expiry import OfferExpiryWorker

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_RESOLVED: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.STORAGE_FAILURE: 500,
    ErrorKind.NOTIFICATION_FAILURE: 500,
}

_LEGACY_FLATTENED = {
    ErrorKind.FORBIDDEN,
    ErrorKind.NOT_FOUND,
    ErrorKind.ALREADY_RESOLVED,
    ErrorKind.CONFLICT,
}


def status_for(kind: ErrorKind, legacy: bool = False) -> int:
    if legacy and kind in _LEGACY_FLATTENED:
        return 400
    return _STATUS_BY_KIND.get(kind, 500)


def _error_body(message: str, code: str) -> dict:
    return {"success": False, "error": message, "code": code}


async def _domain_error_handler(request: Request, exc: OfferResolutionError):
    legacy = request.app.state.settings.legacy_status_codes
    return JSONResponse(
        status_code=status_for(exc.kind, legacy),
        content=_error_body(exc.message, exc.kind.value),
    )


async def _http_error_handler(request: Request, exc: StarletteHTTPException):
    code = HTTPStatus(exc.status_code).phrase.lower().replace(" ", "_")
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(request: Request, exc: RequestValidationError):
    err = InvalidRequest("Invalid request parameters")
    return JSONResponse(status_code=400, content=_error_body(err.message, err.kind.value))


async def _rate_limit_handler(request: Request, exc: RateLimitExceeded):
    response = JSONResponse(
        status_code=429,
        content=_error_body(f"Rate limit exceeded: {exc.detail}", "rate_limited"),
    )
    return request.app.state.limiter._inject_headers(
        response, getattr(request.state, "view_rate_limit", None)
    )


async def _unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body(
            StorageFailure.default_message, ErrorKind.STORAGE_FAILURE.value
        ),
    )


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[AsyncEngine] = None,
    identity_verifier: Optional[IdentityVerifier] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    settings = settings or default_settings

    db_engine = engine or build_engine(settings.database_url)
    session_factory = build_session_factory(db_engine)
    redis = build_redis(settings.redis_url)
    verifier = identity_verifier or HttpIdentityVerifier(
        settings.identity_url,
        api_key=settings.identity_api_key,
        timeout_seconds=settings.identity_timeout_seconds,
    )
    expiry_worker = OfferExpiryWorker(
        session_factory,
        redis,
        interval_seconds=settings.offer_expiry_interval_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the expiry worker on startup; release clients on shutdown."""
        await expiry_worker.start()
        yield
        await expiry_worker.stop()
        if isinstance(verifier, HttpIdentityVerifier):
            await verifier.aclose()
        await redis.aclose()
        await db_engine.dispose()

    app = FastAPI(
        title="Offer Resolution API",
        description=(
            "Lets a passenger accept one driver's offer for a ride.  "
            "Exactly one driver wins under concurrent acceptances; all "
            "competing offers are rejected and every party is notified."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.identity_verifier = verifier
    app.state.acceptance_engine = AcceptanceEngine(
        session_factory, timeout_seconds=settings.transaction_timeout_seconds
    )
    app.state.fanout = NotificationFanout(
        notifier or RedisNotifier(redis, settings.notification_queue),
        timeout_seconds=settings.notification_timeout_seconds,
    )
    app.state.expiry_worker = expiry_worker

    # Error rendering
    app.add_exception_handler(OfferResolutionError, _domain_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    # Routers
    app.include_router(offers.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
