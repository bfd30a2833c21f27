"""
api/main.py -- FastAPI application entry point for the EquitySight auth service.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware -- browser clients call from the site origin; answers
     OPTIONS preflight with 204-style responses before any route runs.
  2. log_requests   -- one log line per request with latency.

Lifespan builds the backing store and every auth component from Settings
once, parks them on app.state.auth, and closes the store on shutdown.
Requests share nothing else: all cross-request state lives in the store.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.dependencies import build_auth_services
from core.config import Settings, get_settings
from core.errors import ServiceError
from store.base import KeyValueStore
from store.sql import SQLStore
from store.upstash import UpstashStore

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("equitysight.api")


# ---------------------------------------------------------------------------
# Store construction
# ---------------------------------------------------------------------------


def build_store(settings: Settings) -> KeyValueStore:
    """Return the configured KeyValueStore backend.

    The Upstash backend is returned even when its credentials are missing;
    every call then raises UpstreamError, so the service starts and reports
    the misconfiguration per request instead of crashing.
    """
    if settings.store_backend == "sql":
        logger.info("Using SQL key-value store")
        return SQLStore(settings.store_db_url)
    if not settings.upstash_configured:
        logger.error("UPSTASH_REDIS_REST_URL / UPSTASH_REDIS_REST_TOKEN not set -- auth requests will fail")
    return UpstashStore(
        settings.upstash_redis_rest_url,
        settings.upstash_redis_rest_token,
        timeout=settings.store_timeout_seconds,
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    if settings.debug:
        logging.getLogger("equitysight").setLevel(logging.DEBUG)
    store = build_store(settings)
    app.state.auth = build_auth_services(store, settings.auth_salt, settings.token_ttl_seconds)
    logger.info("Auth service started (backend=%s, ttl=%ds)", settings.store_backend, settings.token_ttl_seconds)

    yield

    app.state.auth.store.close()
    logger.info("Auth service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="EquitySight Auth API",
    description="Accounts, bearer sessions, and role administration for EquitySight.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_allow_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
# Legacy path the browser clients were built against.
app.include_router(auth_router, prefix="/.netlify/functions", include_in_schema=False)


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure returns {ok: false, error: message} so clients can branch on
# "ok" alone. Status codes follow the error class.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(400, "Invalid request")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 405:
        return _error(405, "Method not allowed")
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. The traceback goes to the log only."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness and whether the backing store answers."""
    store_ok = request.app.state.auth.store.ping()
    return HealthResponse(
        status="healthy" if store_ok else "degraded",
        version=__version__,
        components={"app": "ok", "store": "ok" if store_ok else "error"},
    )
