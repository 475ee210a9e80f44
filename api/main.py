"""
api/main.py -- FastAPI application entry point for CoilLedger.

Exposes the ledger's invoke/query operation surface over HTTP. The API is a
thin transport: callers are resolved from Bearer JWTs (auth/), operations are
executed by core.operations.Dispatcher, and state lives in the ledger store.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan opens the ledger store (and initializes an empty asset index on a
fresh ledger) on startup and closes it on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.ledger import router as ledger_router
from core.config import get_settings
from core.errors import (
    CorruptRecord,
    DuplicateAsset,
    InvalidInput,
    LedgerError,
    NotFound,
    NotFullyManufactured,
    PermissionDenied,
    StoreError,
)
from core.operations import Dispatcher
from ledger.records import initialize
from ledger.store import SQLKeyValueStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("coilledger.api")

# HTTP status per LedgerError subclass. Checked in order, so subclasses of
# InvalidInput (UnknownOperation) resolve through their parent.
_ERROR_STATUS: tuple[tuple[type[LedgerError], int], ...] = (
    (InvalidInput, 400),
    (PermissionDenied, 403),
    (NotFound, 404),
    (DuplicateAsset, 409),
    (NotFullyManufactured, 409),
    (CorruptRecord, 500),
    (StoreError, 503),
)


def _status_for(exc: LedgerError) -> int:
    for error_type, status in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the ledger on startup and release it on shutdown."""
    logger.info("CoilLedger API starting up")
    settings = get_settings()
    store = SQLKeyValueStore(settings.ledger_url) if settings.ledger_url else SQLKeyValueStore()
    initialize(store)
    app.state.store = store
    app.state.dispatcher = Dispatcher(store)
    logger.info("Ledger initialized")

    yield

    app.state.store.close()
    logger.info("CoilLedger API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CoilLedger API",
    description="Permissioned lifecycle ledger for steel coils.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost"],
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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


app.include_router(ledger_router, prefix="/api/v1", tags=["Ledger"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves the API as an ErrorResponse envelope. Ledger errors keep
# their own code (invalid_input, permission_denied, ...) so a client can branch
# on error.code alone.
# ---------------------------------------------------------------------------


def _error(status: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status, content=body.model_dump())


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map a ledger operation failure to its HTTP status and error code."""
    status = _status_for(exc)
    if status >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return _error(status, exc.code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _error(429, "rate_limited", "Too many invocations; slow down.", detail=str(exc))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Malformed request body.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Auth dependencies raise with a {code, message} dict; pass it through as the error."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # The traceback goes to the log only, never into the response.
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint -- outside the router, unauthenticated and never rate limited
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=VERSION)
