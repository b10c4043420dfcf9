"""
api/main.py -- FastAPI application entry point for Gatehouse.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. request logging       -- method, path, status and latency per request

Lifespan builds the auth object graph once and parks it on app.state:

  SqlCredentialStore --+--> Authenticator (LoginStrategy, RegisterStrategy)
  CredentialHasher ----+
  SessionStore ------------> SessionIdentityManager --> AuthenticationGate

Request handlers only ever reach these through app.state -- nothing in auth/
holds a module-level connection. A bad BCRYPT_ROUNDS or SECRET_KEY fails here,
at startup, not on the first login.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.gate import AuthenticationGate
from auth.hashing import CredentialHasher
from auth.session import SessionIdentityManager
from auth.store import CredentialStoreError, SessionStore, SqlCredentialStore
from auth.strategies import Authenticator
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatehouse.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired session rows every hour.

    Expired sessions are already rejected on read; this only keeps the table
    from growing. CancelledError from task.cancel() during shutdown
    propagates out of asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(60 * 60)
        try:
            removed = app.state.session_store.purge_expired()
        except CredentialStoreError:
            logger.exception("Session purge failed; will retry next cycle")
            continue
        if removed:
            logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def wire_auth(app: FastAPI, store: SqlCredentialStore, hasher: CredentialHasher) -> None:
    """Attach the auth object graph for store/hasher to app.state."""
    settings = get_settings()
    app.state.user_store = store
    app.state.session_store = SessionStore(store.engine)
    app.state.authenticator = Authenticator(store, hasher)
    app.state.session_manager = SessionIdentityManager(
        store, app.state.session_store, max_age=settings.session_expire_seconds
    )
    app.state.gate = AuthenticationGate(app.state.session_manager)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build stores and strategies on startup; dispose them on shutdown."""
    settings = get_settings()
    logger.info("Gatehouse starting up")
    hasher = CredentialHasher(rounds=settings.bcrypt_rounds)
    wire_auth(app, SqlCredentialStore(settings.database_url), hasher)
    logger.info("Auth initialized (bcrypt rounds=%d)", hasher.rounds)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.user_store.close()
    logger.info("Gatehouse shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatehouse",
    description="Password login, registration and server-side sessions.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost", "testserver"],
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
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(CredentialStoreError)
async def store_error_handler(request: Request, exc: CredentialStoreError) -> JSONResponse:
    """Session or credential storage failed outside a strategy (e.g. creating
    the session row after a successful login, or deleting it on logout)."""
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content=ErrorResponse(
            error=ErrorDetail(
                code="store_unavailable",
                message="The account service is temporarily unavailable. Please try again.",
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the database answers."""
    database = "ok" if request.app.state.user_store.ping() else "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
