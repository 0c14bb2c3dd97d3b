"""
api/main.py -- FastAPI application for the magic-login companion server.

This is the redemption side of magic-login: it answers magic links minted by
the CLI (main.py) and turns them into a session cookie.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests whose Host is not HOME_URL's host
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (stores, endpoint registry, purge task) and
shutdown (cancel purge task, close DB connections) symmetrically.
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
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.magic import router as magic_router
from api.routes.v1.auth import router as auth_router
from auth.endpoint import EndpointRegistry
from auth.store import AccountStore
from cache.store import TokenCache
from core.companion import CompanionServer
from core.config import get_settings
from core.options import OptionStore

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("magiclogin.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Purge expired magic link records every 10 minutes.

    Expired records are already unreadable; this only reclaims space held by
    links nobody redeemed, including those orphaned by an endpoint rotation.
    """
    while True:
        await asyncio.sleep(10 * 60)
        removed = app.state.token_cache.purge_expired()
        if removed:
            logger.info("Purged %d expired magic link record(s)", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the shared stores on startup and close them on shutdown.

    Startup order matters: the option store backs both the endpoint registry
    and the companion state, so it is opened first. The purge task runs last
    because it references app.state.token_cache.
    """
    logger.info("magic-login server starting up")
    app.state.options = OptionStore(_settings.database_url)
    app.state.registry = EndpointRegistry(app.state.options)
    app.state.companion = CompanionServer(app.state.options)
    app.state.account_store = AccountStore(_settings.database_url)
    app.state.token_cache = TokenCache(_settings.token_db_path)
    if not app.state.companion.is_active():
        logger.warning("Companion server is not active -- magic links will not resolve until it is toggled on")
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    app.state.token_cache.close()
    app.state.account_store.close()
    app.state.options.close()
    logger.info("magic-login server shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="magic-login",
    description="Companion server that redeems single-use magic login links.",
    version=API_VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=[_settings.domain, "localhost", "127.0.0.1"],
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, status, and latency. The path is left out: it holds a live token."""
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %d %.1fms %s",
        request.method,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Health endpoint
#
# Registered before the magic router so the catch-all two-segment route can
# never shadow it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the option store answers."""
    components = {"app": "ok"}
    try:
        request.app.state.companion.is_installed()
        components["database"] = "ok"
    except Exception:
        logger.exception("Health check could not reach the option store")
        components["database"] = "error"
    return HealthResponse(version=API_VERSION, components=components)


# ---------------------------------------------------------------------------
# Router registration -- magic_router MUST stay last
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(magic_router, tags=["Magic login"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request params fail validation."""
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


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all HTTP exceptions.

    Registered on Starlette's base class so router-level 404s for unknown
    paths and the 404s raised by the redemption route render identically.
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


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors, StorageFault included.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s", request.method)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )
