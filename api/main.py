"""
api/main.py -- FastAPI application entry point for Roster.

Exposes passwordless email-code login plus user, role and settings
administration over HTTP for the admin frontend.

Run with:      python main.py serve
               uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware        -- only FRONTEND_URL may call the API from a browser
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (store, cache, mailer, services, default settings)
and shutdown (close cache and DB connections) symmetrically.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.settings import router as settings_router
from api.routes.v1.users import router as users_router
from auth.audit import AuditRecorder
from auth.codes import CodeIssuer
from auth.dependencies import get_current_subject
from auth.login import LoginVerifier, SessionRefresher
from auth.models import Subject
from auth.tokens import create_access_token
from cache.store import CodeCache
from core.config import Settings, get_settings
from core.errors import RateLimited, RosterError, ValidationFailed
from directory.service import DirectoryService
from directory.store import DirectoryStore
from mail.sender import EmailSender

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("roster.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(
    app: FastAPI,
    store: DirectoryStore,
    cache: CodeCache,
    mailer: EmailSender,
    settings: Settings,
) -> None:
    """Build every service from its collaborators and attach them to app.state.

    Shared by the real lifespan and the test lifespan so both wire the same
    graph; only the leaves (store, cache, mailer) differ.
    """
    app.state.store = store
    app.state.cache = cache
    app.state.mailer = mailer
    app.state.directory = DirectoryService(store)
    app.state.audit = AuditRecorder(store)
    app.state.code_issuer = CodeIssuer(
        cache,
        mailer,
        code_ttl=settings.email_code_expiry,
        cooldown_ttl=settings.send_code_cooldown,
    )
    app.state.login_verifier = LoginVerifier(store, cache, app.state.audit, mailer, create_access_token)
    app.state.session_refresher = SessionRefresher(create_access_token)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Pattern: asynccontextmanager lifespan. Everything before yield runs on
    startup; everything after yield runs on shutdown.

    Startup order matters:
      1. Store first -- creates tables, so default settings can be seeded.
      2. Cache second -- a failed ping is logged, not fatal; /health reports it.
      3. Services last -- they take the store, cache and mailer as arguments.
    """
    logger.info("Roster API starting up")
    store = DirectoryStore(_settings.database_url)
    cache = CodeCache.from_url(_settings.cache_url)
    if not cache.ping():
        logger.warning("Redis unreachable at startup -- login codes unavailable until it recovers")
    mailer = EmailSender.from_settings(_settings)
    wire_services(app, store, cache, mailer, _settings)
    seeded = app.state.directory.seed_default_settings()
    logger.info("Directory initialized (%d default setting(s) seeded)", seeded)

    yield

    cache.close()
    store.close()
    logger.info("Roster API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Roster API",
    description="Passwordless email-code login with user, role and settings administration.",
    version=API_VERSION,
    lifespan=lifespan,
    # Disable built-in /docs and /redoc so we can add auth protection.
    # Auth-protected equivalents are registered below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them: CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=[_settings.frontend_url],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Pattern: Interceptor / Chain of Responsibility. Every request passes through
# this coroutine before reaching any route handler. We capture wall-clock time
# before and after call_next so we can report latency on every response.
# ---------------------------------------------------------------------------


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
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(roles_router, prefix="/api/v1", tags=["Roles"])
app.include_router(settings_router, prefix="/api/v1", tags=["Settings"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
#
# /docs and /redoc are disabled on the FastAPI() constructor and replaced here
# with routes that require a valid bearer token.
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(subject: Subject = Depends(get_current_subject)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Roster API")


@app.get("/redoc", include_in_schema=False)
async def redoc(subject: Subject = Depends(get_current_subject)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="Roster API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(RosterError)
async def roster_error_handler(request: Request, exc: RosterError) -> JSONResponse:
    """Render a domain error raised by a service with its own status and code."""
    detail = exc.fields if isinstance(exc, ValidationFailed) else exc.detail
    response = _error(exc.status_code, exc.code, exc.message, detail)
    if isinstance(exc, RateLimited):
        response.headers["Retry-After"] = str(exc.retry_after)
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a per-IP route limit is exceeded.

    Retry-After tells clients exactly how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with one {field, message} entry per failed input."""
    detail = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "invalid"),
        }
        for err in exc.errors()
    ]
    return _error(422, "validation_error", "Request validation failed.", detail)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it -- str(dict) produces a Python repr,
    not JSON.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to the
    response body. The client receives only a generic message.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness plus database and cache reachability."""
    try:
        database = "ok" if request.app.state.store.ping() else "error"
    except SQLAlchemyError as exc:
        logger.warning("Database ping failed: %s", exc)
        database = "error"
    cache = "ok" if request.app.state.cache.ping() else "error"
    status = "ok" if database == cache == "ok" else "degraded"
    return HealthResponse(status=status, version=API_VERSION, database=database, cache=cache)
