"""
api/main.py -- FastAPI application entry point for Postboard.

Exposes the authorization core (sessions, permission ledger, API keys) and the
openings board over HTTP for the Postboard front end and admin scripts.

Run with:      uvicorn asgi:app --reload

Middleware stack (registration order):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter
  4. SessionMiddleware     -- OAuth state storage for authlib

Lifespan builds the engine, creates the schema, and wires every store onto
app.state. There are no background tasks: session and grant expiry are
enforced when rows are read.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.openings import router as openings_router
from api.routes.v1.pages import router as pages_router
from audit.store import AuditLog
from auth.api_keys import ApiKeyIssuer
from auth.dependencies import require_admin_console
from auth.ledger import PermissionLedger
from auth.models import Identity
from auth.oauth import oauth as oauth_client
from auth.sessions import SessionManager
from auth.store import IdentityStore
from core.config import get_settings
from core.db import build_engine, init_db
from openings.lifecycle import OpeningLifecycle
from openings.store import OpeningStore

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("postboard.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def wire_state(app: FastAPI, engine, clock=None) -> None:
    """Construct every store on one engine and attach them to app.state.

    clock is forwarded to every component so tests can drive expiry with a
    fake clock; None means wall-clock UTC.
    """
    kwargs = {"clock": clock} if clock is not None else {}
    identities = IdentityStore(engine, **kwargs)
    app.state.engine = engine
    app.state.identities = identities
    app.state.sessions = SessionManager(engine, identities, **kwargs)
    app.state.ledger = PermissionLedger(engine, identities, admin_ids=_settings.admin_ids, **kwargs)
    app.state.api_keys = ApiKeyIssuer(engine, identities, **kwargs)
    app.state.openings = OpeningLifecycle(OpeningStore(engine), **kwargs)
    app.state.audit = AuditLog(engine, **kwargs)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine and schema -- init_db() is idempotent and runs before any
         request can touch a table.
      2. Stores -- all share the one engine (and its connection pool).
      3. OAuth registry -- configured at import time in auth/oauth.py.
    """
    logger.info("Postboard API starting up")
    engine = build_engine()
    init_db(engine)
    logger.info("Database ready (%s)", engine.dialect.name)
    wire_state(app, engine)
    app.state.oauth = oauth_client
    logger.info(
        "Auth initialized (discord=%s, allow-listed admins=%d)",
        _settings.discord_enabled,
        len(_settings.admin_ids),
    )

    yield

    engine.dispose()
    logger.info("Postboard API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Postboard API",
    description="Discord login, time-bound permission grants, API keys, and the recruitment openings board.",
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
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI -> Session.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_host_list,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "X-API-Key"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SessionMiddleware is required by authlib to store the OAuth state value
# between the authorization redirect and the callback. It is unrelated to the
# pm_session login cookie, which is an opaque id into auth_sessions.
app.add_middleware(SessionMiddleware, secret_key=_settings.secret_key, https_only=_settings.secure_cookies)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging + audit middleware
#
# Every request is logged. Requests under /api/ (except health checks) are
# also written to the audit log; the identity id comes from request.state,
# where the Access Gate leaves it once it has resolved the caller.
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

    path = request.url.path
    audit = getattr(request.app.state, "audit", None)
    if audit is not None and path.startswith("/api/") and path != "/api/v1/health":
        try:
            await run_in_threadpool(
                audit.record,
                request.method,
                path,
                getattr(request.state, "identity_id", None),
                response.status_code,
                ms,
            )
        except SQLAlchemyError:
            logger.exception("Failed to write audit row for %s %s", request.method, path)
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(openings_router, prefix="/api/v1", tags=["Openings"])
app.include_router(pages_router, prefix="/api/v1", tags=["Pages"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
#
# /docs and /redoc are disabled on the FastAPI() constructor and replaced here
# with routes limited to admin-console users.
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(identity: Identity = Depends(require_admin_console)):
    """Swagger UI -- admin console users only."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="Postboard API")


@app.get("/redoc", include_in_schema=False)
async def redoc(identity: Identity = Depends(require_admin_console)):
    """ReDoc UI -- admin console users only."""
    return get_redoc_html(openapi_url="/openapi.json", title="Postboard API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
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

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail. When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The traceback goes to the log only; the client receives a generic message.
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
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


def _database_status(engine) -> str:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        return "error"
    return "ok"


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, current version, and per-component status."""
    engine = getattr(request.app.state, "engine", None)
    database = await run_in_threadpool(_database_status, engine) if engine is not None else "error"
    components = {"app": "ok", "database": database}
    status = "healthy" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components=components)
