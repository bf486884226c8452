"""
api/main.py -- FastAPI application entry point for Campus Feedback.

Role-based survey service: students answer feedback surveys for the subjects
they take, professors read anonymized results for their own subjects, and
admins manage semesters, subjects, enrollments and roles.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware    -- adds CORS headers for the browser front-end
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter

Lifespan opens the user and survey stores on startup and disposes of their
engines on shutdown.

Every error leaves this app as {"error": "<message>"}; the front-end reads
that single field.
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
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.professor import router as professor_router
from api.routes.v1.semesters import router as semesters_router
from api.routes.v1.student import router as student_router
from auth.models import InvalidRoleError
from auth.store import UserStore
from core.config import get_settings
from surveys.store import SurveyStore

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("feedback.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open both stores before the first request and dispose of them after the last.

    Both stores create their tables on construction, so a fresh database is
    usable immediately. Tests swap this lifespan for one that points the
    stores at in-memory databases.
    """
    logger.info("Campus Feedback API starting up")
    app.state.user_store = UserStore()
    app.state.survey_store = SurveyStore()
    logger.info(
        "Stores initialized (strict_role_check=%s, token_ttl=%ds)",
        _settings.strict_role_check,
        _settings.token_expire_seconds,
    )

    yield

    app.state.survey_store.close()
    app.state.user_store.close()
    logger.info("Campus Feedback API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Campus Feedback API",
    description="Role-based academic feedback surveys for students, professors and administrators.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
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
app.include_router(semesters_router, prefix="/api/v1", tags=["Semesters"])
app.include_router(student_router, prefix="/api/v1", tags=["Student"])
app.include_router(professor_router, prefix="/api/v1", tags=["Professor"])
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients never have
# to pick a schema by status code.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed JSON and schema violations are a plain 400.

    Field-level detail goes to the log only.
    """
    logger.info("Invalid request data on %s %s: %s", request.method, request.url.path, exc.errors())
    return _error(400, "Invalid request data")


@app.exception_handler(InvalidRoleError)
async def invalid_role_handler(request: Request, exc: InvalidRoleError) -> JSONResponse:
    return _error(400, "Invalid role")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render every HTTPException (route errors, access guard, 404/405) as {"error": detail}."""
    response = _error(exc.status_code, str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router
# registration. No rate limit and no authentication.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)
