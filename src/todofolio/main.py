from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from . import __version__
from .errors import APIError
from .logging_config import configure_logging, get_logger
from .portfolio import build_portfolio_store
from .rate_limiter import RateLimiter, RateLimitMiddleware
from .repositories import build_store
from .routers import auth as auth_router
from .routers import experience as experience_router
from .routers import health as health_router
from .routers import lists as lists_router
from .routers import profile as profile_router
from .routers import projects as projects_router
from .routers import skills as skills_router
from .routers import todos as todos_router
from .routers import users as users_router
from .routers.collections import certifications_router, education_router, testimonials_router
from .settings import Settings, get_settings
from .utils import error_envelope

logger = get_logger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "auth", "description": "Registration, login, token refresh and password reset."},
    {"name": "users", "description": "The authenticated user's own account."},
    {"name": "lists", "description": "Todo lists (categories) with stats, duplication and sharing."},
    {
        "name": "todos",
        "description": "CRUD operations for Todo items with filtering, sorting, and pagination.",
    },
    {"name": "profile", "description": "Portfolio profile document."},
    {"name": "contact", "description": "Portfolio contact information."},
    {"name": "experience", "description": "Work experience entries."},
    {"name": "projects", "description": "Portfolio projects."},
    {"name": "skills", "description": "Skill categories."},
    {"name": "education", "description": "Education entries."},
    {"name": "certifications", "description": "Professional certifications."},
    {"name": "testimonials", "description": "Testimonials."},
]

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
}


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind a request id (incoming X-Request-ID or a new one) into every log line of the request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        request.state.request_id = request_id

        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    @app.exception_handler(APIError)
    async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
        """Render API errors into the standard error envelope."""
        if exc.status_code >= 500:
            logger.error("api_error", code=exc.code, message=exc.message)
        else:
            logger.info("api_error", code=exc.code, status=exc.status_code, message=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(error_envelope(exc.message, exc.code, exc.details, _request_id(request))),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {
                "success": false,
                "message": "Request validation failed",
                "error": {"code": "VALIDATION_ERROR", "details": [... pydantic error details ...]},
                "meta": {...}
            }
        """
        return JSONResponse(
            status_code=422,
            content=jsonable_encoder(
                error_envelope("Request validation failed", "VALIDATION_ERROR", exc.errors(), _request_id(request))
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            message = f"Route {request.method} {request.url.path} not found"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(message, _HTTP_CODES.get(exc.status_code, "HTTP_ERROR"), None, _request_id(request)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_error", path=request.url.path)
        details = {"exception": type(exc).__name__, "message": str(exc)} if settings.is_development else None
        return JSONResponse(
            status_code=500,
            content=error_envelope("Internal server error", "INTERNAL_ERROR", details, _request_id(request)),
        )


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Explicit settings; read from the environment when omitted.

    Returns:
        A FastAPI app with its store, portfolio store and settings on ``app.state``.
    """
    settings = settings or get_settings()
    configure_logging(settings.app_env, settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.portfolio.close()

    app = FastAPI(
        title="Todofolio Backend",
        description="Todo-list API with JWT authentication and a portfolio content API.",
        version=__version__,
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = build_store(settings)
    app.state.portfolio = build_portfolio_store(settings)
    app.state.started_at = time.monotonic()

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.state.rate_limiter = None
    if settings.rate_limit_active:
        app.state.rate_limiter = RateLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_seconds)
        # innermost, so the 429 still carries the request id and CORS headers
        app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
    )

    _register_exception_handlers(app, settings)

    # Include routers
    app.include_router(health_router.router)
    app.include_router(auth_router.router)
    app.include_router(users_router.router)
    app.include_router(lists_router.router)
    app.include_router(todos_router.router)
    app.include_router(profile_router.router)
    app.include_router(profile_router.contact_router)
    app.include_router(experience_router.router)
    app.include_router(projects_router.router)
    app.include_router(skills_router.router)
    app.include_router(education_router)
    app.include_router(certifications_router)
    app.include_router(testimonials_router)

    logger.info(
        "app_created",
        environment=settings.app_env,
        persistence_backend=settings.persistence_backend,
        portfolio_backend=settings.portfolio_backend,
    )
    return app


app = create_app()


# PUBLIC_INTERFACE
def run() -> None:
    """Serve a freshly built app with uvicorn on HOST:PORT."""
    settings = get_settings()
    # log_config=None keeps the structlog setup from configure_logging
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)
