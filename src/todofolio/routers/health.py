from __future__ import annotations

import os
import platform
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..auth import get_app_settings
from ..errors import APIError
from ..logging_config import get_logger
from ..portfolio import PortfolioStore, get_portfolio_store
from ..settings import Settings
from ..utils import success_envelope

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


def _uptime_seconds(request: Request) -> float:
    return time.monotonic() - request.app.state.started_at


def _uptime(request: Request) -> str:
    return f"{_uptime_seconds(request):.2f}s"


def _portfolio_status(settings: Settings, portfolio: PortfolioStore) -> Dict[str, Any]:
    """Portfolio store status; store failures are reported, not raised."""
    try:
        return portfolio.health()
    except APIError as exc:
        logger.warning("portfolio_health_failed", error=exc.message)
        return {"status": "unhealthy", "backend": settings.portfolio_backend, "error": exc.message}


def _api_status(request: Request, settings: Settings) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "version": __version__,
        "environment": settings.app_env,
        "uptime": _uptime(request),
    }


def _respond(body: Dict[str, Any], ok: bool):
    if ok:
        return body
    body["success"] = False
    return JSONResponse(status_code=503, content=body)


# PUBLIC_INTERFACE
@router.get("/", summary="Health Check")
def health_check(request: Request, settings: Settings = Depends(get_app_settings)) -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns:
        The standard envelope with service status and configured backends.
    """
    return success_envelope(
        {
            "status": "healthy",
            "version": __version__,
            "environment": settings.app_env,
            "uptime": _uptime(request),
            "persistence_backend": settings.persistence_backend,
            "portfolio_backend": settings.portfolio_backend,
        },
        "API is healthy",
    )


# PUBLIC_INTERFACE
@router.get(
    "/api/v1/health",
    summary="API Health Check",
    description="API status plus the portfolio store status; 503 when the store is unreachable.",
    responses={503: {"description": "Portfolio store unavailable"}},
)
def api_health(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    portfolio: PortfolioStore = Depends(get_portfolio_store),
):
    store_status = _portfolio_status(settings, portfolio)
    healthy = store_status["status"] == "healthy"
    overall = "healthy" if healthy else "degraded"
    body = success_envelope(
        {
            "overall": {"status": overall},
            "api": _api_status(request, settings),
            "services": {"portfolio": store_status},
        },
        f"API status: {overall}",
        checks={"api": "healthy", "portfolio": store_status["status"]},
    )
    return _respond(body, healthy)


# PUBLIC_INTERFACE
@router.get(
    "/api/v1/health/detailed",
    summary="Detailed Health Check",
    description="Service status with runtime, system and effective configuration details.",
    responses={503: {"description": "Portfolio store unavailable"}},
)
def detailed_health(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    portfolio: PortfolioStore = Depends(get_portfolio_store),
):
    """
    Everything ``/api/v1/health`` reports, plus the process and host the API
    runs on and the configuration it was started with.
    """
    started = time.perf_counter()
    store_status = _portfolio_status(settings, portfolio)
    healthy = store_status["status"] == "healthy"
    overall = "healthy" if healthy else "degraded"
    response_time = f"{(time.perf_counter() - started) * 1000:.2f}ms"

    api = _api_status(request, settings)
    api["pid"] = os.getpid()
    api["started_at"] = (datetime.now(timezone.utc) - timedelta(seconds=_uptime_seconds(request))).isoformat()

    load_average = list(os.getloadavg()) if hasattr(os, "getloadavg") else None
    body = success_envelope(
        {
            "overall": {"status": overall, "response_time": response_time},
            "api": api,
            "services": {
                "portfolio": store_status,
                "todo_store": {"backend": settings.persistence_backend},
            },
            "system": {
                "python_version": platform.python_version(),
                "implementation": sys.implementation.name,
                "platform": sys.platform,
                "architecture": platform.machine(),
                "load_average": load_average,
            },
            "config": {
                "cors_allow_origins": settings.cors_allow_origins,
                "rate_limiting": {
                    "enabled": settings.rate_limit_active,
                    "window_seconds": settings.rate_limit_window_seconds,
                    "max_requests": settings.rate_limit_max_requests,
                },
                "logging": {"level": settings.log_level},
                "jwt_expires_in": settings.jwt_expires_in,
            },
        },
        f"API status: {overall}",
        response_time=response_time,
        checks={"api": "healthy", "portfolio": store_status["status"]},
    )
    logger.info("detailed_health_checked", status=overall, portfolio=store_status["status"])
    return _respond(body, healthy)


# PUBLIC_INTERFACE
@router.get(
    "/api/v1/health/readiness",
    summary="Readiness Check",
    description="200 when the service can take traffic; 503 while the portfolio store is unreachable.",
    responses={503: {"description": "Service is not ready"}},
)
def readiness(
    settings: Settings = Depends(get_app_settings),
    portfolio: PortfolioStore = Depends(get_portfolio_store),
):
    store_status = _portfolio_status(settings, portfolio)
    ready = store_status["status"] == "healthy"
    status = "ready" if ready else "not_ready"
    body = success_envelope(
        {"status": status, "checks": {"portfolio": status}},
        f"Service is {status}",
    )
    return _respond(body, ready)


# PUBLIC_INTERFACE
@router.get("/api/v1/health/liveness", summary="Liveness Check")
def liveness(request: Request) -> Dict[str, Any]:
    """The process is up and serving requests."""
    return success_envelope(
        {"status": "alive", "uptime": _uptime(request), "pid": os.getpid()},
        "Service is alive",
    )
