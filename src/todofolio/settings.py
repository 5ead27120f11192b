from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - APP_ENV: 'development' (default), 'production' or 'test'
    - LOG_LEVEL: root log level, 'INFO' by default
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/todofolio.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - JWT_SECRET / JWT_ALGORITHM / JWT_EXPIRES_IN / JWT_ISSUER / JWT_AUDIENCE: token signing
    - PASSWORD_HASH_ITERATIONS: PBKDF2 rounds for stored passwords
    - MAX_LOGIN_ATTEMPTS / LOCKOUT_MINUTES: failed-login lockout policy
    - PASSWORD_RESET_TTL_MINUTES: lifetime of a password reset token
    - PORTFOLIO_BACKEND: 'file' (default) or 'json-server'
    - PORTFOLIO_DATA_PATH: JSON document for the file backend; empty uses the packaged seed
    - JSON_SERVER_URL / JSON_SERVER_TIMEOUT: remote json-server for the portfolio data
    - RATE_LIMIT_ENABLED: per-client request limiting, on by default and always off when APP_ENV is 'test'
    - RATE_LIMIT_WINDOW_SECONDS / RATE_LIMIT_MAX_REQUESTS: requests allowed per client per window (100 per 900s)
    - HOST / PORT: bind address for the uvicorn server started by ``todofolio.main.run`` (0.0.0.0:8000)
    """

    app_env: str
    log_level: str
    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    jwt_secret: str
    jwt_algorithm: str
    jwt_expires_in: str
    jwt_issuer: str
    jwt_audience: str
    password_hash_iterations: int
    max_login_attempts: int
    lockout_minutes: int
    password_reset_ttl_minutes: int
    portfolio_backend: str
    portfolio_data_path: Optional[str]
    json_server_url: str
    json_server_timeout: float
    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 900
    rate_limit_max_requests: int = 100
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def rate_limit_active(self) -> bool:
        return self.rate_limit_enabled and self.app_env != "test"


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_int(value: str, default: int, minimum: int = 1) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _parse_bool(value: str, default: bool) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        # Star will be handled in main via allow_origins=["*"]
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


def _choice(value: str, allowed: set, default: str) -> str:
    v = value.strip().lower()
    return v if v in allowed else default


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    app_env = _choice(_get_env("APP_ENV", "development"), {"development", "production", "test"}, "development")
    backend = _choice(_get_env("PERSISTENCE_BACKEND", "memory"), {"memory", "sqlite"}, "memory")
    portfolio_backend = _choice(_get_env("PORTFOLIO_BACKEND", "file"), {"file", "json-server"}, "file")

    portfolio_path = os.getenv("PORTFOLIO_DATA_PATH", "").strip() or None

    return Settings(
        app_env=app_env,
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/todofolio.db").strip(),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        jwt_secret=_get_env("JWT_SECRET", "todofolio-dev-secret-change-me"),
        jwt_algorithm=_get_env("JWT_ALGORITHM", "HS256").strip(),
        jwt_expires_in=_get_env("JWT_EXPIRES_IN", "7d").strip(),
        jwt_issuer=_get_env("JWT_ISSUER", "todofolio").strip(),
        jwt_audience=_get_env("JWT_AUDIENCE", "todofolio-users").strip(),
        password_hash_iterations=_parse_int(_get_env("PASSWORD_HASH_ITERATIONS", "260000"), 260000),
        max_login_attempts=_parse_int(_get_env("MAX_LOGIN_ATTEMPTS", "5"), 5),
        lockout_minutes=_parse_int(_get_env("LOCKOUT_MINUTES", "120"), 120),
        password_reset_ttl_minutes=_parse_int(_get_env("PASSWORD_RESET_TTL_MINUTES", "10"), 10),
        portfolio_backend=portfolio_backend,
        portfolio_data_path=portfolio_path,
        json_server_url=_get_env("JSON_SERVER_URL", "http://localhost:3001").strip().rstrip("/"),
        json_server_timeout=_parse_float(_get_env("JSON_SERVER_TIMEOUT", "5.0"), 5.0),
        rate_limit_enabled=_parse_bool(_get_env("RATE_LIMIT_ENABLED", "true"), True),
        rate_limit_window_seconds=_parse_int(_get_env("RATE_LIMIT_WINDOW_SECONDS", "900"), 900),
        rate_limit_max_requests=_parse_int(_get_env("RATE_LIMIT_MAX_REQUESTS", "100"), 100),
        host=_get_env("HOST", "0.0.0.0").strip(),
        port=_parse_int(_get_env("PORT", "8000"), 8000),
    )
