import os
from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

# Ensure we default to in-memory backends for tests to avoid filesystem and network dependencies
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("PORTFOLIO_BACKEND", "file")
os.environ.setdefault("PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from todofolio.main import create_app  # noqa: E402
from todofolio.settings import get_settings  # noqa: E402

PASSWORD = "Secret@123"


@pytest.fixture
def settings():
    return replace(
        get_settings(),
        app_env="development",
        persistence_backend="memory",
        portfolio_backend="file",
        portfolio_data_path=None,
        password_hash_iterations=1000,
        rate_limit_enabled=False,
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register_user(client):
    """Register an account and return the response body's data ({user, token})."""

    def _register(username="john_doe", email=None, password=PASSWORD, first_name="John", last_name="Doe"):
        payload = {
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
            "confirm_password": password,
            "first_name": first_name,
            "last_name": last_name,
        }
        res = client.post("/api/auth/register", json=payload)
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _register


@pytest.fixture
def headers(register_user):
    return bearer(register_user()["token"])
