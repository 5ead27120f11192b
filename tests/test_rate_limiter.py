from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from todofolio.main import create_app
from todofolio.rate_limiter import RateLimiter
from todofolio.settings import get_settings


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRateLimiter:
    def test_burst_then_refill(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=3, window_seconds=60, clock=clock)

        assert [limiter.check("1.2.3.4")[0] for _ in range(3)] == [True, True, True]
        allowed, retry_after, remaining = limiter.check("1.2.3.4")
        assert allowed is False
        assert remaining == 0
        assert retry_after == pytest.approx(20.0)

        clock.advance(20)
        assert limiter.check("1.2.3.4")[0] is True
        assert limiter.check("1.2.3.4")[0] is False

    def test_clients_are_independent(self):
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())
        assert limiter.check("a")[0] is True
        assert limiter.check("a")[0] is False
        assert limiter.check("b")[0] is True

    def test_remaining_counts_down(self):
        limiter = RateLimiter(max_requests=3, window_seconds=60, clock=FakeClock())
        assert [limiter.check("a")[2] for _ in range(3)] == [2, 1, 0]

    def test_cleanup_drops_idle_clients(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)
        limiter.check("idle")
        clock.advance(61)
        limiter.check("busy")
        assert limiter.cleanup_stale_buckets() == 1
        # the idle client starts again with a full bucket
        assert limiter.check("idle")[2] == 1


@pytest.fixture
def limited_client(settings):
    app = create_app(replace(settings, rate_limit_enabled=True, rate_limit_max_requests=3))
    return TestClient(app)


class TestRateLimitMiddleware:
    def test_exceeding_limit_returns_429_envelope(self, limited_client):
        for remaining in ("2", "1", "0"):
            res = limited_client.get("/api/v1/skills")
            assert res.status_code == 200
            assert res.headers["X-RateLimit-Limit"] == "3"
            assert res.headers["X-RateLimit-Remaining"] == remaining

        res = limited_client.get("/api/v1/skills", headers={"X-Request-ID": "req-429"})
        assert res.status_code == 429
        assert int(res.headers["Retry-After"]) >= 1
        assert res.headers["X-Request-ID"] == "req-429"
        body = res.json()
        assert body["success"] is False
        assert body["message"] == "Too many requests from this IP, please try again later."
        assert body["error"]["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["error"]["details"]["limit"] == 3
        assert body["error"]["details"]["window_minutes"] == 15
        assert body["meta"]["request_id"] == "req-429"

    def test_health_endpoints_are_exempt(self, limited_client):
        for _ in range(5):
            assert limited_client.get("/").status_code == 200
            assert limited_client.get("/api/v1/health/liveness").status_code == 200
        assert limited_client.get("/api/v1/profile").status_code == 200

    def test_disabled_in_test_environment(self, settings):
        app = create_app(replace(settings, app_env="test", rate_limit_enabled=True, rate_limit_max_requests=1))
        client = TestClient(app)
        assert app.state.rate_limiter is None
        assert [client.get("/api/v1/skills").status_code for _ in range(3)] == [200, 200, 200]


class TestRateLimitSettings:
    def test_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "yes")
        monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "60")
        monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "0")
        s = get_settings()
        assert s.rate_limit_enabled is True
        assert s.rate_limit_window_seconds == 60
        # below the minimum falls back to the default
        assert s.rate_limit_max_requests == 100

    def test_can_be_switched_off(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "off")
        assert get_settings().rate_limit_enabled is False
