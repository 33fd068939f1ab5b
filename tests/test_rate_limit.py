import re
import typing as t

from fastapi import FastAPI
from fastapi.testclient import TestClient

import custom_middleware.rate_limiting_middleware as rl
from conftest import CALLBACK_SECRET
from custom_middleware.rate_limiting_middleware import (
    InMemoryRateLimiter,
    RateLimitPolicy,
    default_rate_limit_policies,
)


BASE_TIME = 1_700_000_040  # aligned to a 60 second window


def make_policy(name="status", method="GET", pattern=r"/v1/jobs/[^/]+/status", limit=3, window=60):
    return RateLimitPolicy(
        name, method, re.compile(pattern), limit, window,
        "Too many status check requests. Please slow down.", f"{name.upper()}_RATE_LIMIT_EXCEEDED",
    )


def make_test_app(policies: t.Optional[list] = None, testing: bool = False, trusted_limit: int = 5) -> FastAPI:
    app = FastAPI()

    @app.get("/v1/jobs/{job_id}/status")
    async def status(job_id: str):
        return {"ok": True}

    @app.get("/v1/files")
    async def files():
        return {"ok": True}

    @app.post("/v1/callbacks/workflow")
    async def callback():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"ok": True}

    app.add_middleware(
        InMemoryRateLimiter,
        policies=policies,
        trusted_policy=make_policy(
            "callback_trusted", "POST", r"/v1/callbacks/.+", trusted_limit
        ),
    )

    # Control testing bypass flag
    app.state.testing = testing
    return app


def test_exceed_limit_returns_429(monkeypatch):
    """When exceeding the fixed-window limit, the middleware should return 429 with Retry-After."""
    app = make_test_app(policies=[make_policy(limit=3)])
    monkeypatch.setattr(rl.time, "time", lambda: BASE_TIME)

    with TestClient(app) as client:
        for remaining in (2, 1, 0):
            r = client.get("/v1/jobs/abc/status")
            assert r.status_code == 200
            assert r.headers["RateLimit-Limit"] == "3"
            assert r.headers["RateLimit-Remaining"] == str(remaining)
            assert r.headers["RateLimit-Reset"] == "60"

        r = client.get("/v1/jobs/abc/status")
        assert r.status_code == 429
        assert r.headers["Retry-After"] == "60"
        assert r.json() == {
            "error": "Too many status check requests. Please slow down.",
            "code": "STATUS_RATE_LIMIT_EXCEEDED",
        }

        # Move to the next window and verify it resets
        monkeypatch.setattr(rl.time, "time", lambda: BASE_TIME + 61)
        assert client.get("/v1/jobs/abc/status").status_code == 200


def test_retry_after_counts_down_within_window(monkeypatch):
    app = make_test_app(policies=[make_policy(limit=1)])
    monkeypatch.setattr(rl.time, "time", lambda: BASE_TIME)

    with TestClient(app) as client:
        client.get("/v1/jobs/abc/status")
        monkeypatch.setattr(rl.time, "time", lambda: BASE_TIME + 45)
        r = client.get("/v1/jobs/abc/status")
        assert r.status_code == 429
        assert r.headers["Retry-After"] == "15"


def test_bypass_when_testing_flag_set():
    """When app.state.testing is True, limiter must be bypassed entirely."""
    app = make_test_app(policies=[make_policy(limit=1)], testing=True)
    with TestClient(app) as client:
        for _ in range(10):
            assert client.get("/v1/jobs/abc/status").status_code == 200


def test_routes_have_independent_counters(monkeypatch):
    app = make_test_app(
        policies=[make_policy(limit=1), make_policy("list", "GET", r"/v1/files/?", limit=1)]
    )
    monkeypatch.setattr(rl.time, "time", lambda: BASE_TIME)

    with TestClient(app) as client:
        assert client.get("/v1/jobs/abc/status").status_code == 200
        assert client.get("/v1/files").status_code == 200
        assert client.get("/v1/jobs/abc/status").status_code == 429
        assert client.get("/v1/files").status_code == 429


def test_unmatched_routes_are_not_limited(monkeypatch):
    app = make_test_app(policies=[make_policy(limit=1)])
    monkeypatch.setattr(rl.time, "time", lambda: BASE_TIME)

    with TestClient(app) as client:
        for _ in range(5):
            r = client.get("/health")
            assert r.status_code == 200
            assert "RateLimit-Limit" not in r.headers


def test_trusted_callbacks_use_their_own_quota(monkeypatch):
    """Callbacks with a valid secret are counted under the trusted policy."""
    app = make_test_app(
        policies=[make_policy("callback", "POST", r"/v1/callbacks/.+", limit=1)], trusted_limit=5
    )
    monkeypatch.setattr(rl.time, "time", lambda: BASE_TIME)
    trusted = {"X-Callback-Secret": CALLBACK_SECRET}

    with TestClient(app) as client:
        assert client.post("/v1/callbacks/workflow").status_code == 200
        assert client.post("/v1/callbacks/workflow").status_code == 429

        for _ in range(5):
            r = client.post("/v1/callbacks/workflow", headers=trusted)
            assert r.status_code == 200
            assert r.headers["RateLimit-Limit"] == "5"
        assert client.post("/v1/callbacks/workflow", headers=trusted).status_code == 429

        # A wrong secret falls back to the untrusted quota
        wrong = {"X-Callback-Secret": "nope"}
        assert client.post("/v1/callbacks/workflow", headers=wrong).status_code == 429


def test_default_policies_cover_gateway_routes():
    policies = default_rate_limit_policies()

    def policy_for(method, path):
        return next((p.name for p in policies if p.matches(method, path)), None)

    assert policy_for("POST", "/v1/jobs") == "upload"
    assert policy_for("GET", "/v1/jobs/abc/status") == "status"
    assert policy_for("GET", "/v1/jobs/abc/execution") == "status"
    assert policy_for("GET", "/v1/jobs/abc/download-url") == "download"
    assert policy_for("GET", "/v1/files/download/abc") == "download"
    assert policy_for("GET", "/v1/files") == "list"
    assert policy_for("DELETE", "/v1/files/abc") == "delete"
    assert policy_for("POST", "/v1/callbacks/workflow") == "callback"
    assert policy_for("GET", "/health") is None
    assert policy_for("GET", "/v1/files/health") is None
