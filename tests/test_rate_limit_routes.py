"""HTTP-level tests for rate limited route classes."""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from kakeibo.core.app_factory import create_app
from kakeibo.core.config import AppSettings, settings
from kakeibo.core.rate_limit import build_rate_limiters, enforce_api_rate_limit


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1_700_000_000.0)


@pytest.fixture
def client(clock: Mock) -> TestClient:
    limiters = build_rate_limiters(AppSettings(), clock=clock)
    return TestClient(create_app(rate_limiters=limiters))


def test_auth_route_allows_five_then_rejects(client: TestClient, auth_headers) -> None:
    for _ in range(5):
        resp = client.post("/api/auth/verify", headers=auth_headers)
        assert resp.status_code == 200

    resp = client.post("/api/auth/verify", headers=auth_headers)

    assert resp.status_code == 429
    body = resp.json()
    assert body["error"] == "Too Many Requests"
    assert body["message"] == settings.app.rate_limit_message
    assert body["retryAfter"] == 900
    assert resp.headers["Retry-After"] == "900"
    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert resp.headers["X-RateLimit-Remaining"] == "0"
    assert resp.headers["X-RateLimit-Reset"] == str(1_700_000_000 + 900)


def test_allowed_responses_carry_rate_limit_headers(client: TestClient, auth_headers) -> None:
    resp = client.get("/api/session", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Limit"] == "100"
    assert resp.headers["X-RateLimit-Remaining"] == "99"
    assert resp.headers["X-RateLimit-Reset"] == str(1_700_000_000 + 900)


def test_failed_auth_attempts_consume_auth_budget(client: TestClient) -> None:
    bad = {"Authorization": "Bearer " + "x" * 40}
    for _ in range(5):
        assert client.post("/api/auth/verify", headers=bad).status_code == 401

    assert client.post("/api/auth/verify", headers=bad).status_code == 429


def test_route_classes_do_not_share_counts(client: TestClient, auth_headers) -> None:
    for _ in range(6):
        client.post("/api/auth/verify", headers=auth_headers)

    resp = client.get("/api/session", headers=auth_headers)

    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Remaining"] == "99"


def test_window_expiry_restores_access(client: TestClient, clock: Mock, auth_headers) -> None:
    for _ in range(6):
        client.post("/api/auth/verify", headers=auth_headers)

    clock.return_value += 901

    resp = client.post("/api/auth/verify", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Remaining"] == "4"


def test_health_is_not_rate_limited(client: TestClient) -> None:
    for _ in range(10):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers


def test_rate_limiting_can_be_disabled(client: TestClient, auth_headers, monkeypatch) -> None:
    monkeypatch.setattr(settings.app, "rate_limit_enabled", False)

    for _ in range(10):
        resp = client.post("/api/auth/verify", headers=auth_headers)
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers


def test_each_app_owns_its_counters(clock: Mock, auth_headers) -> None:
    first = TestClient(create_app(rate_limiters=build_rate_limiters(AppSettings(), clock=clock)))
    second = TestClient(create_app(rate_limiters=build_rate_limiters(AppSettings(), clock=clock)))

    for _ in range(6):
        first.post("/api/auth/verify", headers=auth_headers)

    assert second.post("/api/auth/verify", headers=auth_headers).status_code == 200


def test_rejected_credentials_still_report_budget(client: TestClient) -> None:
    resp = client.post("/api/auth/verify", headers={"Authorization": "Bearer " + "x" * 40})

    assert resp.status_code == 401
    assert resp.headers["X-RateLimit-Limit"] == "5"
    assert resp.headers["X-RateLimit-Remaining"] == "4"
    assert resp.headers["X-RateLimit-Reset"] == str(1_700_000_000 + 900)


def test_unexpected_errors_still_report_budget(clock: Mock) -> None:
    app = create_app(rate_limiters=build_rate_limiters(AppSettings(), clock=clock))

    @app.get("/api/broken", dependencies=[Depends(enforce_api_rate_limit)])
    async def broken():
        raise RuntimeError("boom")

    resp = TestClient(app, raise_server_exceptions=False).get("/api/broken")

    assert resp.status_code == 500
    assert resp.headers["X-RateLimit-Remaining"] == "99"


def test_sweeper_follows_injected_window_and_clock(clock: Mock) -> None:
    limiters = build_rate_limiters(AppSettings(rate_limit_window_seconds=60), clock=clock)
    app = create_app(rate_limiters=limiters)
    sweeper = app.state.rate_limit_sweeper
    limiters.api.consume("10.0.0.1")

    clock.return_value += 30
    assert sweeper.sweep_once() == 0

    clock.return_value += 31
    assert sweeper.sweep_once() == 1
