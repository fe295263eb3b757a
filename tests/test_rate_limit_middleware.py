"""Behavioural tests for the rate limiting middleware.

Each test builds a small FastAPI app with its own in-memory store and fake
clock so counters never leak between tests.
"""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.testclient import TestClient

from app.adapters.kv.in_memory import InMemoryKeyValueStore
from app.core.config import AppSettings
from app.core.errors import StoreUnavailableError, ValidationAppError
from app.core.exception_handlers import setup_exception_handlers
from app.core.rate_limit import (
    Environment,
    KeyGenerator,
    LimitPolicy,
    RateLimiter,
    TierLimits,
    create_rate_limiter,
)

METERED_PATH = "/api/validate-phone"
BOT_HEADERS = {"CF-Connecting-IP": "203.0.113.7", "User-Agent": "Googlebot/2.1"}
TRUSTED_HEADERS = {
    "CF-Connecting-IP": "203.0.113.8",
    "Referer": "https://www.biodentalcare.com/appointments",
    "User-Agent": "Mozilla/5.0",
}
GENERIC_HEADERS = {"CF-Connecting-IP": "203.0.113.8", "User-Agent": "Mozilla/5.0"}


class FlakyKeyValueStore(InMemoryKeyValueStore):
    """In-memory store whose operations can be switched to fail."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_get = False
        self.fail_put = False

    def _error(self, operation: str) -> StoreUnavailableError:
        return StoreUnavailableError(code="store_unavailable", message=f"{operation} failed")

    async def get(self, key: str) -> str | None:
        if self.fail_get:
            raise self._error("get")
        return await super().get(key)

    async def put(self, key: str, value: str, *, expiration: int) -> None:
        if self.fail_put:
            raise self._error("put")
        await super().put(key, value, expiration=expiration)


def build_limiter(kv, clock, *, environment: str = "production", tiers=None, **kwargs) -> RateLimiter:
    policy = LimitPolicy(tiers) if tiers else LimitPolicy.from_profile("widget")
    return RateLimiter(
        kv=kv,
        key_generator=KeyGenerator(environment=environment, trusted_domain="biodentalcare.com"),
        policy=policy,
        environment=environment,
        prefix=f"widget-rl:{environment}:",
        paths=[METERED_PATH],
        clock=clock,
        **kwargs,
    )


def small_tiers(limit: int = 3, window_ms: int = 10_000) -> dict[Environment, TierLimits]:
    return {env: TierLimits(window_ms=window_ms, limit=limit) for env in Environment}


def build_app(limiter: RateLimiter) -> tuple[FastAPI, list[str]]:
    app = FastAPI()
    app.middleware("http")(limiter)
    setup_exception_handlers(app)
    calls: list[str] = []

    @app.get(METERED_PATH)
    async def metered(status: int = 200) -> JSONResponse:
        calls.append("metered")
        return JSONResponse({"valid": True}, status_code=status)

    @app.get("/api/boom")
    async def boom() -> JSONResponse:
        calls.append("boom")
        raise RuntimeError("downstream exploded")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app, calls


class TestAdmission:
    def test_bot_in_production_gets_five_requests(self, kv, fake_time) -> None:
        app, calls = build_app(build_limiter(kv, fake_time.time))
        client = TestClient(app)

        remaining = []
        for _ in range(5):
            resp = client.get(METERED_PATH, headers=BOT_HEADERS)
            assert resp.status_code == 200
            assert resp.headers["X-RateLimit-Limit"] == "5"
            remaining.append(resp.headers["X-RateLimit-Remaining"])
        assert remaining == ["4", "3", "2", "1", "0"]

        blocked = client.get(METERED_PATH, headers=BOT_HEADERS)
        assert blocked.status_code == 429
        body = blocked.json()
        assert body["error"] == "Rate limit exceeded"
        assert body["retryAfter"] > 0
        assert body["limit"] == 5
        assert body["windowMs"] == 15 * 60 * 1000
        assert blocked.headers["X-RateLimit-Remaining"] == "0"
        assert blocked.headers["Retry-After"] == str(body["retryAfter"])
        assert blocked.headers["X-RateLimit-Reset"] == str(1_000 + 15 * 60)
        assert len(calls) == 5

    def test_limit_boundary_headers(self, kv, fake_time) -> None:
        app, _ = build_app(build_limiter(kv, fake_time.time, tiers=small_tiers(limit=3)))
        client = TestClient(app)

        responses = [client.get(METERED_PATH, headers=GENERIC_HEADERS) for _ in range(4)]

        assert [r.status_code for r in responses] == [200, 200, 200, 429]
        # (L-1)th request leaves one, Lth leaves none, (L+1)th is rejected
        assert responses[1].headers["X-RateLimit-Remaining"] == "1"
        assert responses[2].headers["X-RateLimit-Remaining"] == "0"
        assert responses[3].headers["X-RateLimit-Remaining"] == "0"

    def test_classification_ceilings_are_independent(self, kv, fake_time) -> None:
        app, _ = build_app(build_limiter(kv, fake_time.time))
        client = TestClient(app)

        trusted = client.get(METERED_PATH, headers=TRUSTED_HEADERS)
        generic = client.get(METERED_PATH, headers=GENERIC_HEADERS)

        assert trusted.headers["X-RateLimit-Limit"] == "100"
        assert trusted.headers["X-RateLimit-Remaining"] == "99"
        assert generic.headers["X-RateLimit-Limit"] == "20"
        assert generic.headers["X-RateLimit-Remaining"] == "19"
        assert trusted.headers["X-RateLimit-Reset"] == generic.headers["X-RateLimit-Reset"]

    def test_new_window_after_expiry(self, kv, fake_time) -> None:
        app, _ = build_app(build_limiter(kv, fake_time.time, tiers=small_tiers(limit=1, window_ms=10_000)))
        client = TestClient(app)

        assert client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code == 200
        assert client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code == 429

        fake_time.advance(10)
        resp = client.get(METERED_PATH, headers=GENERIC_HEADERS)
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Remaining"] == "0"

    def test_development_is_permissive_for_bots(self, kv, fake_time) -> None:
        app, _ = build_app(build_limiter(kv, fake_time.time, environment="development"))
        client = TestClient(app)

        resp = client.get(METERED_PATH, headers=BOT_HEADERS)
        assert resp.headers["X-RateLimit-Limit"] == "500"

    def test_unmetered_paths_have_no_headers(self, kv, fake_time) -> None:
        app, _ = build_app(build_limiter(kv, fake_time.time))
        client = TestClient(app)

        resp = client.get("/health")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers
        assert len(kv) == 0


class TestSkipPolicies:
    def test_failed_responses_are_not_counted(self, kv, fake_time) -> None:
        limiter = build_limiter(kv, fake_time.time, tiers=small_tiers(limit=2), skip_failed_requests=True)
        app, _ = build_app(limiter)
        client = TestClient(app)

        for _ in range(5):
            resp = client.get(METERED_PATH, params={"status": 400}, headers=GENERIC_HEADERS)
            assert resp.status_code == 400
            assert resp.headers["X-RateLimit-Remaining"] == "2"

        assert client.get(METERED_PATH, headers=GENERIC_HEADERS).headers["X-RateLimit-Remaining"] == "1"

    def test_failed_responses_count_without_skip(self, kv, fake_time) -> None:
        app, _ = build_app(build_limiter(kv, fake_time.time, tiers=small_tiers(limit=2)))
        client = TestClient(app)

        client.get(METERED_PATH, params={"status": 500}, headers=GENERIC_HEADERS)
        client.get(METERED_PATH, params={"status": 500}, headers=GENERIC_HEADERS)
        assert client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code == 429

    def test_raised_errors_are_uncounted_then_propagated(self, kv, fake_time) -> None:
        limiter = build_limiter(kv, fake_time.time, tiers=small_tiers(limit=1), skip_failed_requests=True)
        limiter.paths = frozenset({METERED_PATH, "/api/boom"})
        app, calls = build_app(limiter)
        client = TestClient(app, raise_server_exceptions=False)

        for _ in range(3):
            assert client.get("/api/boom", headers=GENERIC_HEADERS).status_code == 500

        assert calls == ["boom", "boom", "boom"]

    def test_successful_responses_are_not_counted(self, kv, fake_time) -> None:
        limiter = build_limiter(kv, fake_time.time, tiers=small_tiers(limit=2), skip_successful_requests=True)
        app, _ = build_app(limiter)
        client = TestClient(app)

        for _ in range(4):
            resp = client.get(METERED_PATH, headers=GENERIC_HEADERS)
            assert resp.status_code == 200
            assert resp.headers["X-RateLimit-Remaining"] == "2"

        client.get(METERED_PATH, params={"status": 404}, headers=GENERIC_HEADERS)
        client.get(METERED_PATH, params={"status": 404}, headers=GENERIC_HEADERS)
        assert client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code == 429


class TestBypass:
    def test_absent_store_binding_admits_everything(self, fake_time) -> None:
        app, calls = build_app(build_limiter(None, fake_time.time, tiers=small_tiers(limit=1)))
        client = TestClient(app)

        for _ in range(25):
            resp = client.get(METERED_PATH, headers=BOT_HEADERS)
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers
            assert "X-RateLimit-Remaining" not in resp.headers
        assert len(calls) == 25

    def test_failing_probe_bypasses(self, fake_time) -> None:
        kv = FlakyKeyValueStore(clock=fake_time.time)
        kv.fail_get = True
        app, _ = build_app(build_limiter(kv, fake_time.time, tiers=small_tiers(limit=1)))
        client = TestClient(app)

        for _ in range(3):
            resp = client.get(METERED_PATH, headers=GENERIC_HEADERS)
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers

    def test_failing_write_bypasses(self, fake_time) -> None:
        kv = FlakyKeyValueStore(clock=fake_time.time)
        kv.fail_put = True
        app, calls = build_app(build_limiter(kv, fake_time.time, tiers=small_tiers(limit=1)))
        client = TestClient(app)

        for _ in range(3):
            assert client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code == 200
        assert len(calls) == 3

    def test_failing_decrement_keeps_response(self, fake_time) -> None:
        kv = FlakyKeyValueStore(clock=fake_time.time)
        limiter = build_limiter(kv, fake_time.time, tiers=small_tiers(limit=3), skip_failed_requests=True)
        app, _ = build_app(limiter)
        client = TestClient(app)

        original_put = kv.put
        writes = 0

        async def put_once(key: str, value: str, *, expiration: int) -> None:
            nonlocal writes
            writes += 1
            if writes > 1:
                raise StoreUnavailableError(code="store_unavailable", message="put failed")
            await original_put(key, value, expiration=expiration)

        kv.put = put_once
        resp = client.get(METERED_PATH, params={"status": 400}, headers=GENERIC_HEADERS)

        assert resp.status_code == 400
        assert resp.headers["X-RateLimit-Remaining"] == "2"

    def test_local_dev_frontend_bypasses_outside_production(self, kv, fake_time) -> None:
        limiter = build_limiter(
            kv,
            fake_time.time,
            environment="development",
            tiers=small_tiers(limit=1),
            dev_frontend_hosts=["localhost:5173"],
        )
        app, _ = build_app(limiter)
        client = TestClient(app, base_url="http://localhost:5173")

        for _ in range(3):
            resp = client.get(METERED_PATH, headers=GENERIC_HEADERS)
            assert resp.status_code == 200
            assert "X-RateLimit-Limit" not in resp.headers

    def test_local_dev_frontend_is_metered_in_production(self, kv, fake_time) -> None:
        limiter = build_limiter(
            kv,
            fake_time.time,
            tiers=small_tiers(limit=1),
            dev_frontend_hosts=["localhost:5173"],
        )
        app, _ = build_app(limiter)
        client = TestClient(app, base_url="http://localhost:5173")

        assert client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code == 200
        assert client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code == 429

    def test_disabled_limiter_passes_through(self, kv, fake_time) -> None:
        app, _ = build_app(build_limiter(kv, fake_time.time, tiers=small_tiers(limit=1), enabled=False))
        client = TestClient(app)

        for _ in range(3):
            assert client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code == 200
        assert len(kv) == 0


class TestCreateRateLimiter:
    def test_builds_from_settings(self, kv) -> None:
        cfg = AppSettings(
            environment="staging",
            rate_limit_profile="standard",
            rate_limit_key_strategy="prefixed",
            rate_limit_paths="/a,/b",
            rate_limit_max=7,
        )

        limiter = create_rate_limiter(kv, cfg)

        assert limiter.environment is Environment.STAGING
        assert limiter.prefix == "widget-rl:staging:"
        assert limiter.paths == frozenset({"/a", "/b"})
        assert limiter.key_generator.generate({"X-Real-IP": "9.9.9.9"}) == "api:9.9.9.9"
        assert limiter.policy.tier("staging").limit == 7

    @pytest.mark.parametrize(
        "overrides",
        [
            {"environment": "qa"},
            {"rate_limit_profile": "unknown"},
            {"rate_limit_key_strategy": "per-user"},
        ],
    )
    def test_invalid_settings(self, kv, overrides: dict) -> None:
        with pytest.raises(ValidationAppError):
            create_rate_limiter(kv, AppSettings(**overrides))

    def test_prefixed_keys_require_flat_profile(self, kv) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            create_rate_limiter(kv, AppSettings(rate_limit_profile="widget", rate_limit_key_strategy="prefixed"))

        assert exc_info.value.code == "incompatible_key_strategy"

    def test_max_override_applies_to_generic_widget_traffic(self, kv, fake_time) -> None:
        cfg = AppSettings(environment="production", rate_limit_profile="widget", rate_limit_max=2)
        app, _ = build_app(create_rate_limiter(kv, cfg, clock=fake_time.time))
        client = TestClient(app)

        statuses = [client.get(METERED_PATH, headers=GENERIC_HEADERS).status_code for _ in range(3)]
        trusted = client.get(METERED_PATH, headers=TRUSTED_HEADERS)

        assert statuses == [200, 200, 429]
        assert trusted.headers["X-RateLimit-Limit"] == "100"
