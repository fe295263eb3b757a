"""Rate limiting middleware for metered routes.

Per request:
1. Detect bypass conditions (no store binding, failing store probe, local
   front-end dev server). Bypassed requests are logged and forwarded
   unmetered, without rate limit headers.
2. Fingerprint the request, classify it and resolve ``(window_ms, limit)``.
3. Reject with 429 when the live count already reached the limit.
4. Otherwise increment, call the route, and undo the increment when the
   skip policy says the outcome should not count.
5. Add X-RateLimit-* headers to the admitted response.

Only a rejection may short-circuit a request. Every store failure turns into
a bypass so the protected endpoint stays available when the store is not.

Usage:
    app.middleware("http")(create_rate_limiter(kv))
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Iterable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from app.adapters.kv.base import AbstractKeyValueStore
from app.adapters.rate_limit.base import AbstractWindowStore, WindowRecord
from app.adapters.rate_limit.kv_window_store import KeyValueWindowStore
from app.core.config import AppSettings, parse_csv, settings
from app.core.errors import ValidationAppError
from app.core.logging import hash_identifier
from app.core.rate_limit.keys import KeyGenerator, KeyStrategy, TrafficClass
from app.core.rate_limit.policy import Environment, LimitPolicy, LimitWindow, parse_environment
from app.schemas.rate_limit import RateLimitExceededResponse

logger = logging.getLogger(__name__)

PROBE_KEY = "rate-limit:probe"


class RateLimiter:
    """Fixed-window rate limiter usable as an ``http`` middleware."""

    def __init__(
        self,
        *,
        kv: AbstractKeyValueStore | None,
        key_generator: KeyGenerator,
        policy: LimitPolicy,
        environment: str | Environment,
        prefix: str = "",
        paths: Iterable[str] = (),
        dev_frontend_hosts: Iterable[str] = (),
        skip_failed_requests: bool = False,
        skip_successful_requests: bool = False,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            kv: Store binding, or None when no store is available.
            key_generator: Builds fingerprints and traffic classes.
            policy: Limit table used to resolve windows and ceilings.
            environment: Active deployment tier.
            prefix: Namespace for keys in the shared store.
            paths: Paths to meter. Empty means every path.
            dev_frontend_hosts: ``host:port`` values of local dev servers
                whose requests skip metering outside production.
            skip_failed_requests: Uncount responses >= 400 and raised errors.
            skip_successful_requests: Uncount responses < 400.
            enabled: Master switch.
            clock: Time source function returning UNIX time in seconds.
        """
        self.kv = kv
        self.key_generator = key_generator
        self.policy = policy
        self.environment = parse_environment(environment)
        self.prefix = prefix
        self.paths = frozenset(paths)
        self.dev_frontend_hosts = frozenset(host.lower() for host in dev_frontend_hosts)
        self.skip_failed_requests = skip_failed_requests
        self.skip_successful_requests = skip_successful_requests
        self.enabled = enabled
        self._clock = clock
        self._stores: dict[int, AbstractWindowStore] = {}

    def window_store(self, window_ms: int) -> AbstractWindowStore:
        """Window store for ``window_ms``, one per distinct window length."""
        store = self._stores.get(window_ms)
        if store is None:
            if self.kv is None:
                raise RuntimeError("window store requested without a store binding")
            store = KeyValueWindowStore(self.kv, window_ms=window_ms, prefix=self.prefix, clock=self._clock)
            self._stores[window_ms] = store
        return store

    def applies_to(self, request: Request) -> bool:
        return self.enabled and (not self.paths or request.url.path in self.paths)

    async def bypass_reason(self, request: Request) -> str | None:
        """Return why metering must be skipped for this request, if it must."""
        if self.environment is not Environment.PRODUCTION:
            if request.url.netloc.lower() in self.dev_frontend_hosts:
                return "dev_frontend"

        if self.kv is None:
            return "store_binding_absent"

        try:
            await self.kv.get(PROBE_KEY)
        except Exception as exc:
            logger.warning(
                "rate_limit.store_probe_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return "store_probe_failed"

        return None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _reject(self, key: str, traffic_class: TrafficClass, window: LimitWindow, record: WindowRecord) -> Response:
        retry_after = record.retry_after(self._now_ms())
        logger.warning(
            "rate_limit.exceeded",
            extra={
                "key_hash": hash_identifier(key),
                "traffic_class": traffic_class.value,
                "limit": window.limit,
                "count": record.count,
                "window_ms": window.window_ms,
                "retry_after_s": retry_after,
            },
        )
        body = RateLimitExceededResponse(
            retry_after=retry_after,
            limit=window.limit,
            window_ms=window.window_ms,
        )
        return JSONResponse(
            status_code=429,
            content=body.model_dump(by_alias=True),
            headers={
                "Retry-After": str(retry_after),
                "X-RateLimit-Limit": str(window.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(record.reset_at),
            },
        )

    async def _safe_decrement(self, store: AbstractWindowStore, key: str) -> bool:
        try:
            await store.decrement(key)
        except Exception as exc:
            logger.warning(
                "rate_limit.decrement_failed",
                extra={
                    "key_hash": hash_identifier(key),
                    "error_type": type(exc).__name__,
                    "error_msg": str(exc),
                },
            )
            return False
        return True

    async def _bypass(self, request: Request, call_next, reason: str) -> Response:
        logger.warning(
            "rate_limit.bypassed",
            extra={"reason": reason, "path": request.url.path},
        )
        return await call_next(request)

    async def __call__(self, request: Request, call_next) -> Response:
        if not self.applies_to(request):
            return await call_next(request)

        reason = await self.bypass_reason(request)
        if reason is not None:
            return await self._bypass(request, call_next, reason)

        try:
            key = self.key_generator.generate(request.headers)
            traffic_class = self.key_generator.classify(request.headers)
            window = self.policy.resolve(self.environment, traffic_class)
            store = self.window_store(window.window_ms)

            current = await store.get(key)
            if current is not None and current.count >= window.limit:
                return self._reject(key, traffic_class, window, current)

            record = await store.increment(key)
        except Exception as exc:
            logger.error(
                "rate_limit.store_error",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            return await self._bypass(request, call_next, "store_error")

        try:
            response: Response = await call_next(request)
        except (Exception, asyncio.CancelledError):
            if self.skip_failed_requests:
                await self._safe_decrement(store, key)
            raise

        count = record.count
        failed = response.status_code >= 400
        if (self.skip_failed_requests and failed) or (self.skip_successful_requests and not failed):
            if await self._safe_decrement(store, key):
                count = max(0, count - 1)

        remaining = max(0, window.limit - count)
        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": hash_identifier(key),
                "traffic_class": traffic_class.value,
                "limit": window.limit,
                "remaining": remaining,
                "window_ms": window.window_ms,
                "status_code": response.status_code,
            },
        )
        response.headers["X-RateLimit-Limit"] = str(window.limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(record.reset_at)
        return response


def create_rate_limiter(
    kv: AbstractKeyValueStore | None,
    app_settings: AppSettings | None = None,
    *,
    clock: Callable[[], float] = time.time,
) -> RateLimiter:
    """Build the limiter from application settings.

    Args:
        kv: Store binding (None when the backend is ``none``).
        app_settings: Optional settings; defaults to ``settings.app``.
        clock: Time source function returning UNIX time in seconds.

    Raises:
        ValidationAppError: If the environment, profile or key strategy is invalid,
            or the prefixed strategy is paired with a per-class profile.
    """
    cfg = app_settings or settings.app
    environment = parse_environment(cfg.environment)

    policy = LimitPolicy.from_profile(
        cfg.rate_limit_profile,
        environment=environment,
        window_ms=cfg.rate_limit_window_ms,
        limit=cfg.rate_limit_max,
    )
    strategy = _parse_strategy(cfg.rate_limit_key_strategy)
    if strategy is KeyStrategy.PREFIXED and policy.classification_aware:
        # widget:/api: keys share one counter between bots and humans
        raise ValidationAppError(
            code="incompatible_key_strategy",
            message=(
                "The prefixed key strategy cannot tell bots from humans; "
                f"use it with the standard profile, not '{cfg.rate_limit_profile}'"
            ),
            details={"hint": "Set APP_RATE_LIMIT_PROFILE=standard or APP_RATE_LIMIT_KEY_STRATEGY=composite"},
        )

    key_generator = KeyGenerator(
        environment=environment.value,
        strategy=strategy,
        trusted_domain=cfg.rate_limit_trusted_domain,
        bot_pattern=cfg.rate_limit_bot_pattern,
        ip_headers=parse_csv(cfg.rate_limit_ip_headers),
    )

    limiter = RateLimiter(
        kv=kv,
        key_generator=key_generator,
        policy=policy,
        environment=environment,
        prefix=f"{cfg.rate_limit_key_prefix}:{environment.value}:" if cfg.rate_limit_key_prefix else "",
        paths=parse_csv(cfg.rate_limit_paths),
        dev_frontend_hosts=parse_csv(cfg.rate_limit_dev_frontend_hosts),
        skip_failed_requests=cfg.rate_limit_skip_failed_requests,
        skip_successful_requests=cfg.rate_limit_skip_successful_requests,
        enabled=cfg.rate_limit_enabled,
        clock=clock,
    )
    logger.info(
        "rate_limit.configured",
        extra={
            "environment": environment.value,
            "profile": cfg.rate_limit_profile,
            "key_strategy": key_generator.strategy.value,
            "store_bound": kv is not None,
            "enabled": cfg.rate_limit_enabled,
        },
    )
    return limiter


def _parse_strategy(value: str) -> KeyStrategy:
    try:
        return KeyStrategy(value.strip().lower())
    except ValueError as exc:
        raise ValidationAppError(
            code="unknown_key_strategy",
            message=f"Unknown rate limit key strategy: '{value}'. Supported: composite, prefixed",
        ) from exc
