from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (store binding, middleware, handlers, routers)
so tests can build isolated instances with their own store and settings.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.adapters.kv.base import AbstractKeyValueStore
from app.adapters.kv.factory import create_kv_store
from app.api.routes import health_router, phone_router
from app.api.routes.health import SERVICE_NAME, SERVICE_VERSION
from app.api.routes.phone import close_phone_validator
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.rate_limit import create_rate_limiter

_UNSET = object()


def create_app(kv: AbstractKeyValueStore | None | object = _UNSET) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        kv: Store binding for the rate limiter. Defaults to the backend chosen
            by ``STORE_BACKEND``; pass None to run without a binding.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    store = create_kv_store() if kv is _UNSET else kv
    rate_limiter = create_rate_limiter(store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await close_phone_validator()
        if store is not None:
            await store.close()

    app = FastAPI(
        title=SERVICE_NAME,
        description=(
            "Validates phone numbers through NumVerify. The validation endpoint "
            "is rate limited per client fingerprint with environment-tiered "
            "limits and X-RateLimit-* headers."
        ),
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )
    app.state.rate_limiter = rate_limiter

    # Middleware: last registered runs first, so request ids wrap the limiter
    app.middleware("http")(rate_limiter)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(phone_router)

    return app
