from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.phone import router as phone_router

__all__ = ["health_router", "phone_router"]
