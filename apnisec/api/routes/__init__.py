from __future__ import annotations

from apnisec.api.routes.auth import router as auth_router
from apnisec.api.routes.health import router as health_router
from apnisec.api.routes.logs import router as logs_router

__all__ = ["auth_router", "health_router", "logs_router"]
