from __future__ import annotations

from fastapi import APIRouter

from apnisec.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and uptime monitors.

    Returns:
        dict: ``status`` plus the service name and environment.
    """

    return {
        "status": "ok",
        "service": settings.log.service_name,
        "environment": settings.app_env,
    }
