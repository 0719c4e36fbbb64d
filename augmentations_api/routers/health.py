"""
Health and readiness endpoints, mounted at the application root.
"""

from typing import Any, Dict

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from augmentations_api.config import Settings
from augmentations_api.database import ApplicationDbContext
from augmentations_api.dependencies import Inject
from augmentations_api.middleware.authorization import AuthorizedRoute, allow_anonymous

logger = structlog.get_logger(__name__)

mount_at_root = True

router = APIRouter(tags=["Health"], route_class=AuthorizedRoute)


@router.get("/health", name="health")
@allow_anonymous
async def health_check(settings: Settings = Inject(Settings)) -> Dict[str, Any]:
    """
    Health check endpoint.

    Returns basic health status without checking dependencies.
    Use for container health checks.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


@router.get("/ready", name="ready")
@allow_anonymous
async def readiness_check(
    settings: Settings = Inject(Settings),
    db_context: ApplicationDbContext = Inject(ApplicationDbContext),
) -> JSONResponse:
    """
    Readiness check endpoint.

    Checks that the database answers; returns 503 when it doesn't.
    """
    error = await db_context.check_connection()
    checks = {"database": "healthy" if error is None else "unhealthy"}

    all_healthy = all(value == "healthy" for value in checks.values())

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "not_ready",
            "service": settings.app_name,
            "version": settings.app_version,
            "checks": checks
        }
    )
