"""
Global exception handling middleware.

Catches anything the application did not handle and answers with a generic
500 body, so internal details never reach the client.
"""

from typing import Callable

import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from augmentations_api.container import ServiceProvider

logger = structlog.get_logger(__name__)


class ExceptionHandlingMiddleware(BaseHTTPMiddleware):
    """Turns unhandled exceptions into 500 responses."""

    def __init__(self, app, services: ServiceProvider):
        super().__init__(app)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(
                "unexpected_exception",
                path=request.url.path,
                method=request.method,
                error=str(e),
                exc_info=True
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "detail": "An unexpected error occurred",
                    "code": "INTERNAL_ERROR",
                }
            )
