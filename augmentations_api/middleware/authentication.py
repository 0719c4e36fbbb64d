"""
JWT bearer authentication middleware.

Reads the Authorization header, validates the bearer token and attaches the
current user to request.state. It never rejects a request itself; endpoints that need a user refuse
anonymous requests through the authorization guard.
"""

from typing import Callable, Optional

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from augmentations_api.container import ServiceProvider
from augmentations_api.logging_config import bind_context, clear_context
from augmentations_api.services.jwt_bearer import (
    AuthenticationOptions,
    JwtBearerOptions,
    JwtTokenValidator,
)

logger = structlog.get_logger(__name__)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Authenticates requests carrying a bearer token."""

    def __init__(self, app, services: ServiceProvider):
        """
        Initialize authentication middleware.

        Args:
            app: Downstream ASGI application
            services: Provider holding the bearer options and token validator
        """
        super().__init__(app)
        self.scheme = services.get_required_service(AuthenticationOptions).default_authenticate_scheme
        self.options: JwtBearerOptions = services.get_required_service(JwtBearerOptions)
        self.validator: JwtTokenValidator = services.get_required_service(JwtTokenValidator)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        clear_context("user_id")
        request.state.user = None
        request.state.access_token = None

        token = self._extract_token(request)
        if token is None:
            return await call_next(request)

        current_user = self.validator.authenticate(token)
        if current_user is None:
            return await call_next(request)

        request.state.user = current_user
        if self.options.save_token:
            request.state.access_token = token

        bind_context(user_id=current_user.id)
        logger.debug(
            "request_authenticated",
            path=request.url.path,
            method=request.method,
            user_id=current_user.id,
            user_name=current_user.user_name,
            roles=current_user.roles
        )

        return await call_next(request)

    def _extract_token(self, request: Request) -> Optional[str]:
        """
        Extract the token from an "Authorization: Bearer <token>" header.

        Returns:
            Token, or None if the header is missing or uses another scheme
        """
        authorization = request.headers.get("Authorization")
        if not authorization:
            return None

        parts = authorization.split()
        if len(parts) != 2 or parts[0].lower() != self.scheme.lower():
            logger.warning("auth_malformed_header", path=request.url.path)
            return None

        return parts[1]
