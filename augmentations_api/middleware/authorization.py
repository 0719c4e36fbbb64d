"""
Authorization.

Every endpoint requires an authenticated user unless it is marked with
allow_anonymous. The requirement is attached to each route as it is created
(AuthorizedRoute adds a get_current_user dependency), so it holds however
routers are nested, prefixed or included. AuthorizationMiddleware publishes
the per-request AuthorizationContext that the dependency checks.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

import structlog
from fastapi import Depends, Request
from fastapi.routing import APIRoute
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from augmentations_api.container import ServiceProvider
from augmentations_api.exceptions import NotAuthenticatedError
from augmentations_api.models.identity import CurrentUser
from augmentations_api.services.jwt_bearer import BEARER_SCHEME, AuthenticationOptions

logger = structlog.get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# OpenAPI extension marking anonymous operations until the document is finalized.
ANONYMOUS_OPENAPI_EXTENSION = "x-allow-anonymous"


def allow_anonymous(endpoint: F) -> F:
    """Mark an endpoint as reachable without authentication."""
    endpoint.__allow_anonymous__ = True
    return endpoint


def is_anonymous(endpoint: Any) -> bool:
    """Whether an endpoint opted out of authentication."""
    return bool(getattr(endpoint, "__allow_anonymous__", False))


@dataclass(frozen=True)
class AuthorizationContext:
    """Who the request is authenticated as and how to challenge it otherwise."""

    user: Optional[CurrentUser] = None
    challenge_scheme: str = BEARER_SCHEME

    def require_user(self) -> CurrentUser:
        """
        Raises:
            NotAuthenticatedError: If the request is anonymous
        """
        if self.user is None:
            raise NotAuthenticatedError(self.challenge_scheme)
        return self.user


async def get_current_user(request: Request) -> CurrentUser:
    """
    Get the authenticated user of the request.

    Requests that bypassed AuthorizationMiddleware have no context and are
    treated as anonymous.

    Raises:
        NotAuthenticatedError: If the request is anonymous
    """
    context = getattr(request.state, "authorization", None) or AuthorizationContext()

    try:
        return context.require_user()
    except NotAuthenticatedError:
        logger.warning(
            "request_unauthorized",
            path=request.url.path,
            method=request.method,
            client=request.client.host if request.client else None
        )
        raise


class AuthorizedRoute(APIRoute):
    """
    APIRoute requiring an authenticated user unless its endpoint allows anonymous access.

    Anonymous operations are flagged with ANONYMOUS_OPENAPI_EXTENSION so the
    document generator can give them an empty security requirement.
    """

    def __init__(self, path: str, endpoint: Callable[..., Any], **kwargs: Any):
        if is_anonymous(endpoint):
            openapi_extra = dict(kwargs.get("openapi_extra") or {})
            openapi_extra[ANONYMOUS_OPENAPI_EXTENSION] = True
            kwargs["openapi_extra"] = openapi_extra
        else:
            dependencies = list(kwargs.get("dependencies") or [])
            # Routes are rebuilt when a router is included into another.
            if not any(getattr(d, "dependency", None) is get_current_user for d in dependencies):
                dependencies.append(Depends(get_current_user))
            kwargs["dependencies"] = dependencies

        super().__init__(path, endpoint, **kwargs)


class AuthorizationMiddleware(BaseHTTPMiddleware):
    """Publishes the AuthorizationContext of each request."""

    def __init__(self, app, services: ServiceProvider):
        super().__init__(app)
        self.options: AuthenticationOptions = services.get_required_service(AuthenticationOptions)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.authorization = AuthorizationContext(
            user=getattr(request.state, "user", None),
            challenge_scheme=self.options.default_challenge_scheme,
        )
        return await call_next(request)
