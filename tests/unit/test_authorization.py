"""
Unit tests for endpoint authorization.

Tests cover:
- The anonymous marker
- AuthorizedRoute attaching the user requirement
- Enforcement through nested and prefixed routers
"""

import pytest
from fastapi import APIRouter, FastAPI
from fastapi.testclient import TestClient

from augmentations_api.exceptions import (
    AugmentationsAPIException,
    NotAuthenticatedError,
    augmentations_api_exception_handler,
)
from augmentations_api.middleware.authorization import (
    ANONYMOUS_OPENAPI_EXTENSION,
    AuthorizationContext,
    AuthorizedRoute,
    allow_anonymous,
    get_current_user,
    is_anonymous,
)
from augmentations_api.models.identity import CurrentUser


def make_router() -> APIRouter:
    router = APIRouter(prefix="/inner", route_class=AuthorizedRoute)

    @router.get("/secret")
    async def secret():
        return {"secret": True}

    @router.get("/open")
    @allow_anonymous
    async def open_endpoint():
        return {"open": True}

    return router


def make_app(user: CurrentUser = None) -> FastAPI:
    """App with the router two levels deep and no authentication middleware."""
    app = FastAPI()
    app.router.route_class = AuthorizedRoute
    app.add_exception_handler(AugmentationsAPIException, augmentations_api_exception_handler)

    outer = APIRouter(prefix="/outer")
    outer.include_router(make_router())
    app.include_router(outer, prefix="/api")

    if user is not None:
        @app.middleware("http")
        async def authenticate(request, call_next):
            request.state.authorization = AuthorizationContext(user=user)
            return await call_next(request)

    return app


def dependency_calls(route) -> list:
    return [d.dependency for d in route.dependencies]


class TestAllowAnonymous:
    """Tests for the anonymous marker."""

    def test_marks_endpoint(self):
        """Test the decorator marks and returns the same function."""
        async def endpoint():
            return None

        assert not is_anonymous(endpoint)
        assert allow_anonymous(endpoint) is endpoint
        assert is_anonymous(endpoint)


class TestAuthorizedRoute:
    """Tests for the route class."""

    def test_protected_route_requires_user(self):
        """Test routes get the current-user dependency by default."""
        routes = {route.name: route for route in make_router().routes}

        assert dependency_calls(routes["secret"]) == [get_current_user]
        assert not (routes["secret"].openapi_extra or {}).get(ANONYMOUS_OPENAPI_EXTENSION)

    def test_anonymous_route_is_flagged(self):
        """Test anonymous routes get no dependency and the OpenAPI flag."""
        routes = {route.name: route for route in make_router().routes}

        assert dependency_calls(routes["open_endpoint"]) == []
        assert routes["open_endpoint"].openapi_extra[ANONYMOUS_OPENAPI_EXTENSION] is True

    def test_dependency_not_duplicated(self):
        """Test rebuilding a route keeps a single requirement."""
        async def endpoint():
            return None

        first = AuthorizedRoute("/x", endpoint)
        second = AuthorizedRoute("/x", endpoint, dependencies=first.dependencies)

        assert dependency_calls(second) == [get_current_user]


class TestAuthorizationContext:
    """Tests for the per-request context."""

    def test_anonymous_context_raises(self):
        """Test the configured challenge scheme travels with the error."""
        with pytest.raises(NotAuthenticatedError) as exc_info:
            AuthorizationContext(challenge_scheme="Bearer").require_user()

        assert exc_info.value.status_code == 401
        assert exc_info.value.challenge_scheme == "Bearer"

    def test_user_returned(self):
        """Test an authenticated context hands out its user."""
        user = CurrentUser(id="user-1")

        assert AuthorizationContext(user=user).require_user() is user


class TestNestedRouters:
    """Tests for enforcement through included routers."""

    def test_protected_endpoint_rejects_anonymous(self):
        """Test a route two routers deep still challenges anonymous requests."""
        with TestClient(make_app()) as client:
            response = client.get("/api/outer/inner/secret")

        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_anonymous_endpoint_open(self):
        """Test anonymous routes answer without a user."""
        with TestClient(make_app()) as client:
            response = client.get("/api/outer/inner/open")

        assert response.status_code == 200

    def test_authenticated_request_passes(self):
        """Test a request with a user reaches the protected endpoint."""
        with TestClient(make_app(user=CurrentUser(id="user-1"))) as client:
            response = client.get("/api/outer/inner/secret")

        assert response.status_code == 200
        assert response.json() == {"secret": True}

    def test_route_added_to_app_is_protected(self):
        """Test routes added straight onto the app use the same guard."""
        app = make_app()

        @app.get("/direct")
        async def direct():
            return {}

        with TestClient(app) as client:
            assert client.get("/direct").status_code == 401
