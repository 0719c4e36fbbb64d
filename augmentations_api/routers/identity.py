"""
Identity router for registration and login.

Provides:
- User registration (anonymous)
- Login returning a JWT access token (anonymous)
- The authenticated user's own claims
"""

import structlog
from fastapi import APIRouter, Depends, status

from augmentations_api.dependencies import Inject
from augmentations_api.middleware.authorization import (
    AuthorizedRoute,
    allow_anonymous,
    get_current_user,
)
from augmentations_api.models.common import ErrorResponse
from augmentations_api.models.identity import (
    CurrentUser,
    LoginRequestModel,
    RegisterRequestModel,
    RegisterResponseModel,
    TokenResponse,
)
from augmentations_api.services.identity_service import IIdentityService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/identity",
    route_class=AuthorizedRoute,
    tags=["Identity"],
    responses={
        400: {"model": ErrorResponse, "description": "Validation Error"}
    }
)


@router.post(
    "/register",
    response_model=RegisterResponseModel,
    status_code=status.HTTP_201_CREATED,
    name="register",
    summary="Register a user",
)
@allow_anonymous
async def register(
    model: RegisterRequestModel,
    identity_service: IIdentityService = Inject(IIdentityService),
) -> RegisterResponseModel:
    """
    Register a new user.

    Both userName and password are required. The password must satisfy the
    configured policy and the user name must not be taken.
    """
    user = await identity_service.register(model)
    return RegisterResponseModel(id=str(user.id), user_name=user.user_name)


@router.post(
    "/login",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    name="login",
    summary="Log in",
    responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
)
@allow_anonymous
async def login(
    model: LoginRequestModel,
    identity_service: IIdentityService = Inject(IIdentityService),
) -> TokenResponse:
    """Exchange a user name and password for a bearer token."""
    return await identity_service.login(model)


@router.get(
    "/me",
    response_model=CurrentUser,
    name="current_user",
    summary="Current user",
    responses={401: {"model": ErrorResponse, "description": "Unauthorized"}},
)
async def me(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Return the user the bearer token was issued to."""
    return current_user
