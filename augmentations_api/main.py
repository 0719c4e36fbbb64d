"""
FastAPI application entry point for the Augmentations API.

create_app() is the composition root:
- Runs the service registrars in a fixed order
- Builds and validates the service provider
- Creates the FastAPI application and maps the routers
- Installs the middleware pipeline in a fixed order
- Opens and disposes resources in the application lifespan
"""

import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from augmentations_api.config import Settings, describe_sources, get_settings
from augmentations_api.container import ServiceCollection, ServiceProvider
from augmentations_api.database import ApplicationDbContext
from augmentations_api.exceptions import (
    AugmentationsAPIException,
    ConfigurationError,
    DuplicateRegistrationError,
    augmentations_api_exception_handler,
    validation_exception_handler,
)
from augmentations_api.logging_config import configure_logging
from augmentations_api.middleware.authentication import AuthenticationMiddleware
from augmentations_api.middleware.authorization import AuthorizationMiddleware, AuthorizedRoute
from augmentations_api.middleware.documentation import DocumentationMiddleware
from augmentations_api.middleware.exception_handler import ExceptionHandlingMiddleware
from augmentations_api.middleware.response_caching import ResponseCachingMiddleware
from augmentations_api.registrars import (
    REGISTRATION_PIPELINE,
    ControllerRegistry,
    JsonFormattingOptions,
)

logger = structlog.get_logger(__name__)

# Outermost first. Endpoint routing/dispatch sits inside the last entry.
MIDDLEWARE_PIPELINE = (
    DocumentationMiddleware,
    AuthenticationMiddleware,
    AuthorizationMiddleware,
    ExceptionHandlingMiddleware,
    ResponseCachingMiddleware,
)


# ============================================================================
# Lifespan Management
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Schema creation when Database:AutoCreateSchema is on
    - Disposal of singletons (the database engine among them)
    """
    settings: Settings = app.state.settings
    provider: ServiceProvider = app.state.services

    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment
    )

    try:
        if settings.database.auto_create_schema:
            await provider.get_required_service(ApplicationDbContext).create_schema()

        logger.info("application_started", app_name=settings.app_name)
        yield

    finally:
        logger.info("application_shutting_down")
        await provider.aclose()
        logger.info("application_shutdown_complete")


# ============================================================================
# Composition Root
# ============================================================================


def build_services(settings: Settings) -> ServiceCollection:
    """Run every registrar, in order, over a new collection."""
    services = ServiceCollection()
    for registrar in REGISTRATION_PIPELINE:
        registrar(services, settings)
        logger.debug("registrar_completed", registrar=registrar.__name__)
    return services


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Compose the application.

    Args:
        settings: Settings to use; read from the environment when omitted

    Returns:
        Configured FastAPI application

    Raises:
        ConfigurationError: If required configuration is missing or a
            binding cannot be resolved
        DuplicateRegistrationError: If a service type is registered twice
    """
    settings = settings or get_settings()
    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        service_name=settings.app_name,
        environment=settings.environment,
    )
    logger.info("configuration_loaded", **describe_sources())

    services = build_services(settings)
    provider = services.build_service_provider()

    json_options: JsonFormattingOptions = provider.get_required_service(JsonFormattingOptions)

    # FastAPI's own docs are replaced by the documentation middleware.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="An API about Deus Ex's Augmentations",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        default_response_class=json_options.response_class(),
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.services = provider
    # Routes added straight onto the app are authorized like router routes.
    app.router.route_class = AuthorizedRoute

    app.add_exception_handler(AugmentationsAPIException, augmentations_api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    provider.get_required_service(ControllerRegistry).include_into(app, settings.api_prefix)

    # add_middleware wraps everything added before it, so install innermost first.
    for middleware in reversed(MIDDLEWARE_PIPELINE):
        app.add_middleware(middleware, services=provider)

    logger.info(
        "application_composed",
        services=len(services),
        middleware=[m.__name__ for m in MIDDLEWARE_PIPELINE]
    )
    return app


# ============================================================================
# Application Entry Point
# ============================================================================


def main() -> None:
    """Run the application with Uvicorn."""
    settings = get_settings()

    try:
        app = create_app(settings)
    except (ConfigurationError, DuplicateRegistrationError) as e:
        logger.error("application_startup_failed", error=str(e))
        sys.exit(1)

    logger.info("starting_uvicorn_server", host=settings.host, port=settings.port)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    main()
