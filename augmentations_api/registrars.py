"""
Service registrars.

Each registrar binds one cross-cutting concern into the ServiceCollection and
has the same signature:

    registrar(services: ServiceCollection, configuration: Settings) -> ServiceCollection

The composition root runs them in a fixed order. Required configuration is
checked here, so a missing value stops startup before anything is served.
"""

import importlib
import json
import pkgutil
from dataclasses import dataclass
from types import ModuleType
from typing import Any, List, Optional, Tuple, Type

import structlog
from fastapi import APIRouter, FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from augmentations_api import routers as routers_package
from augmentations_api.config import (
    DatabaseSettings,
    IdentitySettings,
    JsonSettings,
    JwtSettings,
    ResponseCachingSettings,
    Settings,
    SwaggerSettings,
)
from augmentations_api.container import ServiceCollection, ServiceResolver
from augmentations_api.database import ApplicationDbContext
from augmentations_api.documentation import (
    DEFAULT_DOCUMENTATION_FILE,
    ApiDocumentationOptions,
    OpenApiDocumentGenerator,
)
from augmentations_api.exceptions import ConfigurationError
from augmentations_api.filters.csv_validation import ValidateFileIsCSV
from augmentations_api.middleware.authorization import AuthorizedRoute
from augmentations_api.middleware.response_caching import ResponseCache, RoutingOptions
from augmentations_api.models.augmentation import AugResponseModel
from augmentations_api.repositories.augmentation_repo import (
    AugmentationRepository,
    IAugmentationRepository,
)
from augmentations_api.repositories.user_repo import UserStore
from augmentations_api.services.identity_service import (
    IdentityOptions,
    IdentityService,
    IIdentityService,
    PasswordHasher,
    PasswordValidator,
)
from augmentations_api.services.jwt_bearer import (
    AuthenticationOptions,
    JwtBearerOptions,
    JwtTokenIssuer,
    JwtTokenValidator,
    SymmetricSigningKey,
)
from augmentations_api.services.link_generation import (
    AugmentationLinkGenerationService,
    ILinkGenerationService,
    RequestContextAccessor,
)
from augmentations_api.services.pdf_generation import (
    AugmentationPDFGenerationService,
    IPDFGenerationService,
)

logger = structlog.get_logger(__name__)


def _require(value: Optional[str], key: str) -> str:
    if value is None or not value.strip():
        logger.error("configuration_value_missing", key=key)
        raise ConfigurationError(key)
    return value


# ============================================================================
# Persistence
# ============================================================================


def add_database(services: ServiceCollection, configuration: Settings) -> ServiceCollection:
    """
    Register the database context (singleton) and the request session (scoped).

    Raises:
        ConfigurationError: If ConnectionStrings:Default is missing or blank
    """
    connection_string = _require(
        configuration.connection_strings.default, "ConnectionStrings:Default"
    )
    database = configuration.database

    def create_context(_: ServiceResolver) -> ApplicationDbContext:
        return ApplicationDbContext(
            connection_string,
            provider=database.provider,
            pool_size=database.pool_size,
            max_overflow=database.max_overflow,
            pool_timeout=database.pool_timeout,
            echo=database.echo,
        )

    def create_session(resolver: ServiceResolver) -> AsyncSession:
        return resolver.get_required_service(ApplicationDbContext).create_session()

    services.add_singleton(ApplicationDbContext, factory=create_context)
    services.add_scoped(AsyncSession, factory=create_session)

    logger.info("database_registered", provider=database.provider)
    return services


# ============================================================================
# Identity
# ============================================================================


def add_custom_identity(services: ServiceCollection, configuration: Settings) -> ServiceCollection:
    """Register the password policy, hasher, validator and user store."""
    options = IdentityOptions.from_settings(configuration.identity)

    services.add_singleton(IdentityOptions, instance=options)
    services.add_singleton(PasswordHasher)
    services.add_singleton(PasswordValidator)
    services.add_scoped(UserStore)

    logger.info(
        "identity_registered",
        required_length=options.password.required_length,
        hash_scheme=options.password_hash_scheme
    )
    return services


# ============================================================================
# Settings
# ============================================================================


def add_configuration_settings(services: ServiceCollection, configuration: Settings) -> ServiceCollection:
    """Expose the settings and each of their sections as singletons."""
    services.add_singleton(Settings, instance=configuration)
    services.add_singleton(DatabaseSettings, instance=configuration.database)
    services.add_singleton(JwtSettings, instance=configuration.jwt)
    services.add_singleton(IdentitySettings, instance=configuration.identity)
    services.add_singleton(SwaggerSettings, instance=configuration.swagger)
    services.add_singleton(ResponseCachingSettings, instance=configuration.response_caching)
    services.add_singleton(JsonSettings, instance=configuration.json_formatting)
    return services


# ============================================================================
# Authentication
# ============================================================================


def add_jwt_authentication(services: ServiceCollection, configuration: Settings) -> ServiceCollection:
    """
    Register bearer authentication.

    Raises:
        ConfigurationError: If Jwt:Key is missing, blank, not ASCII, or too
            short while Jwt:ValidateIssuerSigningKey is on
    """
    jwt_settings = configuration.jwt
    signing_key = SymmetricSigningKey.from_text(_require(jwt_settings.key, "Jwt:Key"))

    options = JwtBearerOptions(
        signing_key=signing_key,
        algorithm=jwt_settings.algorithm,
        expire_minutes=jwt_settings.expire_minutes,
        issuer=jwt_settings.issuer,
        audience=jwt_settings.audience,
        validate_issuer_signing_key=jwt_settings.validate_issuer_signing_key,
        validate_issuer=jwt_settings.validate_issuer,
        validate_audience=jwt_settings.validate_audience,
        require_https_metadata=jwt_settings.require_https_metadata,
        save_token=jwt_settings.save_token,
    )

    if not options.validate_issuer or not options.validate_audience:
        logger.warning(
            "jwt_validation_relaxed",
            validate_issuer=options.validate_issuer,
            validate_audience=options.validate_audience
        )

    if options.require_https_metadata:
        logger.info("jwt_https_metadata_not_applicable", reason="symmetric signing key")

    services.add_singleton(AuthenticationOptions, instance=AuthenticationOptions())
    services.add_singleton(JwtBearerOptions, instance=options)
    services.add_singleton(JwtTokenValidator)
    services.add_singleton(JwtTokenIssuer)

    logger.info("jwt_authentication_registered", algorithm=options.algorithm)
    return services


# ============================================================================
# Application Services
# ============================================================================


def add_application_services(services: ServiceCollection, configuration: Settings) -> ServiceCollection:
    """Register the business services, request helpers and the CSV filter."""
    caching = configuration.response_caching

    services.add_transient(IIdentityService, IdentityService)
    services.add_transient(IAugmentationRepository, AugmentationRepository)
    services.add_transient(
        ILinkGenerationService[AugResponseModel], AugmentationLinkGenerationService
    )
    services.add_transient(
        IPDFGenerationService[AugResponseModel], AugmentationPDFGenerationService
    )

    services.add_singleton(
        RoutingOptions,
        instance=RoutingOptions(case_sensitive_paths=caching.use_case_sensitive_paths)
    )
    services.add_singleton(RequestContextAccessor)
    services.add_singleton(
        ResponseCache,
        factory=lambda _: ResponseCache(
            size_limit=caching.size_limit,
            maximum_body_size=caching.maximum_body_size,
        )
    )
    services.add_scoped(ValidateFileIsCSV)

    logger.info("application_services_registered")
    return services


# ============================================================================
# API Documentation
# ============================================================================


def add_swagger(services: ServiceCollection, configuration: Settings) -> ServiceCollection:
    """Register the OpenAPI document options and generator."""
    swagger = configuration.swagger
    options = ApiDocumentationOptions(
        title=configuration.app_name,
        version=swagger.document_name,
        route_prefix=swagger.route_prefix.strip("/"),
        document_name=swagger.document_name,
        documentation_file=swagger.documentation_file or DEFAULT_DOCUMENTATION_FILE,
    )

    services.add_singleton(ApiDocumentationOptions, instance=options)
    services.add_singleton(OpenApiDocumentGenerator)

    logger.info("swagger_registered", document_url=options.document_url)
    return services


# ============================================================================
# Controllers
# ============================================================================


@dataclass(frozen=True)
class ControllerRegistration:
    module: str
    router: APIRouter
    mount_at_root: bool = False


class ControllerRegistry:
    """Routers discovered in the routers package."""

    def __init__(self, registrations: List[ControllerRegistration]):
        self.registrations = registrations

    @classmethod
    def discover(cls, package: ModuleType = routers_package) -> "ControllerRegistry":
        """
        Collect the module-level ``router`` of every module in package.

        Raises:
            ConfigurationError: If a router doesn't build AuthorizedRoute routes
        """
        registrations: List[ControllerRegistration] = []
        for info in sorted(pkgutil.iter_modules(package.__path__), key=lambda m: m.name):
            module = importlib.import_module(f"{package.__name__}.{info.name}")
            router = getattr(module, "router", None)
            if isinstance(router, APIRouter):
                if not issubclass(router.route_class, AuthorizedRoute):
                    raise ConfigurationError(
                        f"{module.__name__}.router",
                        "must use route_class=AuthorizedRoute so its endpoints are authorized"
                    )
                registrations.append(ControllerRegistration(
                    module=module.__name__,
                    router=router,
                    mount_at_root=bool(getattr(module, "mount_at_root", False)),
                ))
        return cls(registrations)

    def include_into(self, app: FastAPI, api_prefix: str) -> None:
        for registration in self.registrations:
            prefix = "" if registration.mount_at_root else api_prefix
            app.include_router(registration.router, prefix=prefix)
            logger.debug("router_included", module=registration.module, prefix=prefix)

    def __len__(self) -> int:
        return len(self.registrations)


def add_controllers(services: ServiceCollection, configuration: Settings) -> ServiceCollection:
    """Register the routers to be mapped onto the application."""
    registry = ControllerRegistry.discover()
    services.add_singleton(ControllerRegistry, instance=registry)

    logger.info("controllers_registered", modules=[r.module for r in registry.registrations])
    return services


# ============================================================================
# JSON Formatting
# ============================================================================


class FormattedJSONResponse(JSONResponse):
    """JSONResponse rendering with a configurable indent."""

    indent: Optional[int] = None

    def render(self, content: Any) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=self.indent,
            separators=(",", ":") if self.indent is None else None,
        ).encode("utf-8")


@dataclass(frozen=True)
class JsonFormattingOptions:
    indent: Optional[int] = None

    def response_class(self) -> Type[JSONResponse]:
        """Default response class rendering JSON with these options."""
        return type("FormattedJSONResponse", (FormattedJSONResponse,), {"indent": self.indent})


def add_json_formatting(services: ServiceCollection, configuration: Settings) -> ServiceCollection:
    """Register how JSON responses are rendered."""
    services.add_singleton(
        JsonFormattingOptions,
        instance=JsonFormattingOptions(indent=configuration.json_formatting.indent)
    )
    return services


# ============================================================================
# Pipeline
# ============================================================================


REGISTRATION_PIPELINE: Tuple[Any, ...] = (
    add_database,
    add_custom_identity,
    add_configuration_settings,
    add_jwt_authentication,
    add_application_services,
    add_swagger,
    add_controllers,
    add_json_formatting,
)
