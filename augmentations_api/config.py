"""
FastAPI application configuration using Pydantic Settings.

Provides centralized configuration for:
- Connection strings (ConnectionStrings:Default)
- JWT bearer authentication (Jwt:Key and validation flags)
- Identity password policy
- Database provider and pool settings
- API documentation, response caching and JSON formatting
- Logging

Settings are loaded from (highest priority first):
1. Values passed to the constructor
2. Environment variables (nested sections use "__", e.g. JWT__KEY)
3. .env file in the current directory
4. appsettings.json in the current directory

Required values (the connection string and the JWT signing key) are optional
here; the registrars that consume them fail fast when they are missing.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_pascal
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class SettingsSection(BaseModel):
    """Base for configuration sections.

    Section keys are PascalCase in files ("Jwt": {"Key": ...}) and
    snake_case in code and environment variables.
    """

    model_config = ConfigDict(
        alias_generator=to_pascal,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# =========================================================================
# Sections
# =========================================================================


class ConnectionStringsSettings(SettingsSection):
    """Named database connection strings."""

    default: Optional[str] = Field(
        default=None,
        description="Default database connection string (DSN)"
    )


class DatabaseSettings(SettingsSection):
    """Persistence provider settings."""

    provider: str = Field(
        default="postgresql+asyncpg",
        description="SQLAlchemy dialect+driver used when the DSN names no driver"
    )
    pool_size: int = Field(
        default=10,
        description="Database connection pool size",
        gt=0,
        le=100
    )
    max_overflow: int = Field(
        default=10,
        description="Max connections above pool size",
        ge=0,
        le=50
    )
    pool_timeout: int = Field(
        default=30,
        description="Pool connection timeout (seconds)",
        gt=0
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL queries to logs"
    )
    auto_create_schema: bool = Field(
        default=False,
        description="Create missing tables at startup (development and tests)"
    )


class JwtSettings(SettingsSection):
    """JWT signing and bearer validation settings."""

    key: Optional[str] = Field(
        default=None,
        description="Symmetric secret used to sign and validate tokens"
    )
    algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    expire_minutes: int = Field(
        default=60,
        description="Access token lifetime in minutes",
        gt=0,
        le=1440
    )
    issuer: Optional[str] = Field(
        default=None,
        description="Issuer claim written to tokens and checked when validate_issuer is on"
    )
    audience: Optional[str] = Field(
        default=None,
        description="Audience claim written to tokens and checked when validate_audience is on"
    )

    # Bearer validation flags. Issuer and audience validation are off by
    # default; turning them on changes which tokens are accepted.
    validate_issuer_signing_key: bool = Field(
        default=True,
        description="Check the signing key itself (length) at startup; signatures are always verified"
    )
    validate_issuer: bool = Field(
        default=False,
        description="Verify the iss claim (off by default)"
    )
    validate_audience: bool = Field(
        default=False,
        description="Verify the aud claim (off by default)"
    )
    require_https_metadata: bool = Field(
        default=False,
        description="Only affects fetching signing metadata from an authority; no effect with a symmetric key"
    )
    save_token: bool = Field(
        default=True,
        description="Keep the raw bearer token on the request state"
    )

    @field_validator("algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        """Only symmetric HMAC algorithms work with a shared signing key."""
        allowed = ["HS256", "HS384", "HS512"]
        if v not in allowed:
            raise ValueError(f"algorithm must be one of {allowed}, got: {v}")
        return v


class PasswordPolicySettings(SettingsSection):
    """Password requirements enforced at registration."""

    require_digit: bool = Field(default=False)
    require_lowercase: bool = Field(default=False)
    require_uppercase: bool = Field(default=False)
    require_non_alphanumeric: bool = Field(default=False)
    required_length: int = Field(default=4, ge=1, le=128)


class IdentitySettings(SettingsSection):
    """User management settings."""

    password: PasswordPolicySettings = Field(default_factory=PasswordPolicySettings)
    password_hash_scheme: str = Field(
        default="pbkdf2_sha256",
        description="passlib scheme used to hash passwords"
    )
    default_roles: List[str] = Field(
        default_factory=list,
        description="Roles every newly registered user is added to"
    )


class SwaggerSettings(SettingsSection):
    """API documentation settings."""

    route_prefix: str = Field(
        default="swagger",
        description="Path prefix for the documentation UI and document"
    )
    document_name: str = Field(
        default="v1",
        description="Name of the generated document"
    )
    documentation_file: Optional[Path] = Field(
        default=None,
        description="JSON file with per-operation comments; defaults to the file shipped with the package"
    )


class ResponseCachingSettings(SettingsSection):
    """Response caching middleware settings."""

    maximum_body_size: int = Field(
        default=64 * 1024 * 1024,
        description="Largest response body (bytes) that will be cached",
        gt=0
    )
    size_limit: int = Field(
        default=1000,
        description="Maximum number of cached responses",
        gt=0
    )
    use_case_sensitive_paths: bool = Field(
        default=False,
        description="Treat paths differing only in case as different cache keys"
    )


class JsonSettings(SettingsSection):
    """JSON response formatting."""

    indent: Optional[int] = Field(
        default=None,
        description="Indentation of rendered JSON responses (None for compact)",
        ge=0,
        le=8
    )


# =========================================================================
# Settings
# =========================================================================


class Settings(BaseSettings):
    """
    Application settings.

    Sections mirror the layout of appsettings.json:

        {
            "ConnectionStrings": {"Default": "postgresql://..."},
            "Jwt": {"Key": "supersecretkey1234"}
        }
    """

    app_name: str = Field(
        default="AugmentationsAPI",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_prefix: str = Field(
        default="/api",
        description="API URL prefix"
    )
    environment: str = Field(
        default="production",
        description="Environment: development|staging|production"
    )
    debug: bool = Field(
        default=False,
        description="Debug mode"
    )
    host: str = Field(
        default="0.0.0.0",
        description="API bind host"
    )
    port: int = Field(
        default=8000,
        description="API bind port",
        gt=0,
        lt=65536
    )

    log_level: str = Field(
        default="INFO",
        description="Log level: DEBUG|INFO|WARNING|ERROR|CRITICAL"
    )
    log_format: str = Field(
        default="json",
        description="Log format: json|text"
    )

    connection_strings: ConnectionStringsSettings = Field(
        default_factory=ConnectionStringsSettings,
        alias="ConnectionStrings"
    )
    database: DatabaseSettings = Field(
        default_factory=DatabaseSettings,
        alias="Database"
    )
    jwt: JwtSettings = Field(
        default_factory=JwtSettings,
        alias="Jwt"
    )
    identity: IdentitySettings = Field(
        default_factory=IdentitySettings,
        alias="Identity"
    )
    swagger: SwaggerSettings = Field(
        default_factory=SwaggerSettings,
        alias="Swagger"
    )
    response_caching: ResponseCachingSettings = Field(
        default_factory=ResponseCachingSettings,
        alias="ResponseCaching"
    )
    json_formatting: JsonSettings = Field(
        default_factory=JsonSettings,
        alias="Json"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the allowed values."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of {allowed}, got: {v}")
        return v_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        allowed = ["json", "text"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"log_format must be one of {allowed}, got: {v}")
        return v_lower

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is one of the allowed values."""
        allowed = ["development", "staging", "production"]
        v_lower = v.lower()
        if v_lower not in allowed:
            raise ValueError(f"environment must be one of {allowed}, got: {v}")
        return v_lower

    # =========================================================================
    # Model Config
    # =========================================================================

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        json_file="appsettings.json",
        json_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Add appsettings.json as the lowest-priority source."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Settings":
        """
        Build settings from an appsettings-shaped mapping.

        The .env file is ignored so the mapping fully describes the
        configuration (environment variables still apply).

        Example:
            >>> Settings.from_mapping({"Jwt": {"Key": "supersecretkey1234"}})
        """
        return cls(_env_file=None, **dict(data))


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Settings are read once per process and shared by every component.

    Returns:
        Settings: Cached settings instance
    """
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when settings must be reloaded with different
    environment variables.
    """
    get_settings.cache_clear()


def describe_sources() -> Dict[str, str]:
    """Return the configuration files that would be read, for startup logging."""
    return {
        "env_file": str(Settings.model_config.get("env_file")),
        "json_file": str(Settings.model_config.get("json_file")),
    }
