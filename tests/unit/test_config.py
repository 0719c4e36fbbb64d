"""
Unit tests for settings loading.

Tests cover:
- appsettings-shaped sections and their aliases
- Environment variables with nested sections
- Defaults of the bearer validation flags and the password policy
- Validators
"""

import pytest
from pydantic import ValidationError

from augmentations_api.config import Settings, get_settings


class TestSettingsSections:
    """Tests for section parsing."""

    def test_pascal_case_sections(self):
        """Test sections are read with their appsettings spelling."""
        settings = Settings.from_mapping({
            "ConnectionStrings": {"Default": "postgresql://user:pass@db/augs"},
            "Jwt": {"Key": "supersecretkey1234", "ExpireMinutes": 15},
            "Identity": {"Password": {"RequiredLength": 8, "RequireDigit": True}},
        })

        assert settings.connection_strings.default == "postgresql://user:pass@db/augs"
        assert settings.jwt.key == "supersecretkey1234"
        assert settings.jwt.expire_minutes == 15
        assert settings.identity.password.required_length == 8
        assert settings.identity.password.require_digit is True

    def test_defaults(self):
        """Test defaults of the bearer flags and password policy."""
        settings = Settings.from_mapping({})

        assert settings.connection_strings.default is None
        assert settings.jwt.key is None
        assert settings.jwt.validate_issuer_signing_key is True
        assert settings.jwt.validate_issuer is False
        assert settings.jwt.validate_audience is False
        assert settings.jwt.require_https_metadata is False
        assert settings.jwt.save_token is True

        policy = settings.identity.password
        assert policy.required_length == 4
        assert not any([
            policy.require_digit,
            policy.require_lowercase,
            policy.require_uppercase,
            policy.require_non_alphanumeric,
        ])

        assert settings.swagger.route_prefix == "swagger"
        assert settings.swagger.document_name == "v1"

    def test_settings_are_immutable(self):
        """Test settings can't be changed after startup."""
        settings = Settings.from_mapping({})

        with pytest.raises(ValidationError):
            settings.app_name = "Other"


class TestEnvironmentVariables:
    """Tests for environment configuration."""

    def test_nested_environment_variables(self, monkeypatch):
        """Test JWT__KEY style variables fill nested sections."""
        monkeypatch.setenv("JWT__KEY", "from-environment")
        monkeypatch.setenv("CONNECTIONSTRINGS__DEFAULT", "sqlite+aiosqlite:///env.db")

        settings = Settings.from_mapping({})

        assert settings.jwt.key == "from-environment"
        assert settings.connection_strings.default == "sqlite+aiosqlite:///env.db"

    def test_get_settings_is_cached(self, monkeypatch, tmp_path):
        """Test settings are read once until the cache is cleared."""
        monkeypatch.chdir(tmp_path)

        assert get_settings() is get_settings()


class TestValidators:
    """Tests for settings validation."""

    def test_log_level_is_normalized(self):
        """Test log level is upper-cased."""
        assert Settings.from_mapping({"log_level": "debug"}).log_level == "DEBUG"

    def test_invalid_log_level(self):
        """Test unknown log levels are rejected."""
        with pytest.raises(ValidationError):
            Settings.from_mapping({"log_level": "VERBOSE"})

    def test_invalid_environment(self):
        """Test unknown environments are rejected."""
        with pytest.raises(ValidationError):
            Settings.from_mapping({"environment": "qa"})

    def test_only_hmac_algorithms(self):
        """Test asymmetric algorithms can't be used with a shared key."""
        with pytest.raises(ValidationError):
            Settings.from_mapping({"Jwt": {"Algorithm": "RS256"}})
