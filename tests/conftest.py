"""
Shared fixtures.

Tests run against an on-disk SQLite database (aiosqlite) created in the
test's temporary directory; the schema is created at application startup.
"""

from pathlib import Path
from typing import Any, Callable, Dict, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from augmentations_api.config import Settings, clear_settings_cache
from augmentations_api.main import create_app

TEST_JWT_KEY = "supersecretkey1234-test-signing-key"


def deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Merge nested dictionaries, values from overrides winning."""
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    """Settings for one test: SQLite in tmp_path, a known signing key, text logs."""
    data: Dict[str, Any] = {
        "environment": "development",
        "log_level": "WARNING",
        "log_format": "text",
        "ConnectionStrings": {
            "Default": f"sqlite+aiosqlite:///{tmp_path / 'augmentations.db'}"
        },
        "Database": {"AutoCreateSchema": True},
        "Jwt": {"Key": TEST_JWT_KEY},
    }
    return Settings.from_mapping(deep_merge(data, overrides))


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Make sure no test sees settings cached by another."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def app(settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    """Client running the application lifespan (schema creation, disposal)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client) -> Dict[str, str]:
    """Register a user, log in and return the bearer header."""
    credentials = {"userName": "JCDenton", "password": "NanoAugmented"}

    response = client.post("/api/identity/register", json=credentials)
    assert response.status_code == 201, response.text

    response = client.post("/api/identity/login", json=credentials)
    assert response.status_code == 200, response.text

    return {"Authorization": f"Bearer {response.json()['token']}"}


@pytest.fixture
def settings_factory(tmp_path) -> Callable[..., Settings]:
    """Build settings for this test's tmp_path with overrides applied."""
    def factory(**overrides: Any) -> Settings:
        return make_settings(tmp_path, **overrides)
    return factory
