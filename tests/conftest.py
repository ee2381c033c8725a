"""Shared fixtures for API tests."""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from devteam_api import Settings, create_app

OPENAPI_FILE = Path(__file__).resolve().parent.parent / "openapi.yaml"


@pytest.fixture
def settings_factory():
    """Build Settings without reading a .env file; keyword arguments override defaults."""

    def build(**overrides) -> Settings:
        values = {
            "host": "127.0.0.1",
            "node_env": "test",
            "openapi_file": str(OPENAPI_FILE),
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return build


@pytest.fixture
def app(settings_factory):
    return create_app(settings_factory())


@pytest.fixture
def client(app):
    return TestClient(app)
