"""Tests for environment-driven configuration."""

import pytest
from pydantic import ValidationError

from devteam_api.config import Settings, get_settings
from devteam_api.main import main


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("PORT", "NODE_ENV", "HOST", "API_PREFIX", "DOCS_PATH", "MAX_BODY_BYTES"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.port == 3000
    assert settings.node_env == "development"
    assert settings.is_development is True
    assert settings.api_prefix == "/api"
    assert settings.docs_path == "/api-docs"
    assert settings.max_body_bytes == 10 * 1024 * 1024


def test_port_from_environment(monkeypatch):
    monkeypatch.setenv("PORT", "8080")

    assert Settings(_env_file=None).port == 8080


@pytest.mark.parametrize("value", ["invalid", "70000", "-1"])
def test_invalid_port_is_rejected(monkeypatch, value):
    monkeypatch.setenv("PORT", value)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_port_zero_is_allowed(monkeypatch):
    monkeypatch.setenv("PORT", "0")

    assert Settings(_env_file=None).port == 0


@pytest.mark.parametrize("node_env", ["production", "test", "staging"])
def test_non_development_environments(monkeypatch, node_env):
    monkeypatch.setenv("NODE_ENV", node_env)

    settings = Settings(_env_file=None)
    assert settings.node_env == node_env
    assert settings.is_development is False


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_main_refuses_to_start_with_invalid_port(monkeypatch, caplog):
    monkeypatch.setenv("PORT", "not-a-number")

    assert main() == 1
    assert "Invalid configuration" in caplog.text
