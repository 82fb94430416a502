"""
Unit tests for a2a_service.settings: defaults, environment overrides and validation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from a2a_service.settings import (
    Settings,
    get_settings,
    normalize_base_path,
    parse_auth_tokens,
    validate_settings,
)

ENV_VARS = [
    "A2A_SERVICE_NAME",
    "A2A_BASE_PATH",
    "A2A_HOST",
    "PORT",
    "A2A_TASK_STORE",
    "A2A_TASK_STORE_DIR",
    "A2A_DATABASE_PATH",
    "A2A_AUTH_TOKENS",
    "A2A_ADMIN_TOKEN",
    "A2A_MAX_STREAMS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Unset every service variable and reset the settings cache around each test."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_defaults():
    """With no overrides the documented defaults apply."""
    settings = get_settings()

    assert settings.service_name == "A2A Task Service"
    assert settings.base_path == "/"
    assert settings.host == "localhost"
    assert settings.port == 4004
    assert settings.task_store == "memory"
    assert settings.task_store_dir == Path(".a2a-tasks")
    assert settings.database_path == Path("a2a_tasks.db")
    assert settings.auth_tokens == {}
    assert settings.admin_token is None
    assert settings.max_streams == 200
    assert settings.public_url == "http://localhost:4004/"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("A2A_SERVICE_NAME", "Coder")
    monkeypatch.setenv("A2A_BASE_PATH", "agents/coder/")
    monkeypatch.setenv("A2A_HOST", "0.0.0.0")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("A2A_TASK_STORE", "SQLite")
    monkeypatch.setenv("A2A_DATABASE_PATH", "/tmp/coder.db")
    monkeypatch.setenv("A2A_AUTH_TOKENS", "tok1=did:web:a, tok2=did:web:b")
    monkeypatch.setenv("A2A_ADMIN_TOKEN", "root")
    monkeypatch.setenv("A2A_MAX_STREAMS", "5")

    settings = get_settings()

    assert settings.service_name == "Coder"
    assert settings.base_path == "/agents/coder"
    assert settings.port == 8080
    assert settings.task_store == "sqlite"
    assert settings.database_path == Path("/tmp/coder.db")
    assert settings.auth_tokens == {"tok1": "did:web:a", "tok2": "did:web:b"}
    assert settings.admin_token == "root"
    assert settings.max_streams == 5
    assert settings.public_url == "http://0.0.0.0:8080/agents/coder"


def test_settings_are_cached(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("PORT", "9999")
    assert get_settings() is first


def test_non_integer_port_names_variable(monkeypatch):
    monkeypatch.setenv("PORT", "eighty")
    with pytest.raises(ValueError, match="PORT"):
        get_settings()


def test_unknown_task_store_rejected(monkeypatch):
    monkeypatch.setenv("A2A_TASK_STORE", "redis")
    with pytest.raises(ValueError, match="A2A_TASK_STORE"):
        get_settings()


def test_validate_settings_collects_errors():
    with pytest.raises(ValueError) as exc_info:
        validate_settings(Settings(port=0, max_streams=0))
    message = str(exc_info.value)
    assert "PORT" in message
    assert "A2A_MAX_STREAMS" in message


@pytest.mark.parametrize(
    "raw, expected",
    [(None, "/"), ("", "/"), ("/", "/"), ("a2a", "/a2a"), ("/a2a/", "/a2a"), (" /x/y ", "/x/y")],
)
def test_normalize_base_path(raw, expected):
    assert normalize_base_path(raw) == expected


def test_parse_auth_tokens_rejects_malformed_entries():
    assert parse_auth_tokens("") == {}
    assert parse_auth_tokens("a=did:x,,") == {"a": "did:x"}
    with pytest.raises(ValueError, match="A2A_AUTH_TOKENS"):
        parse_auth_tokens("just-a-token")
