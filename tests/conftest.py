"""Shared fixtures for keyrelay tests."""

import os

import pytest

from keyrelay.config.settings import Settings

# Variables that would leak into Settings() from the developer's shell
_ENV_VARS = (
    "ANTHROPIC_BASE_URL",
    "ANTHROPIC_AUTH_TOKEN",
    "BODY_LIMIT",
    "PORT",
    "RESIDENTIAL_PROXY_ENABLED",
    "RESIDENTIAL_PROXY_URL",
    "RESIDENTIAL_PROXY_HOST",
    "RESIDENTIAL_PROXY_PORT",
    "RESIDENTIAL_PROXY_USERNAME",
    "RESIDENTIAL_PROXY_PASSWORD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from environment variables and any local .env file."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("KEYRELAY_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    """Settings with a direct upstream connection and no fallback token."""
    return Settings(
        upstream_url="https://upstream.test",
        socks_proxy_enabled=False,
    )
