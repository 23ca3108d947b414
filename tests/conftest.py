"""Shared test fixtures for flavormind.

Provides reusable fixtures for isolated config environments, output state,
in-memory credential stores, fake identity providers, and CLI runners.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable
from urllib.parse import parse_qs

import httpx
import pytest

from flavormind.auth.credential_store import MemoryCredentialStore
from flavormind.auth.refresher import TokenRefresher
from flavormind.models import Credential
from flavormind.output import OutputFormat, OutputManager, reset_output, set_output


TOKEN_URL = "https://idp.test/v1/token"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    Resetting forces a fresh manager to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path so
    that tests never touch real user config, and clears all FLAVORMIND_*
    environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("flavormind.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "FLAVORMIND_BASE_URL",
        "FLAVORMIND_TOKEN_URL",
        "FLAVORMIND_API_KEY",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Credential and identity provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> MemoryCredentialStore:
    """An in-memory store holding the pair ``A1`` / ``R1``."""
    return MemoryCredentialStore(Credential(access_token="A1", refresh_token="R1"))


class FakeIdentityProvider:
    """Scriptable stand-in for the token endpoint.

    Each call to the refresh endpoint is recorded in :attr:`calls` (the
    decoded form body).  By default the first refresh returns ``A2``/``R2``,
    the second ``A3``/``R3``, and so on.  Set :attr:`status` or
    :attr:`fail_with` to simulate denial or outages.  The async transport
    sleeps for :attr:`delay` first so concurrent callers pile up behind the
    refresh.
    """

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.status = 200
        self.body: dict[str, Any] | None = None
        self.fail_with: Exception | None = None
        self.rotate = True
        self.before_reply: Callable[[], None] | None = None
        self.delay = 0.01

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.calls.append(form)
        if self.before_reply is not None:
            self.before_reply()
        if self.fail_with is not None:
            raise self.fail_with
        if self.body is not None:
            return httpx.Response(self.status, json=self.body)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": {"message": "INVALID_REFRESH_TOKEN"}})
        n = len(self.calls) + 1
        body: dict[str, Any] = {"id_token": f"A{n}", "expires_in": "3600"}
        if self.rotate:
            body["refresh_token"] = f"R{n}"
        return httpx.Response(200, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def async_transport(self) -> httpx.MockTransport:
        async def _handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(self.delay)
            return self.handler(request)

        return httpx.MockTransport(_handler)

    @property
    def refresh_tokens_used(self) -> list[str]:
        return [call.get("refresh_token", "") for call in self.calls]


@pytest.fixture
def idp() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def refresher(idp: FakeIdentityProvider) -> TokenRefresher:
    """A refresher talking to the fake provider synchronously."""
    return TokenRefresher(TOKEN_URL, api_key="test-key", transport=idp.transport())


@pytest.fixture
def async_refresher(idp: FakeIdentityProvider) -> TokenRefresher:
    """A refresher talking to the fake provider from the event loop."""
    return TokenRefresher(TOKEN_URL, api_key="test-key", transport=idp.async_transport())


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
