"""Shared test fixtures for apitestkit.

Provides an isolated environment for configuration tests, a controllable
clock, a stub credential provider that never touches the network, and
helpers for running the CLI.  These fixtures are automatically discovered
by pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Callable, Optional

import pytest

from apitestkit.auth.provider import CredentialProvider
from apitestkit.models import CredentialIdentity, TokenResponse
from apitestkit.output import reset_output


pytest_plugins = ["pytester"]


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Clear APITESTKIT_* variables and run from an empty directory.

    Keeps a developer's real credentials or ``apitestkit.json`` from
    leaking into the tests.

    Returns:
        The tmp_path working directory.
    """
    for var in list(os.environ):
        if var.startswith("APITESTKIT_"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Clock and provider doubles
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider(CredentialProvider):
    """Credential provider that hands out ``token-1``, ``token-2``, ...

    Every call is recorded as ``(identity, scope)`` in :attr:`calls`.  Set
    :attr:`error` to make exchanges fail, or :attr:`on_exchange` to run a
    hook in the middle of an exchange.
    """

    def __init__(self, expires_in: Optional[float] = None) -> None:
        self.expires_in = expires_in
        self.error: Optional[Exception] = None
        self.on_exchange: Optional[Callable[[Optional[str]], None]] = None
        self.calls: list[tuple[CredentialIdentity, Optional[str]]] = []
        self.closed = False
        self._lock = threading.Lock()

    def exchange(self, identity: CredentialIdentity, scope: Optional[str]) -> TokenResponse:
        with self._lock:
            self.calls.append((identity, scope))
            number = len(self.calls)
        if self.on_exchange is not None:
            self.on_exchange(scope)
        if self.error is not None:
            raise self.error
        return TokenResponse(
            access_token=f"token-{number}",
            token_type="Bearer",
            expires_in=self.expires_in,
        )

    def close(self) -> None:
        self.closed = True

    @property
    def scopes_sent(self) -> list[Optional[str]]:
        return [scope for _, scope in self.calls]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def identity() -> CredentialIdentity:
    """A complete identity with literal credentials."""
    return CredentialIdentity(
        base_url="https://idp.example",
        client_id="test-client",
        client_secret="test-secret",
    )


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
