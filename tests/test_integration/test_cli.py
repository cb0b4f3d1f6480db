"""CLI tests for ``apitestkit token`` and ``apitestkit config show``."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from apitestkit import __version__
from apitestkit.app import app
from apitestkit.exceptions import TokenExchangeError


@pytest.fixture
def credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APITESTKIT_AUTH_BASE_URL", "https://idp.example")
    monkeypatch.setenv("APITESTKIT_CLIENT_ID", "cli-client")
    monkeypatch.setenv("APITESTKIT_CLIENT_SECRET", "super-secret-value")


@pytest.fixture
def patched_provider(stub_provider, monkeypatch: pytest.MonkeyPatch):
    """Route the CLI's default HTTP provider to the stub provider."""
    monkeypatch.setattr(
        "apitestkit.auth.service.HttpCredentialProvider",
        lambda request=None: stub_provider,
    )
    return stub_provider


# ---------------------------------------------------------------------------
# Global options
# ---------------------------------------------------------------------------


class TestGlobalOptions:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"apitestkit {__version__}" in result.output

    def test_no_args_shows_help(self, cli_runner) -> None:
        result = cli_runner.invoke(app, [])
        assert "token" in result.output
        assert "config" in result.output


# ---------------------------------------------------------------------------
# token
# ---------------------------------------------------------------------------


class TestTokenCommand:
    def test_prints_token(self, cli_runner, credentials, patched_provider) -> None:
        result = cli_runner.invoke(app, ["--quiet", "token", "-s", "read", "-s", "write"])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "token-1"
        assert patched_provider.scopes_sent == ["read write"]

    def test_space_delimited_scope(self, cli_runner, credentials, patched_provider) -> None:
        result = cli_runner.invoke(app, ["--quiet", "token", "--scope", "read write"])
        assert result.exit_code == 0, result.output
        assert patched_provider.scopes_sent == ["read write"]

    def test_no_scope(self, cli_runner, credentials, patched_provider) -> None:
        result = cli_runner.invoke(app, ["--quiet", "token"])
        assert result.exit_code == 0, result.output
        assert patched_provider.scopes_sent == [None]

    def test_header(self, cli_runner, credentials, patched_provider) -> None:
        result = cli_runner.invoke(app, ["--quiet", "token", "--header"])
        assert result.output.strip() == "Authorization: Bearer token-1"

    def test_json(self, cli_runner, credentials, patched_provider) -> None:
        result = cli_runner.invoke(app, ["--json", "--quiet", "token", "-s", "read"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output) == {"access_token": "token-1", "scopes": ["read"]}

    def test_bypass(self, cli_runner, credentials, patched_provider) -> None:
        result = cli_runner.invoke(app, ["--quiet", "token", "--bypass"])
        assert result.exit_code == 0, result.output
        assert len(patched_provider.calls) == 1

    def test_base_url_option(self, cli_runner, monkeypatch: pytest.MonkeyPatch, patched_provider) -> None:
        monkeypatch.setenv("APITESTKIT_CLIENT_ID", "id")
        monkeypatch.setenv("APITESTKIT_CLIENT_SECRET", "secret")
        result = cli_runner.invoke(
            app, ["--quiet", "token", "--base-url", "https://other.example"]
        )
        assert result.exit_code == 0, result.output
        identity, _ = patched_provider.calls[0]
        assert identity.base_url == "https://other.example"

    def test_missing_credentials_exit_code(self, cli_runner, patched_provider) -> None:
        result = cli_runner.invoke(app, ["--no-color", "token"])
        assert result.exit_code == 3
        assert "Client ID and secret must be configured" in result.output
        assert patched_provider.calls == []

    def test_exchange_failure_exit_code(self, cli_runner, credentials, patched_provider) -> None:
        patched_provider.error = TokenExchangeError("Token request failed with status 401: nope", 401)
        result = cli_runner.invoke(app, ["--no-color", "token", "-s", "read"])
        assert result.exit_code == 3
        assert "status 401" in result.output

    def test_missing_config_file_exit_code(self, cli_runner, tmp_path: Path) -> None:
        result = cli_runner.invoke(
            app, ["--no-color", "--config", str(tmp_path / "missing.json"), "token"]
        )
        assert result.exit_code == 1
        assert "Config file not found" in result.output


# ---------------------------------------------------------------------------
# config show
# ---------------------------------------------------------------------------


class TestConfigShow:
    def test_secret_masked(self, cli_runner, credentials) -> None:
        result = cli_runner.invoke(app, ["--json", "config", "show"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["auth"]["client_id"] == "cli-client"
        assert data["auth"]["client_secret"] == "****"
        assert "super-secret-value" not in result.output

    def test_source_descriptor_shown(self, cli_runner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APITESTKIT_CLIENT_SECRET", "env:IDP_SECRET")
        result = cli_runner.invoke(app, ["--json", "config", "show"])
        assert json.loads(result.output)["auth"]["client_secret"] == "env:IDP_SECRET"

    def test_unset_secret(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--json", "config", "show"])
        assert json.loads(result.output)["auth"]["client_secret"] is None

    def test_plain(self, cli_runner, credentials) -> None:
        result = cli_runner.invoke(app, ["--plain", "config", "show"])
        assert result.exit_code == 0, result.output
        assert "auth.client_id\tcli-client" in result.output.splitlines()
        assert "auth.client_secret\t****" in result.output.splitlines()

    def test_reads_config_file(self, cli_runner, tmp_path: Path) -> None:
        config = tmp_path / "custom.json"
        config.write_text(json.dumps({"api_base_url": "https://api.example"}))
        result = cli_runner.invoke(app, ["--json", "--config", str(config), "config", "show"])
        assert json.loads(result.output)["api_base_url"] == "https://api.example"

    def test_invalid_config_exit_code(self, cli_runner, isolated_env: Path) -> None:
        (isolated_env / "apitestkit.json").write_text("[]")
        result = cli_runner.invoke(app, ["--no-color", "config", "show"])
        assert result.exit_code == 1
