"""Settings resolution with precedence layering and credential sources.

This module turns the scattered inputs of a test run into one
:class:`~apitestkit.models.Settings` object:

* **Project config** -- an optional ``apitestkit.json`` in the working
  directory (or the file named by ``APITESTKIT_CONFIG``).
* **Environment variables** -- ``APITESTKIT_*`` variables, see
  :data:`ENV_VARS`.
* **Overrides** -- a nested dict supplied by the caller (pytest
  command-line options, CLI flags, or tests).

:func:`load_settings` merges them, highest precedence last.
:func:`resolve_credential` turns ``env:`` / ``file:`` source descriptors
into secrets; it is called lazily by the token service so that a missing
secret only matters once a token is requested.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from apitestkit.exceptions import AuthConfigurationError, ConfigError
from apitestkit.models import Settings

logger = logging.getLogger(__name__)

_PROJECT_CONFIG_FILENAME = "apitestkit.json"
_CONFIG_ENV_VAR = "APITESTKIT_CONFIG"

ENV_VARS: dict[str, tuple[str, ...]] = {
    "APITESTKIT_AUTH_BASE_URL": ("auth", "base_url"),
    "APITESTKIT_TOKEN_ENDPOINT": ("auth", "token_endpoint"),
    "APITESTKIT_CLIENT_ID": ("auth", "client_id"),
    "APITESTKIT_CLIENT_SECRET": ("auth", "client_secret"),
    "APITESTKIT_GRANT_TYPE": ("auth", "grant_type"),
    "APITESTKIT_API_BASE_URL": ("api_base_url",),
    "APITESTKIT_TIMEOUT": ("request", "timeout"),
    "APITESTKIT_VERIFY_SSL": ("request", "verify_ssl"),
}
"""Environment variable -> settings path mapping."""


# --- Project config ---


def _project_config_path(config_path: Optional[str | Path]) -> tuple[Path, bool]:
    """Return the config file to read and whether it was explicitly requested."""
    if config_path is not None:
        return Path(config_path).expanduser(), True
    env_path = os.environ.get(_CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser(), True
    return Path.cwd() / _PROJECT_CONFIG_FILENAME, False


def load_project_config(config_path: Optional[str | Path] = None) -> Optional[dict[str, Any]]:
    """Load the project configuration file.

    Args:
        config_path: Explicit path.  Defaults to ``$APITESTKIT_CONFIG`` or
            ``./apitestkit.json``.

    Returns:
        The parsed JSON object, or ``None`` when the default file does not
        exist.

    Raises:
        ConfigError: If an explicitly requested file is missing, or the
            file is not a JSON object.
    """
    path, explicit = _project_config_path(config_path)
    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid config file at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid config file at {path}: expected a JSON object")
    logger.debug("Loaded project config from %s", path)
    return data


# --- Environment ---


def load_env_config() -> dict[str, Any]:
    """Collect settings from ``APITESTKIT_*`` environment variables.

    Empty variables are ignored.  Values are left as strings; Pydantic
    coerces them (``"false"`` -> ``False``, ``"10"`` -> ``10.0``).
    """
    data: dict[str, Any] = {}
    for var, path in ENV_VARS.items():
        value = os.environ.get(var)
        if value:
            _set_path(data, path, value)
    return data


def _set_path(data: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    target = data
    for key in path[:-1]:
        target = target.setdefault(key, {})
    target[path[-1]] = value


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Return *base* updated recursively with *overlay* (``None`` values skipped)."""
    merged = dict(base)
    for key, value in overlay.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# --- Precedence resolution ---


def load_settings(
    config_path: Optional[str | Path] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> Settings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. *overrides* (nested dict, ``None`` leaves are ignored)
        2. Environment variables (see :data:`ENV_VARS`)
        3. Project config (``./apitestkit.json`` or ``$APITESTKIT_CONFIG``)
        4. Model defaults

    Credential source descriptors in ``auth.client_id`` /
    ``auth.client_secret`` are *not* resolved here.

    Raises:
        ConfigError: If the project file is invalid or the merged data
            fails validation.
    """
    data: dict[str, Any] = {}
    project = load_project_config(config_path)
    if project is not None:
        data = _deep_merge(data, project)
    data = _deep_merge(data, load_env_config())
    if overrides:
        data = _deep_merge(data, overrides)
    try:
        return Settings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid apitestkit settings: {exc}") from exc


# --- Credential source resolution ---


def resolve_credential(source: str) -> str:
    """Resolve a credential from its source descriptor.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - anything else -- used literally

    Raises:
        AuthConfigurationError: If the variable is unset or the file cannot
            be read.
    """
    if source.startswith("env:"):
        var_name = source[4:]
        value = os.environ.get(var_name)
        if not value:
            raise AuthConfigurationError(
                f"Environment variable '{var_name}' is not set (source: {source})"
            )
        return value

    if source.startswith("file:"):
        path = Path(source[5:]).expanduser()
        if not path.is_file():
            raise AuthConfigurationError(
                f"Credential file not found: {path} (source: {source})"
            )
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise AuthConfigurationError(f"Cannot read credential file {path}: {exc}") from exc

    return source
