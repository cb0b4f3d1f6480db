"""Exception hierarchy for apitestkit.

All exceptions inherit from :class:`ApiTestKitError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`apitestkit.exit_codes`.  The CLI entry point in
:func:`apitestkit.app.main` catches ``ApiTestKitError`` and exits with the
appropriate code.  Inside a pytest run the same exceptions simply propagate
out of the fixtures, failing the dependent test during setup.

Subclass hierarchy::

    ApiTestKitError (exit 1)
    +-- ConfigError                 (exit 1)
    |   +-- AuthConfigurationError  (exit 3)
    +-- TokenExchangeError          (exit 3)
    +-- TemplateError               (exit 8)

The token cache has no error type: a missing or expired entry is a normal
miss.
"""

from __future__ import annotations

from typing import Optional

from apitestkit.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_TEMPLATE_ERROR,
)


class ApiTestKitError(Exception):
    """Base exception for all apitestkit errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`apitestkit.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(ApiTestKitError):
    """Raised for configuration problems (invalid JSON, failed validation, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class AuthConfigurationError(ConfigError):
    """Raised when the client id or secret is missing or cannot be resolved.

    This is fatal and never retried.  It is raised the first time a token
    is requested, not when the settings are loaded, so suites that never
    touch the protected API can run without credentials.
    """

    exit_code = EXIT_AUTH_FAILURE


class TokenExchangeError(ApiTestKitError):
    """Raised when the token endpoint does not hand out a usable token.

    Covers non-200 responses, bodies that are not JSON, and responses
    without a non-empty ``access_token``.  Network-level failures (DNS,
    refused connection, timeout) are reported the same way with
    ``status_code`` left as ``None``.

    Args:
        message: Human-readable error description.
        status_code: HTTP status returned by the token endpoint, if any.
        detail: Response body (or transport error text) for diagnosis.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class TemplateError(ApiTestKitError):
    """Raised when a request template, data file, or CSV fixture cannot be loaded or rendered."""

    exit_code = EXIT_TEMPLATE_ERROR
