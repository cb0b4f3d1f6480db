"""Canonical Pydantic models shared across apitestkit modules.

**Configuration models** -- loaded from ``apitestkit.json``, environment
variables and explicit overrides by :func:`~apitestkit.config.load_settings`:
    :class:`CredentialIdentity`, :class:`RequestConfig`,
    :class:`CacheConfig`, and :class:`Settings`.

**Wire models** -- parsed from the token endpoint:
    :class:`TokenResponse`.

All models use Pydantic v2.  ``TokenResponse`` uses ``extra="allow"`` so
that identity-provider specific fields (``id_token``, ``refresh_token``,
...) are preserved in ``model_extra`` rather than rejected.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_TOKEN_ENDPOINT = "/as/token.oauth2"
DEFAULT_GRANT_TYPE = "client_credentials"


# --- Auth ---


class CredentialIdentity(BaseModel):
    """Static client-credentials identity used for every token exchange.

    ``client_id`` and ``client_secret`` are optional here on purpose: a
    missing value is only an error once a token is actually requested
    (see :meth:`~apitestkit.auth.service.TokenService.get_token`).  Either
    may hold a literal value or a credential source descriptor such as
    ``env:PING_CLIENT_SECRET`` or ``file:~/.secrets/client``.

    Example::

        CredentialIdentity(
            base_url="https://idp.example",
            client_id="my-client",
            client_secret="env:CLIENT_SECRET",
        )
    """

    base_url: Optional[str] = Field(
        default=None, description="Identity provider base URL"
    )
    token_endpoint: str = Field(
        default=DEFAULT_TOKEN_ENDPOINT,
        description="Token endpoint path appended to base_url",
    )
    client_id: Optional[str] = Field(
        default=None, description="Client id or credential source (env:VAR, file:/path)"
    )
    client_secret: Optional[str] = Field(
        default=None,
        description="Client secret or credential source (env:VAR, file:/path)",
    )
    grant_type: str = Field(default=DEFAULT_GRANT_TYPE)

    @property
    def token_url(self) -> str:
        """Full token endpoint URL (``base_url`` + ``token_endpoint``)."""
        base = (self.base_url or "").rstrip("/")
        path = self.token_endpoint
        if base and not path.startswith("/"):
            path = "/" + path
        return base + path


class TokenResponse(BaseModel):
    """Successful token endpoint response body."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    token_type: Optional[str] = None
    expires_in: Optional[float] = None


# --- Settings ---


class RequestConfig(BaseModel):
    """HTTP settings shared by the token exchange and the API client fixture."""

    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class CacheConfig(BaseModel):
    """Token cache lifetime settings.

    Tokens are cached for ``window_seconds`` (55 minutes, deliberately
    shorter than the usual one hour token lifetime).  With
    ``honor_expires_in`` the window is shortened when the token endpoint
    reports an ``expires_in`` that would end sooner, minus
    ``expiry_margin_seconds``.
    """

    window_seconds: float = Field(default=55 * 60, ge=0)
    honor_expires_in: bool = True
    expiry_margin_seconds: float = Field(default=30.0, ge=0)


class Settings(BaseModel):
    """Fully resolved process configuration.

    Produced by :func:`~apitestkit.config.load_settings`; see there for the
    precedence chain.
    """

    auth: CredentialIdentity = Field(default_factory=CredentialIdentity)
    api_base_url: Optional[str] = Field(
        default=None, description="Base URL of the API under test"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
