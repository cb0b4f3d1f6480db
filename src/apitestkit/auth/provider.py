"""Credential providers -- the network side of the token exchange.

:class:`CredentialProvider` is the boundary the token service talks to: it
takes a fully resolved :class:`~apitestkit.models.CredentialIdentity` plus
an optional scope string and returns a
:class:`~apitestkit.models.TokenResponse`, or raises
:class:`~apitestkit.exceptions.TokenExchangeError`.

:class:`HttpCredentialProvider` implements the OAuth2 Client Credentials
grant (:rfc:`6749` section 4.4) over :mod:`httpx`.  Tests usually swap it
for a stub provider or hand it an ``httpx.Client`` built on
:class:`httpx.MockTransport`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from apitestkit.exceptions import TokenExchangeError
from apitestkit.models import CredentialIdentity, RequestConfig, TokenResponse

logger = logging.getLogger(__name__)

_MAX_DETAIL_CHARS = 500


class CredentialProvider(ABC):
    """Abstract token exchange.

    Implementations must be safe to call from several threads at once; the
    token service does not serialise calls for different scope keys.
    """

    @abstractmethod
    def exchange(self, identity: CredentialIdentity, scope: Optional[str]) -> TokenResponse:
        """Exchange client credentials for an access token.

        Args:
            identity: Identity with ``client_id`` / ``client_secret``
                already resolved to literal values.
            scope: Space-separated scopes, or ``None`` to omit the
                ``scope`` parameter.

        Returns:
            The parsed token response.

        Raises:
            TokenExchangeError: If no usable token was returned.
        """
        ...

    def close(self) -> None:
        """Release any transport resources.  The default does nothing."""


class HttpCredentialProvider(CredentialProvider):
    """POST ``application/x-www-form-urlencoded`` credentials to the token endpoint.

    Args:
        request: Timeout and TLS verification settings.  Ignored when
            *client* is given.
        client: Pre-built ``httpx.Client`` to use.  The provider does not
            close a client it did not create.
    """

    def __init__(
        self,
        request: Optional[RequestConfig] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._request = request or RequestConfig()
        self._client = client
        self._owns_client = client is None

    def exchange(self, identity: CredentialIdentity, scope: Optional[str]) -> TokenResponse:
        data: dict[str, str] = {
            "grant_type": identity.grant_type,
            "client_id": identity.client_id or "",
            "client_secret": identity.client_secret or "",
        }
        if scope:
            data["scope"] = scope
            logger.debug("Including scopes in token request: %s", scope)

        url = identity.token_url
        try:
            response = self._get_client().post(
                url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error("Token request to %s failed: %s", url, exc)
            raise TokenExchangeError(f"Token request failed: {exc}", detail=str(exc)) from exc

        if response.status_code != 200:
            body = _summarize(response.text)
            logger.error(
                "Failed to retrieve token. Status: %s, Body: %s", response.status_code, body
            )
            raise TokenExchangeError(
                f"Token request failed with status {response.status_code}: {body}",
                status_code=response.status_code,
                detail=body,
            )

        return parse_token_response(response)

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._request.timeout,
                verify=self._request.verify_ssl,
            )
        return self._client


def parse_token_response(response: httpx.Response) -> TokenResponse:
    """Validate a 200 response body and return it as a :class:`TokenResponse`.

    Raises:
        TokenExchangeError: If the body is not a JSON object or lacks a
            non-empty string ``access_token``.
    """
    body = _summarize(response.text)
    try:
        payload: Any = response.json()
    except ValueError as exc:
        raise TokenExchangeError(
            "Token response is not valid JSON",
            status_code=response.status_code,
            detail=body,
        ) from exc

    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not isinstance(token, str) or not token:
        raise TokenExchangeError(
            "Access token not found in token response",
            status_code=response.status_code,
            detail=body,
        )
    try:
        return TokenResponse.model_validate(payload)
    except ValidationError as exc:
        raise TokenExchangeError(
            f"Malformed token response: {exc}",
            status_code=response.status_code,
            detail=body,
        ) from exc


def _summarize(text: str) -> str:
    if len(text) <= _MAX_DETAIL_CHARS:
        return text
    return text[:_MAX_DETAIL_CHARS] + "..."
