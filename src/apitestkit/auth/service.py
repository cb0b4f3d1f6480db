"""Token service -- cached client-credentials tokens per scope set.

:class:`TokenService` is the object test code talks to.  It turns a scope
set into a cache key, serves a still-valid cached token when it can, and
otherwise asks its :class:`~apitestkit.auth.provider.CredentialProvider`
for a new one, storing the result for later callers.

There is no module-level instance.  Create one per test session (the pytest
plugin does this in the ``token_service`` fixture) or per test when an
isolated cache is needed::

    with TokenService.from_settings(load_settings()) as service:
        token = service.get_token(["read", "write"])

Concurrency:
    Cache hits never block on the network.  Misses are single-flight per
    scope key: while one thread exchanges credentials for ``"read
    write"``, other threads asking for the same key wait and then reuse its
    token.  Different keys are fetched in parallel.  Requests with
    ``bypass_cache=True`` always perform their own exchange (one at a time
    per key) and still write the fresh token back.

Expiry:
    A token is cached for ``CacheConfig.window_seconds`` (55 minutes).
    When ``CacheConfig.honor_expires_in`` is set and the token endpoint
    reports a shorter ``expires_in``, that value minus
    ``expiry_margin_seconds`` is used instead.  Token contents are never
    decoded.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from apitestkit.auth.provider import CredentialProvider, HttpCredentialProvider
from apitestkit.auth.scopes import ScopesArg, canonicalize, normalize_scopes, scope_string
from apitestkit.cache import CacheEntry, TokenCache
from apitestkit.config import resolve_credential
from apitestkit.exceptions import AuthConfigurationError
from apitestkit.models import (
    CacheConfig,
    CredentialIdentity,
    RequestConfig,
    Settings,
    TokenResponse,
)

logger = logging.getLogger(__name__)


class TokenService:
    """Fetch, cache and invalidate bearer tokens keyed by scope set.

    Args:
        identity: Client-credentials identity.  ``client_id`` and
            ``client_secret`` may be credential source descriptors; they
            are resolved on each exchange.
        provider: Performs the exchange.  Defaults to an
            :class:`~apitestkit.auth.provider.HttpCredentialProvider`
            owned (and closed) by this service.
        cache: Token cache to use.  Defaults to a fresh
            :class:`~apitestkit.cache.TokenCache`.
        cache_config: Cache lifetime settings.
        request: Timeout and TLS settings for the default provider.
            Ignored when *provider* is given.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        identity: CredentialIdentity,
        provider: Optional[CredentialProvider] = None,
        cache: Optional[TokenCache] = None,
        cache_config: Optional[CacheConfig] = None,
        request: Optional[RequestConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._identity = identity
        self._owns_provider = provider is None
        self._provider = provider if provider is not None else HttpCredentialProvider(request)
        self._cache = cache if cache is not None else TokenCache()
        self._cache_config = cache_config or CacheConfig()
        self._clock = clock
        # One lock per scope key seen; bounded by the number of distinct
        # scope sets, so entries are kept for the service's lifetime.
        self._key_locks: dict[str, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: Optional[CredentialProvider] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> TokenService:
        """Build a service from resolved :class:`~apitestkit.models.Settings`."""
        return cls(
            settings.auth,
            provider=provider,
            cache_config=settings.cache,
            request=settings.request,
            clock=clock,
        )

    @property
    def cache(self) -> TokenCache:
        """The cache backing this service."""
        return self._cache

    @property
    def identity(self) -> CredentialIdentity:
        return self._identity

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def get_token(self, scopes: ScopesArg = None, bypass_cache: bool = False) -> str:
        """Return an access token for *scopes*.

        Args:
            scopes: Scopes to request; order and duplicates do not matter
                for caching.  ``None`` or empty requests a token without
                the ``scope`` parameter.
            bypass_cache: Skip the cache lookup and always exchange.  The
                new token still replaces the cached one.

        Returns:
            The bearer token string.

        Raises:
            AuthConfigurationError: If the identity is incomplete.
            TokenExchangeError: If the token endpoint does not return a
                usable token.  Nothing is cached in that case.
        """
        # Materialise once: a one-shot iterator must yield both the key and
        # the wire scope.
        scopes = normalize_scopes(scopes)
        key = canonicalize(scopes)
        label = key or "none"

        if bypass_cache:
            logger.debug("Bypassing token cache for scopes: %s", label)
        else:
            token = self._cached_token(key)
            if token is not None:
                return token

        identity = self._resolved_identity()

        with self._key_lock(key):
            if not bypass_cache:
                # Another caller may have fetched this key while we waited.
                token = self._cached_token(key)
                if token is not None:
                    return token

            generation = self._cache.generation(key)
            logger.info("Fetching new access token for scopes: %s", label)
            response = self._provider.exchange(identity, scope_string(scopes))

            entry = CacheEntry(
                token=response.access_token,
                expires_at=self._clock() + self._cache_window(response),
            )
            if self._cache.put(key, entry, generation=generation):
                logger.info("Cached access token for scopes: %s", label)
            else:
                logger.debug(
                    "Scopes %s were invalidated during the exchange; token not cached", label
                )
            return entry.token

    def get_auth_headers(self, scopes: ScopesArg = None, bypass_cache: bool = False) -> dict[str, str]:
        """Return ``{"Authorization": "Bearer <token>"}`` for *scopes*."""
        token = self.get_token(scopes, bypass_cache=bypass_cache)
        return {"Authorization": f"Bearer {token}"}

    def invalidate(self, scopes: ScopesArg = None) -> bool:
        """Drop the cached token for exactly this scope set.

        Returns:
            ``True`` if a token was cached for the scope set.
        """
        key = canonicalize(scopes)
        removed = self._cache.remove(key)
        if removed:
            logger.info("Invalidated cached access token for scopes: %s", key or "none")
        return removed

    def invalidate_all(self) -> int:
        """Drop every cached token and return how many were removed."""
        logger.info("Invalidating all cached access tokens")
        return self._cache.clear()

    def close(self) -> None:
        """Close the provider if this service created it."""
        if self._owns_provider:
            self._provider.close()

    def __enter__(self) -> TokenService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _cached_token(self, key: str) -> Optional[str]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_valid(self._clock()):
            logger.debug("Using cached access token for scopes: %s", key or "none")
            return entry.token
        logger.debug("Cached token expired for scopes: %s, fetching new token", key or "none")
        self._cache.discard_if_same(key, entry)
        return None

    def _cache_window(self, response: TokenResponse) -> float:
        window = self._cache_config.window_seconds
        if self._cache_config.honor_expires_in and response.expires_in is not None:
            reported = response.expires_in - self._cache_config.expiry_margin_seconds
            window = min(window, max(reported, 0.0))
        return window

    def _resolved_identity(self) -> CredentialIdentity:
        identity = self._identity
        if not identity.client_id or not identity.client_secret:
            raise AuthConfigurationError(
                "Client ID and secret must be configured. Set APITESTKIT_CLIENT_ID and "
                "APITESTKIT_CLIENT_SECRET or add them to apitestkit.json"
            )
        if not identity.base_url:
            raise AuthConfigurationError(
                "Token endpoint base URL must be configured. Set APITESTKIT_AUTH_BASE_URL "
                "or auth.base_url in apitestkit.json"
            )
        return identity.model_copy(
            update={
                "client_id": resolve_credential(identity.client_id),
                "client_secret": resolve_credential(identity.client_secret),
            }
        )

    def _key_lock(self, key: str) -> threading.Lock:
        with self._key_locks_guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock
