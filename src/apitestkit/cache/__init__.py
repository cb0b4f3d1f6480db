"""Token caching for apitestkit.

This package provides :class:`TokenCache`, the process-local store of
bearer tokens keyed by canonical scope key, and :class:`CacheEntry`, the
immutable value it holds.  The cache is owned by
:class:`~apitestkit.auth.service.TokenService`; nothing is persisted
between runs.
"""

from apitestkit.cache.cache import CacheEntry, TokenCache

__all__ = ["CacheEntry", "TokenCache"]
