"""Token acquisition and per-test scope resolution.

The main entry points are:

- :func:`canonicalize` -- order-independent cache key for a scope set.
- :class:`TokenService` -- cached client-credentials tokens per scope set,
  with :meth:`~TokenService.invalidate` and
  :meth:`~TokenService.invalidate_all`.
- :class:`CredentialProvider` / :class:`HttpCredentialProvider` -- the
  token endpoint boundary.
- :class:`ScopeResolver` -- suite vs. test declaration precedence.

Typical usage::

    from apitestkit.auth import TokenService
    from apitestkit.config import load_settings

    service = TokenService.from_settings(load_settings())
    headers = service.get_auth_headers(["read", "write"])
"""

from apitestkit.auth.provider import CredentialProvider, HttpCredentialProvider
from apitestkit.auth.resolver import (
    EffectiveTestConfig,
    ScopeDeclaration,
    ScopeResolver,
    resolve_declarations,
)
from apitestkit.auth.scopes import canonicalize, normalize_scopes, scope_string
from apitestkit.auth.service import TokenService

__all__ = [
    "CredentialProvider",
    "EffectiveTestConfig",
    "HttpCredentialProvider",
    "ScopeDeclaration",
    "ScopeResolver",
    "TokenService",
    "canonicalize",
    "normalize_scopes",
    "resolve_declarations",
    "scope_string",
]
