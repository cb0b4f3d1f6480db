"""Scope set helpers: cache keys and the wire ``scope`` parameter.

A scope set is unordered, so ``["read", "write"]`` and ``["write",
"read", "read"]`` must share one cached token.  :func:`canonicalize`
produces that shared key.  :func:`scope_string` builds the value actually
sent to the token endpoint, which keeps the caller's order.
"""

from __future__ import annotations

from typing import Iterable, Optional, Union

ScopesArg = Union[str, Iterable[str], None]


def normalize_scopes(scopes: ScopesArg) -> tuple[str, ...]:
    """Coerce user input into a tuple of distinct, non-blank scopes.

    Accepts ``None``, a single space-delimited string (``"read write"``)
    or any iterable of strings.  Order of first appearance is kept.

    Example::

        >>> normalize_scopes(["read", " ", "write", "read"])
        ('read', 'write')
        >>> normalize_scopes("read write")
        ('read', 'write')
    """
    if scopes is None:
        return ()
    if isinstance(scopes, str):
        scopes = scopes.split()
    seen: dict[str, None] = {}
    for scope in scopes:
        scope = scope.strip()
        if scope:
            seen.setdefault(scope, None)
    return tuple(seen)


def canonicalize(scopes: ScopesArg) -> str:
    """Return the order-independent cache key for *scopes*.

    Scopes are de-duplicated, sorted and joined with a single space.  The
    empty set (or ``None``) maps to ``""``.  The caller's collection is
    never modified.
    """
    return " ".join(sorted(normalize_scopes(scopes)))


def scope_string(scopes: ScopesArg) -> Optional[str]:
    """Return the ``scope`` form field for a token request.

    Returns ``None`` for an empty scope set so that the parameter is
    omitted from the request entirely.
    """
    normalized = normalize_scopes(scopes)
    if not normalized:
        return None
    return " ".join(normalized)
