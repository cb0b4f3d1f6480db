"""Per-test scope and cache-bypass resolution.

Every test may carry two declarations: one attached to its suite (the test
class, or the module when there is no class) and one attached to the test
itself.  :func:`resolve_declarations` combines them:

* **Scopes** -- a non-empty test-level scope list *replaces* the suite
  list; there is no merging.  With nothing declared the test runs without
  scopes.
* **Bypass** -- a presence flag.  Declared at either level means a fresh
  token; there is no way to switch it back off at test level.

The two decisions are independent.  Declarations are plain data
(:class:`ScopeDeclaration`) registered up front -- the pytest plugin does
this at collection time -- so resolution involves no introspection.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from apitestkit.auth.scopes import ScopesArg, normalize_scopes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeDeclaration:
    """What one attachment point (suite or test) declares.

    Attributes:
        scopes: Declared scopes, normalised.  Empty means "not declared".
        bypass_cache: Whether a bypass directive is present.
    """

    scopes: tuple[str, ...] = ()
    bypass_cache: bool = False

    @classmethod
    def of(cls, scopes: ScopesArg = None, bypass_cache: bool = False) -> ScopeDeclaration:
        """Build a declaration from loosely typed scopes."""
        return cls(scopes=normalize_scopes(scopes), bypass_cache=bypass_cache)

    @property
    def is_empty(self) -> bool:
        return not self.scopes and not self.bypass_cache


@dataclass(frozen=True)
class EffectiveTestConfig:
    """Scopes and bypass flag that apply to one test invocation."""

    scopes: tuple[str, ...] = ()
    bypass_cache: bool = False


def resolve_declarations(
    suite: Optional[ScopeDeclaration],
    test: Optional[ScopeDeclaration],
) -> EffectiveTestConfig:
    """Combine suite- and test-level declarations.

    Example::

        >>> resolve_declarations(
        ...     ScopeDeclaration(("read", "write")),
        ...     ScopeDeclaration(("admin",)),
        ... )
        EffectiveTestConfig(scopes=('admin',), bypass_cache=False)
    """
    if test is not None and test.scopes:
        scopes = test.scopes
    elif suite is not None:
        scopes = suite.scopes
    else:
        scopes = ()

    bypass = bool((test is not None and test.bypass_cache) or (suite is not None and suite.bypass_cache))
    return EffectiveTestConfig(scopes=scopes, bypass_cache=bypass)


class ScopeResolver:
    """Registry of declarations, resolved by test identifier.

    Suites and tests are registered once (usually during collection) and
    looked up when each test runs.  Unknown identifiers resolve to no
    scopes and no bypass.

    Example::

        resolver = ScopeResolver()
        resolver.register_suite("test_api.py::TestPolicies", ScopeDeclaration.of(["read"]))
        resolver.register_test(
            "test_api.py::TestPolicies::test_purge",
            ScopeDeclaration.of(["admin"], bypass_cache=True),
            suite_id="test_api.py::TestPolicies",
        )
        resolver.resolve("test_api.py::TestPolicies::test_purge")
    """

    def __init__(self) -> None:
        self._suites: dict[str, ScopeDeclaration] = {}
        self._tests: dict[str, tuple[Optional[str], Optional[ScopeDeclaration]]] = {}
        self._lock = threading.Lock()

    def register_suite(self, suite_id: str, declaration: ScopeDeclaration) -> None:
        """Attach *declaration* to a suite, replacing any previous one."""
        with self._lock:
            self._suites[suite_id] = declaration

    def register_test(
        self,
        test_id: str,
        declaration: Optional[ScopeDeclaration] = None,
        suite_id: Optional[str] = None,
    ) -> None:
        """Attach *declaration* to a test and link it to its suite."""
        with self._lock:
            self._tests[test_id] = (suite_id, declaration)

    def forget(self, test_id: str) -> None:
        with self._lock:
            self._tests.pop(test_id, None)

    def resolve(self, test_id: str) -> EffectiveTestConfig:
        """Return the effective scopes and bypass flag for *test_id*."""
        with self._lock:
            suite_id, test_decl = self._tests.get(test_id, (None, None))
            suite_decl = self._suites.get(suite_id) if suite_id is not None else None

        effective = resolve_declarations(suite_decl, test_decl)
        logger.debug(
            "Resolved %s -> scopes=%s bypass_cache=%s",
            test_id,
            " ".join(effective.scopes) or "none",
            effective.bypass_cache,
        )
        return effective
