"""pytest integration: scope markers and authenticated client fixtures.

Registered through the ``pytest11`` entry point, so installing apitestkit
is enough to make the markers and fixtures available.

Markers::

    @pytest.mark.oauth_scopes("read", "write")   # also a list or "read write"
    @pytest.mark.bypass_token_cache

Placed on a class (or as module ``pytestmark``) they are the suite
default; placed on a test function they override it.  A non-empty
test-level ``oauth_scopes`` replaces the suite scopes; ``bypass_token_cache``
at either level forces a fresh token.  Markers are read once, when the test
is collected, and stored in the session's
:class:`~apitestkit.auth.resolver.ScopeResolver`.

Fixtures:
    ``apitestkit_settings`` (session) -- resolved :class:`~apitestkit.models.Settings`.
    ``token_service`` (session) -- the session's :class:`~apitestkit.auth.service.TokenService`.
    ``scope_resolver`` (session) -- the collection-time resolver.
    ``effective_auth`` -- scopes and bypass flag for the current test.
    ``access_token`` -- bearer token for the current test.
    ``api_client_options`` -- override to pass extra ``httpx.Client`` kwargs.
    ``api_client`` -- ``httpx.Client`` for the API under test, authenticated.
    ``template_service`` (session) -- :class:`~apitestkit.template.TemplateService`.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

import httpx
import pytest

from apitestkit.auth.resolver import (
    EffectiveTestConfig,
    ScopeDeclaration,
    ScopeResolver,
    resolve_declarations,
)
from apitestkit.auth.scopes import normalize_scopes
from apitestkit.auth.service import TokenService
from apitestkit.config import load_settings
from apitestkit.exceptions import ConfigError
from apitestkit.models import Settings
from apitestkit.template import TemplateService

logger = logging.getLogger(__name__)

SCOPES_MARKER = "oauth_scopes"
BYPASS_MARKER = "bypass_token_cache"

_resolver_key = pytest.StashKey[ScopeResolver]()


# ------------------------------------------------------------------ #
# Hooks
# ------------------------------------------------------------------ #


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("apitestkit", "OAuth2 client-credentials tokens for API tests")
    group.addoption(
        "--apitestkit-config",
        dest="apitestkit_config",
        default=None,
        metavar="PATH",
        help="Path to an apitestkit.json settings file.",
    )
    group.addoption(
        "--oauth-base-url",
        dest="apitestkit_auth_base_url",
        default=None,
        metavar="URL",
        help="Identity provider base URL (overrides APITESTKIT_AUTH_BASE_URL).",
    )
    group.addoption(
        "--api-base-url",
        dest="apitestkit_api_base_url",
        default=None,
        metavar="URL",
        help="Base URL of the API under test (overrides APITESTKIT_API_BASE_URL).",
    )
    parser.addini(
        "apitestkit_templates",
        "Directory (relative to rootdir) holding request-body templates.",
        default="templates",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{SCOPES_MARKER}(*scopes): OAuth scopes to request for the access token; "
        "a test-level declaration replaces the class-level one.",
    )
    config.addinivalue_line(
        "markers",
        f"{BYPASS_MARKER}: always fetch a fresh access token instead of using the cache.",
    )
    config.stash[_resolver_key] = ScopeResolver()


def pytest_itemcollected(item: pytest.Item) -> None:
    resolver = item.config.stash.get(_resolver_key, None)
    if resolver is None:
        return

    suite_id, suite_decl = _suite_declaration(item)
    if suite_id is not None and not suite_decl.is_empty:
        resolver.register_suite(suite_id, suite_decl)

    test_decl = declaration_from_markers(item.own_markers)
    resolver.register_test(
        item.nodeid,
        declaration=None if test_decl.is_empty else test_decl,
        suite_id=suite_id,
    )


# ------------------------------------------------------------------ #
# Marker handling
# ------------------------------------------------------------------ #


def declaration_from_markers(markers: Iterable[pytest.Mark]) -> ScopeDeclaration:
    """Build a :class:`ScopeDeclaration` from one node's own markers.

    Several ``oauth_scopes`` markers on the same node are concatenated.
    """
    scopes: list[str] = []
    bypass = False
    for mark in markers:
        if mark.name == SCOPES_MARKER:
            for arg in mark.args:
                scopes.extend(normalize_scopes(arg))
            scopes.extend(normalize_scopes(mark.kwargs.get("scopes")))
        elif mark.name == BYPASS_MARKER:
            bypass = True
    return ScopeDeclaration.of(scopes, bypass_cache=bypass)


def _suite_declaration(item: pytest.Item) -> tuple[Optional[str], ScopeDeclaration]:
    """Return the suite id and declaration for *item*.

    The suite is the enclosing class when there is one, else the module.
    Module ``pytestmark`` acts as the default for classes inside it.
    """
    module = item.getparent(pytest.Module)
    cls = item.getparent(pytest.Class)
    module_decl = declaration_from_markers(module.own_markers) if module is not None else None

    if cls is None:
        suite_id = module.nodeid if module is not None else None
        return suite_id, module_decl or ScopeDeclaration()

    class_decl = declaration_from_markers(cls.own_markers)
    combined = resolve_declarations(module_decl, class_decl)
    return cls.nodeid, ScopeDeclaration(combined.scopes, combined.bypass_cache)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture(scope="session")
def apitestkit_settings(pytestconfig: pytest.Config) -> Settings:
    """Settings resolved from command-line options, env vars and apitestkit.json."""
    overrides: dict[str, Any] = {
        "auth": {"base_url": pytestconfig.getoption("apitestkit_auth_base_url")},
        "api_base_url": pytestconfig.getoption("apitestkit_api_base_url"),
    }
    return load_settings(
        config_path=pytestconfig.getoption("apitestkit_config"),
        overrides=overrides,
    )


@pytest.fixture(scope="session")
def token_service(apitestkit_settings: Settings) -> Iterator[TokenService]:
    """One token service (and token cache) for the whole test session."""
    service = TokenService.from_settings(apitestkit_settings)
    yield service
    service.close()


@pytest.fixture(scope="session")
def scope_resolver(pytestconfig: pytest.Config) -> ScopeResolver:
    return pytestconfig.stash[_resolver_key]


@pytest.fixture
def effective_auth(request: pytest.FixtureRequest, scope_resolver: ScopeResolver) -> EffectiveTestConfig:
    """Scopes and bypass flag declared for the requesting test."""
    return scope_resolver.resolve(request.node.nodeid)


@pytest.fixture
def access_token(token_service: TokenService, effective_auth: EffectiveTestConfig) -> str:
    """Bearer token for the requesting test's scopes.

    Token failures raise here, so the test errors during setup before any
    request under test is sent.
    """
    return token_service.get_token(
        effective_auth.scopes, bypass_cache=effective_auth.bypass_cache
    )


@pytest.fixture
def api_client_options() -> dict[str, Any]:
    """Extra ``httpx.Client`` keyword arguments; override in a conftest."""
    return {}


@pytest.fixture
def api_client(
    apitestkit_settings: Settings,
    access_token: str,
    api_client_options: dict[str, Any],
) -> Iterator[httpx.Client]:
    """``httpx.Client`` pointed at the API under test with the bearer token set."""
    with build_api_client(apitestkit_settings, access_token, **api_client_options) as client:
        yield client


@pytest.fixture(scope="session")
def template_service(pytestconfig: pytest.Config) -> TemplateService:
    template_dir = Path(str(pytestconfig.rootpath)) / pytestconfig.getini("apitestkit_templates")
    return TemplateService(template_dir)


def build_api_client(settings: Settings, token: str, **options: Any) -> httpx.Client:
    """Create an ``httpx.Client`` for the API under test.

    Sends ``Authorization: Bearer <token>`` and JSON content headers on
    every request.  Headers in *options* are merged over the defaults; any
    other option is passed straight to :class:`httpx.Client`.

    Raises:
        ConfigError: If no API base URL is configured.
    """
    if not settings.api_base_url:
        raise ConfigError(
            "API base URL must be configured. Set APITESTKIT_API_BASE_URL, "
            "api_base_url in apitestkit.json, or pass --api-base-url"
        )
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    headers.update(options.pop("headers", None) or {})
    options.setdefault("timeout", settings.request.timeout)
    options.setdefault("verify", settings.request.verify_ssl)
    return httpx.Client(base_url=settings.api_base_url, headers=headers, **options)
