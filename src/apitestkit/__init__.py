"""apitestkit -- OAuth2 client-credentials tokens for API test suites.

This package obtains bearer tokens from an OAuth2 token endpoint, caches them
per scope combination, and works out which scopes (and whether a fresh token
is required) apply to every individual test.  It ships a pytest plugin so
that a suite only has to declare what it needs::

    import pytest

    @pytest.mark.oauth_scopes("read", "write")
    class TestPolicies:
        def test_list(self, api_client):
            assert api_client.get("/policies").status_code == 200

        @pytest.mark.oauth_scopes("admin")
        @pytest.mark.bypass_token_cache
        def test_purge(self, api_client):
            ...

Modules:
    auth: Scope keys, the token service, the credential provider and the
        per-test scope resolver.
    cache: The in-memory, thread-safe token cache.
    config: Layered settings resolution (overrides, env vars, project file).
    models: Pydantic models for settings and token responses.
    exceptions: Exception hierarchy with exit-code mapping.
    pytest_plugin: Markers and fixtures for pytest.
    template: Jinja2 request-body templates and CSV/JSON fixture loading.
    app: Typer CLI entry point.
"""

__version__ = "0.3.0"
