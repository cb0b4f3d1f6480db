"""Typer application and CLI entry point for apitestkit.

The CLI is a debugging aid next to the pytest plugin: it resolves the same
settings a test session would and lets you fetch a token by hand or check
what configuration is in effect::

    apitestkit token --scope read --scope write
    curl -H "$(apitestkit token --scope read --header)" https://api.example/policies
    apitestkit config show --json

:func:`main` is the console-script entry point declared in
``pyproject.toml``.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import typer

from apitestkit import __version__
from apitestkit.exceptions import ApiTestKitError
from apitestkit.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="apitestkit",
    help="OAuth2 client-credentials tokens for API test suites.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)
config_app = typer.Typer(no_args_is_help=True)
app.add_typer(config_app, name="config", help="Inspect resolved configuration.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"apitestkit {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config_path: Optional[str] = typer.Option(
        None, "--config", "-c", help="Path to an apitestkit.json settings file."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Set up output and logging, and stash shared options in ``ctx.obj``."""
    from apitestkit.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@app.command("token")
def token_command(
    ctx: typer.Context,
    scope: list[str] = typer.Option(
        [], "--scope", "-s", help="OAuth scope to request (repeatable, or space-separated)."
    ),
    bypass: bool = typer.Option(
        False, "--bypass", help="Skip the token cache and always call the token endpoint."
    ),
    header: bool = typer.Option(
        False, "--header", help="Print an 'Authorization: Bearer ...' header line."
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Identity provider base URL override."
    ),
) -> None:
    """Fetch an access token for the given scopes and print it.

    Example::

        apitestkit token -s read -s write
        apitestkit --json token -s "read write"
    """
    from apitestkit.auth import TokenService, normalize_scopes
    from apitestkit.config import load_settings
    from apitestkit.output import (
        OutputFormat,
        error,
        format_response,
        get_output,
        print_data,
        success,
    )

    scopes = normalize_scopes(" ".join(scope))
    try:
        settings = load_settings(
            config_path=ctx.obj.get("config_path"),
            overrides={"auth": {"base_url": base_url}},
        )
        with TokenService.from_settings(settings) as service:
            token = service.get_token(scopes, bypass_cache=bypass)
    except ApiTestKitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if get_output().format == OutputFormat.JSON:
        format_response({"access_token": token, "scopes": list(scopes)})
    elif header:
        print_data(f"Authorization: Bearer {token}")
    else:
        print_data(token)
    success(f"Fetched token for scopes: {' '.join(scopes) or 'none'}")


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the resolved settings with the client secret masked.

    Example::

        apitestkit config show
        APITESTKIT_CLIENT_ID=abc apitestkit --json config show
    """
    from apitestkit.config import load_settings
    from apitestkit.output import error, format_response

    try:
        settings = load_settings(config_path=ctx.obj.get("config_path"))
    except ApiTestKitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    data = settings.model_dump(mode="json")
    data["auth"]["client_secret"] = _mask_secret(settings.auth.client_secret)
    format_response(data)


def _mask_secret(value: Optional[str]) -> Optional[str]:
    """Hide literal secrets; source descriptors (env:/file:) are shown as-is."""
    if value is None or value.startswith(("env:", "file:")):
        return value
    return "****"


def main() -> None:
    """CLI entry point invoked by the ``apitestkit`` console script.

    :class:`~apitestkit.exceptions.ApiTestKitError` escaping a command
    causes a clean exit with the error's ``exit_code``.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except ApiTestKitError as exc:
        from apitestkit.output import error

        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:  # noqa: BLE001
        from apitestkit.output import error

        error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)

