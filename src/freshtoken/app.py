"""Typer application and CLI entry point for freshtoken.

Commands:

- ``freshtoken token`` -- request one access token and print it (or the
  whole response with ``--json``).
- ``freshtoken sign METHOD URL`` -- print the ``Authorization`` value the
  client would send, for debugging signature mismatches.

Credentials come from ``--credentials`` (``env``, ``file:PATH`` or
``default``; see :func:`freshtoken.config.resolve_credentials`).
:class:`~freshtoken.exceptions.FreshTokenError` instances end the command
with the error's ``exit_code``.
"""

from __future__ import annotations

import logging
import signal
import sys
from typing import Any, Callable, Optional, TypeVar

import typer

from freshtoken import __version__
from freshtoken.exceptions import FreshTokenError, describe
from freshtoken.exit_codes import EXIT_INVALID_USAGE

app = typer.Typer(
    name="freshtoken",
    help="Obtain OAuth2 client-credentials tokens from a signed token endpoint.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

R = TypeVar("R")

_CREDENTIALS_HELP = "Credential source: env, file:PATH, or default."


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"freshtoken {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Initialise output and logging from the global flags."""
    from freshtoken.output import OutputManager, set_output

    set_output(
        OutputManager(json_output=json_output, no_color=no_color, quiet=quiet, verbose=verbose)
    )
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(asctime)s %(levelname)-7s %(name)s - %(message)s",
        )


def _make_http_provider() -> Any:
    from freshtoken.client import HttpxProvider

    return HttpxProvider()


def _run(action: Callable[[], R]) -> R:
    """Run ``action``, turning library errors into a clean exit."""
    from freshtoken.output import error

    try:
        return action()
    except FreshTokenError as exc:
        error(describe(exc))
        raise typer.Exit(code=exc.exit_code) from exc
    except ValueError as exc:
        error(str(exc))
        raise typer.Exit(code=EXIT_INVALID_USAGE) from exc


def _parse_params(values: list[str]) -> dict[str, list[str]]:
    params: dict[str, list[str]] = {}
    for item in values:
        if "=" not in item:
            raise typer.BadParameter(f"expected NAME=VALUE, got '{item}'", param_hint="--param")
        name, value = item.split("=", 1)
        params.setdefault(name, []).append(value)
    return params


@app.command("token")
def token_command(
    credentials: str = typer.Option("default", "--credentials", "-c", help=_CREDENTIALS_HELP),
    scope: Optional[str] = typer.Option(None, "--scope", help="Requested scope."),
    expires_in: Optional[int] = typer.Option(
        None, "--expires-in", help="Requested token lifetime in seconds."
    ),
) -> None:
    """Request an access token with the client-credentials grant."""
    from freshtoken.auth import OAuth1ClientCredentialsProvider
    from freshtoken.config import resolve_credentials
    from freshtoken.endpoint import get_token_endpoint
    from freshtoken.models import ClientCredentialsGrantRequest
    from freshtoken.output import debug, get_output, print_data

    def _request() -> Any:
        creds = resolve_credentials(credentials)
        debug(f"Token endpoint: {creds.token_endpoint_url}")
        provider = OAuth1ClientCredentialsProvider(creds)
        http = _make_http_provider()
        try:
            endpoint = get_token_endpoint(http, provider)
            return endpoint.request_token(
                ClientCredentialsGrantRequest(scope=scope, expires_in=expires_in)
            )
        finally:
            close = getattr(http, "close", None)
            if close is not None:
                close()

    token = _run(_request)
    if get_output().is_json:
        print_data(token.model_dump(exclude_none=True))
    else:
        print_data(token.access_token)


@app.command("sign")
def sign_command(
    method: str = typer.Argument(..., help="HTTP method, e.g. POST."),
    url: str = typer.Argument(..., help="Request URL."),
    param: list[str] = typer.Option([], "--param", "-p", help="Form parameter NAME=VALUE."),
    credentials: str = typer.Option("default", "--credentials", "-c", help=_CREDENTIALS_HELP),
    timestamp: Optional[int] = typer.Option(
        None, "--timestamp", help="Fixed oauth_timestamp (seconds)."
    ),
    nonce: Optional[str] = typer.Option(None, "--nonce", help="Fixed oauth_nonce."),
) -> None:
    """Print the Authorization header value for a request."""
    from freshtoken.auth.signer import generate_nonce, sign
    from freshtoken.cache import SystemClock
    from freshtoken.config import resolve_credentials
    from freshtoken.output import print_data

    form_params = _parse_params(param)

    def _sign() -> str:
        creds = resolve_credentials(credentials)
        return sign(
            method,
            url,
            form_params,
            creds.access_key_id,
            creds.access_key_secret,
            timestamp if timestamp is not None else SystemClock().now_millis() // 1000,
            nonce or generate_nonce(),
        )

    print_data(_run(_sign))


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``freshtoken`` console script."""
    _setup_signal_handlers()
    app()
