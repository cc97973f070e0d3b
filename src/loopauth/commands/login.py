"""Login command -- the interactive OAuth browser login.

``loopauth login`` is the host application for :class:`~loopauth.flow.LoginFlow`:
it starts the flow, then ticks it from the main thread until the callback
server has relayed a result or the timeout expires.

Typical usage::

    loopauth login
    loopauth login --port 9000 --service-url https://pds.example.com
    loopauth login --no-browser --print-token
"""

from __future__ import annotations

import time
import webbrowser
from typing import Any, Optional

import typer

from loopauth.exceptions import ApiError, ConfigError, LoginTimeoutError, LoopauthError
from loopauth.masking import redact
from loopauth.output import error, format_response, info, print_data, success, suggest, warning

TICK_INTERVAL = 0.05
"""Seconds between two host loop iterations."""


def login_command(
    port: Optional[int] = typer.Option(
        None, "--port", help="Local callback server port."
    ),
    client_id: Optional[str] = typer.Option(None, "--client-id", help="OAuth client_id."),
    redirect_uri: Optional[str] = typer.Option(
        None, "--redirect-uri", help="Registered redirect URI."
    ),
    scope: Optional[str] = typer.Option(None, "--scope", help="Scopes to request."),
    service_url: Optional[str] = typer.Option(
        None, "--service-url", help="Identity provider base URL."
    ),
    timeout: float = typer.Option(
        300.0, "--timeout", help="Seconds to wait for the browser login."
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the authorization URL instead of opening it."
    ),
    print_token: bool = typer.Option(
        False, "--print-token", help="Write the raw access token to stdout."
    ),
    show_profile: bool = typer.Option(
        False, "--show-profile", help="Fetch the signed-in profile afterwards."
    ),
) -> None:
    """Sign in through the system browser.

    Resolves settings (CLI options override environment and config files),
    then runs the Authorization Code + PKCE flow. Exits with the error's
    exit code when the login fails or times out.

    Example::

        loopauth login --timeout 120
    """
    from loopauth.api import fetch_profile
    from loopauth.config import resolve_settings
    from loopauth.flow import LoginFlow

    try:
        settings = resolve_settings(
            {
                "local_server_port": port,
                "client_id": client_id,
                "redirect_uri": redirect_uri,
                "scope": scope,
                "service_base_url": service_url,
            }
        )
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    outcome: dict[str, Any] = {"token": None, "error": None}

    def on_success(access_token: str) -> None:
        outcome["token"] = access_token

    def on_error(exc: LoopauthError) -> None:
        outcome["error"] = exc

    def open_url(url: str) -> bool:
        if no_browser:
            info("Open this URL in your browser to continue:")
            print_data(url)
            return True
        return webbrowser.open(url)

    flow = LoginFlow(settings, open_url, on_success, on_error)
    deadline = time.monotonic() + timeout
    refresh_token: Optional[str] = None
    try:
        flow.start()
        if not flow.finished:
            info(
                "Waiting for the browser redirect on port "
                f"{flow.server.port if flow.server else settings.local_server_port}..."
            )
        while not flow.finished:
            flow.tick()
            if flow.finished:
                break
            if time.monotonic() >= deadline:
                outcome["error"] = LoginTimeoutError(
                    f"Login did not complete within {timeout:g} seconds"
                )
                break
            time.sleep(TICK_INTERVAL)
        refresh_token = flow.refresh_token
    finally:
        flow.shutdown()

    failure: Optional[LoopauthError] = outcome["error"]
    if failure is not None:
        error(str(failure))
        suggest("Run 'loopauth login' again to start a fresh session.")
        raise typer.Exit(code=failure.exit_code)

    access_token: str = outcome["token"]
    success("Authentication successful.")
    if print_token:
        print_data(access_token)
    else:
        format_response(
            {
                "access_token": redact(access_token),
                "refresh_token": redact(refresh_token) if refresh_token else None,
            }
        )

    if show_profile:
        try:
            profile = fetch_profile(
                settings.service_base_url, access_token, timeout=settings.http_timeout
            )
        except ApiError as exc:
            warning(f"Test API call failed: {exc}")
        else:
            format_response(profile)
