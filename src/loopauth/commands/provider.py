"""Provider commands -- show discovered endpoints and the client metadata.

``loopauth discover`` queries the identity provider's metadata document;
``loopauth metadata`` prints the document the local callback server serves
at ``/client-metadata.json``. Both resolve settings the same way
``loopauth login`` does.
"""

from __future__ import annotations

from typing import Optional

import typer

from loopauth.exceptions import LoopauthError
from loopauth.output import error, format_response, info, print_table


def discover_command(
    service_url: Optional[str] = typer.Option(
        None, "--service-url", help="Identity provider base URL."
    ),
) -> None:
    """Show the authorization, token, and PAR endpoints of the provider.

    Example::

        loopauth discover --service-url https://bsky.social
    """
    from loopauth.config import resolve_settings
    from loopauth.discovery import discover

    try:
        settings = resolve_settings({"service_base_url": service_url})
        endpoints = discover(settings.service_base_url, timeout=settings.http_timeout)
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Provider: {settings.service_base_url}")
    print_table(
        ["endpoint", "url"],
        [
            ["authorization", endpoints.authorization_endpoint],
            ["token", endpoints.token_endpoint],
            ["par", endpoints.par_endpoint or "-"],
        ],
        title="OAuth endpoints",
    )


def metadata_command(
    port: Optional[int] = typer.Option(None, "--port", help="Local callback server port."),
) -> None:
    """Print the client metadata document served by the callback server.

    Example::

        loopauth metadata --json
    """
    from loopauth.config import resolve_settings
    from loopauth.models import ClientMetadata

    try:
        settings = resolve_settings({"local_server_port": port})
    except LoopauthError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    format_response(ClientMetadata.from_settings(settings).model_dump(mode="json"))
