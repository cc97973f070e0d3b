"""Authorization server metadata discovery (:rfc:`8414`).

Fetches ``{service}/.well-known/oauth-authorization-server`` and extracts
the three endpoints the login needs. A missing PAR endpoint is not an
error; it is the signal to send the authorization request directly.
"""

from __future__ import annotations

import logging

from loopauth.exceptions import DiscoveryError
from loopauth.models import Endpoints
from loopauth.transport import DEFAULT_TIMEOUT, get_json, string_field

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = "/.well-known/oauth-authorization-server"


def metadata_url(service_base_url: str) -> str:
    """Return the metadata document URL for *service_base_url*."""
    return service_base_url.rstrip("/") + WELL_KNOWN_PATH


def discover(service_base_url: str, timeout: float = DEFAULT_TIMEOUT) -> Endpoints:
    """Resolve the authorization, token, and PAR endpoints of a provider.

    Args:
        service_base_url: Root URL of the identity provider, e.g.
            ``https://bsky.social``.
        timeout: Request timeout in seconds.

    Returns:
        The discovered :class:`~loopauth.models.Endpoints`.

    Raises:
        DiscoveryError: If the request fails, the body is not a JSON
            object, or ``authorization_endpoint`` / ``token_endpoint`` is
            missing.
    """
    url = metadata_url(service_base_url)
    logger.info("Discovering OAuth endpoints from %s", url)
    doc = get_json(url, error_cls=DiscoveryError, action="OAuth discovery", timeout=timeout)

    authorization_endpoint = string_field(doc, "authorization_endpoint")
    token_endpoint = string_field(doc, "token_endpoint")
    if authorization_endpoint is None:
        raise DiscoveryError("OAuth metadata missing 'authorization_endpoint'")
    if token_endpoint is None:
        raise DiscoveryError("OAuth metadata missing 'token_endpoint'")

    endpoints = Endpoints(
        authorization_endpoint=authorization_endpoint,
        token_endpoint=token_endpoint,
        par_endpoint=string_field(doc, "pushed_authorization_request_endpoint"),
    )
    logger.info(
        "OAuth endpoints discovered (PAR %s)",
        "available" if endpoints.supports_par else "not offered",
    )
    return endpoints
