"""Authorization request construction, with optional PAR (:rfc:`9126`).

:func:`begin` decides between a Pushed Authorization Request and a direct
authorization URL, and returns the URL the host should open in the
user's browser. This module never opens the browser and never waits for
the user.
"""

from __future__ import annotations

import logging
from urllib.parse import quote, urlencode

from loopauth.exceptions import InitiationError
from loopauth.models import AuthorizationRequest, Endpoints, PKCEParameters
from loopauth.transport import DEFAULT_TIMEOUT, post_form, string_field

logger = logging.getLogger(__name__)


def authorization_params(
    pkce: PKCEParameters, client_id: str, redirect_uri: str, scope: str
) -> dict[str, str]:
    """Return the full authorization request parameters, in wire order."""
    return {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": scope,
        "state": pkce.state,
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": pkce.code_challenge_method,
    }


def _with_query(endpoint: str, params: dict[str, str]) -> str:
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params, quote_via=quote)}"


def build_authorization_url(
    endpoints: Endpoints,
    pkce: PKCEParameters,
    client_id: str,
    redirect_uri: str,
    scope: str,
) -> str:
    """Build a direct authorization URL carrying every parameter in the query."""
    params = authorization_params(pkce, client_id, redirect_uri, scope)
    return _with_query(endpoints.authorization_endpoint, params)


def push_authorization_request(
    endpoints: Endpoints,
    pkce: PKCEParameters,
    client_id: str,
    redirect_uri: str,
    scope: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """Send the authorization parameters to the PAR endpoint.

    Returns:
        The ``request_uri`` handle issued by the authorization server.

    Raises:
        InitiationError: If the PAR request fails or the response lacks a
            ``request_uri``.
    """
    if not endpoints.par_endpoint:
        raise InitiationError("Authorization server does not offer a PAR endpoint")

    logger.info("Using Pushed Authorization Request at %s", endpoints.par_endpoint)
    payload = post_form(
        endpoints.par_endpoint,
        authorization_params(pkce, client_id, redirect_uri, scope),
        error_cls=InitiationError,
        action="PAR request",
        timeout=timeout,
    )
    request_uri = string_field(payload, "request_uri")
    if request_uri is None:
        raise InitiationError("Failed to extract request_uri from PAR response")
    return request_uri


def begin(
    endpoints: Endpoints,
    pkce: PKCEParameters,
    client_id: str,
    redirect_uri: str,
    scope: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> AuthorizationRequest:
    """Prepare the authorization request for the browser.

    With a PAR endpoint the parameters are pushed first and the browser URL
    only carries ``client_id`` and ``request_uri``. Without one, every
    parameter goes into the URL.

    Args:
        endpoints: Discovered provider endpoints.
        pkce: The session's PKCE parameters and ``state``.
        client_id: OAuth client identifier.
        redirect_uri: Registered redirect URI.
        scope: Space-separated scopes.
        timeout: Timeout for the PAR request, in seconds.

    Returns:
        The :class:`~loopauth.models.AuthorizationRequest` to hand to the
        host's ``open_url`` capability.

    Raises:
        InitiationError: If PAR is used and fails.
    """
    if endpoints.supports_par:
        request_uri = push_authorization_request(
            endpoints, pkce, client_id, redirect_uri, scope, timeout=timeout
        )
        url = _with_query(
            endpoints.authorization_endpoint,
            {"client_id": client_id, "request_uri": request_uri},
        )
        return AuthorizationRequest(
            url=url, state=pkce.state, used_par=True, request_uri=request_uri
        )

    url = build_authorization_url(endpoints, pkce, client_id, redirect_uri, scope)
    return AuthorizationRequest(url=url, state=pkce.state)
