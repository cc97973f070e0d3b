"""Authorization code exchange at the token endpoint.

Converts the code caught by the callback server, plus the session's PKCE
verifier, into an access token and optional refresh token.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from loopauth.exceptions import ExchangeError
from loopauth.masking import redact
from loopauth.models import TokenSet
from loopauth.transport import DEFAULT_TIMEOUT, post_form, string_field

logger = logging.getLogger(__name__)


def _int_field(payload: dict[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def parse_token_response(payload: dict[str, Any]) -> TokenSet:
    """Extract a :class:`~loopauth.models.TokenSet` from a token response body.

    Raises:
        ExchangeError: If ``access_token`` is missing or not a string.
    """
    access_token = string_field(payload, "access_token")
    if access_token is None:
        raise ExchangeError("Token response missing 'access_token' field")
    return TokenSet(
        access_token=access_token,
        refresh_token=string_field(payload, "refresh_token"),
        token_type=string_field(payload, "token_type"),
        scope=string_field(payload, "scope"),
        sub=string_field(payload, "sub"),
        expires_in=_int_field(payload, "expires_in"),
    )


def exchange_code(
    token_endpoint: str,
    code: str,
    code_verifier: str,
    client_id: str,
    redirect_uri: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> TokenSet:
    """Exchange an authorization code for tokens.

    Args:
        token_endpoint: The provider's token endpoint.
        code: The authorization code from the redirect.
        code_verifier: The PKCE verifier whose challenge was sent earlier.
        client_id: OAuth client identifier.
        redirect_uri: The redirect URI used in the authorization request.
        timeout: Request timeout in seconds.

    Returns:
        The issued :class:`~loopauth.models.TokenSet`.

    Raises:
        ExchangeError: On HTTP errors or if ``access_token`` is missing
            from the response.
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "code_verifier": code_verifier,
    }
    logger.info("Exchanging authorization code at %s", token_endpoint)
    payload = post_form(
        token_endpoint, data, error_cls=ExchangeError, action="Token exchange", timeout=timeout
    )
    tokens = parse_token_response(payload)
    logger.info(
        "Token exchange succeeded (access token %s, refresh token %s)",
        redact(tokens.access_token),
        "present" if tokens.refresh_token else "absent",
    )
    return tokens
