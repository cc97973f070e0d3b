"""Example authenticated call made with a freshly issued access token."""

from __future__ import annotations

import logging
from typing import Any

from loopauth.exceptions import ApiError
from loopauth.transport import DEFAULT_TIMEOUT, get_json

logger = logging.getLogger(__name__)

PROFILE_METHOD = "app.bsky.actor.getProfile"


def fetch_profile(
    service_base_url: str,
    access_token: str,
    actor: str = "self",
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """Fetch an actor profile via XRPC using *access_token* as a bearer token.

    Raises:
        ApiError: If the request fails or the body is not a JSON object.
    """
    url = f"{service_base_url.rstrip('/')}/xrpc/{PROFILE_METHOD}"
    logger.debug("Test API endpoint: %s", url)
    return get_json(
        url,
        error_cls=ApiError,
        action="Profile request",
        timeout=timeout,
        headers={"Authorization": f"Bearer {access_token}"},
        params={"actor": actor},
    )
