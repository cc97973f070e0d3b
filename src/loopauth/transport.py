"""Outbound HTTP helpers shared by discovery, PAR, token exchange, and API calls.

Every request goes through :func:`get_json` or :func:`post_form`, which
apply a bounded timeout and translate ``httpx`` failures into the caller's
error type, so each component only names *which* error it raises.

JSON bodies are read with :func:`string_field`: a targeted lookup of a
top-level key that only accepts non-empty string values. Unknown keys and
key ordering are irrelevant.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from loopauth.exceptions import LoopauthError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
"""Seconds before an outbound request is abandoned."""

_MAX_BODY_IN_ERROR = 200


def _excerpt(text: str) -> str:
    text = text.strip()
    if len(text) > _MAX_BODY_IN_ERROR:
        return text[:_MAX_BODY_IN_ERROR] + "..."
    return text


def _decode_object(
    response: httpx.Response, error_cls: type[LoopauthError], action: str
) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise error_cls(f"{action} returned a body that is not JSON") from exc
    if not isinstance(payload, dict):
        raise error_cls(f"{action} returned JSON that is not an object")
    return payload


def _send(
    method: str,
    url: str,
    *,
    error_cls: type[LoopauthError],
    action: str,
    timeout: float,
    **kwargs: Any,
) -> dict[str, Any]:
    headers = {"Accept": "application/json"}
    headers.update(kwargs.pop("headers", None) or {})
    logger.debug("%s: %s %s", action, method, url)
    try:
        if method == "GET":
            response = httpx.get(url, headers=headers, timeout=timeout, **kwargs)
        else:
            response = httpx.post(url, headers=headers, timeout=timeout, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise error_cls(
            f"{action} failed with status {exc.response.status_code}: "
            f"{_excerpt(exc.response.text)}"
        ) from exc
    except httpx.TimeoutException as exc:
        raise error_cls(f"{action} timed out after {timeout:g}s") from exc
    except httpx.HTTPError as exc:
        raise error_cls(f"{action} failed: {exc}") from exc
    return _decode_object(response, error_cls, action)


def get_json(
    url: str,
    *,
    error_cls: type[LoopauthError],
    action: str,
    timeout: float = DEFAULT_TIMEOUT,
    headers: Optional[dict[str, str]] = None,
    params: Optional[dict[str, str]] = None,
) -> dict[str, Any]:
    """GET *url* and return its JSON object body.

    Args:
        url: Absolute URL to fetch.
        error_cls: Exception type raised on any failure.
        action: Short description used in error messages (e.g.
            ``"OAuth discovery"``).
        timeout: Request timeout in seconds.
        headers: Extra request headers.
        params: Query parameters.

    Raises:
        LoopauthError: An instance of *error_cls* on network errors,
            timeouts, non-2xx statuses, or a body that is not a JSON object.
    """
    return _send(
        "GET", url, error_cls=error_cls, action=action, timeout=timeout,
        headers=headers, params=params,
    )


def post_form(
    url: str,
    data: dict[str, str],
    *,
    error_cls: type[LoopauthError],
    action: str,
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """POST *data* as ``application/x-www-form-urlencoded`` and return the JSON body.

    Raises:
        LoopauthError: An instance of *error_cls*, as for :func:`get_json`.
    """
    return _send(
        "POST", url, error_cls=error_cls, action=action, timeout=timeout,
        data=data,
    )


def string_field(payload: dict[str, Any], key: str) -> Optional[str]:
    """Return the top-level string value stored under *key*, or ``None``.

    Values of any other JSON type, and empty strings, count as absent.
    """
    value = payload.get(key)
    if isinstance(value, str) and value:
        return value
    return None
