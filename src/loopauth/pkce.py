"""PKCE (Proof Key for Code Exchange) parameter generation.

Implements the S256 method of :rfc:`7636`: a random verifier is kept in
memory and only its SHA-256 digest (the challenge) is sent with the
authorization request. The verifier itself travels once, in the final
token exchange. A random ``state`` token for CSRF protection is minted
alongside.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import uuid

from loopauth.exceptions import PKCEError
from loopauth.models import PKCEParameters

logger = logging.getLogger(__name__)

VERIFIER_BYTES = 32
"""Raw entropy of the code verifier; encodes to 43 base64url characters."""


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def compute_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for *code_verifier*.

    ``BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))`` with ``=`` padding
    stripped.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce() -> PKCEParameters:
    """Generate a fresh verifier, challenge, and ``state`` for one login attempt.

    Returns:
        Immutable :class:`~loopauth.models.PKCEParameters`.

    Raises:
        PKCEError: If the operating system's entropy source is unavailable.
    """
    try:
        code_verifier = _b64url(secrets.token_bytes(VERIFIER_BYTES))
        state = str(uuid.uuid4())
    except (OSError, NotImplementedError) as exc:
        raise PKCEError(f"Failed to generate PKCE parameters: {exc}") from exc

    logger.debug("PKCE parameters generated")
    return PKCEParameters(
        code_verifier=code_verifier,
        code_challenge=compute_code_challenge(code_verifier),
        code_challenge_method="S256",
        state=state,
    )
