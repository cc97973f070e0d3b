"""Canonical Pydantic models shared across all loopauth modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config
directory: :class:`ClientSettings`.

**Protocol models** -- values that flow between the login components:
:class:`PKCEParameters`, :class:`Endpoints`, :class:`AuthorizationRequest`,
:class:`CallbackResult`, :class:`TokenSet`, and :class:`ClientMetadata`.

Models that hold secrets (the PKCE verifier, tokens) exclude those fields
from ``repr`` so they never end up in a traceback or log line by accident.
"""

from __future__ import annotations

import hmac
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from loopauth.exceptions import ProviderError, SecurityError


# --- Configuration ---


class ClientSettings(BaseModel):
    """Static per-deployment configuration of the OAuth client.

    None of these values are renegotiated at runtime; a running
    :class:`~loopauth.flow.LoginFlow` reads them once per session.

    Example::

        ClientSettings(
            client_id="https://app.example.com/client-metadata.json",
            redirect_uri="https://app.example.com/callback.html",
            local_server_port=8080,
        )
    """

    client_id: str = Field(
        default="http://localhost:8080/client-metadata.json",
        description="OAuth client_id (for AT Protocol, the client metadata URL)",
    )
    redirect_uri: str = Field(
        default="http://localhost:8080/callback",
        description="Redirect URI registered for the client",
    )
    scope: str = Field(default="atproto", description="Space-separated scopes to request")
    local_server_port: int = Field(
        default=8080, ge=0, le=65535, description="Port of the local callback listener"
    )
    service_base_url: str = Field(
        default="https://bsky.social",
        description="Base URL of the identity provider (discovery root)",
    )
    client_name: str = Field(
        default="loopauth", description="Human-readable client name in client metadata"
    )
    http_timeout: float = Field(
        default=30.0, gt=0, description="Timeout in seconds for outbound HTTP requests"
    )


# --- Protocol values ---


class PKCEParameters(BaseModel):
    """A PKCE verifier/challenge pair plus the anti-CSRF ``state`` token."""

    model_config = ConfigDict(frozen=True)

    code_verifier: str = Field(repr=False)
    code_challenge: str
    code_challenge_method: Literal["S256"] = "S256"
    state: str


class Endpoints(BaseModel):
    """Endpoints extracted from the authorization server metadata document."""

    model_config = ConfigDict(frozen=True)

    authorization_endpoint: str
    token_endpoint: str
    par_endpoint: Optional[str] = None

    @property
    def supports_par(self) -> bool:
        return bool(self.par_endpoint)


class AuthorizationRequest(BaseModel):
    """The authorization URL to open in the browser, and how it was built."""

    model_config = ConfigDict(frozen=True)

    url: str
    state: str
    used_par: bool = False
    request_uri: Optional[str] = None


class CallbackResult(BaseModel):
    """Query parameters received on the ``/callback`` redirect.

    Carries either ``code`` + ``state`` or ``error`` + ``error_description``.
    Use :meth:`resolve_code` to turn it into an authorization code.
    """

    model_config = ConfigDict(frozen=True)

    code: Optional[str] = Field(default=None, repr=False)
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    @classmethod
    def from_query(cls, params: dict[str, list[str]]) -> CallbackResult:
        """Build a result from ``urllib.parse.parse_qs`` output (first value wins)."""

        def first(name: str) -> Optional[str]:
            values = params.get(name)
            return values[0] if values else None

        return cls(
            code=first("code"),
            state=first("state"),
            error=first("error"),
            error_description=first("error_description"),
        )

    @property
    def is_error(self) -> bool:
        return bool(self.error)

    def state_matches(self, expected_state: str) -> bool:
        """Compare the returned ``state`` against *expected_state* in constant time."""
        if self.state is None or not expected_state:
            return False
        return hmac.compare_digest(
            self.state.encode("utf-8"), expected_state.encode("utf-8")
        )

    def resolve_code(self, expected_state: str) -> str:
        """Return the authorization code once the redirect passes all checks.

        Checks run in this order: a provider ``error`` wins over everything,
        then the ``state`` must match, then a ``code`` must be present.

        Raises:
            ProviderError: The redirect carries ``error``, or no ``code``.
            SecurityError: ``state`` is missing or does not match.
        """
        if self.is_error:
            raise ProviderError(self.error or "", self.error_description)
        if not self.state_matches(expected_state):
            raise SecurityError("Security error: state mismatch")
        if not self.code:
            raise ProviderError("invalid_request", "Authorization code missing from redirect")
        return self.code


class TokenSet(BaseModel):
    """Tokens returned by the token endpoint.

    Only ``access_token`` is required; the other fields are copied when the
    provider sends them as the expected types.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    token_type: Optional[str] = None
    scope: Optional[str] = None
    sub: Optional[str] = None
    expires_in: Optional[int] = None


class ClientMetadata(BaseModel):
    """Client metadata document served at ``/client-metadata.json``."""

    client_id: str
    client_name: str
    client_uri: str
    redirect_uris: list[str]
    scope: str
    grant_types: list[str] = Field(
        default_factory=lambda: ["authorization_code", "refresh_token"]
    )
    response_types: list[str] = Field(default_factory=lambda: ["code"])
    token_endpoint_auth_method: str = "none"
    application_type: str = "web"
    dpop_bound_access_tokens: bool = True

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> ClientMetadata:
        return cls(
            client_id=settings.client_id,
            client_name=settings.client_name,
            client_uri=f"http://localhost:{settings.local_server_port}",
            redirect_uris=[settings.redirect_uri],
            scope=settings.scope,
        )
