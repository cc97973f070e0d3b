"""State of a single login attempt."""

from __future__ import annotations

from typing import Optional

from loopauth.exceptions import LoopauthError
from loopauth.models import Endpoints, PKCEParameters, TokenSet
from loopauth.pkce import generate_pkce


class Session:
    """Holds the ``state`` token, PKCE pair, endpoints, and tokens of one login.

    Endpoints and tokens are write-once: a session is bound to the provider
    it discovered, and is authenticated at most once. Starting over means
    creating a new session, which also mints a new ``state`` and verifier.
    """

    def __init__(self, pkce: Optional[PKCEParameters] = None) -> None:
        self._pkce = pkce if pkce is not None else generate_pkce()
        self._endpoints: Optional[Endpoints] = None
        self._tokens: Optional[TokenSet] = None

    @property
    def pkce(self) -> PKCEParameters:
        return self._pkce

    @property
    def state(self) -> str:
        return self._pkce.state

    @property
    def code_verifier(self) -> str:
        return self._pkce.code_verifier

    @property
    def code_challenge(self) -> str:
        return self._pkce.code_challenge

    @property
    def endpoints(self) -> Optional[Endpoints]:
        return self._endpoints

    def bind_endpoints(self, endpoints: Endpoints) -> None:
        """Record the discovered endpoints. Only allowed once per session."""
        if self._endpoints is not None:
            raise LoopauthError("Session endpoints are already set")
        self._endpoints = endpoints

    @property
    def tokens(self) -> Optional[TokenSet]:
        return self._tokens

    def store_tokens(self, tokens: TokenSet) -> None:
        """Record the exchanged tokens. Only allowed once per session."""
        if self._tokens is not None:
            raise LoopauthError("Session is already authenticated")
        self._tokens = tokens

    @property
    def access_token(self) -> Optional[str]:
        return self._tokens.access_token if self._tokens else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._tokens.refresh_token if self._tokens else None

    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def __repr__(self) -> str:
        return (
            f"Session(state={self.state!r}, endpoints={self._endpoints!r}, "
            f"authenticated={self.is_authenticated()})"
        )
