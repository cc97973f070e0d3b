"""Tests for the per-login Session and the CallbackResult checks."""

from __future__ import annotations

import pytest

from loopauth.exceptions import LoopauthError, ProviderError, SecurityError
from loopauth.models import CallbackResult, Endpoints, PKCEParameters, TokenSet
from loopauth.session import Session


class TestSession:
    def test_new_session_has_fresh_values(self) -> None:
        first, second = Session(), Session()
        assert first.state != second.state
        assert first.code_verifier != second.code_verifier
        assert not first.is_authenticated()
        assert first.endpoints is None
        assert first.access_token is None

    def test_uses_given_pkce(self, pkce: PKCEParameters) -> None:
        session = Session(pkce)
        assert session.state == pkce.state
        assert session.code_verifier == pkce.code_verifier
        assert session.code_challenge == pkce.code_challenge

    def test_bind_endpoints_once(self, endpoints: Endpoints) -> None:
        session = Session()
        session.bind_endpoints(endpoints)
        assert session.endpoints == endpoints
        with pytest.raises(LoopauthError, match="already set"):
            session.bind_endpoints(endpoints)

    def test_store_tokens_once(self) -> None:
        session = Session()
        session.store_tokens(TokenSet(access_token="access"))
        assert session.is_authenticated()
        assert session.access_token == "access"
        assert session.refresh_token is None
        with pytest.raises(LoopauthError, match="already authenticated"):
            session.store_tokens(TokenSet(access_token="other"))
        assert session.access_token == "access"

    def test_repr_hides_secrets(self, pkce: PKCEParameters) -> None:
        session = Session(pkce)
        session.store_tokens(TokenSet(access_token="secret-access", refresh_token="secret-refresh"))
        text = repr(session)
        assert pkce.code_verifier not in text
        assert "secret-access" not in text
        assert "secret-refresh" not in text
        assert "authenticated=True" in text


class TestCallbackResult:
    def test_from_query_first_value_wins(self) -> None:
        result = CallbackResult.from_query({"code": ["a", "b"], "state": ["s"]})
        assert result.code == "a"
        assert result.state == "s"
        assert not result.is_error

    def test_resolve_code(self) -> None:
        result = CallbackResult(code="abc123", state="s1")
        assert result.resolve_code("s1") == "abc123"

    def test_state_mismatch(self) -> None:
        with pytest.raises(SecurityError, match="state mismatch"):
            CallbackResult(code="abc123", state="s2").resolve_code("s1")

    def test_state_compared_exactly(self) -> None:
        assert not CallbackResult(state="S1").state_matches("s1")
        assert not CallbackResult(state="s1 ").state_matches("s1")
        assert not CallbackResult(state="s1").state_matches("")

    def test_error_takes_precedence(self) -> None:
        result = CallbackResult(error="access_denied", state="wrong")
        with pytest.raises(ProviderError, match="access_denied: Unknown error"):
            result.resolve_code("s1")

    def test_missing_code(self) -> None:
        with pytest.raises(ProviderError, match="invalid_request"):
            CallbackResult(state="s1").resolve_code("s1")

    def test_code_hidden_from_repr(self) -> None:
        assert "abc123" not in repr(CallbackResult(code="abc123", state="s1"))
