"""End-to-end tests for LoginFlow with a mocked identity provider.

The callback server is real (bound to an ephemeral port) and the browser
redirect is simulated with ``http.client``; only ``httpx`` is patched.
"""

from __future__ import annotations

import socket
import time
from http.client import HTTPConnection
from typing import Any, Optional
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from loopauth.callback_server import ServerState
from loopauth.exceptions import (
    DiscoveryError,
    ExchangeError,
    InitiationError,
    LoopauthError,
    ProviderError,
    SecurityError,
    ServerError,
)
from loopauth.flow import LoginFlow
from loopauth.models import ClientSettings

AUTHORIZE_URL = "https://auth.example.com/oauth/authorize"
TOKEN_URL = "https://auth.example.com/oauth/token"
PAR_URL = "https://auth.example.com/oauth/par"


# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


def _mock_response(payload: dict[str, Any], status_code: int = 200) -> MagicMock:
    mock_response = MagicMock(spec=httpx.Response)
    mock_response.status_code = status_code
    mock_response.json.return_value = payload
    mock_response.text = str(payload)
    if status_code >= 400:
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            message=f"HTTP {status_code}",
            request=MagicMock(),
            response=mock_response,
        )
    else:
        mock_response.raise_for_status.return_value = None
    return mock_response


def _metadata(par: bool = False, **overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "issuer": "https://auth.example.com",
        "authorization_endpoint": AUTHORIZE_URL,
        "token_endpoint": TOKEN_URL,
    }
    if par:
        doc["pushed_authorization_request_endpoint"] = PAR_URL
    doc.update(overrides)
    return doc


def _redirect(port: int, query: str) -> int:
    """Simulate the browser hitting the redirect URI."""
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", f"/callback?{query}")
        response = conn.getresponse()
        response.read()
        return response.status
    finally:
        conn.close()


def _run_until_finished(flow: LoginFlow, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not flow.finished:
        if time.monotonic() > deadline:
            raise AssertionError("login flow did not finish in time")
        flow.tick()
        time.sleep(0.01)


class _Host:
    """Stands in for the host application's capabilities and event sinks."""

    def __init__(self, open_result: Optional[bool] = True) -> None:
        self.open_result = open_result
        self.opened: list[str] = []
        self.tokens: list[str] = []
        self.errors: list[LoopauthError] = []

    def open_url(self, url: str) -> Optional[bool]:
        self.opened.append(url)
        return self.open_result

    def on_success(self, access_token: str) -> None:
        self.tokens.append(access_token)

    def on_error(self, error: LoopauthError) -> None:
        self.errors.append(error)

    def flow(self, settings: ClientSettings) -> LoginFlow:
        return LoginFlow(settings, self.open_url, self.on_success, self.on_error)


@pytest.fixture()
def host() -> _Host:
    return _Host()


@pytest.fixture()
def mock_get() -> MagicMock:
    with patch("loopauth.transport.httpx.get") as mocked:
        yield mocked


@pytest.fixture()
def mock_post() -> MagicMock:
    with patch("loopauth.transport.httpx.post") as mocked:
        yield mocked


# -------------------------------------------------------------------------
# Initiation
# -------------------------------------------------------------------------


class TestStart:
    def test_direct_authorization_url(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        flow = host.flow(settings)
        try:
            flow.start()

            assert host.errors == []
            assert len(host.opened) == 1
            url = host.opened[0]
            assert url.startswith(AUTHORIZE_URL + "?")
            query = parse_qs(urlparse(url).query)
            assert query["response_type"] == ["code"]
            assert query["code_challenge"] == [flow.session.code_challenge]
            assert query["state"] == [flow.session.state]
            assert flow.server.state is ServerState.LISTENING
            mock_post.assert_not_called()
            assert not flow.finished
        finally:
            flow.shutdown()

    def test_par_authorization_url(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata(par=True))
        mock_post.return_value = _mock_response(
            {"request_uri": "urn:ietf:params:oauth:request_uri:xyz", "expires_in": 60}
        )
        flow = host.flow(settings)
        try:
            flow.start()

            mock_post.assert_called_once()
            assert mock_post.call_args.args[0] == PAR_URL
            query = parse_qs(urlparse(host.opened[0]).query)
            assert query == {
                "client_id": [settings.client_id],
                "request_uri": ["urn:ietf:params:oauth:request_uri:xyz"],
            }
        finally:
            flow.shutdown()

    def test_par_without_request_uri_never_opens_browser(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata(par=True))
        mock_post.return_value = _mock_response({"expires_in": 60})
        flow = host.flow(settings)
        try:
            flow.start()

            assert host.opened == []
            assert len(host.errors) == 1
            assert isinstance(host.errors[0], InitiationError)
            assert flow.finished
            assert flow.server.state is ServerState.STOPPED
        finally:
            flow.shutdown()

    def test_discovery_missing_token_endpoint(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        doc = _metadata()
        del doc["token_endpoint"]
        mock_get.return_value = _mock_response(doc)
        flow = host.flow(settings)
        try:
            flow.start()

            assert host.opened == []
            assert len(host.errors) == 1
            assert isinstance(host.errors[0], DiscoveryError)
            mock_post.assert_not_called()
        finally:
            flow.shutdown()

    def test_browser_unavailable(
        self, settings: ClientSettings, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        host = _Host(open_result=False)
        mock_get.return_value = _mock_response(_metadata())
        flow = host.flow(settings)
        try:
            flow.start()

            assert len(host.opened) == 1
            assert isinstance(host.errors[0], InitiationError)
        finally:
            flow.shutdown()

    def test_port_in_use(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        blocker.bind(("localhost", 0))
        blocker.listen(1)
        try:
            busy = settings.model_copy(update={"local_server_port": blocker.getsockname()[1]})
            flow = host.flow(busy)
            flow.start()

            assert len(host.errors) == 1
            assert isinstance(host.errors[0], ServerError)
            assert host.opened == []
            mock_get.assert_not_called()
            flow.shutdown()
        finally:
            blocker.close()

    def test_restart_creates_new_session(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        flow = host.flow(settings)
        try:
            flow.start()
            first_session, first_server = flow.session, flow.server
            flow.start()

            assert flow.session is not first_session
            assert flow.session.state != first_session.state
            assert first_server.state is ServerState.STOPPED
            assert flow.server.state is ServerState.LISTENING
        finally:
            flow.shutdown()


# -------------------------------------------------------------------------
# Callback and exchange
# -------------------------------------------------------------------------


class TestCallbackExchange:
    def test_code_is_exchanged_once(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        mock_post.return_value = _mock_response(
            {"access_token": "access-0123456789", "refresh_token": "refresh-0123456789"}
        )
        flow = host.flow(settings)
        try:
            flow.start()
            session = flow.session
            status = _redirect(flow.server.port, f"code=abc123&state={session.state}")
            assert status == 200
            _run_until_finished(flow)

            assert host.errors == []
            assert host.tokens == ["access-0123456789"]
            assert flow.is_authenticated()
            assert flow.access_token == "access-0123456789"
            assert flow.refresh_token == "refresh-0123456789"

            mock_post.assert_called_once()
            args, kwargs = mock_post.call_args
            assert args[0] == TOKEN_URL
            assert kwargs["data"]["code"] == "abc123"
            assert kwargs["data"]["grant_type"] == "authorization_code"
            assert kwargs["data"]["code_verifier"] == session.code_verifier
            assert flow.server.state is ServerState.STOPPED
        finally:
            flow.shutdown()

    def test_no_refresh_token(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        mock_post.return_value = _mock_response({"access_token": "access-only-0123"})
        flow = host.flow(settings)
        try:
            flow.start()
            _redirect(flow.server.port, f"code=abc123&state={flow.session.state}")
            _run_until_finished(flow)

            assert flow.is_authenticated()
            assert flow.refresh_token is None
            assert host.tokens == ["access-only-0123"]
        finally:
            flow.shutdown()

    def test_state_mismatch_never_exchanges(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        flow = host.flow(settings)
        try:
            flow.start()
            _redirect(flow.server.port, "code=abc123&state=forged")
            _run_until_finished(flow)

            mock_post.assert_not_called()
            assert host.tokens == []
            assert len(host.errors) == 1
            assert isinstance(host.errors[0], SecurityError)
            assert not flow.is_authenticated()
        finally:
            flow.shutdown()

    def test_provider_error(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        flow = host.flow(settings)
        try:
            flow.start()
            _redirect(flow.server.port, "error=access_denied&error_description=denied")
            _run_until_finished(flow)

            mock_post.assert_not_called()
            assert isinstance(host.errors[0], ProviderError)
            assert str(host.errors[0]) == "access_denied: denied"
        finally:
            flow.shutdown()

    def test_exchange_failure(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        mock_post.return_value = _mock_response({"error": "invalid_grant"}, status_code=400)
        flow = host.flow(settings)
        try:
            flow.start()
            _redirect(flow.server.port, f"code=abc123&state={flow.session.state}")
            _run_until_finished(flow)

            assert host.tokens == []
            assert len(host.errors) == 1
            assert isinstance(host.errors[0], ExchangeError)
            assert not flow.is_authenticated()
        finally:
            flow.shutdown()

    def test_events_only_fire_from_tick(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        mock_post.return_value = _mock_response({"access_token": "access-0123456789"})
        flow = host.flow(settings)
        try:
            flow.start()
            _redirect(flow.server.port, f"code=abc123&state={flow.session.state}")
            time.sleep(0.1)

            assert host.tokens == []
            mock_post.assert_not_called()
            _run_until_finished(flow)
            assert host.tokens == ["access-0123456789"]
        finally:
            flow.shutdown()

    def test_shutdown_discards_pending_result(
        self, settings: ClientSettings, host: _Host, mock_get: MagicMock, mock_post: MagicMock
    ) -> None:
        mock_get.return_value = _mock_response(_metadata())
        flow = host.flow(settings)
        flow.start()
        _redirect(flow.server.port, f"code=abc123&state={flow.session.state}")
        deadline = time.monotonic() + 5
        while len(flow.relay) == 0 and time.monotonic() < deadline:
            time.sleep(0.01)

        flow.shutdown()
        flow.tick()

        mock_post.assert_not_called()
        assert host.tokens == []
        assert flow.session is None
        assert not flow.is_authenticated()
