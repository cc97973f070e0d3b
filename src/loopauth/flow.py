"""Login flow controller -- wires the PKCE, discovery, PAR, callback, and token steps.

:class:`LoginFlow` owns the :class:`~loopauth.session.Session`, the
:class:`~loopauth.callback_server.CallbackServer`, and the
:class:`~loopauth.relay.MainThreadRelay` of the current login attempt. The
host drives it from its primary thread:

1. :meth:`LoginFlow.start` -- new session, listener up, endpoints
   discovered, authorization URL handed to the host's ``open_url``.
2. :meth:`LoginFlow.tick` -- called once per host loop iteration; runs
   whatever the listener thread relayed (code exchange, errors).
3. Exactly one of ``on_success(access_token)`` or ``on_error(error)`` fires
   per session, always on the thread that calls :meth:`tick` or
   :meth:`start`.

Typical host loop::

    flow = LoginFlow(settings, webbrowser.open, on_success, on_error)
    flow.start()
    while not flow.finished:
        flow.tick()
        time.sleep(0.05)
    flow.shutdown()
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, Optional

from loopauth.authorize import begin
from loopauth.callback_server import CallbackServer
from loopauth.discovery import discover
from loopauth.exceptions import InitiationError, LoopauthError
from loopauth.masking import redact
from loopauth.models import ClientMetadata, ClientSettings
from loopauth.relay import MainThreadRelay
from loopauth.session import Session
from loopauth.tokens import exchange_code

logger = logging.getLogger(__name__)

OpenUrl = Callable[[str], Optional[bool]]
SuccessHandler = Callable[[str], None]
ErrorHandler = Callable[[LoopauthError], None]


class LoginFlow:
    """Runs one OAuth Authorization Code + PKCE login at a time.

    Args:
        settings: Client configuration.
        open_url: Host capability that opens a URL in the system browser.
            Returning ``False`` or raising counts as a failure to open.
        on_success: Receives the access token once the exchange succeeds.
        on_error: Receives the :class:`~loopauth.exceptions.LoopauthError`
            that ended the session.
        relay: Relay shared with the callback server. A private one is
            created when omitted.
    """

    def __init__(
        self,
        settings: ClientSettings,
        open_url: OpenUrl,
        on_success: SuccessHandler,
        on_error: ErrorHandler,
        relay: Optional[MainThreadRelay] = None,
    ) -> None:
        self._settings = settings
        self._open_url = open_url
        self._on_success = on_success
        self._on_error = on_error
        self._relay = relay if relay is not None else MainThreadRelay()

        self._session: Optional[Session] = None
        self._server: Optional[CallbackServer] = None
        self._finished = False

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def relay(self) -> MainThreadRelay:
        return self._relay

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def server(self) -> Optional[CallbackServer]:
        return self._server

    @property
    def finished(self) -> bool:
        """True once the current session reported success or an error."""
        return self._finished

    @property
    def access_token(self) -> Optional[str]:
        return self._session.access_token if self._session else None

    @property
    def refresh_token(self) -> Optional[str]:
        return self._session.refresh_token if self._session else None

    def is_authenticated(self) -> bool:
        return self._session is not None and self._session.is_authenticated()

    # ------------------------------------------------------------------
    # Host entry points
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin a new login attempt, discarding any previous one.

        Failures before the browser opens are reported through
        ``on_error`` before this method returns.
        """
        self._teardown()
        self._finished = False
        logger.info("Starting OAuth flow...")

        settings = self._settings
        try:
            session = Session()
        except LoopauthError as exc:
            self._fail(exc)
            return
        self._session = session

        self._server = CallbackServer(
            self._relay,
            session.state,
            functools.partial(self._handle_code, session),
            functools.partial(self._handle_error, session),
            ClientMetadata.from_settings(settings),
        )
        try:
            self._server.start(settings.local_server_port)
            endpoints = discover(settings.service_base_url, timeout=settings.http_timeout)
            session.bind_endpoints(endpoints)
            request = begin(
                endpoints,
                session.pkce,
                settings.client_id,
                settings.redirect_uri,
                settings.scope,
                timeout=settings.http_timeout,
            )
            self._open(request.url)
        except LoopauthError as exc:
            self._fail(exc)

    def tick(self) -> int:
        """Run relayed work on the calling (host) thread. Never blocks."""
        return self._relay.drain()

    def shutdown(self) -> None:
        """Stop the listener and drop the session. Safe to call repeatedly."""
        self._teardown()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _teardown(self) -> None:
        self._stop_server()
        self._relay.clear()
        self._session = None

    def _stop_server(self) -> None:
        if self._server is not None:
            self._server.stop()

    def _open(self, url: str) -> None:
        logger.info("Opening authorization URL...")
        try:
            opened = self._open_url(url)
        except Exception as exc:
            raise InitiationError(f"Failed to open authorization URL: {exc}") from exc
        if opened is False:
            raise InitiationError("Failed to open authorization URL: no browser available")
        logger.info("Authorization URL opened in browser")

    def _handle_code(self, session: Session, code: str) -> None:
        if session is not self._session or self._finished or session.is_authenticated():
            logger.warning("Ignoring authorization code for a finished or replaced session")
            return

        endpoints = session.endpoints
        token_endpoint = (
            endpoints.token_endpoint
            if endpoints is not None
            else f"{self._settings.service_base_url.rstrip('/')}/oauth/token"
        )
        try:
            tokens = exchange_code(
                token_endpoint,
                code,
                session.code_verifier,
                self._settings.client_id,
                self._settings.redirect_uri,
                timeout=self._settings.http_timeout,
            )
            session.store_tokens(tokens)
        except LoopauthError as exc:
            self._fail(exc)
            return

        self._finished = True
        self._stop_server()
        logger.info("Login complete, access token %s", redact(tokens.access_token))
        self._on_success(tokens.access_token)

    def _handle_error(self, session: Session, error: LoopauthError) -> None:
        if session is not self._session:
            logger.warning("Ignoring error from a replaced session: %s", error)
            return
        self._fail(error)

    def _fail(self, error: LoopauthError) -> None:
        if self._finished:
            logger.warning("Ignoring error after the session finished: %s", error)
            return
        self._finished = True
        self._stop_server()
        logger.error("Login failed: %s", error)
        self._on_error(error)
