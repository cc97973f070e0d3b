"""Loopback HTTP listener that catches the browser's OAuth redirect.

:class:`CallbackServer` binds ``localhost:<port>`` and runs its accept
loop on a background thread, with one short-lived daemon thread per
connection:

* ``/client-metadata.json`` -- the client metadata document.
* ``/callback`` -- the authorization redirect. The outcome (a validated
  authorization code, or an error) is handed to the
  :class:`~loopauth.relay.MainThreadRelay`, never acted on directly from
  the listener thread.
* anything else -- ``404 Not found``.

Exactly one ``/callback`` is treated as the terminal result of a session.
Later hits on ``/callback`` get the same ``404`` as an unknown path, so a
replayed redirect can never trigger a second token exchange.
"""

from __future__ import annotations

import enum
import html
import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlparse

from loopauth.exceptions import (
    LoopauthError,
    ProviderError,
    SecurityError,
    ServerError,
)
from loopauth.models import CallbackResult, ClientMetadata
from loopauth.relay import MainThreadRelay

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/callback"
CLIENT_METADATA_PATH = "/client-metadata.json"

POLL_INTERVAL = 0.2
"""How often (seconds) the accept loop checks for a stop request."""

REQUEST_TIMEOUT = 10.0
"""Seconds a connection may stay silent before it is dropped."""

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>{title}</title>
    <style>
        body {{ font-family: Arial, sans-serif; text-align: center; margin-top: 50px; }}
        .success {{ color: green; }}
        .error {{ color: red; }}
        .container {{ max-width: 500px; margin: 0 auto; padding: 20px; border: 1px solid #ddd; border-radius: 5px; }}
    </style>
</head>
<body>
    <div class="container">
        <h1 class="{css_class}">{title}</h1>
        <p>{message}</p>
        <p>You can close this window and return to the application.</p>
    </div>
</body>
</html>
"""

SUCCESS_MESSAGE = "You have successfully signed in."
PROVIDER_FAILURE_MESSAGE = "The sign-in was not completed by the authorization server."
SECURITY_FAILURE_MESSAGE = "Security check failed. Please start the sign-in again."
INTERNAL_FAILURE_MESSAGE = "An error occurred during authentication."


def render_page(success: bool, message: Optional[str] = None) -> str:
    """Render the HTML page shown in the browser tab after the redirect."""
    if success:
        title, css_class = "Authentication Successful", "success"
        message = message or SUCCESS_MESSAGE
    else:
        title, css_class = "Authentication Failed", "error"
        message = message or INTERNAL_FAILURE_MESSAGE
    return _PAGE_TEMPLATE.format(
        title=title, css_class=css_class, message=html.escape(message)
    )


class ServerState(str, enum.Enum):
    """Lifecycle states of a :class:`CallbackServer`."""

    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"
    SERVING = "serving"


class _LoopbackHTTPServer(ThreadingHTTPServer):
    """``ThreadingHTTPServer`` that knows which :class:`CallbackServer` owns it.

    Each connection gets its own daemon thread, so an idle connection (e.g. a
    browser preconnect) cannot hold up the redirect or :meth:`CallbackServer.stop`.
    """

    allow_reuse_port = False
    daemon_threads = True
    block_on_close = False

    def __init__(self, address: tuple[str, int], owner: CallbackServer) -> None:
        self.owner = owner
        super().__init__(address, _CallbackHandler)

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.exception("Error while handling request from %s", client_address)


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _LoopbackHTTPServer
    timeout = REQUEST_TIMEOUT

    def do_GET(self) -> None:
        self.server.owner._dispatch(self)

    def do_POST(self) -> None:
        self.server.owner._reply(self, 405, "text/plain; charset=utf-8", "Method not allowed")

    do_PUT = do_POST
    do_DELETE = do_POST

    def log_message(self, format: str, *args: Any) -> None:
        # The request line carries the authorization code; keep it out of stderr.
        pass


class CallbackServer:
    """Short-lived redirect listener for one login session.

    Args:
        relay: Relay that carries results to the host thread.
        expected_state: The session's ``state`` token.
        on_code: Called (via *relay*) with the authorization code once a
            redirect passes validation.
        on_error: Called (via *relay*) with the error that ended the
            session: :class:`~loopauth.exceptions.ProviderError`,
            :class:`~loopauth.exceptions.SecurityError`, or
            :class:`~loopauth.exceptions.ServerError`.
        client_metadata: Document served at ``/client-metadata.json``.

    Example::

        server = CallbackServer(relay, pkce.state, on_code, on_error, metadata)
        server.start(8080)
        ...
        server.stop()
    """

    def __init__(
        self,
        relay: MainThreadRelay,
        expected_state: str,
        on_code: Callable[[str], None],
        on_error: Callable[[LoopauthError], None],
        client_metadata: ClientMetadata,
    ) -> None:
        self._relay = relay
        self._expected_state = expected_state
        self._on_code = on_code
        self._on_error = on_error
        self._metadata_body = client_metadata.model_dump_json(indent=2)

        self._lock = threading.Lock()
        self._state = ServerState.STOPPED
        self._delivered = False
        self._httpd: Optional[_LoopbackHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ServerState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is not ServerState.STOPPED

    @property
    def delivered(self) -> bool:
        """Whether the terminal ``/callback`` request of this session has arrived."""
        with self._lock:
            return self._delivered

    @property
    def port(self) -> Optional[int]:
        """The bound port, or ``None`` while stopped."""
        httpd = self._httpd
        if httpd is None:
            return None
        return httpd.server_address[1]

    def start(self, port: int, host: str = "localhost") -> None:
        """Bind the listener and start serving on a background thread.

        Args:
            port: TCP port to bind; ``0`` picks a free ephemeral port.
            host: Interface to bind.

        Raises:
            ServerError: If this server is already running or the port
                cannot be bound (e.g. already in use).
        """
        with self._lock:
            if self._state is not ServerState.STOPPED:
                raise ServerError("Local callback server is already running")
            self._state = ServerState.STARTING

        try:
            httpd = _LoopbackHTTPServer((host, port), self)
        except OSError as exc:
            with self._lock:
                self._state = ServerState.STOPPED
            raise ServerError(f"Failed to start local server on port {port}: {exc}") from exc

        thread = threading.Thread(
            target=self._serve,
            args=(httpd,),
            name=f"loopauth-callback-{httpd.server_address[1]}",
            daemon=True,
        )
        with self._lock:
            self._httpd = httpd
            self._thread = thread
            self._delivered = False
            self._state = ServerState.LISTENING
        thread.start()
        logger.info("Local server started on port %d", httpd.server_address[1])

    def stop(self) -> None:
        """Stop serving and release the port. Calling it again is a no-op.

        Blocks until the accept loop has exited, so the same port can be
        bound again as soon as this returns.
        """
        with self._lock:
            httpd, thread = self._httpd, self._thread
            self._httpd = None
            self._thread = None
        if httpd is None:
            return

        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            httpd.shutdown()
            thread.join()
        httpd.server_close()
        with self._lock:
            self._state = ServerState.STOPPED
        logger.info("Local server stopped")

    def __enter__(self) -> CallbackServer:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def _serve(self, httpd: _LoopbackHTTPServer) -> None:
        try:
            httpd.serve_forever(poll_interval=POLL_INTERVAL)
        except Exception as exc:
            logger.exception("Local callback server crashed")
            error = ServerError(f"Error in local server: {exc}")
            self._relay.enqueue(lambda: self._on_error(error))

    # ------------------------------------------------------------------
    # Request handling (per-connection threads)
    # ------------------------------------------------------------------

    def _reply(
        self, handler: BaseHTTPRequestHandler, status: int, content_type: str, body: str
    ) -> None:
        payload = body.encode("utf-8")
        handler.send_response(status)
        handler.send_header("Content-Type", content_type)
        handler.send_header("Content-Length", str(len(payload)))
        handler.send_header("Cache-Control", "no-store")
        handler.end_headers()
        handler.wfile.write(payload)
        handler.wfile.flush()

    def _not_found(self, handler: BaseHTTPRequestHandler) -> None:
        self._reply(handler, 404, "text/plain; charset=utf-8", "Not found")

    def _dispatch(self, handler: BaseHTTPRequestHandler) -> None:
        parsed = urlparse(handler.path)
        logger.debug("Received request for: %s", parsed.path)

        if parsed.path == CLIENT_METADATA_PATH:
            self._reply(handler, 200, "application/json", self._metadata_body)
            return

        if parsed.path == CALLBACK_PATH:
            with self._lock:
                accept = not self._delivered and self._state is ServerState.LISTENING
                if accept:
                    self._delivered = True
                    self._state = ServerState.SERVING
            if not accept:
                logger.warning("Ignoring callback: session already has a result")
                self._not_found(handler)
                return
            try:
                self._handle_callback(handler, parse_qs(parsed.query))
            finally:
                with self._lock:
                    if self._state is ServerState.SERVING:
                        self._state = ServerState.LISTENING
            return

        self._not_found(handler)

    def _handle_callback(
        self, handler: BaseHTTPRequestHandler, query: dict[str, list[str]]
    ) -> None:
        try:
            result = CallbackResult.from_query(query)
            code = result.resolve_code(self._expected_state)
        except ProviderError as exc:
            logger.error("OAuth error: %s", exc)
            self._fail(handler, PROVIDER_FAILURE_MESSAGE, exc)
            return
        except SecurityError as exc:
            logger.error("OAuth state mismatch! Possible CSRF attack")
            self._fail(handler, SECURITY_FAILURE_MESSAGE, exc)
            return
        except Exception as exc:
            logger.exception("Error handling OAuth callback")
            self._fail(
                handler,
                INTERNAL_FAILURE_MESSAGE,
                ServerError(f"Error handling OAuth callback: {exc}"),
            )
            return

        # The browser only needs confirmation; finish the response before
        # the code is released for exchange.
        self._reply(handler, 200, "text/html; charset=utf-8", render_page(True))
        logger.info("Authorization code received")
        self._relay.enqueue(lambda: self._on_code(code))

    def _fail(
        self, handler: BaseHTTPRequestHandler, message: str, error: LoopauthError
    ) -> None:
        try:
            self._reply(handler, 200, "text/html; charset=utf-8", render_page(False, message))
        finally:
            self._relay.enqueue(lambda: self._on_error(error))
