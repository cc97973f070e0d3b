"""loopauth -- OAuth 2.0 browser login for native apps over a loopback redirect.

This package signs a user in through the system browser using the
Authorization Code grant with PKCE, optionally preceded by a Pushed
Authorization Request. A short-lived HTTP server on ``localhost`` receives
the redirect; its results are relayed back to the host thread, which then
exchanges the code for tokens.

Typical workflow::

    loopauth discover                 # inspect the provider endpoints
    loopauth login --show-profile     # sign in and call the API once

Modules:
    app: Typer application and CLI entry point.
    flow: Session orchestration (:class:`~loopauth.flow.LoginFlow`).
    callback_server: Loopback HTTP server for the redirect.
    relay: Thread-safe queue drained on the host thread.
    pkce: PKCE verifier/challenge and state generation.
    discovery: Authorization server metadata lookup.
    authorize: Authorization URL and PAR requests.
    tokens: Authorization code exchange.
    models: Pydantic models shared across the package.
    config: XDG-aware settings resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.1.0"
