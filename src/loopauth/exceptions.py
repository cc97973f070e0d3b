"""Exception hierarchy for loopauth.

All exceptions inherit from :class:`LoopauthError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`loopauth.exit_codes`.
Every error is terminal for the login session that raised it: nothing is
retried automatically, and the host restarts the flow (which mints a fresh
state and PKCE pair) to try again.

Subclass hierarchy::

    LoopauthError        (exit 1)
    +-- ConfigError      (exit 2)
    +-- DiscoveryError   (exit 6)
    +-- InitiationError  (exit 3)
    |   +-- PKCEError    (exit 3)
    +-- SecurityError    (exit 4)
    +-- ProviderError    (exit 3)
    +-- ExchangeError    (exit 3)
    +-- ServerError      (exit 5)
    +-- ApiError         (exit 6)
    +-- LoginTimeoutError (exit 7)
"""

from __future__ import annotations

from typing import Optional

from loopauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SECURITY_FAILURE,
    EXIT_SERVER_ERROR,
    EXIT_TIMEOUT,
)


class LoopauthError(Exception):
    """Base exception for all loopauth errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`loopauth.exit_codes`. The CLI entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(LoopauthError):
    """Raised for configuration problems (invalid JSON, bad values)."""

    exit_code = EXIT_INVALID_USAGE


class DiscoveryError(LoopauthError):
    """Raised when authorization server metadata cannot be fetched or lacks an endpoint."""

    exit_code = EXIT_CONNECTION_ERROR


class InitiationError(LoopauthError):
    """Raised when the authorization request cannot be started (PAR failure, browser failure)."""

    exit_code = EXIT_AUTH_FAILURE


class PKCEError(InitiationError):
    """Raised when PKCE parameters cannot be generated (entropy source unavailable)."""


class SecurityError(LoopauthError):
    """Raised when the redirect's ``state`` does not match the session."""

    exit_code = EXIT_SECURITY_FAILURE


class ProviderError(LoopauthError):
    """Raised when the authorization server returns an error at the redirect.

    Args:
        error: The OAuth ``error`` code (e.g. ``access_denied``).
        error_description: The optional human-readable description.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, error: str, error_description: Optional[str] = None):
        message = f"{error}: {error_description or 'Unknown error'}"
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class ExchangeError(LoopauthError):
    """Raised when the token endpoint fails or returns no ``access_token``."""

    exit_code = EXIT_AUTH_FAILURE


class ServerError(LoopauthError):
    """Raised when the local callback listener cannot bind or crashes."""

    exit_code = EXIT_SERVER_ERROR


class ApiError(LoopauthError):
    """Raised when an authenticated API call fails."""

    exit_code = EXIT_CONNECTION_ERROR


class LoginTimeoutError(LoopauthError):
    """Raised by the CLI host when the browser login does not finish in time."""

    exit_code = EXIT_TIMEOUT
