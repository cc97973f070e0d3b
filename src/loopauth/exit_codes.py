"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~loopauth.exceptions.LoopauthError` subclass.
Shell wrappers can inspect the exit code of ``loopauth login`` to tell a
rejected login from an unreachable identity provider without parsing stderr.

Example::

    $ loopauth login
    $ echo $?
    4   # EXIT_SECURITY_FAILURE -- callback state did not match
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or configuration."""

EXIT_AUTH_FAILURE = 3
"""The authorization server refused the login or the token exchange failed."""

EXIT_SECURITY_FAILURE = 4
"""The redirect failed a security check (state mismatch)."""

EXIT_SERVER_ERROR = 5
"""The local callback listener could not be started or crashed."""

EXIT_CONNECTION_ERROR = 6
"""Endpoint discovery or another outbound request failed at the network level."""

EXIT_TIMEOUT = 7
"""The login did not complete within the allotted time."""
