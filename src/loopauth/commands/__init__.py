"""Built-in CLI sub-commands for loopauth.

* :mod:`~loopauth.commands.login` -- run the interactive browser login.
* :mod:`~loopauth.commands.provider` -- inspect the identity provider's
  endpoints and this client's metadata document.
* :mod:`~loopauth.commands.config` -- view and modify the user settings.

Each module either exports a :class:`typer.Typer` sub-application (for
multi-command groups like ``config``) or a plain callback function
registered directly on the root app (for single commands like ``login``).
"""
