"""Config commands -- view and modify the user settings.

Provides the ``loopauth config`` sub-command group for reading, updating,
and resetting the user's config file (:class:`~loopauth.models.ClientSettings`).
"""

from __future__ import annotations

import typer

from loopauth.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    effective: bool = typer.Option(
        False,
        "--effective",
        help="Show the settings after applying project config and environment.",
    ),
) -> None:
    """Show the current configuration.

    Example::

        loopauth config show
        loopauth config show --effective --json
    """
    from loopauth.config import get_config_dir, load_user_config, resolve_settings
    from loopauth.exceptions import ConfigError

    try:
        settings = resolve_settings() if effective else load_user_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config directory: {get_config_dir()}")
    format_response(settings.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Setting name, e.g. 'local_server_port'."),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set a configuration value.

    The value is validated against :class:`~loopauth.models.ClientSettings`
    before saving.

    Example::

        loopauth config set local_server_port 9000
        loopauth config set service_base_url https://pds.example.com
    """
    from pydantic import ValidationError

    from loopauth.config import load_user_config, save_user_config
    from loopauth.exceptions import ConfigError
    from loopauth.models import ClientSettings

    try:
        current = load_user_config()
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    data = current.model_dump(mode="json")
    if key not in data:
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)
    data[key] = value

    try:
        updated = ClientSettings.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_user_config(updated)
    success(f"Set {key} = {getattr(updated, key)}")


@config_app.command("reset")
def config_reset(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation."),
) -> None:
    """Reset configuration to defaults by removing the user config file.

    Example::

        loopauth config reset --force
    """
    from loopauth.config import reset_user_config

    if not force:
        confirmed = typer.confirm("Reset all settings to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    if reset_user_config():
        success("Configuration reset to defaults.")
    else:
        info("No user configuration to reset.")
