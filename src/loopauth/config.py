"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for loopauth:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.loopauth/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **User config** -- A single :class:`~loopauth.models.ClientSettings`
  JSON file (``config.json``) in the config directory.
* **Project config** -- An optional ``./loopauth.json`` next to the
  application, holding a subset of the same keys.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI
  options, environment variables, project config, and user config into the
  effective settings.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from loopauth.exceptions import ConfigError
from loopauth.models import ClientSettings

_APP_NAME = "loopauth"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "loopauth.json"

ENV_VARS: dict[str, str] = {
    "LOOPAUTH_CLIENT_ID": "client_id",
    "LOOPAUTH_REDIRECT_URI": "redirect_uri",
    "LOOPAUTH_SCOPE": "scope",
    "LOOPAUTH_PORT": "local_server_port",
    "LOOPAUTH_SERVICE_URL": "service_base_url",
}
"""Environment variables and the setting each one overrides."""


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/loopauth/`` (default ``~/.config/loopauth/``).
    On macOS/Windows: ``~/.loopauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/loopauth/`` (default ``~/.local/share/loopauth/``).
    On macOS/Windows: ``~/.loopauth/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


def _read_json_object(path: Path, label: str) -> Optional[dict[str, Any]]:
    """Read *path* as a JSON object, or return ``None`` if it does not exist."""
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} at {path}: expected a JSON object")
    return data


# --- User config ---


def user_config_path() -> Path:
    """Path to the user config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_user_config() -> ClientSettings:
    """Load the user configuration.

    Returns:
        The stored settings, or defaults if the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = user_config_path()
    data = _read_json_object(path, "user config")
    if data is None:
        return ClientSettings()
    try:
        return ClientSettings.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid user config at {path}: {exc}") from exc


def save_user_config(settings: ClientSettings) -> None:
    """Persist *settings* atomically as the user configuration."""
    data = settings.model_dump(mode="json")
    _atomic_write(user_config_path(), json.dumps(data, indent=2) + "\n")


def reset_user_config() -> bool:
    """Delete the user config file. Returns ``True`` if a file was removed."""
    path = user_config_path()
    if not path.is_file():
        return False
    path.unlink()
    return True


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./loopauth.json``.

    Returns:
        The parsed JSON object, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but is not a JSON object.
    """
    return _read_json_object(Path.cwd() / _PROJECT_CONFIG_FILENAME, "project config")


# --- Precedence resolution ---


def env_overrides() -> dict[str, str]:
    """Return the settings overridden by ``LOOPAUTH_*`` environment variables."""
    overrides: dict[str, str] = {}
    for var, key in ENV_VARS.items():
        value = os.environ.get(var)
        if value:
            overrides[key] = value
    return overrides


def resolve_settings(cli_overrides: Optional[dict[str, Any]] = None) -> ClientSettings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI options (*cli_overrides*; ``None`` values are ignored)
        2. Environment variables (see :data:`ENV_VARS`)
        3. Project config (``./loopauth.json``)
        4. User config (``~/.config/loopauth/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer is unreadable or the merged values fail
            validation.
    """
    merged: dict[str, Any] = {}

    user = _read_json_object(user_config_path(), "user config")
    if user is not None:
        merged.update(user)

    project = load_project_config()
    if project is not None:
        merged.update(project)

    merged.update(env_overrides())

    if cli_overrides:
        merged.update({k: v for k, v in cli_overrides.items() if v is not None})

    try:
        return ClientSettings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
