"""Shared test fixtures for loopauth.

Provides reusable fixtures for creating isolated config environments,
managing output state, building protocol values, and running CLI
commands. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from loopauth.config import ENV_VARS
from loopauth.models import ClientSettings, Endpoints, PKCEParameters
from loopauth.output import OutputFormat, OutputManager, reset_output, set_output
from loopauth.pkce import compute_code_challenge


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use. Handlers that configure_logging attached
    to the ``loopauth`` logger hold the same stale streams and are removed.
    """
    yield
    reset_output()
    logger = logging.getLogger("loopauth")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Protocol fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> ClientSettings:
    """Settings pointing at a fake provider, with an ephemeral listener port."""
    return ClientSettings(
        client_id="http://localhost:8080/client-metadata.json",
        redirect_uri="http://localhost:8080/callback",
        scope="atproto",
        local_server_port=0,
        service_base_url="https://auth.example.com",
        http_timeout=5.0,
    )


@pytest.fixture
def pkce() -> PKCEParameters:
    """Deterministic PKCE parameters."""
    verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
    return PKCEParameters(
        code_verifier=verifier,
        code_challenge=compute_code_challenge(verifier),
        state="8f14e45f-ceea-467f-a0e6-1c3b2d4f5a6b",
    )


@pytest.fixture
def endpoints() -> Endpoints:
    """Endpoints of a provider without PAR."""
    return Endpoints(
        authorization_endpoint="https://auth.example.com/oauth/authorize",
        token_endpoint="https://auth.example.com/oauth/token",
    )


@pytest.fixture
def par_endpoints() -> Endpoints:
    """Endpoints of a provider that offers PAR."""
    return Endpoints(
        authorization_endpoint="https://auth.example.com/oauth/authorize",
        token_endpoint="https://auth.example.com/oauth/token",
        par_endpoint="https://auth.example.com/oauth/par",
    )


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path
    so that tests never touch real user config. Clears all LOOPAUTH_*
    environment variables, forces the XDG layout, and changes the working
    directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("loopauth.config._is_xdg_platform", lambda: True)

    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
