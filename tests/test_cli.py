"""Tests for the sessiongate CLI.

Tests cover:
- Main app (--help, --version)
- status against a running gateway (httpx mocked)
- config show
- creds list / migrate
"""

from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
from typer.testing import CliRunner

from sessiongate import __version__
from sessiongate.cli import app
from sessiongate.cli.config import effective_config
from sessiongate.config.settings import Settings
from sessiongate.credentials import FileCredentialStore, SQLCredentialStore


# ===========================================================================
# Fixtures
# ===========================================================================


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def auth_dir(tmp_path):
    """A file store pre-populated with a creds record and two keys."""
    directory = tmp_path / "auth"
    store = FileCredentialStore(directory)

    async def _seed():
        await store.read_credential_record()
        await store.apply_key_updates({"pre-key": {"1": {"public": b"\x01"}, "2": {"public": b"\x02"}}})

    asyncio.run(_seed())
    return directory


def _status_response(**overrides) -> MagicMock:
    payload = {
        "state": "connected",
        "connected": True,
        "hasQR": False,
        "connectionAttempts": 0,
        "maxAttempts": 5,
        "lastError": None,
        "timestamp": "2026-01-01T00:00:00+00:00",
    }
    payload.update(overrides)
    response = MagicMock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


# ===========================================================================
# Main app
# ===========================================================================


class TestMainApp:
    def test_help(self, runner):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "serve" in result.output
        assert "creds" in result.output

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_serve_runs_uvicorn(self, runner):
        with patch("uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "--port", "9099"])
        assert result.exit_code == 0
        args, kwargs = run.call_args
        assert args[0] == "sessiongate.main:app"
        assert kwargs["port"] == 9099


# ===========================================================================
# status
# ===========================================================================


class TestStatusCommand:
    def test_table(self, runner):
        with patch("sessiongate.cli.httpx.get", return_value=_status_response()) as get:
            result = runner.invoke(app, ["status", "--url", "http://gw:8080/"])
        assert result.exit_code == 0
        assert "connected" in result.output
        get.assert_called_once_with("http://gw:8080/status", timeout=5.0)

    def test_json(self, runner):
        response = _status_response(state="closed", connected=False, connectionAttempts=2)
        with patch("sessiongate.cli.httpx.get", return_value=response):
            result = runner.invoke(app, ["status", "--format", "json"])
        assert result.exit_code == 0
        assert '"connectionAttempts": 2' in result.output

    def test_unreachable(self, runner):
        with patch("sessiongate.cli.httpx.get", side_effect=httpx.ConnectError("refused")):
            result = runner.invoke(app, ["status"])
        assert result.exit_code == 1


# ===========================================================================
# config
# ===========================================================================


class TestConfigCommands:
    def test_show_table(self, runner):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "MAX_RECONNECT_ATTEMPTS" in result.output

    def test_show_json(self, runner):
        result = runner.invoke(app, ["config", "show", "--format", "json"])
        assert result.exit_code == 0
        assert "CREDENTIAL_BACKEND" in result.output

    def test_password_masked(self):
        source = Settings(_env_file=None, DATABASE_URL="postgresql://gate:s3cret@db/gw")
        data = effective_config(source)
        assert "s3cret" not in data["DATABASE_URL"]
        assert data["CREDENTIAL_BACKEND"] == "sql"


# ===========================================================================
# creds
# ===========================================================================


class TestCredsCommands:
    def test_list_counts(self, runner, auth_dir):
        result = runner.invoke(app, ["creds", "list", "--location", str(auth_dir)])
        assert result.exit_code == 0
        assert "pre-key" in result.output
        assert "Total: 3" in result.output

    def test_list_keys(self, runner, auth_dir):
        result = runner.invoke(app, ["creds", "list", "-l", str(auth_dir), "--keys"])
        assert result.exit_code == 0
        assert "pre-key:1" in result.output

    def test_list_empty(self, runner, tmp_path):
        result = runner.invoke(app, ["creds", "list", "-l", str(tmp_path / "empty")])
        assert result.exit_code == 0
        assert "No credentials" in result.output

    def test_migrate_file_to_sql(self, runner, auth_dir, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'gw.db'}"
        result = runner.invoke(app, ["creds", "migrate", "--from", str(auth_dir), "--to", url])
        assert result.exit_code == 0, result.output
        assert "Copied 3" in result.output

        async def _read():
            store = SQLCredentialStore(url, session_id="default")
            try:
                return await store.list_keys(), await store.read_blob("pre-key:2")
            finally:
                await store.close()

        keys, blob = asyncio.run(_read())
        assert keys == ["creds", "pre-key:1", "pre-key:2"]
        assert blob == {"public": b"\x02"}

    def test_migrate_file_to_file(self, runner, auth_dir, tmp_path):
        target = tmp_path / "copy"
        result = runner.invoke(app, ["creds", "migrate", "-s", str(auth_dir), "-t", str(target)])
        assert result.exit_code == 0
        assert sorted(p.name for p in target.iterdir()) == sorted(p.name for p in auth_dir.iterdir())
        first = json.loads((auth_dir / "creds.json").read_text())
        assert json.loads((target / "creds.json").read_text()) == first
