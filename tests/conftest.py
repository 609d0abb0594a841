"""Shared test fixtures for SQL Proxy."""

from pathlib import Path
from tempfile import TemporaryDirectory

import pytest
from typer.testing import CliRunner

from sql_proxy.cli.main import app
from sql_proxy.core.models import ConnectionConfig
from tests.fakes import PoolRecorder


@pytest.fixture
def runner():
    """Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_runner(runner):
    """Invoke the CLI app with the given arguments."""

    def invoke(*args: str, **kwargs):
        return runner.invoke(app, list(args), **kwargs)

    return invoke


@pytest.fixture
def temp_dir():
    """Temporary directory for test files."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def connection():
    return ConnectionConfig(host="db.internal", password="secret")


@pytest.fixture
def pools():
    """Pool factory recording every pool it creates."""
    return PoolRecorder()


@pytest.fixture(autouse=True)
def _clean_db_env(monkeypatch):
    """Keep the developer's DB_* and server env vars out of unit tests."""
    for var in (
        "DB_HOST",
        "DB_PORT",
        "DB_NAME",
        "DB_USER",
        "DB_PASSWORD",
        "DB_SSL",
        "PORT",
        "JWT_SECRET",
        "SQL_PROXY_PROFILE",
        "SQL_PROXY_SENTRY_DSN",
    ):
        monkeypatch.delenv(var, raising=False)
