"""Tests for the query and build commands."""

import json
from pathlib import Path

import pytest

from sql_proxy.cli.main import app
from sql_proxy.core.exceptions import ExecutionError, ValidationError
from sql_proxy.core.executor import QueryExecutor
from tests.fakes import PoolRecorder

FIXTURE_JSON = str(Path(__file__).parent.parent / "fixtures" / "select_open.json")


@pytest.fixture
def fake_pools(monkeypatch):
    pools = PoolRecorder(rows=[{"id": 1, "title": "VPN down"}, {"id": 2, "title": "Printer"}])
    monkeypatch.setattr(
        "sql_proxy.cli.commands._shared.QueryExecutor",
        lambda: QueryExecutor(pool_factory=pools),
    )
    return pools


@pytest.mark.unit
class TestBuildCommand:
    def test_inline_select(self, runner):
        query = json.dumps(
            {
                "action": "SELECT",
                "columns": "id,name",
                "where": [{"column": "status", "operator": "=", "value": "open"}],
                "limit": 5,
            }
        )
        result = runner.invoke(app, ["build", "tickets", "-e", query])
        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0] == "SELECT id,name FROM tickets WHERE status = $1 LIMIT 5"
        assert json.loads(lines[1]) == ["open"]

    def test_from_file(self, runner):
        result = runner.invoke(app, ["build", "tickets", FIXTURE_JSON])
        assert result.exit_code == 0
        assert result.stdout.startswith("SELECT id,title FROM tickets WHERE status = $1")

    def test_from_stdin(self, runner):
        result = runner.invoke(
            app,
            ["build", "tickets"],
            input='{"action": "INSERT", "data": {"title": "x", "priority": "alta"}}',
        )
        assert result.exit_code == 0
        lines = result.stdout.splitlines()
        assert lines[0] == "INSERT INTO tickets (title, priority) VALUES ($1, $2) RETURNING *"
        assert json.loads(lines[1]) == ["x", "alta"]

    def test_validation_error(self, runner):
        result = runner.invoke(app, ["build", "tickets", "-e", '{"action": "TRUNCATE"}'])
        assert result.exit_code != 0
        assert isinstance(result.exception, ValidationError)

    def test_strict_flag(self, runner):
        query = '{"action": "SELECT", "columns": "COUNT(*)"}'
        assert runner.invoke(app, ["build", "tickets", "-e", query]).exit_code == 0
        result = runner.invoke(app, ["build", "tickets", "--strict", "-e", query])
        assert isinstance(result.exception, ValidationError)

    def test_invalid_json_exits_with_input_error(self, runner):
        result = runner.invoke(app, ["build", "tickets", "-e", "{nope"])
        assert result.exit_code == 3

    def test_missing_file_exits_with_input_error(self, runner):
        result = runner.invoke(app, ["build", "tickets", "/nonexistent/query.json"])
        assert result.exit_code == 3


@pytest.mark.unit
class TestQueryCommand:
    def test_json_output(self, runner, fake_pools):
        result = runner.invoke(
            app, ["--format", "json", "--compact", "query", "tickets", FIXTURE_JSON]
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout) == [
            {"id": 1, "title": "VPN down"},
            {"id": 2, "title": "Printer"},
        ]
        sql, params = fake_pools.last.executed[0]
        assert sql == "SELECT id,title FROM tickets WHERE status = %(p1)s LIMIT 5"
        assert params == {"p1": "open"}

    def test_pool_closed_after_command(self, runner, fake_pools):
        runner.invoke(app, ["--format", "json", "query", "tickets", FIXTURE_JSON])
        assert fake_pools.last.closed

    def test_connection_flags_reach_pool(self, runner, fake_pools):
        runner.invoke(
            app,
            ["--host", "db.internal", "-d", "support", "--format", "csv", "query", "tickets", FIXTURE_JSON],
        )
        config = fake_pools.last.config
        assert config.host == "db.internal"
        assert config.database == "support"

    def test_single_row_csv(self, runner, fake_pools):
        result = runner.invoke(
            app,
            ["--format", "csv", "query", "tickets", "-e", '{"action": "SELECT", "single": true}'],
        )
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ["id,title", "1,VPN down"]

    def test_error_envelope_raises(self, runner, monkeypatch):
        import psycopg.errors

        pools = PoolRecorder(error=psycopg.errors.UndefinedTable('relation "nope" does not exist'))
        monkeypatch.setattr(
            "sql_proxy.cli.commands._shared.QueryExecutor",
            lambda: QueryExecutor(pool_factory=pools),
        )
        result = runner.invoke(app, ["query", "nope", "-e", '{"action": "SELECT"}'])
        assert result.exit_code != 0
        assert isinstance(result.exception, ExecutionError)
        assert result.exception.code == "42P01"
