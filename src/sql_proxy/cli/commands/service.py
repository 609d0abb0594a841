"""Service commands: serve the proxy, check connectivity, set up a schema.

Thin CLI layer: typer decorators, argument parsing, output formatting.
Query work is delegated to core.executor.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from sql_proxy.cli.commands._shared import get_resolved_config, with_executor
from sql_proxy.core.config import load_config, resolve_server_settings
from sql_proxy.core.exceptions import ExecutionError, InputError
from sql_proxy.core.logging import setup_logging
from sql_proxy.core.monitoring import setup_sentry

if TYPE_CHECKING:
    from sql_proxy.core.executor import QueryExecutor


def serve_command(
    ctx: typer.Context,
    host: Annotated[
        str | None,
        typer.Option("--bind", "-b", help="Interface to listen on"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--listen-port", "-l", help="Port to listen on (env: PORT)"),
    ] = None,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Validate every identifier and operator"),
    ] = False,
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit JSON log lines"),
    ] = False,
) -> None:
    """Serve POST /api/database and POST /api/database/config over HTTP."""
    import uvicorn

    from sql_proxy.server.app import create_app

    obj = ctx.ensure_object(dict)
    settings = resolve_server_settings(
        load_config(obj.get("config_file")),
        host=host,
        port=port,
        identifier_policy="strict" if strict else None,
        json_logs=json_logs or None,
    )
    setup_logging(obj.get("verbose", False), json_logs=settings.json_logs)
    setup_sentry(settings.sentry_dsn, environment="server")

    connection = get_resolved_config(ctx).connection
    app = create_app(settings, default_connection=connection)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


def check_command(
    ctx: typer.Context,
    table: Annotated[
        str,
        typer.Option("--table", "-T", help="Table to probe"),
    ] = "tickets",
) -> None:
    """Test the connection by counting rows in a table (default: tickets)."""
    connection = get_resolved_config(ctx).connection
    probe = {"action": "SELECT", "columns": "COUNT(*) AS total", "limit": 1, "single": True}

    envelope = with_executor(connection, lambda executor: executor.execute(table, probe))
    if envelope.error is not None:
        typer.echo(f"Connection failed: {connection.display_name}", err=True)
        raise ExecutionError(envelope.error, code=envelope.code)

    total = (envelope.data or {}).get("total", 0)
    typer.echo(f"Connection OK: {connection.display_name} ({total} rows in {table})")


def setup_db_command(
    ctx: typer.Context,
    schema_file: Annotated[
        str,
        typer.Argument(help="SQL script creating the schema"),
    ],
    schema: Annotated[
        str,
        typer.Option("--schema", "-s", help="Schema to list tables from afterwards"),
    ] = "public",
) -> None:
    """Apply a schema script and list the tables it produced."""
    path = Path(schema_file)
    if not path.exists():
        msg = f"Schema file not found: {schema_file}"
        raise InputError(msg)
    script = path.read_text()
    connection = get_resolved_config(ctx).connection

    async def _setup(executor: QueryExecutor) -> list[str]:
        await executor.apply_script(script)
        return await executor.list_tables(schema)

    typer.echo(f"Applying {path.name} to {connection.display_name}...")
    tables = with_executor(connection, _setup)

    typer.echo("Database set up successfully")
    typer.echo("")
    typer.echo(f"Tables in {schema}:")
    for name in tables:
        typer.echo(f"  - {name}")
