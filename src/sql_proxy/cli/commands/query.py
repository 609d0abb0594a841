"""Query commands: run or render a query description from the command line."""

from __future__ import annotations

import json
import sys
from typing import Annotated, Any

import typer

from sql_proxy.cli.commands._shared import get_connection, output_rows, with_executor
from sql_proxy.core.builder import STRICT, TRUSTED, IdentifierPolicy, build_statement
from sql_proxy.core.exceptions import ExecutionError, InputError
from sql_proxy.core.exit_codes import ExitCode
from sql_proxy.core.query_source import resolve_query_source


def _read_description(
    ctx: typer.Context, file: str | None, execute: str | None
) -> dict[str, Any]:
    try:
        is_tty = sys.stdin.isatty()
    except (ValueError, AttributeError):
        is_tty = False
    if execute is None and file is None and is_tty:
        typer.echo(ctx.get_help())
        raise typer.Exit()

    try:
        return resolve_query_source(inline=execute, file_path=file)
    except InputError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(ExitCode.INPUT_ERROR) from exc


TableArg = Annotated[str, typer.Argument(help="Target table (optionally schema-qualified)")]
FileArg = Annotated[
    str | None,
    typer.Argument(help="JSON file holding the query description"),
]
ExecuteOpt = Annotated[
    str | None,
    typer.Option("--execute", "-e", help="Inline JSON query description"),
]
StrictOpt = Annotated[
    bool,
    typer.Option("--strict", help="Validate every identifier and operator"),
]


def query_command(
    ctx: typer.Context,
    table: TableArg,
    file: FileArg = None,
    execute: ExecuteOpt = None,
    strict: StrictOpt = False,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", "-t", help="Query timeout in seconds"),
    ] = None,
) -> None:
    """Run a JSON query description (file, inline -e, or stdin) against TABLE."""
    description = _read_description(ctx, file, execute)
    policy = IdentifierPolicy(mode=STRICT if strict else TRUSTED)
    connection = get_connection(ctx)

    envelope = with_executor(
        connection,
        lambda executor: executor.execute(table, description, policy, timeout=timeout),
    )
    if envelope.error is not None:
        raise ExecutionError(envelope.error, code=envelope.code)

    output_rows(ctx, envelope.data)


def build_command(
    ctx: typer.Context,
    table: TableArg,
    file: FileArg = None,
    execute: ExecuteOpt = None,
    strict: StrictOpt = False,
) -> None:
    """Print the SQL and parameters for a query description without running it."""
    description = _read_description(ctx, file, execute)
    policy = IdentifierPolicy(mode=STRICT if strict else TRUSTED)
    statement = build_statement(table, description, policy)

    typer.echo(statement.text)
    typer.echo(json.dumps(statement.params, default=str))
