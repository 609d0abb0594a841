"""Shared CLI plumbing for command modules.

Connection resolution, executor lifecycle and output helpers.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from sql_proxy.cli.output import envelope_rows, get_formatter, write_output
from sql_proxy.core.config import load_config, resolve_config
from sql_proxy.core.executor import QueryExecutor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import typer

    from sql_proxy.core.config import ResolvedConfig
    from sql_proxy.core.models import ConnectionConfig


def get_resolved_config(ctx: typer.Context, **extra: Any) -> ResolvedConfig:
    obj = ctx.ensure_object(dict)
    config = load_config(obj.get("config_file"))

    cli_overrides: dict[str, Any] = {}
    for key in ("host", "port", "database", "user", "password", "ssl"):
        val = obj.get(key)
        if val is not None:
            cli_overrides[key] = val
    cli_overrides.update({k: v for k, v in extra.items() if v is not None})

    return resolve_config(
        config,
        profile_name=obj.get("profile"),
        dsn=obj.get("dsn"),
        **cli_overrides,
    )


def get_connection(ctx: typer.Context, **extra: Any) -> ConnectionConfig:
    return get_resolved_config(ctx, **extra).connection


def with_executor(
    connection: ConnectionConfig,
    action: Callable[[QueryExecutor], Awaitable[Any]],
) -> Any:
    """Run ``action`` against a freshly configured executor, then close its pool."""

    async def _main() -> Any:
        executor = QueryExecutor()
        await executor.configure(connection)
        try:
            return await action(executor)
        finally:
            await executor.close()

    return asyncio.run(_main())


def format_options(ctx: typer.Context) -> dict[str, Any]:
    obj = ctx.ensure_object(dict)
    return {
        "format_flag": obj.get("format"),
        "compact": obj.get("compact", False),
        "width": obj.get("width", 40),
        "no_header": obj.get("no_header", False),
    }


def output_rows(ctx: typer.Context, data: Any) -> None:
    formatter = get_formatter(**format_options(ctx))
    write_output(formatter, envelope_rows(data))
