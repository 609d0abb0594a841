"""Query executor for SQL Proxy.

Owns the single process-wide psycopg connection pool, runs built
statements and folds every outcome into an Envelope. Pool creation is
guarded by an asyncio.Lock so concurrent first requests cannot race
into creating two pools.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

import psycopg
import psycopg.errors
import sentry_sdk
import structlog
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from sql_proxy.core.builder import (
    DEFAULT_POLICY,
    IdentifierPolicy,
    build_statement,
    coerce_description,
)
from sql_proxy.core.exceptions import (
    ExecutionError,
    NetworkError,
    ProxyError,
    TimeoutError,
    ValidationError,
)
from sql_proxy.core.models import ConnectionConfig, Envelope, QueryDescription

if TYPE_CHECKING:
    from sql_proxy.core.models import Statement

PoolFactory = Callable[[ConnectionConfig], Awaitable[Any]]

_PLACEHOLDER_RE = re.compile(r"\$(\d+)")


def _adapt(value: Any) -> Any:
    if isinstance(value, dict):
        return Jsonb(value)
    return value


def convert_placeholders(text: str, params: list[Any]) -> tuple[str, dict[str, Any]]:
    """Rewrite ``$n`` placeholders into psycopg ``%(pn)s`` named placeholders.

    Literal ``%`` is escaped so verbatim column lists such as
    ``COUNT(*) * 100 % 7`` survive psycopg's own placeholder parsing.
    Mapping values are bound as jsonb; lists stay Postgres arrays.
    """
    indexes = [int(m) for m in _PLACEHOLDER_RE.findall(text)]
    if indexes and (min(indexes) < 1 or max(indexes) > len(params)):
        msg = (
            f"Statement references ${max(indexes)} but only "
            f"{len(params)} parameter(s) were supplied"
        )
        raise ValidationError(msg)
    escaped = text.replace("%", "%%")
    converted = _PLACEHOLDER_RE.sub(lambda m: f"%(p{m.group(1)})s", escaped)
    named = {f"p{i}": _adapt(value) for i, value in enumerate(params, start=1)}
    return converted, named


async def open_pool(config: ConnectionConfig) -> AsyncConnectionPool:
    """Create and start a pool without waiting for the first connection.

    Credentials are not checked here; a bad config surfaces on first query.
    """
    pool = AsyncConnectionPool(
        conninfo=make_conninfo("", **config.connection_kwargs()),
        min_size=config.min_size,
        max_size=config.max_size,
        timeout=float(config.connect_timeout),
        kwargs={"autocommit": True, "row_factory": dict_row},
        name="sql-proxy",
        open=False,
    )
    await pool.open(wait=False)
    return pool


def _map_error(e: psycopg.Error) -> ExecutionError:
    code = getattr(e, "sqlstate", None)
    if isinstance(e, psycopg.errors.QueryCanceled):
        return TimeoutError(f"Query cancelled: {e}", code=code)
    if isinstance(e, psycopg.OperationalError):
        return NetworkError(f"Database unavailable: {e}", code=code)
    return ExecutionError(str(e).strip() or type(e).__name__, code=code)


class QueryExecutor:
    """Runs statements against one lazily created connection pool."""

    def __init__(self, pool_factory: PoolFactory | None = None) -> None:
        self._pool_factory: PoolFactory = pool_factory or open_pool
        self._pool: Any = None
        self._config: ConnectionConfig | None = None
        self._lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self._pool is not None

    @property
    def config(self) -> ConnectionConfig | None:
        return self._config

    async def configure(self, config: ConnectionConfig) -> bool:
        """Create the pool if none exists. Returns True when a pool was created."""
        if self._pool is not None:
            self._warn_if_different(config)
            return False
        async with self._lock:
            if self._pool is not None:
                self._warn_if_different(config)
                return False
            self._pool = await self._pool_factory(config)
            self._config = config
        structlog.get_logger().debug("pool configured", target=config.display_name)
        return True

    async def reconfigure(self, config: ConnectionConfig) -> None:
        """Replace the current pool with one for ``config``."""
        async with self._lock:
            old_pool = self._pool
            self._pool = await self._pool_factory(config)
            self._config = config
        structlog.get_logger().info("pool reconfigured", target=config.display_name)
        if old_pool is not None:
            await old_pool.close()

    async def close(self) -> None:
        async with self._lock:
            pool, self._pool, self._config = self._pool, None, None
        if pool is not None:
            await pool.close()

    def _warn_if_different(self, config: ConnectionConfig) -> None:
        if self._config is not None and config != self._config:
            structlog.get_logger().warning(
                "pool already configured, ignoring new connection parameters",
                current=self._config.display_name,
                requested=config.display_name,
            )

    async def _fetch(self, text: str, params: list[Any]) -> list[dict[str, Any]]:
        if self._pool is None:
            raise ExecutionError("Database connection is not configured")
        log = structlog.get_logger()
        sql, named = convert_placeholders(text, params)
        sql_normalized = " ".join(text.split())
        log.debug("executing query", sql=sql_normalized, param_count=len(params))
        with sentry_sdk.start_span(op="db.query", description=sql_normalized[:100]) as span:
            start_time = time.monotonic()
            try:
                async with self._pool.connection() as conn, conn.cursor() as cur:
                    await cur.execute(sql, named)
                    rows = await cur.fetchall() if cur.description else []
            except psycopg.Error as e:
                span.set_status("internal_error")
                log.error("query failed", sql=sql_normalized, error=str(e))
                raise _map_error(e) from e

            duration_ms = (time.monotonic() - start_time) * 1000
            span.set_data("row_count", len(rows))
            span.set_data("duration_ms", duration_ms)
            log.debug(
                "query complete",
                duration_ms=f"{duration_ms:.1f}",
                row_count=len(rows),
            )
            return [dict(row) for row in rows]

    async def run(
        self,
        text: str,
        params: list[Any] | None = None,
        *,
        single: bool = False,
        timeout: float | None = None,
    ) -> Envelope:
        """Execute a statement and return its envelope. Never raises ProxyError.

        ``timeout`` cancels the in-flight query (psycopg sends a cancel
        request to the server) and reports it as an error envelope.
        """
        try:
            if timeout is None:
                rows = await self._fetch(text, list(params or []))
            else:
                rows = await asyncio.wait_for(
                    self._fetch(text, list(params or [])), timeout
                )
        except asyncio.TimeoutError:
            structlog.get_logger().error("query timeout", timeout=timeout)
            return Envelope(error=f"Query timed out after {timeout}s", code="57014")
        except ProxyError as e:
            return Envelope(error=e.message, code=getattr(e, "code", None))

        if single:
            return Envelope(data=rows[0] if rows else None)
        return Envelope(data=rows)

    async def run_statement(
        self, statement: Statement, *, single: bool = False, timeout: float | None = None
    ) -> Envelope:
        return await self.run(
            statement.text, statement.params, single=single, timeout=timeout
        )

    async def execute(
        self,
        table: str,
        query: QueryDescription | Mapping[str, Any],
        policy: IdentifierPolicy = DEFAULT_POLICY,
        timeout: float | None = None,
    ) -> Envelope:
        """Build and run a query description. Raises ValidationError on bad input."""
        query = coerce_description(query)
        statement = build_statement(table, query, policy)
        return await self.run_statement(statement, single=query.single, timeout=timeout)

    async def apply_script(self, script: str) -> None:
        """Run a multi-statement SQL script (schema setup). Raises ExecutionError."""
        if self._pool is None:
            raise ExecutionError("Database connection is not configured")
        try:
            async with self._pool.connection() as conn:
                await conn.execute(script)
        except psycopg.Error as e:
            raise _map_error(e) from e

    async def list_tables(self, schema: str = "public") -> list[str]:
        envelope = await self.run(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = $1 ORDER BY table_name",
            [schema],
        )
        if envelope.error is not None:
            raise ExecutionError(envelope.error, code=envelope.code)
        return [row["table_name"] for row in envelope.data]
