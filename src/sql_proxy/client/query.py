"""Async client for the SQL Proxy endpoint.

QueryBuilder mirrors the chainable query API of hosted Postgres SDKs so
call sites can switch to the local proxy without changes:

    async with ProxyClient("http://localhost:3001", config=conn) as db:
        result = await db.from_("tickets").select("id,title").eq("status", "open").limit(5)
        if result.error is None:
            ...

Awaiting a builder sends it. Builders are single-use.
"""

from __future__ import annotations

from collections.abc import Generator
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from sql_proxy.core.exceptions import TransportError, ValidationError
from sql_proxy.core.models import (
    ConnectionConfig,
    Envelope,
    OrderClause,
    QueryDescription,
    WhereClause,
)

if TYPE_CHECKING:
    from types import TracebackType

DATABASE_PATH = "/api/database"
CONFIG_PATH = "/api/database/config"

IDLE = "idle"
BUILDING = "building"
SENT = "sent"
RESOLVED = "resolved"
REJECTED = "rejected"


def parse_envelope(response: httpx.Response) -> Envelope:
    """Read an envelope from any status code; anything else is a TransportError."""
    try:
        body = response.json()
    except ValueError as e:
        msg = f"Database error: HTTP {response.status_code} {response.reason_phrase}"
        raise TransportError(msg) from e
    if not isinstance(body, dict) or "error" not in body:
        msg = f"Database error: unexpected response body (HTTP {response.status_code})"
        raise TransportError(msg)
    return Envelope(
        data=body.get("data"), error=body.get("error"), code=body.get("code")
    )


class QueryBuilder:
    """Accumulates one query description and sends it on await."""

    def __init__(self, client: ProxyClient, table: str) -> None:
        self._client = client
        self.table = table
        self.state = IDLE
        self._action: str | None = None
        self._columns = "*"
        self._data: dict[str, Any] | None = None
        self._where: list[WhereClause] = []
        self._order: OrderClause | None = None
        self._limit: int | None = None
        self._single = False

    def _check_open(self) -> None:
        if self.state not in (IDLE, BUILDING):
            msg = f"Query on {self.table!r} was already sent; start a new builder"
            raise ValidationError(msg)

    def _set_action(self, action: str) -> QueryBuilder:
        self._check_open()
        if self._action is not None:
            msg = f"Query already has action {self._action}; cannot also {action}"
            raise ValidationError(msg)
        self._action = action
        self.state = BUILDING
        return self

    def select(self, columns: str = "*") -> QueryBuilder:
        self._set_action("SELECT")
        self._columns = columns
        return self

    def insert(self, data: dict[str, Any]) -> QueryBuilder:
        self._set_action("INSERT")
        self._data = dict(data)
        return self

    def update(self, data: dict[str, Any]) -> QueryBuilder:
        self._set_action("UPDATE")
        self._data = dict(data)
        return self

    def delete(self) -> QueryBuilder:
        return self._set_action("DELETE")

    def filter(self, column: str, operator: str, value: Any) -> QueryBuilder:
        self._check_open()
        self._where.append(WhereClause(column=column, operator=operator, value=value))
        return self

    def eq(self, column: str, value: Any) -> QueryBuilder:
        return self.filter(column, "=", value)

    def neq(self, column: str, value: Any) -> QueryBuilder:
        return self.filter(column, "!=", value)

    def gt(self, column: str, value: Any) -> QueryBuilder:
        return self.filter(column, ">", value)

    def gte(self, column: str, value: Any) -> QueryBuilder:
        return self.filter(column, ">=", value)

    def lt(self, column: str, value: Any) -> QueryBuilder:
        return self.filter(column, "<", value)

    def lte(self, column: str, value: Any) -> QueryBuilder:
        return self.filter(column, "<=", value)

    def like(self, column: str, pattern: str) -> QueryBuilder:
        return self.filter(column, "like", pattern)

    def ilike(self, column: str, pattern: str) -> QueryBuilder:
        return self.filter(column, "ilike", pattern)

    def order(self, column: str, ascending: bool = True) -> QueryBuilder:
        self._check_open()
        self._order = OrderClause(column=column, ascending=ascending)
        return self

    def limit(self, count: int) -> QueryBuilder:
        self._check_open()
        self._limit = count
        return self

    def single(self) -> QueryBuilder:
        self._check_open()
        self._single = True
        return self

    def to_description(self) -> QueryDescription:
        if self._action is None:
            msg = f"Query on {self.table!r} has no action; call select/insert/update/delete"
            raise ValidationError(msg)
        return QueryDescription(
            action=self._action,
            columns=self._columns,
            data=self._data,
            where=list(self._where),
            order=self._order,
            limit=self._limit,
            single=self._single,
        )

    async def execute(self) -> Envelope:
        """POST the description to the proxy and return its envelope."""
        self._check_open()
        description = self.to_description()
        self.state = SENT
        try:
            envelope = await self._client.send(self.table, description)
        except BaseException:
            self.state = REJECTED
            raise
        self.state = RESOLVED
        return envelope

    def __await__(self) -> Generator[Any, None, Envelope]:
        return self.execute().__await__()


class ProxyClient:
    """HTTP client for a SQL Proxy server.

    Args:
        url: Base URL of the proxy server
        config: Connection config forwarded with every query
        token: Bearer token for servers that enforce JWT auth
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        url: str = "http://localhost:3001",
        config: ConnectionConfig | None = None,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.config = config
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self.url, headers=headers, timeout=timeout, transport=transport
        )

    def from_(self, table: str) -> QueryBuilder:
        return QueryBuilder(self, table)

    table = from_

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        try:
            return await self._client.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {self.url}{path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {self.url}{path} failed: {e}") from e

    async def send(self, table: str, description: QueryDescription) -> Envelope:
        query = {
            key: value
            for key, value in description.model_dump(mode="json").items()
            if value is not None
        }
        payload: dict[str, Any] = {"table": table, "query": query}
        if self.config is not None:
            payload["config"] = self.config.model_dump(mode="json")
        structlog.get_logger().debug(
            "sending query", table=table, action=description.action
        )
        response = await self._post(DATABASE_PATH, payload)
        return parse_envelope(response)

    async def configure(self, config: ConnectionConfig) -> None:
        """Ask the server to replace its pool, and use ``config`` from now on."""
        response = await self._post(CONFIG_PATH, {"config": config.model_dump(mode="json")})
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(f"Configuration failed: HTTP {response.status_code}") from e
        if response.status_code != 200 or not body.get("success"):
            raise TransportError(f"Configuration failed: {body.get('error', body)}")
        self.config = config

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ProxyClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
