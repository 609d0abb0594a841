"""Wire models for SQL Proxy.

Pydantic models for the query description sent by callers, the
connection configuration, the built statement and the uniform
``{data, error}`` envelope returned by every proxy operation.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

ACTIONS: tuple[str, ...] = ("SELECT", "INSERT", "UPDATE", "DELETE")


class WhereClause(BaseModel):
    """One ``{column} {operator} $n`` filter, combined with AND."""

    column: str
    operator: str = "="
    value: Any = None


class OrderClause(BaseModel):
    column: str
    ascending: bool = False


class QueryDescription(BaseModel):
    """Declarative description of a single CRUD statement.

    Constructed fresh per call and consumed once by the statement builder.
    ``action`` stays a plain string here; the builder owns its validation.
    """

    action: str
    columns: str = "*"
    data: dict[str, Any] | None = None
    where: list[WhereClause] = Field(default_factory=list)
    order: OrderClause | None = None
    limit: Any = None
    single: bool = False


class ConnectionConfig(BaseModel):
    """Connection parameters for the proxied PostgreSQL database."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 5432
    database: str = "tickets_db"
    username: str = "postgres"
    password: str = Field(default="", repr=False)
    ssl: bool = False
    connect_timeout: int = 10
    statement_timeout: int | None = None
    application_name: str = "sql-proxy"
    min_size: int = 1
    max_size: int = 10

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            msg = f"Invalid port: {v}. Must be 1-65535"
            raise ValueError(msg)
        return v

    @field_validator("max_size")
    @classmethod
    def validate_max_size(cls, v: int) -> int:
        if v < 1:
            msg = f"Invalid max_size: {v}. Must be >= 1"
            raise ValueError(msg)
        return v

    def connection_kwargs(self) -> dict[str, Any]:
        """Keyword arguments understood by libpq / psycopg."""
        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.username,
            "sslmode": "require" if self.ssl else "disable",
            "connect_timeout": self.connect_timeout,
            "application_name": self.application_name,
        }
        if self.password:
            kwargs["password"] = self.password
        if self.statement_timeout:
            kwargs["options"] = f"-c statement_timeout={int(self.statement_timeout)}"
        return kwargs

    @property
    def display_name(self) -> str:
        return f"{self.username}@{self.host}:{self.port}/{self.database}"


class Statement(BaseModel):
    """Parameterized SQL text with ``$n`` placeholders and its ordered values."""

    text: str
    params: list[Any] = Field(default_factory=list)


class Envelope(BaseModel):
    """Uniform result shape: ``{data, error}``, plus SQLSTATE when known."""

    data: Any = None
    error: str | None = None
    code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"data": self.data, "error": self.error}
        if self.code is not None:
            payload["code"] = self.code
        return payload


class ProxyRequest(BaseModel):
    """Body of ``POST /api/database``."""

    table: str
    query: QueryDescription
    config: ConnectionConfig | None = None


class ConfigRequest(BaseModel):
    """Body of ``POST /api/database/config``."""

    config: ConnectionConfig
