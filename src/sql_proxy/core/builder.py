"""Statement builder: query description -> parameterized SQL.

Pure translation with no I/O. Values from ``data`` and ``where`` are
always bound as positional ``$n`` parameters; identifiers and operators
are checked according to an IdentifierPolicy.

Clause order is fixed: action clause, WHERE, ORDER BY, LIMIT, RETURNING.
WHERE parameters are numbered after the INSERT/UPDATE data parameters.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import pydantic

from sql_proxy.core.exceptions import ValidationError
from sql_proxy.core.models import ACTIONS, QueryDescription, Statement

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

ALLOWED_OPERATORS: frozenset[str] = frozenset(
    {
        "=",
        "!=",
        "<>",
        "<",
        "<=",
        ">",
        ">=",
        "like",
        "ilike",
        "not like",
        "not ilike",
        "is",
        "is not",
    }
)

TRUSTED = "trusted"
STRICT = "strict"


@dataclass(frozen=True)
class IdentifierPolicy:
    """How much of the query description is trusted verbatim.

    ``trusted`` checks table names and data keys only; column lists,
    operators and ORDER BY columns are inserted as given. ``strict``
    checks every identifier and restricts operators to ALLOWED_OPERATORS.
    ``allowed_tables`` narrows table names in either mode.
    """

    mode: str = TRUSTED
    allowed_tables: frozenset[str] | None = None
    operators: frozenset[str] = field(default=ALLOWED_OPERATORS)

    def __post_init__(self) -> None:
        if self.mode not in (TRUSTED, STRICT):
            msg = f"Invalid identifier policy mode: '{self.mode}'. Must be 'trusted' or 'strict'"
            raise ValueError(msg)

    @property
    def strict(self) -> bool:
        return self.mode == STRICT


DEFAULT_POLICY = IdentifierPolicy()


def _check_identifier(name: str, what: str) -> str:
    if not isinstance(name, str) or not IDENTIFIER_RE.match(name):
        msg = f"Invalid {what} name: {name!r}"
        raise ValidationError(msg)
    return name


def check_table(table: str, policy: IdentifierPolicy = DEFAULT_POLICY) -> str:
    if not isinstance(table, str) or not TABLE_RE.match(table):
        msg = f"Invalid table name: {table!r}"
        raise ValidationError(msg)
    if policy.allowed_tables is not None and table not in policy.allowed_tables:
        msg = f"Table not allowed: {table!r}"
        raise ValidationError(msg)
    return table


def _check_columns(columns: str, policy: IdentifierPolicy) -> str:
    columns = columns.strip() or "*"
    if not policy.strict or columns == "*":
        return columns
    for part in columns.split(","):
        _check_identifier(part.strip(), "column")
    return columns


def _check_operator(operator: str, policy: IdentifierPolicy) -> str:
    operator = operator.strip()
    if not operator:
        raise ValidationError("Empty operator in where clause")
    if policy.strict and operator.lower() not in policy.operators:
        msg = f"Operator not allowed: {operator!r}"
        raise ValidationError(msg)
    return operator


def _check_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        msg = f"Invalid limit: {limit!r}. Must be a positive integer"
        raise ValidationError(msg)
    return limit


def coerce_description(query: QueryDescription | Mapping[str, Any]) -> QueryDescription:
    """Accept a model or a plain mapping (e.g. a decoded JSON body)."""
    if isinstance(query, QueryDescription):
        return query
    try:
        return QueryDescription.model_validate(query)
    except pydantic.ValidationError as e:
        msg = f"Malformed query description: {e.errors()[0]['msg']}"
        raise ValidationError(msg) from e


def _data_columns(data: dict[str, Any] | None, action: str) -> tuple[list[str], list[Any]]:
    if not data:
        msg = f"{action} requires a non-empty data mapping"
        raise ValidationError(msg)
    columns = [_check_identifier(col, "column") for col in data]
    return columns, list(data.values())


def build_statement(
    table: str,
    query: QueryDescription | Mapping[str, Any],
    policy: IdentifierPolicy = DEFAULT_POLICY,
) -> Statement:
    """Translate a query description into SQL text and its parameter list.

    Raises ValidationError before any SQL is assembled when the action is
    unknown, data is missing for a mutating action, or an identifier fails
    the policy.
    """
    query = coerce_description(query)
    action = query.action
    if action not in ACTIONS:
        msg = f"Unknown action: {action!r}. Must be one of: {', '.join(ACTIONS)}"
        raise ValidationError(msg)

    table = check_table(table, policy)

    if action in ("SELECT", "DELETE") and query.data:
        msg = f"{action} does not accept data"
        raise ValidationError(msg)
    if action != "SELECT" and (query.order is not None or query.limit is not None):
        msg = f"ORDER BY and LIMIT are only supported for SELECT, not {action}"
        raise ValidationError(msg)

    params: list[Any] = []

    if action == "SELECT":
        sql = f"SELECT {_check_columns(query.columns, policy)} FROM {table}"
    elif action == "INSERT":
        columns, params = _data_columns(query.data, action)
        placeholders = [f"${i + 1}" for i in range(len(columns))]
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)})"
        )
    elif action == "UPDATE":
        columns, params = _data_columns(query.data, action)
        assignments = [f"{col} = ${i + 1}" for i, col in enumerate(columns)]
        sql = f"UPDATE {table} SET {', '.join(assignments)}"
    else:
        sql = f"DELETE FROM {table}"

    if query.where:
        conditions: list[str] = []
        for clause in query.where:
            column = clause.column
            if policy.strict:
                _check_identifier(column, "column")
            operator = _check_operator(clause.operator, policy)
            params.append(clause.value)
            conditions.append(f"{column} {operator} ${len(params)}")
        sql += f" WHERE {' AND '.join(conditions)}"

    if query.order is not None:
        column = query.order.column
        if policy.strict:
            _check_identifier(column, "order column")
        direction = "ASC" if query.order.ascending else "DESC"
        sql += f" ORDER BY {column} {direction}"

    if query.limit is not None:
        sql += f" LIMIT {_check_limit(query.limit)}"

    if action in ("INSERT", "UPDATE"):
        sql += " RETURNING *"

    return Statement(text=sql, params=params)
