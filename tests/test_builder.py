"""Tests for the statement builder."""

import pytest

from sql_proxy.core.builder import (
    STRICT,
    IdentifierPolicy,
    build_statement,
    check_table,
    coerce_description,
)
from sql_proxy.core.exceptions import ValidationError
from sql_proxy.core.models import QueryDescription


@pytest.mark.unit
class TestSelect:
    def test_select_with_where_and_limit(self):
        statement = build_statement(
            "tickets",
            {
                "action": "SELECT",
                "columns": "id,name",
                "where": [{"column": "status", "operator": "=", "value": "open"}],
                "limit": 5,
            },
        )
        assert statement.text == "SELECT id,name FROM tickets WHERE status = $1 LIMIT 5"
        assert statement.params == ["open"]

    def test_select_defaults_to_star(self):
        statement = build_statement("tickets", {"action": "SELECT"})
        assert statement.text == "SELECT * FROM tickets"
        assert statement.params == []

    def test_blank_columns_become_star(self):
        statement = build_statement("tickets", {"action": "SELECT", "columns": "  "})
        assert statement.text == "SELECT * FROM tickets"

    def test_where_clauses_joined_with_and(self):
        statement = build_statement(
            "tickets",
            {
                "action": "SELECT",
                "where": [
                    {"column": "status", "operator": "=", "value": "open"},
                    {"column": "priority", "operator": "!=", "value": "baja"},
                    {"column": "created_at", "operator": ">=", "value": "2024-01-01"},
                ],
            },
        )
        assert statement.text == (
            "SELECT * FROM tickets "
            "WHERE status = $1 AND priority != $2 AND created_at >= $3"
        )
        assert statement.params == ["open", "baja", "2024-01-01"]

    def test_where_operator_defaults_to_equals(self):
        statement = build_statement(
            "tickets", {"action": "SELECT", "where": [{"column": "id", "value": 7}]}
        )
        assert statement.text == "SELECT * FROM tickets WHERE id = $1"
        assert statement.params == [7]

    def test_order_descending_by_default(self):
        statement = build_statement(
            "tickets", {"action": "SELECT", "order": {"column": "created_at"}}
        )
        assert statement.text == "SELECT * FROM tickets ORDER BY created_at DESC"

    def test_order_ascending(self):
        statement = build_statement(
            "tickets",
            {"action": "SELECT", "order": {"column": "created_at", "ascending": True}},
        )
        assert statement.text == "SELECT * FROM tickets ORDER BY created_at ASC"

    def test_clause_order_is_fixed(self):
        statement = build_statement(
            "tickets",
            {
                "action": "SELECT",
                "where": [{"column": "status", "value": "open"}],
                "order": {"column": "id", "ascending": True},
                "limit": 10,
            },
        )
        assert statement.text == (
            "SELECT * FROM tickets WHERE status = $1 ORDER BY id ASC LIMIT 10"
        )

    def test_schema_qualified_table(self):
        statement = build_statement("support.tickets", {"action": "SELECT"})
        assert statement.text == "SELECT * FROM support.tickets"

    def test_accepts_model_instance(self):
        query = QueryDescription(action="SELECT", columns="id")
        assert build_statement("tickets", query).text == "SELECT id FROM tickets"

    def test_select_never_returning(self):
        statement = build_statement("tickets", {"action": "SELECT"})
        assert "RETURNING" not in statement.text


@pytest.mark.unit
class TestInsert:
    def test_insert_returning(self):
        statement = build_statement(
            "tickets",
            {"action": "INSERT", "data": {"title": "x", "priority": "alta"}},
        )
        assert statement.text == (
            "INSERT INTO tickets (title, priority) VALUES ($1, $2) RETURNING *"
        )
        assert statement.params == ["x", "alta"]

    def test_insert_keeps_none_values(self):
        statement = build_statement(
            "tickets", {"action": "INSERT", "data": {"title": "x", "assignee": None}}
        )
        assert statement.params == ["x", None]

    def test_insert_requires_data(self):
        with pytest.raises(ValidationError, match="INSERT requires a non-empty data"):
            build_statement("tickets", {"action": "INSERT"})

    def test_insert_rejects_empty_data(self):
        with pytest.raises(ValidationError, match="non-empty data"):
            build_statement("tickets", {"action": "INSERT", "data": {}})

    def test_insert_rejects_bad_data_key(self):
        with pytest.raises(ValidationError, match="Invalid column name"):
            build_statement(
                "tickets",
                {"action": "INSERT", "data": {"title; DROP TABLE tickets": "x"}},
            )


@pytest.mark.unit
class TestUpdate:
    def test_where_numbering_continues_after_data(self):
        statement = build_statement(
            "tickets",
            {
                "action": "UPDATE",
                "data": {"status": "closed", "priority": "baja"},
                "where": [
                    {"column": "id", "operator": "=", "value": 42},
                    {"column": "status", "operator": "!=", "value": "closed"},
                ],
            },
        )
        assert statement.text == (
            "UPDATE tickets SET status = $1, priority = $2 "
            "WHERE id = $3 AND status != $4 RETURNING *"
        )
        assert statement.params == ["closed", "baja", 42, "closed"]

    def test_update_without_where(self):
        statement = build_statement(
            "tickets", {"action": "UPDATE", "data": {"status": "closed"}}
        )
        assert statement.text == "UPDATE tickets SET status = $1 RETURNING *"

    def test_update_requires_data(self):
        with pytest.raises(ValidationError, match="UPDATE requires"):
            build_statement(
                "tickets", {"action": "UPDATE", "where": [{"column": "id", "value": 1}]}
            )

    def test_update_rejects_limit(self):
        with pytest.raises(ValidationError, match="only supported for SELECT"):
            build_statement(
                "tickets", {"action": "UPDATE", "data": {"a": 1}, "limit": 1}
            )


@pytest.mark.unit
class TestDelete:
    def test_delete_with_where(self):
        statement = build_statement(
            "tickets",
            {"action": "DELETE", "where": [{"column": "id", "operator": "=", "value": 3}]},
        )
        assert statement.text == "DELETE FROM tickets WHERE id = $1"
        assert statement.params == [3]

    def test_delete_rejects_data(self):
        with pytest.raises(ValidationError, match="DELETE does not accept data"):
            build_statement("tickets", {"action": "DELETE", "data": {"a": 1}})

    def test_delete_rejects_order(self):
        with pytest.raises(ValidationError, match="only supported for SELECT"):
            build_statement("tickets", {"action": "DELETE", "order": {"column": "id"}})


@pytest.mark.unit
class TestValidation:
    def test_unknown_action(self):
        with pytest.raises(ValidationError, match="Unknown action: 'TRUNCATE'"):
            build_statement("tickets", {"action": "TRUNCATE"})

    def test_action_is_case_sensitive(self):
        with pytest.raises(ValidationError, match="Unknown action"):
            build_statement("tickets", {"action": "select"})

    def test_missing_action(self):
        with pytest.raises(ValidationError, match="Malformed query description"):
            build_statement("tickets", {"columns": "*"})

    def test_select_rejects_data(self):
        with pytest.raises(ValidationError, match="SELECT does not accept data"):
            build_statement("tickets", {"action": "SELECT", "data": {"a": 1}})

    @pytest.mark.parametrize("table", ["", "tickets; DROP TABLE x", "1tickets", "a.b.c"])
    def test_invalid_table_names(self, table):
        with pytest.raises(ValidationError, match="Invalid table name"):
            build_statement(table, {"action": "SELECT"})

    @pytest.mark.parametrize("limit", [0, -1, "10", 2.5, True])
    def test_invalid_limit(self, limit):
        with pytest.raises(ValidationError, match="Invalid limit"):
            build_statement("tickets", {"action": "SELECT", "limit": limit})

    def test_empty_operator(self):
        with pytest.raises(ValidationError, match="Empty operator"):
            build_statement(
                "tickets",
                {"action": "SELECT", "where": [{"column": "id", "operator": " ", "value": 1}]},
            )

    def test_validation_happens_before_any_output(self):
        with pytest.raises(ValidationError):
            build_statement("bad name", {"action": "INSERT"})

    def test_coerce_description_passes_models_through(self):
        query = QueryDescription(action="DELETE")
        assert coerce_description(query) is query


@pytest.mark.unit
class TestIdentifierPolicy:
    def test_invalid_mode(self):
        with pytest.raises(ValueError, match="Invalid identifier policy mode"):
            IdentifierPolicy(mode="lenient")

    def test_trusted_mode_passes_column_expressions(self):
        statement = build_statement(
            "tickets", {"action": "SELECT", "columns": "COUNT(*) AS total"}
        )
        assert statement.text == "SELECT COUNT(*) AS total FROM tickets"

    def test_strict_mode_rejects_column_expressions(self):
        with pytest.raises(ValidationError, match="Invalid column name"):
            build_statement(
                "tickets",
                {"action": "SELECT", "columns": "COUNT(*) AS total"},
                IdentifierPolicy(mode=STRICT),
            )

    def test_strict_mode_accepts_plain_columns(self):
        statement = build_statement(
            "tickets",
            {"action": "SELECT", "columns": "id, title"},
            IdentifierPolicy(mode=STRICT),
        )
        assert statement.text == "SELECT id, title FROM tickets"

    def test_strict_mode_rejects_operator(self):
        with pytest.raises(ValidationError, match="Operator not allowed"):
            build_statement(
                "tickets",
                {
                    "action": "SELECT",
                    "where": [{"column": "id", "operator": "= 1 OR 1 =", "value": 1}],
                },
                IdentifierPolicy(mode=STRICT),
            )

    def test_strict_mode_operators_case_insensitive(self):
        statement = build_statement(
            "tickets",
            {"action": "SELECT", "where": [{"column": "title", "operator": "ILIKE", "value": "%vpn%"}]},
            IdentifierPolicy(mode=STRICT),
        )
        assert statement.text == "SELECT * FROM tickets WHERE title ILIKE $1"
        assert statement.params == ["%vpn%"]

    def test_strict_mode_rejects_where_column(self):
        with pytest.raises(ValidationError, match="Invalid column name"):
            build_statement(
                "tickets",
                {"action": "SELECT", "where": [{"column": "id::text", "value": "1"}]},
                IdentifierPolicy(mode=STRICT),
            )

    def test_strict_mode_rejects_order_column(self):
        with pytest.raises(ValidationError, match="Invalid order column name"):
            build_statement(
                "tickets",
                {"action": "SELECT", "order": {"column": "random()"}},
                IdentifierPolicy(mode=STRICT),
            )

    def test_allowed_tables(self):
        policy = IdentifierPolicy(allowed_tables=frozenset({"tickets"}))
        assert check_table("tickets", policy) == "tickets"
        with pytest.raises(ValidationError, match="Table not allowed"):
            check_table("users", policy)
