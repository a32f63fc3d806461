"""Tests for the SQL query builder."""

import pytest

from routing_dashboard.database.query import QueryBuilder, operation_of


class TestQueryBuilder:
    def test_tables_are_schema_qualified(self):
        query = QueryBuilder("ln_prod").build("x.y", "SELECT * FROM $peers JOIN $forwardings USING (id)")

        assert '"ln_prod"."peers"' in query.sql
        assert '"ln_prod"."forwardings"' in query.sql
        assert operation_of(query.sql) == "x.y"

    def test_collections_become_lists(self):
        query = QueryBuilder("ln").build("x", "SELECT 1", states=frozenset({"A"}), ids=("a", "b"), n=3)
        assert query.params == {"states": ["A"], "ids": ["a", "b"], "n": 3}

    def test_values_never_reach_sql_text(self):
        query = QueryBuilder("ln").build("x", "SELECT * FROM $peers WHERE id = :id", id="'; DROP TABLE peers; --")
        assert "DROP" not in query.sql

    @pytest.mark.parametrize("schema", ["", "a-b", 'x"; --'])
    def test_rejects_bad_schema(self, schema):
        with pytest.raises(ValueError):
            QueryBuilder(schema)

    def test_untagged_sql(self):
        assert operation_of("SELECT 1") == "query"
