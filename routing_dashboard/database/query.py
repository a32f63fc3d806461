"""
Small query builder for warehouse SQL.

SQL text is static and only ever receives schema-qualified table names from
validated configuration; every caller-supplied value travels in ``params``
and is bound by the driver (``:name`` placeholders, lists as typed arrays).
"""
import re
from dataclasses import dataclass, field
from string import Template
from typing import Any, Dict

TABLES = ("forwardings", "peers", "betweenness", "edge_betweenness")

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_OPERATION_RE = re.compile(r"^/\* ([\w.\-]+) \*/")


@dataclass(frozen=True)
class WarehouseQuery:
    """Static SQL text plus its bound parameters."""

    operation: str
    sql: str
    params: Dict[str, Any] = field(default_factory=dict)


class QueryBuilder:
    """
    Renders SQL templates against one warehouse schema.

    Templates reference tables as ``$forwardings``, ``$peers``,
    ``$betweenness`` and ``$edge_betweenness``. The rendered text is tagged
    with a leading ``/* operation */`` comment so queries can be told apart
    in ``pg_stat_statements`` and in logs.
    """

    def __init__(self, schema: str):
        if not _IDENTIFIER_RE.match(schema):
            raise ValueError(f"Invalid warehouse schema name: {schema!r}")
        self.schema = schema
        self.tables = {name: f'"{schema}"."{name}"' for name in TABLES}

    def build(self, operation: str, template: str, **params: Any) -> WarehouseQuery:
        sql = Template(template).substitute(self.tables)
        bound = {
            key: list(value) if isinstance(value, (tuple, set, frozenset)) else value
            for key, value in params.items()
        }
        return WarehouseQuery(
            operation=operation,
            sql=f"/* {operation} */\n{sql.strip()}",
            params=bound,
        )


def operation_of(sql: str) -> str:
    """Operation tag of rendered SQL, or 'query' if untagged."""
    match = _OPERATION_RE.match(sql)
    return match.group(1) if match else "query"
