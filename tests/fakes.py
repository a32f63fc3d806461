"""Test doubles shared across the suite."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Union

from routing_dashboard.database.query import operation_of

Response = Union[List[Dict[str, Any]], BaseException, Callable[[Dict[str, Any]], Any]]


def make_node_id(n: int) -> str:
    """A syntactically valid compressed public key."""
    return "02" + f"{n:064x}"


class FakeWarehouse:
    """
    Query executor that answers by operation tag.

    A response is a list of rows, an exception instance (raised), or a
    callable taking the bound params and returning either of those.
    Unknown operations return no rows.
    """

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        self.responses: Dict[str, Response] = dict(responses or {})
        self.calls: List[tuple] = []
        self.statements: Dict[str, List[str]] = {}

    def set(self, operation: str, response: Response) -> None:
        self.responses[operation] = response

    async def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        operation = operation_of(sql)
        bound = dict(params or {})
        self.calls.append((operation, bound))
        self.statements.setdefault(operation, []).append(sql)

        response = self.responses.get(operation, [])
        if callable(response):
            response = response(bound)
        if isinstance(response, BaseException):
            raise response
        return [dict(row) for row in response]

    def calls_for(self, operation: str) -> List[Dict[str, Any]]:
        return [params for op, params in self.calls if op == operation]

    async def health_check(self) -> bool:
        return True


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def mappings(self):
        return self

    def all(self):
        return self._rows


class FakeConnection:
    def __init__(self, engine: "FakeEngine"):
        self.engine = engine

    async def execute(self, statement, params=None):
        self.engine.statements.append((str(statement), params))
        if self.engine.error is not None:
            raise self.engine.error
        await asyncio.sleep(self.engine.delay)
        return FakeResult(self.engine.rows)


class FakeEngine:
    """Stands in for an AsyncEngine: connect() + dispose()."""

    def __init__(self, rows=None):
        self.rows = rows if rows is not None else [{"ok": 1}]
        self.statements: List[tuple] = []
        self.delay = 0.0
        self.error: Optional[BaseException] = None
        self.disposed = False

    @asynccontextmanager
    async def connect(self):
        yield FakeConnection(self)

    async def dispose(self):
        self.disposed = True
