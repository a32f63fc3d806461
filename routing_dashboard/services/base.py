"""
Shared plumbing for warehouse-backed services.
"""
import asyncio
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from routing_dashboard.config import Settings, get_settings
from routing_dashboard.database.query import QueryBuilder, WarehouseQuery
from routing_dashboard.database.session import QueryExecutor
from routing_dashboard.errors import WarehouseUnavailableError
from routing_dashboard.utils.logging import get_logger, log_query_failure

logger = get_logger(__name__)

Rows = List[Dict[str, Any]]


class BaseService:
    """Base class: holds the executor, settings and a component-bound logger."""

    component = "service"

    def __init__(self, warehouse: QueryExecutor, settings: Optional[Settings] = None):
        self.warehouse = warehouse
        self.settings = settings or get_settings()
        self.queries = QueryBuilder(self.settings.WAREHOUSE_SCHEMA)
        self.logger = logger.bind(component=self.component)

    async def _safe_fetch(self, query: WarehouseQuery, **context: Any) -> Tuple[Rows, Optional[str]]:
        """
        Run a query, containing its failure.

        Returns:
            tuple: (rows, error_message) - error_message is None on success

        ``WarehouseUnavailableError`` is not contained: an unreachable
        warehouse has to reach the caller as "unavailable", never as data.
        """
        try:
            rows = await self.warehouse.execute(query.sql, query.params)
            return rows, None
        except WarehouseUnavailableError:
            raise
        except Exception as e:
            return [], log_query_failure(self.logger, query.operation, e, **context)


def iso_date(value: Any) -> Optional[str]:
    """Bucket value from the warehouse -> 'YYYY-MM-DD'."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)[:10]


def iso_timestamp(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def first_row(rows: Rows) -> Dict[str, Any]:
    return rows[0] if rows else {}


async def gather_isolated(*aws: Any) -> List[Any]:
    """
    asyncio.gather with per-task failure isolation.

    Failed tasks come back as exception objects in their slot, except an
    unavailable warehouse or a cancellation, which are re-raised.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, (WarehouseUnavailableError, asyncio.CancelledError)):
            raise result
    return results
