"""
Warehouse connection management.

One ``WarehouseClient`` is created per process (in the FastAPI lifespan) and
handed to every service. The SQLAlchemy async engine behind it is created
lazily, exactly once: concurrent first callers all await the same in-flight
initialization task, and its outcome (engine or error) is kept, so a failed
initialization is reported as unavailable on every later call instead of
being retried by each request.
"""
import asyncio
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from routing_dashboard.config import Settings, get_settings
from routing_dashboard.database.query import operation_of
from routing_dashboard.errors import QueryFailedError, WarehouseUnavailableError

logger = structlog.get_logger(__name__)


class QueryExecutor(Protocol):
    """Anything that can run a parameterized query and return rows as dicts."""

    async def execute(
        self, sql: str, params: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        ...


def create_warehouse_engine(settings: Settings) -> AsyncEngine:
    """Create the async SQLAlchemy engine (asyncpg driver) for the warehouse."""
    return create_async_engine(
        settings.database_url_async,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=settings.DEBUG,
        connect_args={
            "ssl": settings.ssl_mode,
            "timeout": 10,
            "command_timeout": settings.QUERY_TIMEOUT_SECONDS,
            "server_settings": {"application_name": "routing-dashboard"},
        },
    )


class WarehouseClient:
    """Read-only query executor over the warehouse."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        engine_factory: Optional[Callable[[Settings], AsyncEngine]] = None,
    ):
        self.settings = settings or get_settings()
        self._engine_factory = engine_factory or create_warehouse_engine
        self._init_task: Optional[asyncio.Task] = None

    async def _initialize(self) -> AsyncEngine:
        engine: Optional[AsyncEngine] = None
        try:
            engine = self._engine_factory(self.settings)
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(
                "warehouse_init_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
            # the failed outcome is cached, so nothing else will release this pool
            if engine is not None:
                await engine.dispose()
            raise WarehouseUnavailableError("Warehouse unavailable") from e

        logger.info("warehouse_client_ready", schema=self.settings.WAREHOUSE_SCHEMA)
        return engine

    async def get_engine(self) -> AsyncEngine:
        """Return the engine, initializing it on first use."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        # shield: a cancelled request must not cancel the shared initialization
        return await asyncio.shield(self._init_task)

    @property
    def initialized(self) -> bool:
        return (
            self._init_task is not None
            and self._init_task.done()
            and not self._init_task.cancelled()
            and self._init_task.exception() is None
        )

    async def execute(
        self, sql: str, params: Optional[Mapping[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Run one parameterized statement and return its rows as dicts.

        Raises:
            WarehouseUnavailableError: the engine could not be initialized
            QueryFailedError: the statement raised or exceeded the timeout
        """
        engine = await self.get_engine()
        operation = operation_of(sql)
        statement = text(sql)
        bound = dict(params or {})

        async def run() -> List[Dict[str, Any]]:
            async with engine.connect() as conn:
                result = await conn.execute(statement, bound)
                return [dict(row) for row in result.mappings().all()]

        try:
            return await asyncio.wait_for(run(), timeout=self.settings.QUERY_TIMEOUT_SECONDS)
        except asyncio.TimeoutError as e:
            raise QueryFailedError(
                f"Query timed out after {self.settings.QUERY_TIMEOUT_SECONDS}s",
                operation=operation,
            ) from e
        except SQLAlchemyError as e:
            message = (str(e).splitlines() or [type(e).__name__])[0]
            raise QueryFailedError(message, operation=operation) from e

    async def health_check(self) -> bool:
        """True when the warehouse answers ``SELECT 1``."""
        try:
            rows = await self.execute("SELECT 1 AS ok")
            return bool(rows) and rows[0].get("ok") == 1
        except Exception as e:
            logger.warning("warehouse_health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Dispose the engine if it was ever created."""
        if self.initialized:
            engine = self._init_task.result()
            await engine.dispose()
            logger.info("warehouse_client_closed")
        self._init_task = None
