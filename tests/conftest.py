"""Pytest configuration and fixtures."""

import pytest

from routing_dashboard.config import Settings
from routing_dashboard.utils.cache import invalidate_cache
from tests.fakes import FakeWarehouse, make_node_id


@pytest.fixture
def our_node_id() -> str:
    return make_node_id(999)


@pytest.fixture
def settings(our_node_id) -> Settings:
    return Settings(
        _env_file=None,
        WAREHOUSE_SCHEMA="lightning",
        OUR_NODE_ID=our_node_id,
        TOP_NODES_DEFAULT_LIMIT=3,
        TOP_NODES_MAX_LIMIT=100,
        QUERY_TIMEOUT_SECONDS=5,
    )


@pytest.fixture
def warehouse() -> FakeWarehouse:
    return FakeWarehouse()


@pytest.fixture(autouse=True)
def clear_caches():
    invalidate_cache()
    yield
    invalidate_cache()
