"""Tests for the top-nodes ranking service."""

import pytest
from structlog.testing import capture_logs

from routing_dashboard.errors import QueryFailedError, WarehouseUnavailableError
from routing_dashboard.services.ranking_service import RankingService, ranking_sort_key
from routing_dashboard.utils.validation import ValidationError
from tests.fakes import make_node_id

A, B, C = make_node_id(1), make_node_id(2), make_node_id(3)


def detail_row(node_id, alias=None, **values):
    row = {"nodeid": node_id, "alias": alias}
    for category in ("micro", "common", "macro"):
        row[f"{category}_share"] = values.get(f"{category}_share")
        row[f"{category}_rank"] = values.get(f"{category}_rank")
    return row


@pytest.fixture
def service(warehouse, settings):
    return RankingService(warehouse, settings)


@pytest.fixture
def tied_top_ids(warehouse):
    """A and B tie on share; B has the better rank."""
    warehouse.set(
        "ranking.top_ids",
        [
            {"nodeid": A, "shortest_path_share": 0.9, "rank": 2},
            {"nodeid": B, "shortest_path_share": 0.9, "rank": 1},
            {"nodeid": C, "shortest_path_share": 0.5, "rank": 3},
        ],
    )
    # batched fetch returns rows in arbitrary order
    warehouse.set(
        "ranking.all_categories",
        [
            detail_row(C, "carol", micro_share=0.5, micro_rank=3, common_share=0.1, common_rank=8),
            detail_row(A, "alice", micro_share=0.9, micro_rank=2, macro_share=0.12345, macro_rank=4),
            detail_row(B, None, micro_share=0.9, micro_rank=1),
        ],
    )
    return warehouse


class TestTopNodesByCategory:
    @pytest.mark.asyncio
    async def test_orders_by_share_then_rank(self, service, tied_top_ids):
        entries = await service.top_nodes_by_category("micro")

        assert [e.node_id for e in entries] == [B, A, C]
        assert [e.category_rank for e in entries] == [1, 2, 3]
        assert entries[0].category_share == 90.0

    @pytest.mark.asyncio
    async def test_shares_are_percentages_rounded_half_up(self, service, tied_top_ids):
        entries = await service.top_nodes_by_category("micro")
        alice = next(e for e in entries if e.node_id == A)

        assert alice.macro_share == 12.35
        assert alice.macro_rank == 4
        assert alice.display_alias == "alice"

    @pytest.mark.asyncio
    async def test_missing_category_stays_null(self, service, tied_top_ids):
        entries = await service.top_nodes_by_category("micro")
        bob = next(e for e in entries if e.node_id == B)

        assert bob.common_share is None
        assert bob.common_rank is None
        assert bob.display_alias is None

    @pytest.mark.asyncio
    async def test_step_two_is_batched_over_step_one_ids(self, service, tied_top_ids):
        await service.top_nodes_by_category("micro", limit=3)

        top_call = tied_top_ids.calls_for("ranking.top_ids")[0]
        assert top_call == {"category": "micro", "limit": 3}
        batch_calls = tied_top_ids.calls_for("ranking.all_categories")
        assert len(batch_calls) == 1
        assert batch_calls[0]["node_ids"] == [A, B, C]

    @pytest.mark.asyncio
    async def test_default_limit_from_settings(self, service, warehouse, settings):
        await service.top_nodes_by_category("common")
        assert warehouse.calls_for("ranking.top_ids")[0]["limit"] == settings.TOP_NODES_DEFAULT_LIMIT

    @pytest.mark.asyncio
    async def test_no_rows_skips_second_query(self, service, warehouse):
        assert await service.top_nodes_by_category("macro") == []
        assert warehouse.calls_for("ranking.all_categories") == []

    @pytest.mark.asyncio
    async def test_step_one_failure_returns_empty(self, service, warehouse):
        warehouse.set("ranking.top_ids", QueryFailedError("boom"))

        with capture_logs() as logs:
            assert await service.top_nodes_by_category("micro") == []

        assert any(log["event"] == "query_failed" for log in logs)

    @pytest.mark.asyncio
    async def test_step_two_failure_keeps_step_one_values(self, service, tied_top_ids):
        tied_top_ids.set("ranking.all_categories", QueryFailedError("boom"))

        entries = await service.top_nodes_by_category("micro")

        assert [e.node_id for e in entries] == [B, A, C]
        assert entries[0].category_share == 90.0
        assert entries[0].category_rank == 1
        assert entries[0].micro_share is None

    @pytest.mark.asyncio
    async def test_node_missing_from_batch_uses_fallback(self, service, tied_top_ids):
        tied_top_ids.set(
            "ranking.all_categories",
            [detail_row(A, "alice", micro_share=0.9, micro_rank=2)],
        )

        entries = await service.top_nodes_by_category("micro")
        carol = next(e for e in entries if e.node_id == C)

        assert carol.category_share == 50.0
        assert carol.category_rank == 3
        assert carol.micro_share is None

    @pytest.mark.asyncio
    async def test_idempotent(self, service, tied_top_ids):
        first = await service.top_nodes_by_category("micro")
        second = await service.top_nodes_by_category("micro")
        assert first == second

    @pytest.mark.asyncio
    async def test_unavailable_warehouse_propagates(self, service, warehouse):
        warehouse.set("ranking.top_ids", WarehouseUnavailableError("down"))

        with pytest.raises(WarehouseUnavailableError):
            await service.top_nodes_by_category("micro")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", ["huge", "", None])
    async def test_invalid_category(self, service, category):
        with pytest.raises(ValidationError):
            await service.top_nodes_by_category(category)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -5, 101])
    async def test_invalid_limit(self, service, warehouse, limit):
        with pytest.raises(ValidationError):
            await service.top_nodes_by_category("micro", limit)
        assert warehouse.calls == []

    @pytest.mark.asyncio
    async def test_category_is_case_insensitive(self, service, warehouse):
        await service.top_nodes_by_category("MACRO")
        assert warehouse.calls_for("ranking.top_ids")[0]["category"] == "macro"

    @pytest.mark.asyncio
    async def test_five_common_nodes_with_a_missing_share(self, service, warehouse):
        D, E = make_node_id(4), make_node_id(5)
        # the fake ignores LIMIT, so all five step-1 rows come back unordered
        warehouse.set(
            "ranking.top_ids",
            [
                {"nodeid": E, "shortest_path_share": None, "rank": None},
                {"nodeid": C, "shortest_path_share": 0.5, "rank": 3},
                {"nodeid": A, "shortest_path_share": 0.9, "rank": 2},
                {"nodeid": D, "shortest_path_share": 0.3, "rank": 4},
                {"nodeid": B, "shortest_path_share": 0.9, "rank": 1},
            ],
        )
        warehouse.set(
            "ranking.all_categories",
            [
                detail_row(D, common_share=0.3, common_rank=4),
                detail_row(E, "erin"),
                detail_row(A, common_share=0.9, common_rank=2),
                detail_row(C, common_share=0.5, common_rank=3),
                detail_row(B, common_share=0.9, common_rank=1),
            ],
        )

        entries = await service.top_nodes_by_category("common", limit=3)

        assert warehouse.calls_for("ranking.top_ids")[0]["limit"] == 3
        assert [e.node_id for e in entries] == [B, A, C, D, E]
        assert [e.category_share for e in entries[:3]] == [90.0, 90.0, 50.0]
        assert entries[-1].category_share is None
        assert entries[-1].category_rank is None
        assert entries[-1].display_alias == "erin"


class TestTopNodesAllCategories:
    @pytest.mark.asyncio
    async def test_one_failing_category_is_isolated(self, service, warehouse):
        def top_ids(params):
            if params["category"] == "macro":
                return QueryFailedError("macro broke")
            return [{"nodeid": A, "shortest_path_share": 0.4, "rank": 1}]

        warehouse.set("ranking.top_ids", top_ids)
        warehouse.set("ranking.all_categories", [detail_row(A, "alice", micro_share=0.4, micro_rank=1, common_share=0.4, common_rank=1)])

        result = await service.top_nodes_all_categories()

        assert set(result) == {"micro", "common", "macro"}
        assert [e.node_id for e in result["micro"]] == [A]
        assert [e.node_id for e in result["common"]] == [A]
        assert result["macro"] == []

    @pytest.mark.asyncio
    async def test_unavailable_warehouse_propagates(self, service, warehouse):
        warehouse.set("ranking.top_ids", WarehouseUnavailableError("down"))

        with pytest.raises(WarehouseUnavailableError):
            await service.top_nodes_all_categories()


def test_sort_key_puts_nulls_last():
    keys = sorted(
        [
            ranking_sort_key(None, 1, "a"),
            ranking_sort_key(0.5, None, "b"),
            ranking_sort_key(0.5, 2, "c"),
            ranking_sort_key(0.7, 9, "d"),
        ]
    )
    assert [k[-1] for k in keys] == ["d", "c", "b", "a"]
