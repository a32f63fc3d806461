"""Tests for the overview page service."""

from datetime import date, datetime

import pytest

from routing_dashboard.errors import QueryFailedError, WarehouseUnavailableError
from routing_dashboard.services.overview_service import (
    CLOSING_OR_CLOSED_STATES,
    OPENING_OR_ACTIVE_STATES,
    OverviewService,
)


@pytest.fixture
def service(warehouse, settings):
    return OverviewService(warehouse, settings)


@pytest.fixture
def metrics_warehouse(warehouse):
    warehouse.set("overview.settled_count", [{"value": 1234}])
    warehouse.set("overview.total_fees", [{"value": 12_345_678}])
    warehouse.set("overview.total_volume", [{"value": 250_000_000_000}])
    warehouse.set("overview.connected_peers", [{"value": 7}])
    return warehouse


class TestKeyMetrics:
    @pytest.mark.asyncio
    async def test_all_metrics(self, service, metrics_warehouse):
        metrics = {m.id: m for m in await service.key_metrics()}

        assert list(metrics) == ["total_forwards", "total_fees", "forwarded_volume", "connected_peers"]
        assert metrics["total_forwards"].display_value == "1,234"
        assert metrics["total_fees"].value == 12_345
        assert metrics["total_fees"].display_value == "12,345 sats"
        assert metrics["forwarded_volume"].value == 2.5
        assert metrics["forwarded_volume"].display_value == "2.5 BTC"
        assert metrics["connected_peers"].display_value == "7"

    @pytest.mark.asyncio
    async def test_failed_metric_is_not_available(self, service, metrics_warehouse):
        metrics_warehouse.set("overview.total_fees", QueryFailedError("boom"))

        metrics = {m.id: m for m in await service.key_metrics()}

        assert metrics["total_fees"].value is None
        assert metrics["total_fees"].display_value == "N/A"
        assert metrics["total_forwards"].value == 1234

    @pytest.mark.asyncio
    async def test_empty_warehouse_gives_zeros(self, service):
        metrics = {m.id: m for m in await service.key_metrics()}

        assert metrics["total_forwards"].value == 0
        assert metrics["forwarded_volume"].display_value == "0.0 BTC"

    @pytest.mark.asyncio
    async def test_connected_peers_counts_active_states(self, service, metrics_warehouse):
        await service.key_metrics()
        states = metrics_warehouse.calls_for("overview.connected_peers")[0]["states"]
        assert states == ["CHANNELD_NORMAL", "DUALOPEND_NORMAL"]

    @pytest.mark.asyncio
    async def test_unavailable_warehouse_propagates(self, service, metrics_warehouse):
        metrics_warehouse.set("overview.settled_count", WarehouseUnavailableError("down"))

        with pytest.raises(WarehouseUnavailableError):
            await service.key_metrics()


class TestVolumeHistory:
    @pytest.mark.asyncio
    async def test_points(self, service, warehouse):
        warehouse.set(
            "overview.volume_history",
            [
                {"bucket": datetime(2024, 5, 6), "volume_msat": 150_000_000, "transaction_count": 3},
                {"bucket": date(2024, 4, 29), "volume_msat": None, "transaction_count": 0},
                {"bucket": None, "volume_msat": 1, "transaction_count": 1},
            ],
        )

        points = await service.forwarding_volume_history("week")

        assert [p.date for p in points] == ["2024-04-29", "2024-05-06"]
        assert points[1].forwarding_volume_btc == 0.0015
        assert points[1].transaction_count == 3
        assert points[0].forwarding_volume_btc == 0.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("period,unit,limit", [("day", "day", 30), ("week", "week", 12), ("quarter", "quarter", 8)])
    async def test_bucket_unit_and_limit(self, service, warehouse, period, unit, limit):
        await service.forwarding_volume_history(period)

        params = warehouse.calls_for("overview.volume_history")[0]
        assert params["unit"] == unit
        assert params["limit"] == limit

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self, service, warehouse):
        warehouse.set("overview.volume_history", QueryFailedError("boom"))
        assert await service.forwarding_volume_history() == []


class TestPeriodSummary:
    @pytest.mark.asyncio
    async def test_rates_and_change(self, service, warehouse):
        warehouse.set(
            "overview.period_summary",
            [{
                "max_payment_msat": 2_500_999,
                "total_fees_msat": 10_999,
                "current_settled": 90,
                "current_local_failed": 10,
                "previous_settled": 80,
                "previous_local_failed": 20,
            }],
        )

        summary = await service.period_forwarding_summary("week")

        assert summary.period == "week"
        assert summary.payments_forwarded_count == 90
        assert summary.max_payment_forwarded_sats == 2_500
        assert summary.total_fees_earned_sats == 10
        assert summary.current_success_rate == 90.0
        assert summary.previous_success_rate == 80.0
        assert summary.success_rate_change == 10.0

    @pytest.mark.asyncio
    async def test_no_previous_activity(self, service, warehouse):
        warehouse.set(
            "overview.period_summary",
            [{"current_settled": 2, "current_local_failed": 1, "previous_settled": 0, "previous_local_failed": 0}],
        )

        summary = await service.period_forwarding_summary("day")

        assert summary.current_success_rate == 66.7
        assert summary.previous_success_rate is None
        assert summary.success_rate_change is None
        assert summary.max_payment_forwarded_sats == 0

    @pytest.mark.asyncio
    async def test_windows_are_adjacent(self, service, warehouse):
        await service.period_forwarding_summary("week")

        params = warehouse.calls_for("overview.period_summary")[0]
        assert params["previous_end_date"] < params["start_date"]
        assert (params["start_date"] - params["previous_start_date"]).days == 7

    @pytest.mark.asyncio
    async def test_failure_gives_empty_summary(self, service, warehouse):
        warehouse.set("overview.period_summary", QueryFailedError("boom"))

        summary = await service.period_forwarding_summary("month")

        assert summary.period == "month"
        assert summary.payments_forwarded_count == 0
        assert summary.current_success_rate is None


class TestChannelActivity:
    @pytest.mark.asyncio
    async def test_counts(self, service, warehouse):
        warehouse.set("overview.channel_activity", [{"opened_count": 3, "closed_count": 1}])

        activity = await service.channel_activity("month")

        assert activity.opened_count == 3
        assert activity.closed_count == 1
        params = warehouse.calls_for("overview.channel_activity")[0]
        assert params["opening_states"] == OPENING_OR_ACTIVE_STATES
        assert params["closing_states"] == CLOSING_OR_CLOSED_STATES
        assert "DISCONNECTED" not in params["closing_states"]

    @pytest.mark.asyncio
    async def test_failure_gives_zeros(self, service, warehouse):
        warehouse.set("overview.channel_activity", QueryFailedError("boom"))

        activity = await service.channel_activity()

        assert activity.opened_count == 0
        assert activity.closed_count == 0
