"""Tests for the numeric helpers."""

from decimal import Decimal

import pytest

from routing_dashboard.utils.numbers import (
    coerce_int,
    coerce_number,
    count_or_zero,
    format_percent,
    msat_to_btc,
    msat_to_sat,
    ratio_percent,
    round_half_up,
    to_percent,
)


class TestCoercion:
    @pytest.mark.parametrize("value", [None, "", "abc", float("nan"), float("inf"), True])
    def test_unusable_values_become_none(self, value):
        assert coerce_number(value) is None
        assert coerce_int(value) is None

    def test_decimal_and_string_inputs(self):
        assert coerce_number(Decimal("0.25")) == 0.25
        assert coerce_number(" 1.5 ") == 1.5
        assert coerce_int("42") == 42
        assert coerce_int(Decimal("7.9")) == 7

    def test_count_or_zero_only_zeroes_missing_aggregates(self):
        assert count_or_zero(None) == 0
        assert count_or_zero(Decimal("12")) == 12


class TestPercent:
    def test_rounds_half_up_not_to_even(self):
        assert to_percent(0.12345) == 12.35
        assert to_percent(0.00125) == 0.13
        assert round_half_up(2.5, 0) == 3.0

    def test_none_stays_none(self):
        assert to_percent(None) is None
        assert round_half_up(None) is None

    def test_zero_is_a_value(self):
        assert to_percent(0) == 0.0

    def test_ratio_percent(self):
        assert ratio_percent(1, 3) == 33.33
        assert ratio_percent(9, 10, places=1) == 90.0
        assert ratio_percent(5, 0) is None
        assert ratio_percent(None, 10) is None

    def test_format_percent(self):
        assert format_percent(12.5) == "12.50%"
        assert format_percent(90.0, 1) == "90.0%"
        assert format_percent(None) == "N/A"

    def test_share_renders_once_scaled(self):
        assert format_percent(to_percent(0.12345)) == "12.35%"


class TestMsat:
    def test_msat_to_sat_floors(self):
        assert msat_to_sat(1999) == 1
        assert msat_to_sat(1000) == 1
        assert msat_to_sat(999) == 0
        assert msat_to_sat(Decimal("123456789")) == 123456

    def test_msat_to_sat_none(self):
        assert msat_to_sat(None) is None

    def test_msat_to_btc(self):
        assert msat_to_btc(100_000_000_000) == 1.0
        assert msat_to_btc(50_000_000_000) == 0.5
        assert msat_to_btc(None) is None
