"""
Tests for strategy price calculation.
"""
from decimal import Decimal

import pytest

from repricer.core.errors import ValidationError
from repricer.services.price_calculator import (
    calculate_price,
    calculate_raw_price,
    clamp,
    round_price,
)

D = Decimal


class TestRawPrice:
    """Target price before listing bounds."""

    def test_match_lowest(self, make_strategy):
        strategy = make_strategy(repricing_rule="MATCH_LOWEST", beat_by=None, value=None)
        assert calculate_raw_price(strategy, D("7.45"), D("9.99")) == D("7.45")

    def test_beat_lowest_amount(self, make_strategy):
        strategy = make_strategy(beat_by="AMOUNT", value=D("0.02"))
        assert calculate_raw_price(strategy, D("5.27"), D("5.30")) == D("5.25")

    def test_beat_lowest_percentage(self, make_strategy):
        strategy = make_strategy(beat_by="PERCENTAGE", value=D("0.10"))
        assert calculate_raw_price(strategy, D("20.00"), D("25.00")) == D("18.0000")

    def test_stay_above_amount(self, make_strategy):
        strategy = make_strategy(
            repricing_rule="STAY_ABOVE", beat_by=None, stay_above_by="AMOUNT", value=D("0.50")
        )
        assert calculate_raw_price(strategy, D("10.00"), D("11.00")) == D("10.50")

    def test_stay_above_percentage(self, make_strategy):
        strategy = make_strategy(
            repricing_rule="STAY_ABOVE", beat_by=None, stay_above_by="PERCENTAGE", value=D("0.05")
        )
        assert calculate_raw_price(strategy, D("20.00"), D("19.00")) == D("21.0000")

    def test_custom_keeps_current(self, make_strategy):
        strategy = make_strategy(repricing_rule="CUSTOM", beat_by=None, value=None)
        assert calculate_raw_price(strategy, D("5.00"), D("8.00")) == D("8.00")

    @pytest.mark.parametrize("competitor_price", [None, D("0"), D("-3.00")])
    def test_no_competition_uses_max(self, make_strategy, competitor_price):
        strategy = make_strategy(max_price=D("15.00"))
        assert calculate_raw_price(strategy, competitor_price, D("10.00")) == D("15.00")

    def test_no_competition_use_max_without_max_keeps_current(self, make_strategy):
        strategy = make_strategy(no_competition_action="USE_MAX_PRICE")
        assert calculate_raw_price(strategy, None, D("10.00")) == D("10.00")

    def test_no_competition_uses_min(self, make_strategy):
        strategy = make_strategy(no_competition_action="USE_MIN_PRICE", min_price=D("4.00"))
        assert calculate_raw_price(strategy, None, D("10.00")) == D("4.00")

    def test_no_competition_keep_current(self, make_strategy):
        strategy = make_strategy(no_competition_action="KEEP_CURRENT", min_price=D("4.00"))
        assert calculate_raw_price(strategy, None, D("10.00")) == D("10.00")


class TestCalculatePrice:
    """Final price: clamp, snap, positivity, rounding."""

    def test_beat_lowest_without_bounds(self, make_strategy):
        strategy = make_strategy(beat_by="AMOUNT", value=D("0.02"))
        assert calculate_price(strategy, D("5.27"), D("5.30")) == D("5.25")

    def test_stay_above_below_snap_threshold(self, make_strategy):
        strategy = make_strategy(
            repricing_rule="STAY_ABOVE", beat_by=None, stay_above_by="AMOUNT", value=D("0.50")
        )
        result = calculate_price(strategy, D("10.00"), D("11.00"), listing_max=D("12.40"))
        assert result == D("10.50")

    def test_stay_above_snaps_to_listing_max(self, make_strategy):
        strategy = make_strategy(
            repricing_rule="STAY_ABOVE", beat_by=None, stay_above_by="AMOUNT", value=D("0.50")
        )
        result = calculate_price(strategy, D("10.00"), D("11.00"), listing_max=D("13.00"))
        assert result == D("13.00")

    def test_snap_threshold_is_inclusive(self, make_strategy):
        strategy = make_strategy(
            repricing_rule="STAY_ABOVE", beat_by=None, stay_above_by="AMOUNT", value=D("0.50")
        )
        result = calculate_price(strategy, D("10.00"), D("11.00"), listing_max=D("12.50"))
        assert result == D("12.50")

    def test_fallback_max_clamps_but_never_snaps(self, make_strategy):
        strategy = make_strategy(
            repricing_rule="STAY_ABOVE", beat_by=None, stay_above_by="AMOUNT", value=D("0.50")
        )
        result = calculate_price(strategy, D("10.00"), D("10.00"), fallback_max=D("100.00"))
        assert result == D("10.50")

    def test_fallback_bounds_clamp(self, make_strategy):
        strategy = make_strategy(repricing_rule="MATCH_LOWEST", beat_by=None, value=None)
        assert calculate_price(strategy, D("3.00"), D("5.00"), fallback_min=D("4.00")) == D("4.00")
        assert calculate_price(strategy, D("30.00"), D("5.00"), fallback_max=D("20.00")) == D("20.00")

    def test_listing_bound_wins_over_fallback(self, make_strategy):
        strategy = make_strategy(repricing_rule="MATCH_LOWEST", beat_by=None, value=None)
        result = calculate_price(
            strategy, D("3.00"), D("5.00"), listing_min=D("4.50"), fallback_min=D("1.00")
        )
        assert result == D("4.50")

    def test_match_lowest_never_snaps(self, make_strategy):
        strategy = make_strategy(repricing_rule="MATCH_LOWEST", beat_by=None, value=None)
        result = calculate_price(strategy, D("10.00"), D("11.00"), listing_max=D("20.00"))
        assert result == D("10.00")

    @pytest.mark.parametrize(
        "competitor_price, expected",
        [
            (D("3.00"), D("5.00")),
            (D("7.25"), D("7.25")),
            (D("50.00"), D("9.00")),
        ],
    )
    def test_match_lowest_is_clamped(self, make_strategy, competitor_price, expected):
        strategy = make_strategy(repricing_rule="MATCH_LOWEST", beat_by=None, value=None)
        result = calculate_price(
            strategy, competitor_price, D("6.00"), listing_min=D("5.00"), listing_max=D("9.00")
        )
        assert result == expected

    @pytest.mark.parametrize("competitor_price", [D("0.01"), D("1.99"), D("4.50"), D("100")])
    def test_result_within_bounds(self, make_strategy, competitor_price):
        strategy = make_strategy(beat_by="PERCENTAGE", value=D("0.25"))
        result = calculate_price(
            strategy, competitor_price, D("5.00"), listing_min=D("2.00"), listing_max=D("8.00")
        )
        assert D("2.00") <= result <= D("8.00")

    def test_non_positive_result_falls_back_to_current(self, make_strategy):
        strategy = make_strategy(beat_by="AMOUNT", value=D("1.00"))
        assert calculate_price(strategy, D("0.50"), D("3.10")) == D("3.10")

    def test_full_percentage_beat_falls_back_to_current(self, make_strategy):
        strategy = make_strategy(beat_by="PERCENTAGE", value=D("1"))
        assert calculate_price(strategy, D("4.00"), D("4.20")) == D("4.20")

    def test_rounds_half_away_from_zero(self, make_strategy):
        strategy = make_strategy(beat_by="PERCENTAGE", value=D("0.15"))
        # 10.10 * 0.85 = 8.585
        assert calculate_price(strategy, D("10.10"), D("9.00")) == D("8.59")

    @pytest.mark.parametrize("current_price", [D("0"), D("-1.00")])
    def test_rejects_non_positive_current_price(self, make_strategy, current_price):
        with pytest.raises(ValidationError):
            calculate_price(make_strategy(), D("5.00"), current_price)


class TestHelpers:
    def test_round_price(self):
        assert round_price(D("2.345")) == D("2.35")
        assert round_price(D("2.344")) == D("2.34")
        assert round_price(D("7")) == D("7.00")

    def test_clamp(self):
        assert clamp(D("1"), D("2"), D("5")) == D("2")
        assert clamp(D("9"), D("2"), D("5")) == D("5")
        assert clamp(D("3"), None, None) == D("3")
        assert clamp(D("3"), None, D("2.50")) == D("2.50")
