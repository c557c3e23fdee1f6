"""
Unit tests for tiered session pricing
"""

import pytest
from datetime import datetime, timedelta, timezone

from gamehall.core.config import Settings
from gamehall.models import Promotion
from gamehall.services.pricing import PricingEngine, compute_cost, select_promotion

START = datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)


def after(minutes: float) -> datetime:
    return START + timedelta(minutes=minutes)


def promo(promo_id: str, first: float, extra: float, **fields) -> Promotion:
    return Promotion(id=promo_id, name=f"Promo {promo_id}", first_hour_price=first, extra_hour_price=extra, **fields)


class TestTiers:
    """Test the free, first-hour and extra-hour tiers"""

    def test_under_thirty_minutes_is_free(self):
        quote = compute_cost(START, after(29), party_size=4)
        assert quote.cost == 0
        assert quote.hours == 0.5

    def test_thirty_minutes_starts_first_hour(self):
        quote = compute_cost(START, after(30), party_size=2)
        assert quote.cost == 60
        assert quote.hours == 0.5

    def test_just_under_ninety_minutes_is_first_hour_only(self):
        quote = compute_cost(START, after(89), party_size=1)
        assert quote.cost == 30
        assert quote.hours == 1.5

    def test_ninety_minutes_adds_one_extra_hour(self):
        quote = compute_cost(START, after(90), party_size=1)
        assert quote.cost == 60
        assert quote.hours == 1.5

    def test_extra_hours_are_billed_per_started_hour(self):
        assert compute_cost(START, after(149), party_size=1).cost == 60
        assert compute_cost(START, after(150), party_size=1).cost == 90
        assert compute_cost(START, after(210), party_size=1).cost == 120

    def test_cost_scales_with_party_size(self):
        quote = compute_cost(START, after(120), party_size=5)
        assert quote.cost == (30 + 30) * 5
        assert quote.hours == 2.0

    def test_hours_rounded_to_one_decimal(self):
        assert compute_cost(START, after(100), party_size=1).hours == 1.7

    @pytest.mark.parametrize("minutes,expected", [(75, 1.3), (135, 2.3), (195, 3.3), (45, 0.8)])
    def test_half_tenths_round_up(self, minutes, expected):
        assert compute_cost(START, after(minutes), party_size=1).hours == expected

    def test_end_before_start_is_free(self):
        quote = compute_cost(START, START - timedelta(minutes=10), party_size=3)
        assert quote.cost == 0
        assert quote.hours == 0.5

    def test_naive_timestamps_are_treated_as_utc(self):
        naive_start = START.replace(tzinfo=None)
        quote = compute_cost(naive_start, after(45), party_size=1)
        assert quote.cost == 30


class TestPromotions:
    """Test promotion price overrides"""

    def test_eligible_promotion_overrides_rates(self):
        quote = compute_cost(START, after(120), party_size=3, promotion=promo("p1", 20, 10))
        assert quote.cost == (20 + 10) * 3

    def test_inactive_promotion_is_ignored(self):
        quote = compute_cost(START, after(45), party_size=1, promotion=promo("p1", 5, 5, is_active=False))
        assert quote.cost == 30

    def test_promotion_expired_before_end_is_ignored(self):
        expired = promo("p1", 5, 5, end_date=after(60))
        quote = compute_cost(START, after(120), party_size=1, promotion=expired)
        assert quote.cost == 60

    def test_select_promotion_returns_first_eligible(self):
        promotions = [
            promo("old", 25, 25, is_active=False),
            promo("newer", 20, 20),
            promo("newest", 10, 10),
        ]
        assert select_promotion(promotions, START).id == "newer"

    def test_select_promotion_respects_window(self):
        later = promo("later", 20, 20, start_date=after(60))
        assert select_promotion([later], START) is None
        assert select_promotion([later], after(60)).id == "later"

    def test_select_promotion_with_none_available(self):
        assert select_promotion([], START) is None


class TestEngineConfiguration:
    """Test thresholds and defaults come from settings"""

    def test_engine_from_settings(self):
        settings = Settings(
            _env_file=None,
            DEFAULT_FIRST_HOUR_PRICE=40,
            DEFAULT_EXTRA_HOUR_PRICE=25,
            FREE_MINUTES=15,
            FIRST_TIER_MINUTES=60,
        )
        engine = PricingEngine.from_settings(settings)

        assert engine.compute_cost(START, after(20), party_size=1).cost == 40
        assert engine.compute_cost(START, after(60), party_size=1).cost == 65

    @pytest.mark.parametrize("minutes,expected", [(0, 0), (30, 30), (90, 60), (200, 90)])
    def test_reference_engine_matches_module_function(self, minutes, expected):
        assert PricingEngine().compute_cost(START, after(minutes), 1).cost == expected
        assert compute_cost(START, after(minutes), 1).cost == expected
