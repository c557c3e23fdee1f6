"""
Tiered time-based pricing for table sessions

    elapsed < 30 min          -> free
    30 min <= elapsed < 90    -> first hour x party size
    elapsed >= 90 min         -> (first hour + extra hours x extra price) x party size

Extra hours are counted from the 90 minute mark, each started hour billed in
full. Results are stored on the session at completion and never recomputed.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from gamehall.core.clock import ensure_utc
from gamehall.core.config import Settings
from gamehall.models.promotion import Promotion


@dataclass(frozen=True)
class PriceQuote:
    hours: float
    cost: float


class PricingEngine:
    """Pure pricing calculator configured with the venue's default tiers"""

    def __init__(
        self,
        first_hour_price: float = 30,
        extra_hour_price: float = 30,
        free_minutes: int = 30,
        first_tier_minutes: int = 90,
    ) -> None:
        self.first_hour_price = first_hour_price
        self.extra_hour_price = extra_hour_price
        self.free_minutes = free_minutes
        self.first_tier_minutes = first_tier_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "PricingEngine":
        return cls(
            first_hour_price=settings.DEFAULT_FIRST_HOUR_PRICE,
            extra_hour_price=settings.DEFAULT_EXTRA_HOUR_PRICE,
            free_minutes=settings.FREE_MINUTES,
            first_tier_minutes=settings.FIRST_TIER_MINUTES,
        )

    def rates_for(self, promotion: Optional[Promotion], at: datetime) -> tuple[float, float]:
        """Return (first hour, extra hour) prices in effect at the given time"""
        if promotion is not None and promotion.is_eligible(at):
            return promotion.first_hour_price, promotion.extra_hour_price
        return self.first_hour_price, self.extra_hour_price

    def compute_cost(
        self,
        start_time: datetime,
        end_time: datetime,
        party_size: int,
        promotion: Optional[Promotion] = None,
    ) -> PriceQuote:
        """Price a session that ran from start_time to end_time"""
        elapsed = ensure_utc(end_time) - ensure_utc(start_time)
        minutes = max(elapsed.total_seconds() / 60, 0)
        first_hour, extra_hour = self.rates_for(promotion, end_time)

        if minutes < self.free_minutes:
            cost = 0.0
        elif minutes < self.first_tier_minutes:
            cost = first_hour * party_size
        else:
            extra_hours = math.floor((minutes - self.first_tier_minutes) / 60) + 1
            cost = (first_hour + extra_hours * extra_hour) * party_size

        # Tenths of an hour, halves rounded up
        hours = max(0.5, math.floor(minutes / 60 * 10 + 0.5) / 10)
        return PriceQuote(hours=hours, cost=float(cost))


_default_engine = PricingEngine()


def compute_cost(
    start_time: datetime,
    end_time: datetime,
    party_size: int,
    promotion: Optional[Promotion] = None,
) -> PriceQuote:
    """Price a session with the reference 30/30 tiers"""
    return _default_engine.compute_cost(start_time, end_time, party_size, promotion)


def select_promotion(promotions: Iterable[Promotion], at: datetime) -> Optional[Promotion]:
    """First eligible promotion in storage order.

    When several promotions overlap the earliest stored one wins; there is no
    priority field to break ties.
    """
    return next((promo for promo in promotions if promo.is_eligible(at)), None)
