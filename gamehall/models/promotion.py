"""
Promotion model - time-windowed override of hourly pricing
"""

from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from typing import Optional

from gamehall.core.clock import ensure_utc


class Promotion(SQLModel):
    """Pricing promotion"""

    id: str
    name: str = Field(max_length=100)
    first_hour_price: float = Field(default=30, ge=0, description="Price per person for the first hour")
    extra_hour_price: float = Field(default=30, ge=0, description="Price per person per extra hour")
    is_active: bool = Field(default=True)
    start_date: Optional[datetime] = Field(default=None, description="Start of validity window (inclusive)")
    end_date: Optional[datetime] = Field(default=None, description="End of validity window (inclusive)")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_eligible(self, at: datetime) -> bool:
        """Check if the promotion applies at the given moment"""
        if not self.is_active:
            return False
        at = ensure_utc(at)
        if self.start_date is not None and ensure_utc(self.start_date) > at:
            return False
        if self.end_date is not None and ensure_utc(self.end_date) < at:
            return False
        return True
