"""
Reservation model for booking a table ahead of time
"""

from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from typing import Optional
from enum import Enum


class ReservationStatus(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"


class Reservation(SQLModel):
    id: str
    table_id: str
    customer_id: str
    start_time: datetime
    end_time: datetime
    party_size: int = Field(ge=1)
    status: ReservationStatus = Field(default=ReservationStatus.PENDING)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
