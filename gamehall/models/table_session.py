"""
Table session model for billed table occupancy
"""

from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from typing import Optional
from enum import Enum


class TableSessionStatus(str, Enum):
    """Status of a table session"""
    ACTIVE = "active"           # Guests seated, clock running
    COMPLETED = "completed"     # Ended and billed
    CANCELLED = "cancelled"     # Abandoned without billing


TERMINAL_STATUSES = (TableSessionStatus.COMPLETED, TableSessionStatus.CANCELLED)


class GenderBreakdown(SQLModel):
    male: int = Field(default=0, ge=0)
    female: int = Field(default=0, ge=0)


class TableSession(SQLModel):
    """Billed occupancy of a table by a customer"""

    id: str
    customer_id: str = Field(description="Customer this session is billed to")
    table_id: str = Field(description="Table being used for this session")
    table_number: int = Field(description="Table number for display")

    # Party
    party_size: int = Field(ge=1, description="Number of people at the table")
    gender_breakdown: Optional[GenderBreakdown] = None

    status: TableSessionStatus = Field(default=TableSessionStatus.ACTIVE)
    start_time: datetime
    end_time: Optional[datetime] = None

    # Pricing, written once at completion
    promo_id: Optional[str] = Field(default=None, description="Promotion auto-applied at start")
    hours: float = Field(default=0, description="Billed hours, rounded to one decimal")
    total_cost: float = Field(default=0, description="Total charged for the session")

    notes: Optional[str] = Field(default=None, max_length=1000)
    game_master_id: Optional[str] = Field(default=None, description="Operator who opened the session")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_active(self) -> bool:
        return self.status == TableSessionStatus.ACTIVE

    def is_terminal(self) -> bool:
        """Check if the session can no longer change status"""
        return self.status in TERMINAL_STATUSES

    def can_end(self) -> bool:
        return self.status == TableSessionStatus.ACTIVE

    def can_cancel(self) -> bool:
        return self.status == TableSessionStatus.ACTIVE


class SessionUpdate(SQLModel):
    """Partial update accepted for a session (computed fields are not editable)"""
    notes: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[TableSessionStatus] = None
    gender_breakdown: Optional[GenderBreakdown] = None
