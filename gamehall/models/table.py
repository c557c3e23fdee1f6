"""
Table model for the venue floor
"""

from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from typing import Optional
from enum import Enum


class TableStatus(str, Enum):
    """Occupancy status of a table"""
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    RESERVED = "reserved"
    MAINTENANCE = "maintenance"


class TableType(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"
    VIP = "vip"


def table_id_for(table_number: int) -> str:
    """Stable table identity derived from its number (table_01, table_02, ...)"""
    return f"table_{table_number:02d}"


class Table(SQLModel):
    """Table in the fixed-size pool"""

    id: str = Field(description="Stable table identifier (table_NN)")
    table_number: int = Field(ge=1, description="Display number, unique within the pool")

    # Occupancy
    status: TableStatus = Field(default=TableStatus.AVAILABLE)
    capacity: int = Field(default=4, ge=1, description="Maximum number of people")
    current_session_id: Optional[str] = Field(
        default=None,
        description="Active session occupying the table (set iff status is occupied)"
    )
    customer_name: Optional[str] = Field(default=None, description="Display name of the seated customer")
    start_time: Optional[datetime] = Field(default=None, description="When the current occupancy started")

    # Details
    table_type: TableType = Field(default=TableType.STANDARD)
    features: list[str] = Field(default_factory=list)
    location: Optional[str] = None
    notes: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_occupied(self) -> bool:
        return self.status == TableStatus.OCCUPIED

    def is_assignable(self) -> bool:
        """Check if a new session may be seated here at all"""
        return self.status not in [TableStatus.MAINTENANCE, TableStatus.RESERVED]
