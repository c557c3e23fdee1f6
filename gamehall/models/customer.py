"""
Customer model
"""

from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from typing import Optional


class Customer(SQLModel):
    id: str
    name: str = Field(max_length=100)
    email: str = ""
    phone: str = ""
    notes: Optional[str] = None
    total_sessions: int = 0
    total_spent: float = 0
    last_visit: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
