"""
Game library record, replicated as-is between terminals
"""

from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from typing import Optional


class Game(SQLModel):
    id: str
    name: str
    category: Optional[str] = None
    min_players: int = 1
    max_players: int = 4
    is_available: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
