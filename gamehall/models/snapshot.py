"""
Snapshot table - one durable JSON blob per collection key
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime, timezone
from typing import Any


class Snapshot(SQLModel, table=True):
    """Durable copy of one in-memory collection"""

    __tablename__ = "snapshots"

    key: str = Field(primary_key=True, max_length=50, description="Collection key (sessions, tables, ...)")
    payload: Any = Field(default=None, sa_column=Column(JSON, nullable=True))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
