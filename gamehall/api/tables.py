"""
Tables API endpoints
"""

from fastapi import APIRouter, Depends, Query
from sqlmodel import Field, SQLModel
from typing import List, Optional
from datetime import datetime
import structlog

from gamehall.core.context import TerminalContext
from gamehall.core.dependencies import get_context, to_http_exception
from gamehall.core.errors import DomainError, TableNotFoundError
from gamehall.models import Table, TableStatus, TableType

logger = structlog.get_logger(__name__)
router = APIRouter()


class TableUpdate(SQLModel):
    """Schema for editing a table's details"""
    status: Optional[TableStatus] = None
    capacity: Optional[int] = Field(default=None, ge=1)
    table_type: Optional[TableType] = None
    features: Optional[List[str]] = None
    location: Optional[str] = None
    notes: Optional[str] = None


class MaintenanceRequest(SQLModel):
    reason: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


class ReserveRequest(SQLModel):
    customer_name: str
    start_time: datetime


@router.get("/", response_model=List[Table])
async def list_tables(
    status_filter: Optional[TableStatus] = Query(None, description="Filter by status"),
    context: TerminalContext = Depends(get_context),
):
    """List the table pool in table number order"""
    tables = context.store.tables
    if status_filter:
        tables = [t for t in tables if t.status == status_filter]
    return tables


@router.get("/stats")
async def table_stats(context: TerminalContext = Depends(get_context)):
    """Count tables per status"""
    return context.records.table_stats()


@router.get("/available", response_model=List[Table])
async def available_tables(
    min_capacity: int = Query(1, ge=1),
    context: TerminalContext = Depends(get_context),
):
    """List available tables that seat at least min_capacity"""
    return context.records.available_tables(min_capacity)


@router.get("/optimal", response_model=Optional[Table])
async def optimal_table(
    party_size: int = Query(..., ge=1),
    preferred_type: Optional[TableType] = None,
    context: TerminalContext = Depends(get_context),
):
    """Suggest the best fitting available table for a party"""
    return context.records.optimal_table(party_size, preferred_type)


@router.post("/reset", response_model=List[Table])
async def reset_tables(context: TerminalContext = Depends(get_context)):
    """Regenerate the table pool and clear the activity log"""
    repaired = context.lifecycle.reset_tables()
    logger.info(f"Table pool reset, {len(repaired)} tables re-occupied")
    return context.store.tables


@router.post("/reconcile")
async def reconcile_tables(context: TerminalContext = Depends(get_context)):
    """Repair table occupancy from the active sessions"""
    return {"repaired": context.lifecycle.reconcile_tables()}


@router.get("/{table_id}", response_model=Table)
async def get_table(table_id: str, context: TerminalContext = Depends(get_context)):
    """Get table by ID"""
    table = context.store.get_table(table_id)
    if not table:
        raise to_http_exception(TableNotFoundError(table_id))
    return table


@router.patch("/{table_id}", response_model=Table)
async def update_table(
    table_id: str,
    table_data: TableUpdate,
    context: TerminalContext = Depends(get_context),
):
    """Edit a table. Occupancy is owned by the session endpoints."""
    try:
        return context.records.update_table(table_id, table_data.model_dump(exclude_unset=True))
    except DomainError as e:
        raise to_http_exception(e)


@router.post("/{table_id}/maintenance", response_model=Table)
async def set_maintenance(
    table_id: str,
    request: MaintenanceRequest,
    context: TerminalContext = Depends(get_context),
):
    """Put a table under maintenance, optionally for a scheduled window"""
    try:
        if request.start_time and request.end_time:
            return context.records.schedule_maintenance(
                table_id, request.start_time, request.end_time, request.reason
            )
        return context.records.set_maintenance(table_id, request.reason)
    except DomainError as e:
        raise to_http_exception(e)


@router.post("/{table_id}/reserve", response_model=Table)
async def reserve_table(
    table_id: str,
    request: ReserveRequest,
    context: TerminalContext = Depends(get_context),
):
    try:
        return context.records.reserve_table(table_id, request.customer_name, request.start_time)
    except DomainError as e:
        raise to_http_exception(e)


@router.post("/{table_id}/free", response_model=Table)
async def free_table(table_id: str, context: TerminalContext = Depends(get_context)):
    """Return a reserved or maintenance table to service"""
    try:
        return context.records.free_table(table_id)
    except DomainError as e:
        raise to_http_exception(e)
