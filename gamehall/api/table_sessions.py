"""
Table sessions API endpoints
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Field, SQLModel
from typing import List, Optional
import structlog

from gamehall.core.context import TerminalContext
from gamehall.core.dependencies import get_context, to_http_exception
from gamehall.core.errors import DomainError, SessionNotFoundError
from gamehall.models import GenderBreakdown, PaymentDetails, SessionUpdate, TableSession, TableSessionStatus

logger = structlog.get_logger(__name__)
router = APIRouter()


class TableSessionCreate(SQLModel):
    """Schema for seating a party at a table"""
    customer_id: str
    table_id: str
    party_size: int = Field(ge=1)
    gender_breakdown: Optional[GenderBreakdown] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class TableSessionEnd(SQLModel):
    """Schema for ending a session, with the payment collected"""
    payment: Optional[PaymentDetails] = None


@router.post("/", response_model=TableSession, status_code=status.HTTP_201_CREATED)
async def create_table_session(
    session_data: TableSessionCreate,
    context: TerminalContext = Depends(get_context),
):
    """Start a session; the table is validated and occupied in one step"""
    try:
        return await context.lifecycle.start_session(
            customer_id=session_data.customer_id,
            table_id=session_data.table_id,
            party_size=session_data.party_size,
            gender_breakdown=session_data.gender_breakdown,
            notes=session_data.notes,
            game_master_id=context.operator.id if context.operator else None,
        )
    except DomainError as e:
        logger.info(f"Rejected session for table {session_data.table_id}: {e}")
        raise to_http_exception(e)


@router.get("/", response_model=List[TableSession])
async def list_table_sessions(
    status_filter: Optional[TableSessionStatus] = Query(None, description="Filter by status"),
    table_id: Optional[str] = Query(None, description="Filter by table"),
    context: TerminalContext = Depends(get_context),
):
    """List table sessions, newest first"""
    sessions = context.store.sessions
    if status_filter:
        sessions = [s for s in sessions if s.status == status_filter]
    if table_id:
        sessions = [s for s in sessions if s.table_id == table_id]
    return sessions


@router.get("/{session_id}", response_model=TableSession)
async def get_table_session(session_id: str, context: TerminalContext = Depends(get_context)):
    """Get table session details"""
    session = context.store.get_session(session_id)
    if not session:
        raise to_http_exception(SessionNotFoundError(session_id))
    return session


@router.patch("/{session_id}", response_model=TableSession)
async def update_table_session(
    session_id: str,
    updates: SessionUpdate,
    context: TerminalContext = Depends(get_context),
):
    """Update notes or party breakdown, or cancel the session"""
    try:
        session = await context.lifecycle.update_session(session_id, updates)
    except DomainError as e:
        raise to_http_exception(e)
    if session is None:
        raise to_http_exception(SessionNotFoundError(session_id))
    return session


@router.post("/{session_id}/end", response_model=TableSession)
async def end_table_session(
    session_id: str,
    request: Optional[TableSessionEnd] = None,
    context: TerminalContext = Depends(get_context),
):
    """Bill and complete the session. Ending a finished session changes nothing."""
    session = await context.lifecycle.end_session(session_id, request.payment if request else None)
    if session is None:
        raise to_http_exception(SessionNotFoundError(session_id))
    return session


@router.post("/{session_id}/cancel", response_model=TableSession)
async def cancel_table_session(session_id: str, context: TerminalContext = Depends(get_context)):
    """Cancel the session without billing"""
    session = await context.lifecycle.cancel_session(session_id)
    if session is None:
        raise to_http_exception(SessionNotFoundError(session_id))
    return session
