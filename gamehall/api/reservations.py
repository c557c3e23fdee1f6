"""
Reservations API endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Field, SQLModel
from typing import List, Optional
from datetime import datetime
import structlog

from gamehall.core.context import TerminalContext
from gamehall.core.dependencies import get_context, to_http_exception
from gamehall.core.errors import DomainError, EntityNotFoundError
from gamehall.models import Reservation, ReservationStatus

logger = structlog.get_logger(__name__)
router = APIRouter()


class ReservationCreate(SQLModel):
    table_id: str
    customer_id: str
    start_time: datetime
    end_time: datetime
    party_size: int = Field(ge=1)
    status: ReservationStatus = ReservationStatus.PENDING
    notes: Optional[str] = None


class ReservationUpdate(SQLModel):
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    party_size: Optional[int] = Field(default=None, ge=1)
    status: Optional[ReservationStatus] = None
    notes: Optional[str] = None


@router.post("/", response_model=Reservation, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    reservation_data: ReservationCreate,
    context: TerminalContext = Depends(get_context),
):
    try:
        return context.records.add_reservation(**reservation_data.model_dump())
    except DomainError as e:
        raise to_http_exception(e)


@router.get("/", response_model=List[Reservation])
async def list_reservations(context: TerminalContext = Depends(get_context)):
    return context.store.reservations


@router.patch("/{reservation_id}", response_model=Reservation)
async def update_reservation(
    reservation_id: str,
    updates: ReservationUpdate,
    context: TerminalContext = Depends(get_context),
):
    reservation = context.records.update_reservation(reservation_id, updates.model_dump(exclude_unset=True))
    if reservation is None:
        raise to_http_exception(EntityNotFoundError("reservations", reservation_id))
    return reservation


@router.delete("/{reservation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_reservation(reservation_id: str, context: TerminalContext = Depends(get_context)):
    if context.records.delete_reservation(reservation_id) is None:
        raise to_http_exception(EntityNotFoundError("reservations", reservation_id))
