"""
Payments API endpoints

Payments for ended sessions are normally created by the session end
endpoint; these routes cover corrections made afterwards.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlmodel import Field, SQLModel
from typing import List, Optional
import structlog

from gamehall.core.context import TerminalContext
from gamehall.core.dependencies import get_context, to_http_exception
from gamehall.core.errors import EntityNotFoundError, SessionNotFoundError
from gamehall.models import Payment, PaymentMethod, PaymentStatus

logger = structlog.get_logger(__name__)
router = APIRouter()


class PaymentCreate(SQLModel):
    session_id: str
    amount: float = Field(ge=0)
    method: PaymentMethod = PaymentMethod.CASH
    cash_amount: float = Field(default=0, ge=0)
    card_amount: float = Field(default=0, ge=0)
    online_amount: float = Field(default=0, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class PaymentUpdate(SQLModel):
    amount: Optional[float] = Field(default=None, ge=0)
    method: Optional[PaymentMethod] = None
    cash_amount: Optional[float] = Field(default=None, ge=0)
    card_amount: Optional[float] = Field(default=None, ge=0)
    online_amount: Optional[float] = Field(default=None, ge=0)
    status: Optional[PaymentStatus] = None
    notes: Optional[str] = Field(default=None, max_length=500)


@router.post("/", response_model=Payment, status_code=status.HTTP_201_CREATED)
async def create_payment(payment_data: PaymentCreate, context: TerminalContext = Depends(get_context)):
    """Record a payment against an existing session"""
    if context.store.get_session(payment_data.session_id) is None:
        raise to_http_exception(SessionNotFoundError(payment_data.session_id))
    return context.records.add_payment(**payment_data.model_dump())


@router.get("/", response_model=List[Payment])
async def list_payments(
    session_id: Optional[str] = Query(None, description="Filter by session"),
    context: TerminalContext = Depends(get_context),
):
    payments = context.store.payments
    if session_id:
        payments = [p for p in payments if p.session_id == session_id]
    return payments


@router.patch("/{payment_id}", response_model=Payment)
async def update_payment(
    payment_id: str,
    updates: PaymentUpdate,
    context: TerminalContext = Depends(get_context),
):
    payment = context.records.update_payment(payment_id, updates.model_dump(exclude_unset=True))
    if payment is None:
        raise to_http_exception(EntityNotFoundError("payments", payment_id))
    return payment


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_payment(payment_id: str, context: TerminalContext = Depends(get_context)):
    if context.records.delete_payment(payment_id) is None:
        raise to_http_exception(EntityNotFoundError("payments", payment_id))
