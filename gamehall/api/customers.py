"""
Customers API endpoints
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Field, SQLModel
from typing import List, Optional
import structlog

from gamehall.core.context import TerminalContext
from gamehall.core.dependencies import get_context, to_http_exception
from gamehall.core.errors import EntityNotFoundError
from gamehall.models import Customer

logger = structlog.get_logger(__name__)
router = APIRouter()


class CustomerCreate(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = ""
    phone: str = ""
    notes: Optional[str] = None


class CustomerUpdate(SQLModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


@router.post("/", response_model=Customer, status_code=status.HTTP_201_CREATED)
async def create_customer(customer_data: CustomerCreate, context: TerminalContext = Depends(get_context)):
    customer = context.records.add_customer(**customer_data.model_dump())
    logger.info(f"Customer created: {customer.id}")
    return customer


@router.get("/", response_model=List[Customer])
async def list_customers(context: TerminalContext = Depends(get_context)):
    return context.store.customers


@router.get("/{customer_id}", response_model=Customer)
async def get_customer(customer_id: str, context: TerminalContext = Depends(get_context)):
    customer = context.store.get_customer(customer_id)
    if not customer:
        raise to_http_exception(EntityNotFoundError("customers", customer_id))
    return customer


@router.patch("/{customer_id}", response_model=Customer)
async def update_customer(
    customer_id: str,
    updates: CustomerUpdate,
    context: TerminalContext = Depends(get_context),
):
    customer = context.records.update_customer(customer_id, updates.model_dump(exclude_unset=True))
    if customer is None:
        raise to_http_exception(EntityNotFoundError("customers", customer_id))
    return customer


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(customer_id: str, context: TerminalContext = Depends(get_context)):
    if context.records.delete_customer(customer_id) is None:
        raise to_http_exception(EntityNotFoundError("customers", customer_id))
