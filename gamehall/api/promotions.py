"""
Promotions API endpoints

Promotions are terminal-local and never replicated.
"""

from fastapi import APIRouter, Depends, status
from sqlmodel import Field, SQLModel
from typing import List, Optional
from datetime import datetime
import structlog

from gamehall.core.context import TerminalContext
from gamehall.core.dependencies import get_context, to_http_exception
from gamehall.core.errors import PromotionNotFoundError
from gamehall.models import Promotion

logger = structlog.get_logger(__name__)
router = APIRouter()


class PromotionCreate(SQLModel):
    name: str = Field(min_length=1, max_length=100)
    first_hour_price: float = Field(default=30, ge=0)
    extra_hour_price: float = Field(default=30, ge=0)
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class PromotionUpdate(SQLModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    first_hour_price: Optional[float] = Field(default=None, ge=0)
    extra_hour_price: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


@router.post("/", response_model=Promotion, status_code=status.HTTP_201_CREATED)
async def create_promotion(
    promotion_data: PromotionCreate,
    context: TerminalContext = Depends(get_context),
):
    """Create a promotion; it takes precedence over older ones"""
    promotion = context.records.add_promotion(**promotion_data.model_dump())
    logger.info(f"Promotion created: {promotion.id}")
    return promotion


@router.get("/", response_model=List[Promotion])
async def list_promotions(context: TerminalContext = Depends(get_context)):
    return context.store.promotions


@router.get("/active", response_model=Optional[Promotion])
async def active_promotion(context: TerminalContext = Depends(get_context)):
    """The promotion a session started now would get"""
    return context.records.active_promotion()


@router.patch("/{promotion_id}", response_model=Promotion)
async def update_promotion(
    promotion_id: str,
    updates: PromotionUpdate,
    context: TerminalContext = Depends(get_context),
):
    promotion = context.records.update_promotion(promotion_id, updates.model_dump(exclude_unset=True))
    if promotion is None:
        raise to_http_exception(PromotionNotFoundError(promotion_id))
    return promotion


@router.delete("/{promotion_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_promotion(promotion_id: str, context: TerminalContext = Depends(get_context)):
    if context.records.delete_promotion(promotion_id) is None:
        raise to_http_exception(PromotionNotFoundError(promotion_id))
