"""
Payment model
Collected amounts recorded when a session is ended
"""

from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from typing import Optional
from enum import Enum


class PaymentMethod(str, Enum):
    """Payment methods accepted at the counter"""
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"
    MIXED = "mixed"                     # Split across cash/card/online


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Payment(SQLModel):
    """Payment collected for a session"""

    id: str
    session_id: str = Field(description="Session this payment settles")
    customer_id: Optional[str] = None

    amount: float = Field(ge=0, description="Total amount collected")
    method: PaymentMethod
    cash_amount: float = Field(default=0, ge=0)
    card_amount: float = Field(default=0, ge=0)
    online_amount: float = Field(default=0, ge=0)

    status: PaymentStatus = Field(default=PaymentStatus.COMPLETED)
    notes: Optional[str] = Field(default=None, max_length=500)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def describe(self, currency: str = "SAR") -> str:
        """Human-readable breakdown used in audit entries"""
        if self.method == PaymentMethod.MIXED:
            return (
                f"{self.amount:g} {currency} - Cash: {self.cash_amount:g} {currency}, "
                f"Card: {self.card_amount:g} {currency}, Online: {self.online_amount:g} {currency}"
            )
        return f"{self.amount:g} {currency} ({self.method.value})"


class PaymentDetails(SQLModel):
    """What the operator collected when ending a session"""
    method: PaymentMethod = PaymentMethod.CASH
    cash_amount: float = Field(default=0, ge=0)
    card_amount: float = Field(default=0, ge=0)
    online_amount: float = Field(default=0, ge=0)
    total_paid: float = Field(default=0, ge=0)
