"""
Domain errors for the table/session lifecycle

Validation errors are raised before any state is touched, so catching one
means nothing was written, logged or broadcast.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """Domain error codes"""

    TABLE_NOT_FOUND = "TABLE_NOT_FOUND"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    TABLE_UNAVAILABLE = "TABLE_UNAVAILABLE"
    TABLE_CONFLICT = "TABLE_CONFLICT"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    PROMOTION_NOT_FOUND = "PROMOTION_NOT_FOUND"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message"""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class TableNotFoundError(DomainError):
    """Raised when a table id is unknown"""

    def __init__(self, table_id: str) -> None:
        super().__init__(code=ErrorCode.TABLE_NOT_FOUND, message="Table not found")
        self.table_id = table_id


class CapacityExceededError(DomainError):
    """Raised when the party does not fit the table"""

    def __init__(self, table_id: str, capacity: int, party_size: int) -> None:
        super().__init__(
            code=ErrorCode.CAPACITY_EXCEEDED,
            message=f"Table capacity ({capacity}) is insufficient for {party_size} people",
        )
        self.table_id = table_id
        self.capacity = capacity
        self.party_size = party_size


class TableUnavailableError(DomainError):
    """Raised when a table is under maintenance or reserved"""

    def __init__(self, table_id: str, status: str) -> None:
        reason = "under maintenance" if status == "maintenance" else status
        super().__init__(
            code=ErrorCode.TABLE_UNAVAILABLE,
            message=f"Table is {reason}",
        )
        self.table_id = table_id
        self.status = status


class TableConflictError(DomainError):
    """Raised when another active session already holds the table"""

    def __init__(
        self,
        table_id: str,
        session_id: str,
        customer_name: Optional[str] = None,
    ) -> None:
        details = f"Table is occupied by session {session_id}"
        if customer_name:
            details += f" ({customer_name})"
        super().__init__(code=ErrorCode.TABLE_CONFLICT, message=details)
        self.table_id = table_id
        self.session_id = session_id
        self.customer_name = customer_name

    @property
    def details(self) -> str:
        return self.message


class SessionNotFoundError(DomainError):
    """Raised when a session id is unknown"""

    def __init__(self, session_id: str) -> None:
        super().__init__(code=ErrorCode.SESSION_NOT_FOUND, message="Session not found")
        self.session_id = session_id


class InvalidTransitionError(DomainError):
    """Raised when a session or table status change is not allowed"""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Cannot transition from {current} to {requested}",
        )
        self.current = current
        self.requested = requested


class PromotionNotFoundError(DomainError):
    """Raised when a promotion id is unknown"""

    def __init__(self, promotion_id: str) -> None:
        super().__init__(code=ErrorCode.PROMOTION_NOT_FOUND, message="Promotion not found")
        self.promotion_id = promotion_id


class EntityNotFoundError(DomainError):
    """Raised by direct record operations when an id is unknown"""

    def __init__(self, collection: str, entity_id: str) -> None:
        super().__init__(
            code=ErrorCode.ENTITY_NOT_FOUND,
            message=f"{collection} record not found",
        )
        self.collection = collection
        self.entity_id = entity_id
