"""
Audit trail entries and operator identity
"""

from sqlmodel import Field, SQLModel
from datetime import datetime, timezone
from enum import Enum


class OperatorRole(str, Enum):
    OWNER = "owner"
    GAME_MASTER = "game_master"
    ADMIN = "admin"
    EMPLOYEE = "employee"


class Operator(SQLModel):
    """Staff member logged into this terminal"""
    id: str
    username: str
    role: OperatorRole = OperatorRole.EMPLOYEE

    def is_owner(self) -> bool:
        return self.role == OperatorRole.OWNER


class ActivityType(str, Enum):
    """Kinds of audited actions"""
    SESSION_START = "session_start"
    SESSION_END = "session_end"
    SESSION_EDIT = "session_edit"
    CUSTOMER_ADD = "customer_add"
    CUSTOMER_EDIT = "customer_edit"
    CUSTOMER_DELETE = "customer_delete"
    PAYMENT_ADD = "payment_add"
    PAYMENT_EDIT = "payment_edit"
    PAYMENT_DELETE = "payment_delete"
    TABLE_EDIT = "table_edit"
    TABLE_REFRESH = "table_refresh"
    RESERVATION_ADD = "reservation_add"
    RESERVATION_EDIT = "reservation_edit"
    RESERVATION_DELETE = "reservation_delete"
    USER_LOGIN = "user_login"
    USER_LOGOUT = "user_logout"
    SYSTEM_ACTION = "system_action"


class ActivityLog(SQLModel):
    """One audited operator action"""
    id: str
    type: ActivityType
    user_id: str
    user_name: str
    user_role: str
    action: str
    details: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
