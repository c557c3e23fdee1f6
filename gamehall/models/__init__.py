"""
Gamehall record models
"""

from gamehall.models.activity_log import ActivityLog, ActivityType, Operator, OperatorRole
from gamehall.models.customer import Customer
from gamehall.models.game import Game
from gamehall.models.payment import Payment, PaymentDetails, PaymentMethod, PaymentStatus
from gamehall.models.promotion import Promotion
from gamehall.models.reservation import Reservation, ReservationStatus
from gamehall.models.snapshot import Snapshot
from gamehall.models.table import Table, TableStatus, TableType, table_id_for
from gamehall.models.table_session import GenderBreakdown, SessionUpdate, TableSession, TableSessionStatus

__all__ = [
    "ActivityLog", "ActivityType", "Operator", "OperatorRole",
    "Customer", "Game",
    "Payment", "PaymentDetails", "PaymentMethod", "PaymentStatus",
    "Promotion", "Reservation", "ReservationStatus", "Snapshot",
    "Table", "TableStatus", "TableType", "table_id_for",
    "GenderBreakdown", "SessionUpdate", "TableSession", "TableSessionStatus",
]
