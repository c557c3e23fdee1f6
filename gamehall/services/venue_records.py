"""
Venue record operations outside the session lifecycle

Tables, customers, payments, promotions and reservations. Each mutation
updates the local store, appends an audit entry and broadcasts the matching
topic event. Promotions stay local to the terminal. Updating or deleting an
unknown id returns None and changes nothing.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
import structlog

from gamehall.core.clock import Clock, utcnow
from gamehall.core.errors import InvalidTransitionError, TableConflictError, TableNotFoundError
from gamehall.core.events import EventAction, Topic, make_event
from gamehall.models import (
    ActivityType,
    Customer,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Promotion,
    Reservation,
    ReservationStatus,
    Table,
    TableStatus,
    TableType,
)
from gamehall.services.audit import AuditTrail
from gamehall.services.replication import ReplicationBroadcaster
from gamehall.services.state_store import LocalStateStore, new_id

logger = structlog.get_logger(__name__)

# Table fields tied to occupancy; only the session lifecycle changes them on occupied tables
OCCUPANCY_FIELDS = {"current_session_id", "customer_name", "start_time"}


class VenueRecords:
    """Operator-facing record management for one terminal"""

    def __init__(
        self,
        store: LocalStateStore,
        broadcaster: ReplicationBroadcaster,
        audit: AuditTrail,
        clock: Clock = utcnow,
        currency: str = "SAR",
    ):
        self.store = store
        self.broadcaster = broadcaster
        self.audit = audit
        self.clock = clock
        self.currency = currency

    def _customer_name(self, customer_id: Optional[str]) -> str:
        customer = self.store.get_customer(customer_id) if customer_id else None
        return customer.name if customer else "Unknown"

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def update_table(self, table_id: str, updates: Dict[str, Any]) -> Table:
        """Edit table details or move it between available/reserved/maintenance.

        Raises:
            TableNotFoundError: If the table id is unknown.
            TableConflictError: If the table is held by an active session.
            InvalidTransitionError: If asked to mark the table occupied directly.
        """
        table = self.store.get_table(table_id)
        if table is None:
            raise TableNotFoundError(table_id)

        updates = {k: v for k, v in updates.items() if k not in ("id", "created_at", "last_updated")}
        status = TableStatus(updates["status"]) if updates.get("status") is not None else None
        if table.is_occupied() and (OCCUPANCY_FIELDS & set(updates) or status not in (None, table.status)):
            raise TableConflictError(table_id, table.current_session_id or "unknown", table.customer_name)
        if status == TableStatus.OCCUPIED and not table.is_occupied():
            raise InvalidTransitionError(table.status.value, status.value)
        updates.pop("current_session_id", None)

        updates["last_updated"] = self.clock()
        table = self.store.patch("tables", table_id, updates)

        self.audit.record(
            ActivityType.TABLE_EDIT,
            "Table Updated",
            f"Updated table: {table.table_number} - {', '.join(k for k in updates if k != 'last_updated')}",
        )
        self.broadcaster.publish(
            make_event(Topic.TABLE, EventAction.UPDATE, entity_id=table_id, updates=updates)
        )
        return table

    def set_table_status(self, table_id: str, status: TableStatus) -> Table:
        return self.update_table(table_id, {"status": status})

    def set_maintenance(self, table_id: str, notes: Optional[str] = None) -> Table:
        return self.update_table(
            table_id,
            {"status": TableStatus.MAINTENANCE, "notes": notes or "Table under maintenance"},
        )

    def schedule_maintenance(self, table_id: str, start_time: datetime, end_time: datetime, reason: str) -> Table:
        return self.update_table(
            table_id,
            {
                "status": TableStatus.MAINTENANCE,
                "notes": f"Maintenance: {reason} ({start_time.isoformat()} - {end_time.isoformat()})",
            },
        )

    def reserve_table(self, table_id: str, customer_name: str, start_time: datetime) -> Table:
        return self.update_table(
            table_id,
            {"status": TableStatus.RESERVED, "customer_name": customer_name, "start_time": start_time},
        )

    def free_table(self, table_id: str) -> Table:
        """Return a reserved or maintenance table to the available pool"""
        return self.update_table(
            table_id,
            {"status": TableStatus.AVAILABLE, "customer_name": None, "start_time": None},
        )

    def table_stats(self) -> Dict[str, int]:
        tables = self.store.tables
        stats = {"total": len(tables)}
        for status in TableStatus:
            stats[status.value] = sum(1 for t in tables if t.status == status)
        return stats

    def available_tables(self, min_capacity: int = 1) -> List[Table]:
        return [
            t for t in self.store.tables
            if t.status == TableStatus.AVAILABLE and t.capacity >= min_capacity
        ]

    def optimal_table(self, party_size: int, preferred_type: Optional[TableType] = None) -> Optional[Table]:
        """Available table with the closest capacity fit, preferring a table type"""
        candidates = self.available_tables(party_size)
        if not candidates:
            return None
        if preferred_type is not None:
            preferred = [t for t in candidates if t.table_type == preferred_type]
            if preferred:
                candidates = preferred
        return min(candidates, key=lambda t: abs(t.capacity - party_size))

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def add_customer(self, name: str, email: str = "", phone: str = "", notes: Optional[str] = None) -> Customer:
        customer = Customer(id=new_id(), name=name, email=email, phone=phone, notes=notes, created_at=self.clock())
        self.store.insert("customers", customer)
        self.audit.record(ActivityType.CUSTOMER_ADD, "Customer Added", f"Added customer: {name} ({email})")
        self.broadcaster.publish(make_event(Topic.CUSTOMER, EventAction.ADD, entity=customer))
        return customer

    def update_customer(self, customer_id: str, updates: Dict[str, Any]) -> Optional[Customer]:
        customer = self._patch("customers", customer_id, updates)
        if customer is None:
            return None
        self.audit.record(ActivityType.CUSTOMER_EDIT, "Customer Updated", f"Updated customer: {customer.name}")
        self.broadcaster.publish(
            make_event(Topic.CUSTOMER, EventAction.UPDATE, entity_id=customer_id, updates=updates)
        )
        return customer

    def delete_customer(self, customer_id: str) -> Optional[Customer]:
        customer = self.store.remove("customers", customer_id)
        if customer is None:
            return None
        self.audit.record(ActivityType.CUSTOMER_DELETE, "Customer Deleted", f"Deleted customer: {customer.name}")
        self.broadcaster.publish(make_event(Topic.CUSTOMER, EventAction.DELETE, entity_id=customer_id))
        return customer

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(
        self,
        session_id: str,
        amount: float,
        method: PaymentMethod,
        cash_amount: float = 0,
        card_amount: float = 0,
        online_amount: float = 0,
        notes: Optional[str] = None,
    ) -> Payment:
        session = self.store.get_session(session_id)
        payment = Payment(
            id=new_id(),
            session_id=session_id,
            customer_id=session.customer_id if session else None,
            amount=amount,
            method=method,
            cash_amount=cash_amount,
            card_amount=card_amount,
            online_amount=online_amount,
            status=PaymentStatus.COMPLETED,
            notes=notes,
            timestamp=self.clock(),
        )
        self.store.insert("payments", payment)
        self.audit.record(
            ActivityType.PAYMENT_ADD,
            "Payment Added",
            f"Added payment: {payment.describe(self.currency)} for customer: "
            f"{self._customer_name(payment.customer_id)}",
        )
        self.broadcaster.publish(make_event(Topic.PAYMENT, EventAction.ADD, entity=payment))
        return payment

    def update_payment(self, payment_id: str, updates: Dict[str, Any]) -> Optional[Payment]:
        payment = self._patch("payments", payment_id, updates)
        if payment is None:
            return None
        self.audit.record(
            ActivityType.PAYMENT_EDIT,
            "Payment Updated",
            f"Updated payment: {payment.amount:g} {self.currency} - {', '.join(updates)}",
        )
        self.broadcaster.publish(
            make_event(Topic.PAYMENT, EventAction.UPDATE, entity_id=payment_id, updates=updates)
        )
        return payment

    def delete_payment(self, payment_id: str) -> Optional[Payment]:
        payment = self.store.remove("payments", payment_id)
        if payment is None:
            return None
        self.audit.record(
            ActivityType.PAYMENT_DELETE,
            "Payment Deleted",
            f"Deleted payment: {payment.amount:g} {self.currency}",
        )
        self.broadcaster.publish(make_event(Topic.PAYMENT, EventAction.DELETE, entity_id=payment_id))
        return payment

    # ------------------------------------------------------------------
    # Promotions
    # ------------------------------------------------------------------

    def add_promotion(
        self,
        name: str,
        first_hour_price: float = 30,
        extra_hour_price: float = 30,
        is_active: bool = True,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Promotion:
        promotion = Promotion(
            id=new_id(),
            name=name,
            first_hour_price=first_hour_price,
            extra_hour_price=extra_hour_price,
            is_active=is_active,
            start_date=start_date,
            end_date=end_date,
            created_at=self.clock(),
        )
        # Newest promotions are listed (and matched) first
        self.store.insert("promotions", promotion, first=True)
        self.audit.record(ActivityType.SYSTEM_ACTION, "Promotion Added", f"Added promo: {name}")
        return promotion

    def update_promotion(self, promotion_id: str, updates: Dict[str, Any]) -> Optional[Promotion]:
        promotion = self._patch("promotions", promotion_id, updates)
        if promotion is None:
            return None
        self.audit.record(ActivityType.SYSTEM_ACTION, "Promotion Updated", f"Updated promo: {promotion.name}")
        return promotion

    def delete_promotion(self, promotion_id: str) -> Optional[Promotion]:
        promotion = self.store.remove("promotions", promotion_id)
        if promotion is None:
            return None
        self.audit.record(ActivityType.SYSTEM_ACTION, "Promotion Deleted", f"Deleted promo: {promotion.name}")
        return promotion

    def active_promotion(self) -> Optional[Promotion]:
        now = self.clock()
        return next((p for p in self.store.promotions if p.is_eligible(now)), None)

    # ------------------------------------------------------------------
    # Reservations
    # ------------------------------------------------------------------

    def add_reservation(
        self,
        table_id: str,
        customer_id: str,
        start_time: datetime,
        end_time: datetime,
        party_size: int,
        status: ReservationStatus = ReservationStatus.PENDING,
        notes: Optional[str] = None,
    ) -> Reservation:
        table = self.store.get_table(table_id)
        if table is None:
            raise TableNotFoundError(table_id)

        reservation = Reservation(
            id=new_id(),
            table_id=table_id,
            customer_id=customer_id,
            start_time=start_time,
            end_time=end_time,
            party_size=party_size,
            status=status,
            notes=notes,
            created_at=self.clock(),
        )
        self.store.insert("reservations", reservation)
        self.audit.record(
            ActivityType.RESERVATION_ADD,
            "Reservation Added",
            f"Added reservation: Table {table.table_number} for customer: "
            f"{self._customer_name(customer_id)} - {party_size} people",
        )
        self.broadcaster.publish(make_event(Topic.RESERVATION, EventAction.ADD, entity=reservation))
        return reservation

    def update_reservation(self, reservation_id: str, updates: Dict[str, Any]) -> Optional[Reservation]:
        reservation = self._patch("reservations", reservation_id, updates)
        if reservation is None:
            return None
        self.audit.record(
            ActivityType.RESERVATION_EDIT,
            "Reservation Updated",
            f"Updated reservation: {', '.join(updates)}",
        )
        self.broadcaster.publish(
            make_event(Topic.RESERVATION, EventAction.UPDATE, entity_id=reservation_id, updates=updates)
        )
        return reservation

    def delete_reservation(self, reservation_id: str) -> Optional[Reservation]:
        reservation = self.store.remove("reservations", reservation_id)
        if reservation is None:
            return None
        self.audit.record(
            ActivityType.RESERVATION_DELETE,
            "Reservation Deleted",
            f"Deleted reservation for customer: {self._customer_name(reservation.customer_id)}",
        )
        self.broadcaster.publish(make_event(Topic.RESERVATION, EventAction.DELETE, entity_id=reservation_id))
        return reservation

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def clear_logs(self) -> None:
        self.store.clear("activityLogs")
        self.audit.record(ActivityType.SYSTEM_ACTION, "Logs Cleared", "All activity logs have been cleared")
        logger.info("Activity logs cleared")

    def _patch(self, collection: str, record_id: str, updates: Dict[str, Any]):
        updates = {k: v for k, v in updates.items() if k not in ("id", "created_at")}
        try:
            return self.store.patch(collection, record_id, updates)
        except ValidationError:
            logger.warning("Rejected invalid update", collection=collection, record_id=record_id)
            raise
