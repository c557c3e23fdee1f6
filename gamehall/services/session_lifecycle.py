"""
Session lifecycle manager

    active --end--> completed
    active --cancel--> cancelled

Starting a session validates and claims the table under a per-table lock, so
two operations on this terminal cannot both claim the same table. Terminals
do not share that lock: two terminals validating against stale views can
still both seat a table before either event is merged. reconcile_tables()
reports and repairs what it can afterwards.

When ending a session the session write is authoritative. If the table can
not be released (missing, or already claimed by another session) the
inconsistency is logged and the session stays completed.
"""

import asyncio
from collections import defaultdict
from typing import Any, Dict, List, Optional, Union

import structlog

from gamehall.core.clock import Clock, utcnow
from gamehall.core.errors import InvalidTransitionError, TableNotFoundError
from gamehall.core.events import EventAction, Topic, make_event
from gamehall.models import (
    ActivityType,
    GenderBreakdown,
    Payment,
    PaymentDetails,
    PaymentStatus,
    SessionUpdate,
    Table,
    TableSession,
    TableSessionStatus,
    TableStatus,
)
from gamehall.services.audit import AuditTrail
from gamehall.services.pricing import PricingEngine, select_promotion
from gamehall.services.replication import ReplicationBroadcaster
from gamehall.services.state_store import LocalStateStore, new_id
from gamehall.services.table_validator import TableAssignmentValidator

logger = structlog.get_logger(__name__)


class SessionLifecycleManager:
    """Orchestrates session transitions and their table/payment side effects"""

    def __init__(
        self,
        store: LocalStateStore,
        validator: TableAssignmentValidator,
        pricing: PricingEngine,
        broadcaster: ReplicationBroadcaster,
        audit: AuditTrail,
        clock: Clock = utcnow,
        currency: str = "SAR",
    ):
        self.store = store
        self.validator = validator
        self.pricing = pricing
        self.broadcaster = broadcaster
        self.audit = audit
        self.clock = clock
        self.currency = currency
        self._table_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _customer_name(self, customer_id: str) -> str:
        customer = self.store.get_customer(customer_id)
        return customer.name if customer else "Unknown"

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start_session(
        self,
        customer_id: str,
        table_id: str,
        party_size: int,
        gender_breakdown: Optional[GenderBreakdown] = None,
        notes: Optional[str] = None,
        game_master_id: Optional[str] = None,
    ) -> TableSession:
        """Validate the table, then create the session and occupy the table.

        Raises the validator's errors with nothing written, logged or
        broadcast.
        """
        if self.store.get_table(table_id) is None:
            raise TableNotFoundError(table_id)

        async with self._table_locks[table_id]:
            table = self.validator.validate_assignment(table_id, party_size)
            self.validator.check_conflict(table_id)

            now = self.clock()
            promotion = select_promotion(self.store.promotions, now)
            session = TableSession(
                id=new_id(),
                customer_id=customer_id,
                table_id=table.id,
                table_number=table.table_number,
                party_size=party_size,
                gender_breakdown=gender_breakdown,
                status=TableSessionStatus.ACTIVE,
                start_time=now,
                promo_id=promotion.id if promotion else None,
                notes=notes,
                game_master_id=game_master_id,
                created_at=now,
            )
            self.store.insert("sessions", session)

            customer_name = self._customer_name(customer_id)
            table_updates = {
                "status": TableStatus.OCCUPIED,
                "current_session_id": session.id,
                "customer_name": customer_name,
                "start_time": now,
                "last_updated": now,
            }
            self.store.patch("tables", table.id, table_updates)

        breakdown = gender_breakdown or GenderBreakdown()
        details = (
            f"Started session for customer: {customer_name} - {party_size} people "
            f"({breakdown.male}M, {breakdown.female}F) - Table {table.table_number} - "
            f"{notes or 'No notes'}"
        )
        if promotion:
            details += f" - Promo: {promotion.name}"
        self.audit.record(ActivityType.SESSION_START, "Session Started", details)

        self.broadcaster.publish(make_event(Topic.SESSION, EventAction.ADD, entity=session))
        self.broadcaster.publish(
            make_event(Topic.TABLE, EventAction.UPDATE, entity_id=table.id, updates=table_updates)
        )

        logger.info(
            "Session started",
            session_id=session.id,
            table_id=table.id,
            party_size=party_size,
            promo_id=session.promo_id,
        )
        return session

    # ------------------------------------------------------------------
    # Update / cancel
    # ------------------------------------------------------------------

    async def update_session(
        self,
        session_id: str,
        updates: Union[SessionUpdate, Dict[str, Any]],
    ) -> Optional[TableSession]:
        """Merge a partial update into a session.

        Unknown ids are a no-op. Completing goes through end_session;
        cancelling releases the table like cancel_session.

        Raises:
            InvalidTransitionError: For status changes out of a terminal
                state or straight to completed.
        """
        if isinstance(updates, dict):
            updates = SessionUpdate.model_validate(updates)
        delta = updates.model_dump(exclude_unset=True)

        session = self.store.get_session(session_id)
        if session is None:
            logger.debug(f"Ignoring update for unknown session {session_id}")
            return None

        new_status = delta.pop("status", None)
        if new_status is not None and TableSessionStatus(new_status) != session.status:
            new_status = TableSessionStatus(new_status)
            if session.is_terminal() or new_status == TableSessionStatus.COMPLETED:
                raise InvalidTransitionError(session.status.value, new_status.value)
            if delta:
                self.store.patch("sessions", session_id, delta)
            return await self.cancel_session(session_id, delta=delta)

        if not delta:
            return session

        session = self.store.patch("sessions", session_id, delta)
        self.broadcaster.publish(
            make_event(Topic.SESSION, EventAction.UPDATE, entity_id=session_id, updates=delta)
        )
        logger.info("Session updated", session_id=session_id, fields=sorted(delta))
        return session

    async def cancel_session(
        self,
        session_id: str,
        delta: Optional[Dict[str, Any]] = None,
    ) -> Optional[TableSession]:
        """Cancel an active session without billing and free its table"""
        session = self.store.get_session(session_id)
        if session is None or not session.can_cancel():
            return session

        async with self._table_locks[session.table_id]:
            session = self.store.get_session(session_id)
            if not session.can_cancel():
                return session

            now = self.clock()
            changes = {"status": TableSessionStatus.CANCELLED, "end_time": now}
            session = self.store.patch("sessions", session_id, changes)
            table_updates = self._release_table(session, now)

        self.audit.record(
            ActivityType.SESSION_EDIT,
            "Session Updated",
            f"Updated session status to cancelled for customer: {self._customer_name(session.customer_id)}",
        )
        self.broadcaster.publish(
            make_event(
                Topic.SESSION,
                EventAction.UPDATE,
                entity_id=session_id,
                updates={**(delta or {}), **changes},
            )
        )
        if table_updates is not None:
            self.broadcaster.publish(
                make_event(Topic.TABLE, EventAction.UPDATE, entity_id=session.table_id, updates=table_updates)
            )
        logger.info("Session cancelled", session_id=session_id, table_id=session.table_id)
        return session

    # ------------------------------------------------------------------
    # End
    # ------------------------------------------------------------------

    async def end_session(
        self,
        session_id: str,
        payment: Optional[PaymentDetails] = None,
    ) -> Optional[TableSession]:
        """Bill and complete an active session, free its table and record payment.

        Ending a session that is unknown or no longer active changes nothing.
        """
        session = self.store.get_session(session_id)
        if session is None:
            logger.debug(f"Ignoring end for unknown session {session_id}")
            return None
        if not session.can_end():
            logger.info("Session already finished", session_id=session_id, status=session.status.value)
            return session

        async with self._table_locks[session.table_id]:
            session = self.store.get_session(session_id)
            if not session.can_end():
                return session

            now = self.clock()
            promotion = self.store.get("promotions", session.promo_id) if session.promo_id else None
            quote = self.pricing.compute_cost(session.start_time, now, session.party_size, promotion)
            final = {
                "status": TableSessionStatus.COMPLETED,
                "end_time": now,
                "hours": quote.hours,
                "total_cost": quote.cost,
            }
            session = self.store.patch("sessions", session_id, final)
            table_updates = self._release_table(session, now)

            payment_record = None
            if payment is not None and payment.total_paid > 0:
                payment_record = Payment(
                    id=new_id(),
                    session_id=session_id,
                    customer_id=session.customer_id,
                    amount=payment.total_paid,
                    method=payment.method,
                    cash_amount=payment.cash_amount,
                    card_amount=payment.card_amount,
                    online_amount=payment.online_amount,
                    status=PaymentStatus.COMPLETED,
                    timestamp=now,
                )
                self.store.insert("payments", payment_record)

        customer_name = self._customer_name(session.customer_id)
        if payment_record is not None:
            self.audit.record(
                ActivityType.PAYMENT_ADD,
                "Payment Added",
                f"Added payment: {payment_record.describe(self.currency)} for customer: {customer_name}",
            )
            self.broadcaster.publish(make_event(Topic.PAYMENT, EventAction.ADD, entity=payment_record))

        self.audit.record(
            ActivityType.SESSION_END,
            "Session Ended",
            f"Ended session for customer: {customer_name} - {session.party_size} people - "
            f"Duration: {session.hours}h, Cost: {session.total_cost:g} {self.currency}",
        )
        self.broadcaster.publish(
            make_event(
                Topic.SESSION,
                EventAction.END,
                entity_id=session_id,
                updates={key: final[key] for key in ("end_time", "hours", "total_cost")},
            )
        )
        if table_updates is not None:
            self.broadcaster.publish(
                make_event(Topic.TABLE, EventAction.UPDATE, entity_id=session.table_id, updates=table_updates)
            )

        logger.info(
            "Session ended",
            session_id=session_id,
            hours=session.hours,
            total_cost=session.total_cost,
            payment_id=payment_record.id if payment_record else None,
        )
        return session

    def _release_table(self, session: TableSession, now) -> Optional[Dict[str, Any]]:
        """Free the session's table if it still points at this session"""
        table = self.store.get_table(session.table_id)
        if table is None:
            logger.error(
                "Table release inconsistent: table missing",
                session_id=session.id,
                table_id=session.table_id,
            )
            return None

        if table.current_session_id not in (None, session.id):
            logger.error(
                "Table release inconsistent: table held by another session",
                session_id=session.id,
                table_id=table.id,
                holder=table.current_session_id,
            )
            return None
        if table.current_session_id is None and table.status != TableStatus.OCCUPIED:
            return None

        updates = {
            "status": TableStatus.AVAILABLE,
            "current_session_id": None,
            "customer_name": None,
            "start_time": None,
            "last_updated": now,
        }
        self.store.patch("tables", table.id, updates)
        return updates

    # ------------------------------------------------------------------
    # Invariant repair
    # ------------------------------------------------------------------

    def reset_tables(self) -> List[str]:
        """Regenerate the table pool and clear the audit trail.

        Tables of sessions that are still active are occupied again right
        away; returns their ids.
        """
        self.store.reset()
        self.audit.record(
            ActivityType.TABLE_REFRESH,
            "Tables Refreshed",
            f"All {len(self.store.tables)} tables have been reinitialized",
        )
        return self.reconcile_tables()

    def reconcile_tables(self) -> List[str]:
        """Repair tables whose occupancy disagrees with the active sessions.

        Returns the ids of the repaired tables. Two active sessions on one
        table cannot be repaired here and are only logged.
        """
        repaired: List[str] = []
        now = self.clock()

        for table in self.store.tables:
            active = self.store.active_session_for_table(table.id)
            if active is not None:
                duplicates = [
                    s.id for s in self.store.sessions
                    if s.table_id == table.id and s.is_active() and s.id != active.id
                ]
                if duplicates:
                    logger.error("Table has several active sessions", table_id=table.id, sessions=[active.id, *duplicates])

            expected = self._occupancy_for(active, now) if active else self._vacancy(table, now)
            if expected is None:
                continue
            self.store.patch("tables", table.id, expected)
            self.broadcaster.publish(
                make_event(Topic.TABLE, EventAction.UPDATE, entity_id=table.id, updates=expected)
            )
            repaired.append(table.id)
            logger.warning("Repaired table occupancy", table_id=table.id, status=expected["status"].value)

        return repaired

    def _occupancy_for(self, session: TableSession, now) -> Optional[Dict[str, Any]]:
        table = self.store.get_table(session.table_id)
        if table.status == TableStatus.OCCUPIED and table.current_session_id == session.id:
            return None
        return {
            "status": TableStatus.OCCUPIED,
            "current_session_id": session.id,
            "customer_name": self._customer_name(session.customer_id),
            "start_time": session.start_time,
            "last_updated": now,
        }

    @staticmethod
    def _vacancy(table: Table, now) -> Optional[Dict[str, Any]]:
        if table.status != TableStatus.OCCUPIED and table.current_session_id is None:
            return None
        return {
            "status": TableStatus.AVAILABLE if table.status == TableStatus.OCCUPIED else table.status,
            "current_session_id": None,
            "customer_name": None,
            "start_time": None,
            "last_updated": now,
        }
