"""
Tests for the session lifecycle: start, update, cancel, end and table repair
"""

import asyncio
import pytest

from gamehall.core.errors import (
    CapacityExceededError,
    InvalidTransitionError,
    TableConflictError,
    TableNotFoundError,
    TableUnavailableError,
)
from gamehall.models import (
    ActivityType,
    GenderBreakdown,
    PaymentDetails,
    PaymentMethod,
    TableSession,
    TableSessionStatus,
    TableStatus,
)


def assert_occupancy_invariant(store):
    """occupied <=> back-reference to an active session"""
    for table in store.tables:
        if table.status == TableStatus.OCCUPIED:
            session = store.get_session(table.current_session_id)
            assert session is not None and session.is_active(), table.id
        else:
            assert table.current_session_id is None, table.id


def broadcast_events(hub):
    return [(m["event"], m["payload"]["action"]) for m in hub.sent if m["type"] == "broadcast"]


class TestStartSession:

    @pytest.mark.asyncio
    async def test_start_occupies_table(self, terminal, customer, clock):
        session = await terminal.lifecycle.start_session(
            customer.id, "table_01", 3, gender_breakdown=GenderBreakdown(male=2, female=1), notes="birthday"
        )

        assert session.status == TableSessionStatus.ACTIVE
        assert session.hours == 0 and session.total_cost == 0
        assert session.start_time == clock()
        assert session.table_number == 1

        table = terminal.store.get_table("table_01")
        assert table.status == TableStatus.OCCUPIED
        assert table.current_session_id == session.id
        assert table.customer_name == "Layla Haddad"
        assert table.start_time == session.start_time
        assert_occupancy_invariant(terminal.store)

    @pytest.mark.asyncio
    async def test_start_records_audit_and_broadcasts_session_then_table(self, terminal, customer, hub):
        hub.sent.clear()
        await terminal.lifecycle.start_session(customer.id, "table_02", 2)
        await terminal.drain()

        entry = terminal.store.activity_logs[0]
        assert entry.type == ActivityType.SESSION_START
        assert entry.user_name == "sara"
        assert "Layla Haddad - 2 people (0M, 0F) - Table 2" in entry.details

        assert broadcast_events(hub) == [("session:update", "add"), ("table:update", "update")]
        added = hub.sent[0]["payload"]
        assert added["entity"]["table_id"] == "table_02"
        assert added["origin"] == "terminal-a"

    @pytest.mark.asyncio
    async def test_start_applies_first_eligible_promotion(self, terminal, customer):
        older = terminal.records.add_promotion("Happy Hour", 20, 15)
        newer = terminal.records.add_promotion("Weekend", 25, 20)

        session = await terminal.lifecycle.start_session(customer.id, "table_01", 1)

        # New promotions are listed first
        assert session.promo_id == newer.id
        assert older.id != newer.id
        assert "Promo: Weekend" in terminal.store.activity_logs[0].details

    @pytest.mark.asyncio
    async def test_conflict_has_no_side_effects(self, terminal, customer, hub):
        first = await terminal.lifecycle.start_session(customer.id, "table_01", 2)
        await terminal.drain()
        sessions_before = terminal.store.sessions
        logs_before = terminal.store.activity_logs
        sent_before = len(hub.sent)

        with pytest.raises(TableConflictError) as exc:
            await terminal.lifecycle.start_session(customer.id, "table_01", 1)
        await terminal.drain()

        assert exc.value.session_id == first.id
        assert "Layla Haddad" in exc.value.details
        assert terminal.store.sessions == sessions_before
        assert terminal.store.activity_logs == logs_before
        assert len(hub.sent) == sent_before

    @pytest.mark.asyncio
    async def test_capacity_checked_before_anything_is_written(self, terminal, customer):
        with pytest.raises(CapacityExceededError):
            await terminal.lifecycle.start_session(customer.id, "table_01", 9)
        assert terminal.store.sessions == []
        assert terminal.store.get_table("table_01").status == TableStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_unknown_and_unavailable_tables(self, terminal, customer):
        with pytest.raises(TableNotFoundError):
            await terminal.lifecycle.start_session(customer.id, "table_77", 1)
        assert "table_77" not in terminal.lifecycle._table_locks

        terminal.records.set_maintenance("table_03", "broken chair")
        with pytest.raises(TableUnavailableError):
            await terminal.lifecycle.start_session(customer.id, "table_03", 1)

    @pytest.mark.asyncio
    async def test_concurrent_starts_claim_table_once(self, terminal, customer):
        results = await asyncio.gather(
            terminal.lifecycle.start_session(customer.id, "table_04", 2),
            terminal.lifecycle.start_session(customer.id, "table_04", 2),
            return_exceptions=True,
        )

        started = [r for r in results if isinstance(r, TableSession)]
        rejected = [r for r in results if isinstance(r, TableConflictError)]
        assert len(started) == 1 and len(rejected) == 1
        assert_occupancy_invariant(terminal.store)


class TestEndSession:

    @pytest.mark.asyncio
    async def test_end_prices_and_frees_table(self, terminal, customer, clock):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 2)
        clock.advance(minutes=100)

        ended = await terminal.lifecycle.end_session(session.id)

        assert ended.status == TableSessionStatus.COMPLETED
        assert ended.end_time == clock()
        assert ended.hours == 1.7
        assert ended.total_cost == (30 + 30) * 2

        table = terminal.store.get_table("table_01")
        assert table.status == TableStatus.AVAILABLE
        assert table.current_session_id is None
        assert table.customer_name is None
        assert_occupancy_invariant(terminal.store)

    @pytest.mark.asyncio
    async def test_end_uses_session_promotion(self, terminal, customer, clock):
        terminal.records.add_promotion("Students", 10, 5)
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 3)
        clock.advance(minutes=45)

        ended = await terminal.lifecycle.end_session(session.id)
        assert ended.total_cost == 30

    @pytest.mark.asyncio
    async def test_end_records_payment(self, terminal, customer, clock, hub):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 1)
        clock.advance(minutes=60)
        await terminal.drain()
        hub.sent.clear()

        payment = PaymentDetails(method=PaymentMethod.MIXED, cash_amount=10, card_amount=20, total_paid=30)
        await terminal.lifecycle.end_session(session.id, payment)
        await terminal.drain()

        [recorded] = terminal.store.payments
        assert recorded.session_id == session.id
        assert recorded.customer_id == customer.id
        assert recorded.amount == 30
        assert recorded.card_amount == 20

        assert broadcast_events(hub) == [
            ("payment:update", "add"),
            ("session:update", "end"),
            ("table:update", "update"),
        ]
        end_payload = hub.sent[1]["payload"]
        assert end_payload["updates"]["total_cost"] == 30
        assert end_payload["updates"]["hours"] == 1.0

        types = [log.type for log in terminal.store.activity_logs[:2]]
        assert types == [ActivityType.SESSION_END, ActivityType.PAYMENT_ADD]

    @pytest.mark.asyncio
    async def test_zero_payment_is_not_recorded(self, terminal, customer):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 1)
        await terminal.lifecycle.end_session(session.id, PaymentDetails(total_paid=0))
        assert terminal.store.payments == []

    @pytest.mark.asyncio
    async def test_end_is_idempotent(self, terminal, customer, clock, hub):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 2)
        clock.advance(minutes=95)
        first = await terminal.lifecycle.end_session(session.id)
        await terminal.drain()
        sent = len(hub.sent)
        logs = len(terminal.store.activity_logs)

        clock.advance(minutes=120)
        second = await terminal.lifecycle.end_session(session.id)
        await terminal.drain()

        assert second.total_cost == first.total_cost
        assert second.end_time == first.end_time
        assert len(hub.sent) == sent
        assert len(terminal.store.activity_logs) == logs

    @pytest.mark.asyncio
    async def test_end_unknown_session_returns_none(self, terminal):
        assert await terminal.lifecycle.end_session("missing") is None

    @pytest.mark.asyncio
    async def test_end_leaves_table_claimed_by_another_session(self, terminal, customer):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 2)
        # Another terminal's session won the table in the meantime
        terminal.store.patch("tables", "table_01", {"current_session_id": "other-session"})

        ended = await terminal.lifecycle.end_session(session.id)

        assert ended.status == TableSessionStatus.COMPLETED
        assert terminal.store.get_table("table_01").current_session_id == "other-session"


class TestUpdateAndCancel:

    @pytest.mark.asyncio
    async def test_update_notes_broadcasts_delta(self, terminal, customer, hub):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 2)
        await terminal.drain()
        hub.sent.clear()

        updated = await terminal.lifecycle.update_session(session.id, {"notes": "needs charger"})
        await terminal.drain()

        assert updated.notes == "needs charger"
        [message] = hub.sent
        assert message["payload"]["action"] == "update"
        assert message["payload"]["updates"] == {"notes": "needs charger"}

    @pytest.mark.asyncio
    async def test_update_unknown_session_is_noop(self, terminal):
        assert await terminal.lifecycle.update_session("missing", {"notes": "x"}) is None

    @pytest.mark.asyncio
    async def test_cannot_complete_through_update(self, terminal, customer):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 2)
        with pytest.raises(InvalidTransitionError):
            await terminal.lifecycle.update_session(session.id, {"status": "completed"})

    @pytest.mark.asyncio
    async def test_cancel_through_update_frees_table(self, terminal, customer):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 2)

        cancelled = await terminal.lifecycle.update_session(session.id, {"status": "cancelled"})

        assert cancelled.status == TableSessionStatus.CANCELLED
        assert cancelled.total_cost == 0
        assert terminal.store.get_table("table_01").status == TableStatus.AVAILABLE
        assert terminal.store.activity_logs[0].type == ActivityType.SESSION_EDIT
        assert terminal.store.payments == []

    @pytest.mark.asyncio
    async def test_finished_session_cannot_be_reopened(self, terminal, customer):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 2)
        await terminal.lifecycle.end_session(session.id)

        with pytest.raises(InvalidTransitionError):
            await terminal.lifecycle.update_session(session.id, {"status": "active"})

    @pytest.mark.asyncio
    async def test_cancel_finished_session_changes_nothing(self, terminal, customer):
        session = await terminal.lifecycle.start_session(customer.id, "table_01", 2)
        await terminal.lifecycle.end_session(session.id)

        result = await terminal.lifecycle.cancel_session(session.id)
        assert result.status == TableSessionStatus.COMPLETED


class TestTableRepair:

    @pytest.mark.asyncio
    async def test_reconcile_frees_orphaned_table(self, terminal):
        terminal.store.patch(
            "tables", "table_02", {"status": TableStatus.OCCUPIED, "current_session_id": "ghost"}
        )

        assert terminal.lifecycle.reconcile_tables() == ["table_02"]
        assert_occupancy_invariant(terminal.store)

    @pytest.mark.asyncio
    async def test_reconcile_occupies_table_of_active_session(self, terminal, customer):
        session = await terminal.lifecycle.start_session(customer.id, "table_03", 2)
        terminal.store.patch(
            "tables", "table_03", {"status": TableStatus.AVAILABLE, "current_session_id": None}
        )

        assert terminal.lifecycle.reconcile_tables() == ["table_03"]
        assert terminal.store.get_table("table_03").current_session_id == session.id

    @pytest.mark.asyncio
    async def test_reset_keeps_active_sessions_seated(self, terminal, customer):
        session = await terminal.lifecycle.start_session(customer.id, "table_05", 2)
        terminal.records.set_maintenance("table_01")

        reoccupied = terminal.lifecycle.reset_tables()

        assert reoccupied == ["table_05"]
        assert terminal.store.get_table("table_01").status == TableStatus.AVAILABLE
        assert terminal.store.get_table("table_05").current_session_id == session.id
        [entry] = terminal.store.activity_logs
        assert entry.type == ActivityType.TABLE_REFRESH
        assert entry.details == "All 5 tables have been reinitialized"
