"""
Replication broadcaster

Publishes local mutations to the shared channel and merges events from other
terminals into the local state store. Delivery is at-most-once and unordered;
convergence relies on later events, not on retries. Merging is last-write-wins
per field with no causal ordering:

    add     insert if the id is absent, otherwise ignore
    update  shallow field overwrite; unknown id is dropped
    end     mark a session completed (final fields applied once)
    delete  remove by id; already absent is fine

The merge path only touches the store. It never appends audit entries and
never publishes, so a received event cannot echo back onto the channel.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError
import structlog

from gamehall.core.channel import BroadcastChannel
from gamehall.core.events import (
    EventAction,
    EventBus,
    Presence,
    PresenceState,
    ReplicationEvent,
    Topic,
    parse_event,
)
from gamehall.models import Operator, TableSession, TableSessionStatus
from gamehall.services.record_service import ChangeFeed, ChangeKind, RecordChange
from gamehall.services.state_store import LocalStateStore

logger = structlog.get_logger(__name__)

# Topic -> store collection. Analytics carries no entity state.
TOPIC_COLLECTIONS: Dict[Topic, Optional[str]] = {
    Topic.SESSION: "sessions",
    Topic.CUSTOMER: "customers",
    Topic.GAME: "games",
    Topic.PAYMENT: "payments",
    Topic.TABLE: "tables",
    Topic.RESERVATION: "reservations",
    Topic.ANALYTICS: None,
}

# Fields a session:end event may carry
SESSION_END_FIELDS = ("end_time", "hours", "total_cost")


class ReplicationBroadcaster:
    """Sends local events and applies remote ones for a single terminal"""

    def __init__(
        self,
        store: LocalStateStore,
        channel: BroadcastChannel,
        terminal_id: str,
        event_bus: Optional[EventBus] = None,
        operator_provider: Callable[[], Optional[Operator]] = lambda: None,
    ):
        self.store = store
        self.channel = channel
        self.terminal_id = terminal_id
        self.event_bus = event_bus or EventBus()
        self.operator_provider = operator_provider
        self._peers: Dict[str, Presence] = {}
        self._presence: Optional[Presence] = None
        self._pending: set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._feed_unsubscribes: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        await self.channel.connect()
        self._unsubscribe = self.channel.subscribe(self.handle_message)
        logger.info("Replication started", channel=self.channel.name, terminal=self.terminal_id)

    async def stop(self):
        for unsubscribe in self._feed_unsubscribes:
            unsubscribe()
        self._feed_unsubscribes.clear()
        if self._presence is not None:
            await self.leave()
        await self.drain()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.channel.close()
        logger.info("Replication stopped", terminal=self.terminal_id)

    async def drain(self):
        """Wait for in-flight sends and listener notifications"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Outgoing
    # ------------------------------------------------------------------

    def publish(self, event: ReplicationEvent) -> None:
        """Fire-and-forget broadcast of a locally applied event"""
        event.origin = self.terminal_id
        message = {"type": "broadcast", "event": event.topic, "payload": event.to_message()}
        self._spawn(self._send(message))
        self._spawn(self.event_bus.publish(event))

    async def _send(self, message: Dict[str, Any]):
        try:
            await self.channel.send(message)
        except Exception as e:
            logger.error(f"Error broadcasting {message.get('event')}: {e}", exc_info=True)

    def _spawn(self, coro):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, dropping broadcast")
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------

    async def announce(self, operator: Operator):
        """Advertise the logged-in operator on the channel"""
        self._presence = Presence(
            operator_id=operator.id,
            role=operator.role.value,
            terminal_id=self.terminal_id,
        )
        await self._send({"type": "presence", "payload": self._presence.model_dump(mode="json")})

    async def leave(self):
        if self._presence is None:
            return
        leaving = self._presence.model_copy(update={"state": PresenceState.LEAVE})
        self._presence = None
        await self._send({"type": "presence", "payload": leaving.model_dump(mode="json")})

    def peers(self) -> List[Presence]:
        return list(self._peers.values())

    async def _apply_presence(self, payload: Any):
        try:
            presence = Presence.model_validate(payload)
        except ValidationError:
            logger.debug("Dropping malformed presence message")
            return
        if presence.terminal_id == self.terminal_id:
            return

        key = f"{presence.terminal_id}:{presence.operator_id}"
        if presence.state == PresenceState.LEAVE:
            self._peers.pop(key, None)
            logger.info("Peer left", terminal=presence.terminal_id, operator=presence.operator_id)
            return

        is_new = key not in self._peers
        self._peers[key] = presence
        if is_new:
            logger.info("Peer joined", terminal=presence.terminal_id, operator=presence.operator_id)
            # Answer so the newcomer learns about us too
            if self._presence is not None:
                await self._send({"type": "presence", "payload": self._presence.model_dump(mode="json")})

    # ------------------------------------------------------------------
    # Incoming
    # ------------------------------------------------------------------

    async def handle_message(self, message: Dict[str, Any]):
        """Entry point for every message received on the channel"""
        if not isinstance(message, dict):
            return
        kind = message.get("type")
        if kind == "presence":
            await self._apply_presence(message.get("payload"))
            return
        if kind != "broadcast":
            logger.debug(f"Ignoring channel message of type {kind}")
            return

        try:
            event = parse_event(message.get("payload") or {})
        except ValidationError as e:
            logger.warning("Dropping malformed replication event", error_count=e.error_count())
            return

        if event.origin == self.terminal_id:
            return

        if event.topic == Topic.ANALYTICS.value:
            operator = self.operator_provider()
            if operator is None or not operator.is_owner():
                return

        if self.merge(event):
            await self.event_bus.publish(event)

    def merge(self, event: ReplicationEvent) -> bool:
        """Apply a remote event to local state. Returns True if state changed."""
        collection = TOPIC_COLLECTIONS[Topic(event.topic)]
        if collection is None:
            # Analytics events only feed listeners
            return True

        if event.action == EventAction.ADD:
            return self._merge_add(collection, event)
        if event.action == EventAction.UPDATE:
            return self._merge_update(collection, event)
        if event.action == EventAction.END:
            return self._merge_end(collection, event)
        if event.action == EventAction.DELETE:
            return self.store.remove(collection, event.entity_id) is not None
        raise ValueError(f"Unhandled event action: {event.action}")

    def _merge_add(self, collection: str, event: ReplicationEvent) -> bool:
        # Sessions are listed newest first
        return self.store.insert(collection, event.entity, first=(collection == "sessions"))

    def _merge_update(self, collection: str, event: ReplicationEvent) -> bool:
        updates = dict(event.updates or {})
        updates.pop("id", None)
        if not updates:
            return False

        if collection == "sessions":
            current = self.store.get_session(event.entity_id)
            if current is not None and current.is_terminal():
                # Finished sessions never change status or billed fields again
                for field in ("status", "hours", "total_cost", "end_time", "start_time"):
                    updates.pop(field, None)
                if not updates:
                    return False

        try:
            return self.store.patch(collection, event.entity_id, updates) is not None
        except ValidationError:
            logger.warning("Dropping update that does not fit the record", collection=collection, entity_id=event.entity_id)
            return False

    def _merge_end(self, collection: str, event: ReplicationEvent) -> bool:
        if collection != "sessions":
            logger.debug(f"Ignoring end action for {collection}")
            return False

        session = self.store.get_session(event.entity_id)
        if session is None or session.is_terminal():
            return False

        final = {
            field: value
            for field, value in (event.updates or {}).items()
            if field in SESSION_END_FIELDS
        }
        try:
            self.store.patch("sessions", session.id, {**final, "status": TableSessionStatus.COMPLETED})
        except ValidationError:
            self.store.patch("sessions", session.id, {"status": TableSessionStatus.COMPLETED})
        return True

    # ------------------------------------------------------------------
    # Durable-store change feed
    # ------------------------------------------------------------------

    def watch(self, feed: ChangeFeed, table: str = "sessions") -> Callable[[], None]:
        """Apply authoritative changes for table reported by the change feed"""
        unsubscribe = feed.watch(table, self.apply_change)
        self._feed_unsubscribes.append(unsubscribe)
        return unsubscribe

    def apply_change(self, change: RecordChange) -> None:
        if change.table != "sessions":
            logger.debug(f"Ignoring change feed event for {change.table}")
            return

        if change.kind == ChangeKind.DELETE:
            self.store.remove("sessions", change.record_id)
            return

        try:
            incoming = TableSession.model_validate({**(change.record or {}), "id": change.record_id})
        except ValidationError:
            logger.warning("Dropping malformed change feed record", record_id=change.record_id)
            return

        current = self.store.get_session(incoming.id)
        if current is not None and current.is_terminal() and not incoming.is_terminal():
            logger.warning("Change feed tried to reopen a finished session", session_id=incoming.id)
            return
        self.store.replace("sessions", incoming)
