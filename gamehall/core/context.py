"""
Terminal context - everything one running terminal needs, built in one place

Replaces module-wide caches of the current operator and session state with an
explicit object handed to every component. start() and stop() bracket its
use; build_context() picks the snapshot and channel backends from settings.
"""

from typing import Optional

import structlog

from gamehall.core.channel import BroadcastChannel, InMemoryChannelHub, RedisChannel
from gamehall.core.clock import Clock, utcnow
from gamehall.core.config import Settings, get_settings
from gamehall.core.events import EventBus
from gamehall.models import ActivityType, Operator
from gamehall.services.audit import AuditTrail
from gamehall.services.pricing import PricingEngine
from gamehall.services.record_service import ChangeFeed
from gamehall.services.replication import ReplicationBroadcaster
from gamehall.services.session_lifecycle import SessionLifecycleManager
from gamehall.services.snapshot_store import InMemorySnapshotStore, SnapshotStore, SQLSnapshotStore
from gamehall.services.state_store import LocalStateStore
from gamehall.services.table_validator import TableAssignmentValidator
from gamehall.services.venue_records import VenueRecords

logger = structlog.get_logger(__name__)

# Shared by every terminal built in this process with the memory backend
_local_hub = InMemoryChannelHub()


class TerminalContext:
    """Wires the store, validator, pricing, lifecycle and replication for one terminal"""

    def __init__(
        self,
        settings: Settings,
        snapshots: SnapshotStore,
        channel: BroadcastChannel,
        clock: Clock = utcnow,
        change_feed: Optional[ChangeFeed] = None,
    ):
        self.settings = settings
        self.clock = clock
        self.change_feed = change_feed
        self.operator: Optional[Operator] = None

        self.event_bus = EventBus()
        self.store = LocalStateStore(snapshots, settings, clock)
        self.validator = TableAssignmentValidator(self.store)
        self.pricing = PricingEngine.from_settings(settings)
        self.broadcaster = ReplicationBroadcaster(
            self.store,
            channel,
            terminal_id=settings.TERMINAL_ID,
            event_bus=self.event_bus,
            operator_provider=lambda: self.operator,
        )
        self.audit = AuditTrail(self.store, lambda: self.operator, clock)
        self.lifecycle = SessionLifecycleManager(
            self.store,
            self.validator,
            self.pricing,
            self.broadcaster,
            self.audit,
            clock=clock,
            currency=settings.CURRENCY,
        )
        self.records = VenueRecords(
            self.store,
            self.broadcaster,
            self.audit,
            clock=clock,
            currency=settings.CURRENCY,
        )
        self.started = False

    async def start(self):
        """Load state, join the channel and restore the stored operator"""
        if self.started:
            return
        self.store.load()
        await self.broadcaster.start()
        if self.change_feed is not None:
            self.broadcaster.watch(self.change_feed, "sessions")

        stored = self.store.load_operator()
        if stored is not None:
            self.operator = stored
            await self.broadcaster.announce(stored)

        self.started = True
        logger.info("Terminal started", terminal=self.settings.TERMINAL_ID)

    async def stop(self):
        """Leave the channel and wait for pending flushes"""
        if not self.started:
            return
        await self.broadcaster.stop()
        await self.store.drain()
        self.store.close()
        self.started = False
        logger.info("Terminal stopped", terminal=self.settings.TERMINAL_ID)

    async def drain(self):
        await self.broadcaster.drain()
        await self.store.drain()

    async def login(self, operator: Operator):
        self.operator = operator
        self.store.save_operator(operator)
        self.audit.record(
            ActivityType.USER_LOGIN,
            "User Login",
            f"User {operator.username} ({operator.role.value}) logged in",
        )
        await self.broadcaster.announce(operator)

    async def logout(self):
        if self.operator is None:
            return
        operator = self.operator
        self.audit.record(
            ActivityType.USER_LOGOUT,
            "User Logout",
            f"User {operator.username} ({operator.role.value}) logged out",
        )
        await self.broadcaster.leave()
        self.operator = None
        self.store.save_operator(None)


def build_context(
    settings: Optional[Settings] = None,
    clock: Clock = utcnow,
    change_feed: Optional[ChangeFeed] = None,
) -> TerminalContext:
    """Build a terminal context with the backends named in settings"""
    settings = settings or get_settings()

    if settings.SNAPSHOT_BACKEND == "sql":
        snapshots: SnapshotStore = SQLSnapshotStore(settings.SNAPSHOT_DATABASE_URL)
    else:
        snapshots = InMemorySnapshotStore()

    if settings.REPLICATION_BACKEND == "redis":
        channel: BroadcastChannel = RedisChannel(settings.REPLICATION_CHANNEL, settings.REDIS_URL)
    else:
        channel = _local_hub.channel(settings.REPLICATION_CHANNEL)

    return TerminalContext(settings, snapshots, channel, clock=clock, change_feed=change_feed)
