"""
Replication events

Every local mutation is published as one event on the shared channel. Events
form a closed union discriminated by topic; each topic carries its own entity
type. Applied events (local or remote) are also fanned out on an in-process
EventBus so screens can refresh.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Literal, Optional, Union
import uuid

from pydantic import BaseModel, Field, TypeAdapter, model_validator
import structlog

from gamehall.models import Customer, Game, Payment, Reservation, Table, TableSession

logger = structlog.get_logger(__name__)


class Topic(str, Enum):
    """Broadcast topics on the replication channel"""
    SESSION = "session:update"
    CUSTOMER = "customer:update"
    GAME = "game:update"
    PAYMENT = "payment:update"
    TABLE = "table:update"
    RESERVATION = "reservation:update"
    ANALYTICS = "analytics:update"      # Only consumed by owner terminals


class EventAction(str, Enum):
    ADD = "add"
    UPDATE = "update"
    END = "end"
    DELETE = "delete"


class ReplicationEvent(BaseModel):
    """Envelope shared by every topic"""

    action: EventAction
    entity_id: Optional[str] = None
    updates: Optional[Dict[str, Any]] = None
    origin: Optional[str] = Field(default=None, description="Terminal that produced the event")
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def _check_shape(self):
        entity = getattr(self, "entity", None)
        if self.action == EventAction.ADD:
            if entity is None:
                raise ValueError("add events must carry the entity")
            entity_id = entity.get("id") if isinstance(entity, dict) else getattr(entity, "id", None)
            if self.entity_id is None:
                self.entity_id = entity_id
        elif not self.entity_id:
            raise ValueError(f"{self.action.value} events must carry entity_id")
        return self

    def to_message(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


class SessionEvent(ReplicationEvent):
    topic: Literal["session:update"] = "session:update"
    entity: Optional[TableSession] = None


class CustomerEvent(ReplicationEvent):
    topic: Literal["customer:update"] = "customer:update"
    entity: Optional[Customer] = None


class GameEvent(ReplicationEvent):
    topic: Literal["game:update"] = "game:update"
    entity: Optional[Game] = None


class PaymentEvent(ReplicationEvent):
    topic: Literal["payment:update"] = "payment:update"
    entity: Optional[Payment] = None


class TableEvent(ReplicationEvent):
    topic: Literal["table:update"] = "table:update"
    entity: Optional[Table] = None


class ReservationEvent(ReplicationEvent):
    topic: Literal["reservation:update"] = "reservation:update"
    entity: Optional[Reservation] = None


class AnalyticsEvent(ReplicationEvent):
    topic: Literal["analytics:update"] = "analytics:update"
    entity: Optional[Dict[str, Any]] = None


AnyEvent = Annotated[
    Union[
        SessionEvent,
        CustomerEvent,
        GameEvent,
        PaymentEvent,
        TableEvent,
        ReservationEvent,
        AnalyticsEvent,
    ],
    Field(discriminator="topic"),
]

_event_adapter = TypeAdapter(AnyEvent)

EVENT_TYPES: Dict[Topic, type] = {
    Topic.SESSION: SessionEvent,
    Topic.CUSTOMER: CustomerEvent,
    Topic.GAME: GameEvent,
    Topic.PAYMENT: PaymentEvent,
    Topic.TABLE: TableEvent,
    Topic.RESERVATION: ReservationEvent,
    Topic.ANALYTICS: AnalyticsEvent,
}


def parse_event(message: Dict[str, Any]) -> ReplicationEvent:
    """Validate a raw channel payload into its topic's event type.

    Raises pydantic.ValidationError for unknown topics or malformed bodies.
    """
    return _event_adapter.validate_python(message)


def make_event(topic: Topic, action: EventAction, **fields: Any) -> ReplicationEvent:
    return EVENT_TYPES[topic](action=action, **fields)


class PresenceState(str, Enum):
    JOIN = "join"
    LEAVE = "leave"


class Presence(BaseModel):
    """Lightweight operator presence advertised on the channel"""
    operator_id: str
    role: str
    terminal_id: str
    state: PresenceState = PresenceState.JOIN


EventHandler = Callable[[ReplicationEvent], Awaitable[None]]


class EventBus:
    """Simple in-memory event bus for events applied to local state"""

    def __init__(self):
        self._subscribers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, topic: str, handler: EventHandler):
        """Subscribe to a topic, or "*" for every topic"""
        if topic not in self._subscribers:
            self._subscribers[topic] = []
        self._subscribers[topic].append(handler)
        logger.debug(f"Subscribed handler to topic: {topic}")

    def unsubscribe(self, topic: str, handler: EventHandler):
        """Unsubscribe from a topic"""
        if topic in self._subscribers and handler in self._subscribers[topic]:
            self._subscribers[topic].remove(handler)
            logger.debug(f"Unsubscribed handler from topic: {topic}")

    async def publish(self, event: ReplicationEvent):
        """Publish an applied event to all subscribers"""
        handlers = self._subscribers.get(event.topic, []) + self._subscribers.get("*", [])

        if not handlers:
            logger.debug(f"No subscribers for topic: {event.topic}")
            return

        for handler in handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.topic}: {e}", exc_info=True)
