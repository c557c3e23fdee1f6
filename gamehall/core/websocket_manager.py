"""
WebSocket connection manager for staff screens

Every event applied to this terminal's state (local or merged from a peer)
is pushed to the connected screens so they can refresh. Analytics events are
only sent to owner screens.
"""

from typing import Dict, Set
from fastapi import WebSocket
from json import dumps
import structlog

from gamehall.core.events import EventBus, ReplicationEvent, Topic
from gamehall.models import OperatorRole

logger = structlog.get_logger(__name__)


class ConnectionManager:
    """Manages staff screen WebSocket connections"""

    def __init__(self):
        # Active connections by operator ID
        self.operator_connections: Dict[str, Set[WebSocket]] = {}

        # WebSocket to operator mappings (for cleanup and role checks)
        self.connection_to_operator: Dict[WebSocket, str] = {}
        self.connection_roles: Dict[WebSocket, OperatorRole] = {}

    async def connect_operator(self, websocket: WebSocket, operator_id: str, role: OperatorRole):
        """Connect a staff screen for an operator"""
        await websocket.accept()

        if operator_id not in self.operator_connections:
            self.operator_connections[operator_id] = set()

        self.operator_connections[operator_id].add(websocket)
        self.connection_to_operator[websocket] = operator_id
        self.connection_roles[websocket] = role

        logger.info(f"Connected operator {operator_id} WebSocket")
        return f"Connected as operator {operator_id}"

    def disconnect(self, websocket: WebSocket):
        """Disconnect a WebSocket connection"""
        if websocket not in self.connection_to_operator:
            logger.warning("Attempted to disconnect unknown WebSocket")
            return

        operator_id = self.connection_to_operator.pop(websocket)
        self.connection_roles.pop(websocket, None)
        if operator_id in self.operator_connections:
            self.operator_connections[operator_id].discard(websocket)
            if not self.operator_connections[operator_id]:
                del self.operator_connections[operator_id]
        logger.info(f"Disconnected operator {operator_id} WebSocket")

    async def broadcast(self, message: dict, owners_only: bool = False):
        """Send a message to every connected screen"""
        message_json = dumps(message)

        disconnected = []
        sent = 0
        for connection, role in list(self.connection_roles.items()):
            if owners_only and role != OperatorRole.OWNER:
                continue
            try:
                await connection.send_text(message_json)
                sent += 1
            except Exception as e:
                logger.error(f"Error sending to connection: {e}")
                disconnected.append(connection)

        # Clean up dead connections
        for connection in disconnected:
            self.disconnect(connection)

        logger.debug(f"Broadcasted to {sent} screen connections")

    async def send_applied_event(self, event: ReplicationEvent):
        """EventBus handler: forward an applied event to the screens"""
        await self.broadcast(
            {
                "type": event.topic,
                "action": event.action.value,
                "entity_id": event.entity_id,
                "origin": event.origin,
                "payload": event.to_message(),
            },
            owners_only=event.topic == Topic.ANALYTICS.value,
        )

    def attach(self, event_bus: EventBus):
        event_bus.subscribe("*", self.send_applied_event)

    def detach(self, event_bus: EventBus):
        event_bus.unsubscribe("*", self.send_applied_event)

    def get_connection_count(self) -> dict:
        """Get count of active connections"""
        return {
            "operators": len(self.operator_connections),
            "screens": len(self.connection_to_operator),
            "owner_screens": sum(1 for role in self.connection_roles.values() if role == OperatorRole.OWNER),
        }


# Global connection manager instance
manager = ConnectionManager()
