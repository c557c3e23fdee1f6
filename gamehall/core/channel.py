"""
Broadcast channel transports

A channel is a named topic every terminal publishes to and listens on.
Delivery is best effort: no ordering, no acknowledgment, no retry. Messages
are plain JSON-compatible dicts; the replication layer gives them meaning.
"""

import asyncio
from abc import ABC, abstractmethod
from json import dumps, loads
from typing import Any, Awaitable, Callable, Dict, List, Optional

import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class BroadcastChannel(ABC):
    """Interface for the shared replication channel"""

    def __init__(self, name: str):
        self.name = name
        self._handlers: List[MessageHandler] = []

    def subscribe(self, handler: MessageHandler) -> Callable[[], None]:
        """Register a handler for incoming messages; returns an unsubscribe callable"""
        self._handlers.append(handler)

        def unsubscribe():
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def _dispatch(self, raw: str):
        try:
            message = loads(raw)
        except ValueError:
            logger.warning("Dropping undecodable channel message", channel=self.name)
            return

        for handler in list(self._handlers):
            try:
                await handler(message)
            except Exception as e:
                logger.error(f"Error handling channel message: {e}", exc_info=True)

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> None:
        """Send to every other terminal on the channel."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class InMemoryChannelHub:
    """Process-local broadcast hub connecting several terminals"""

    def __init__(self):
        self.members: Dict[str, List["InMemoryChannel"]] = {}
        self.sent: List[Dict[str, Any]] = []

    def channel(self, name: str) -> "InMemoryChannel":
        return InMemoryChannel(name, self)

    def join(self, channel: "InMemoryChannel"):
        self.members.setdefault(channel.name, []).append(channel)

    def leave(self, channel: "InMemoryChannel"):
        members = self.members.get(channel.name, [])
        if channel in members:
            members.remove(channel)

    async def broadcast(self, sender: "InMemoryChannel", message: Dict[str, Any]):
        raw = dumps(message)
        self.sent.append(loads(raw))
        for member in list(self.members.get(sender.name, [])):
            if member is sender:
                continue
            await member._dispatch(raw)


class InMemoryChannel(BroadcastChannel):
    """Channel endpoint attached to an InMemoryChannelHub"""

    def __init__(self, name: str, hub: InMemoryChannelHub):
        super().__init__(name)
        self.hub = hub
        self.connected = False

    async def connect(self) -> None:
        if not self.connected:
            self.hub.join(self)
            self.connected = True
            logger.debug(f"Joined in-memory channel {self.name}")

    async def send(self, message: Dict[str, Any]) -> None:
        if not self.connected:
            raise ConnectionError(f"Channel {self.name} is not connected")
        await self.hub.broadcast(self, message)

    async def close(self) -> None:
        if self.connected:
            self.hub.leave(self)
            self.connected = False


class RedisChannel(BroadcastChannel):
    """Channel carried over Redis pub/sub"""

    def __init__(self, name: str, redis_url: str):
        super().__init__(name)
        self.redis_url = redis_url
        self._client: Optional[redis.Redis] = None
        self._pubsub = None
        self._reader: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = redis.from_url(self.redis_url, decode_responses=True)
        self._pubsub = self._client.pubsub()
        await self._pubsub.subscribe(self.name)
        self._reader = asyncio.create_task(self._read_loop())
        logger.info(f"Subscribed to redis channel {self.name}")

    async def _read_loop(self):
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self._dispatch(message["data"])
        except Exception as e:
            logger.error(f"Redis channel {self.name} reader stopped: {e}", exc_info=True)

    async def send(self, message: Dict[str, Any]) -> None:
        if self._client is None:
            raise ConnectionError(f"Channel {self.name} is not connected")
        await self._client.publish(self.name, dumps(message))

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Redis channel {self.name} reader failed: {e}", exc_info=True)
            self._reader = None
        if self._pubsub is not None:
            await self._pubsub.unsubscribe(self.name)
            await self._pubsub.aclose()
            self._pubsub = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info(f"Left redis channel {self.name}")
