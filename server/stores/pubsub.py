"""
Redis pub/sub for room synchronization.

Every participant of an online room subscribes to the room's channel.
The host publishes the full room record after each accepted action;
clients publish the actions they want the host to apply.

This module provides:
- One pub/sub channel per room
- Message types for record broadcasts and forwarded actions
- Async listener loop dispatching incoming messages to handlers

Usage:
    pubsub = GamePubSub(redis_client, sender_id="participant-1")
    await pubsub.start()

    async def handle_message(msg: PubSubMessage):
        print(f"Received: {msg.type} for room {msg.room_code}")

    await pubsub.subscribe("AB3K", handle_message)

    await pubsub.publish(PubSubMessage(
        type=MessageType.ACTION_SUBMITTED,
        room_code="AB3K",
        data={"action": {...}},
    ))

    await pubsub.stop()
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Awaitable, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """Types of messages that can be published via pub/sub."""

    # Room record changed; data carries the whole record
    ROOM_UPDATED = "room_updated"

    # Client action forwarded to the host for authoritative application
    ACTION_SUBMITTED = "action_submitted"

    # Room deleted by the host
    ROOM_CLOSED = "room_closed"


@dataclass
class PubSubMessage:
    """
    Message sent via Redis pub/sub.

    Attributes:
        type: Message type (determines how handlers process it).
        room_code: Room this message is for.
        data: Message payload (type-specific).
        sender_id: Participant that published it (to avoid echo).
    """

    type: MessageType
    room_code: str
    data: dict
    sender_id: Optional[str] = None

    def to_json(self) -> str:
        """Serialize to JSON for Redis."""
        return json.dumps({
            "type": self.type.value,
            "room_code": self.room_code,
            "data": self.data,
            "sender_id": self.sender_id,
        })

    @classmethod
    def from_json(cls, raw: str) -> "PubSubMessage":
        """Deserialize from JSON."""
        d = json.loads(raw)
        return cls(
            type=MessageType(d["type"]),
            room_code=d["room_code"],
            data=d.get("data", {}),
            sender_id=d.get("sender_id"),
        )


# Type alias for message handlers
MessageHandler = Callable[[PubSubMessage], Awaitable[None]]


class GamePubSub:
    """
    Redis pub/sub for room synchronization.

    Manages subscriptions to room channels and dispatches incoming
    messages to registered handlers.
    """

    CHANNEL_PREFIX = "tristack:channel:"

    def __init__(
        self,
        redis_client: redis.Redis,
        sender_id: str = "default",
    ):
        """
        Initialize pub/sub with Redis client.

        Args:
            redis_client: Async Redis client.
            sender_id: Unique ID for this participant.
        """
        self.redis = redis_client
        self.sender_id = sender_id
        self.pubsub = redis_client.pubsub()
        self._handlers: dict[str, list[MessageHandler]] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None

    def _channel(self, room_code: str) -> str:
        """Get Redis channel name for a room."""
        return f"{self.CHANNEL_PREFIX}{room_code}"

    async def subscribe(
        self,
        room_code: str,
        handler: MessageHandler,
    ) -> None:
        """
        Subscribe to room messages.

        Args:
            room_code: Room to subscribe to.
            handler: Async function to call on each message.
        """
        channel = self._channel(room_code)
        if channel not in self._handlers:
            self._handlers[channel] = []
            await self.pubsub.subscribe(channel)
            logger.debug(f"Subscribed to channel {channel}")
        self._handlers[channel].append(handler)

    async def unsubscribe(self, room_code: str) -> None:
        """
        Unsubscribe from room messages.

        Args:
            room_code: Room to unsubscribe from.
        """
        channel = self._channel(room_code)
        if channel in self._handlers:
            del self._handlers[channel]
            await self.pubsub.unsubscribe(channel)
            logger.debug(f"Unsubscribed from channel {channel}")

    async def publish(self, message: PubSubMessage) -> int:
        """
        Publish a message to a room's channel.

        Args:
            message: Message to publish.

        Returns:
            Number of subscribers that received the message.
        """
        message.sender_id = self.sender_id
        channel = self._channel(message.room_code)
        count = await self.redis.publish(channel, message.to_json())
        logger.debug(f"Published {message.type.value} to {channel} ({count} receivers)")
        return count

    async def start(self) -> None:
        """Start listening for messages."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._listen())
        logger.info("GamePubSub listener started")

    async def stop(self) -> None:
        """Stop listening and clean up."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self.pubsub.close()
        self._handlers.clear()
        logger.info("GamePubSub listener stopped")

    async def _listen(self) -> None:
        """Main listener loop."""
        while self._running:
            try:
                message = await self.pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=1.0,
                )
                if message and message["type"] == "message":
                    await self._handle_message(message)

            except asyncio.CancelledError:
                break
            except redis.ConnectionError as e:
                logger.error(f"PubSub connection error: {e}")
                await asyncio.sleep(1)
            except Exception as e:
                logger.error(f"PubSub listener error: {e}", exc_info=True)
                await asyncio.sleep(1)

    async def _handle_message(self, raw_message: dict) -> None:
        """Decode an incoming Redis message and dispatch it."""
        try:
            channel = raw_message["channel"]
            if isinstance(channel, bytes):
                channel = channel.decode()

            data = raw_message["data"]
            if isinstance(data, bytes):
                data = data.decode()

            msg = PubSubMessage.from_json(data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning(f"Invalid pubsub message: {e}")
            return

        await self.dispatch(channel, msg)

    async def dispatch(self, channel: str, msg: PubSubMessage) -> None:
        """Run every handler registered for channel, skipping our own messages."""
        if msg.sender_id == self.sender_id:
            return

        for handler in list(self._handlers.get(channel, [])):
            try:
                await handler(msg)
            except Exception as e:
                logger.error(f"Error in pubsub handler: {e}", exc_info=True)
