"""Stores package for Tri-Stack shared room state."""

from .room_store import RoomStore, WriterToken
from .pubsub import GamePubSub, PubSubMessage, MessageType

__all__ = [
    # Room store
    "RoomStore",
    "WriterToken",
    # Pub/sub
    "GamePubSub",
    "PubSubMessage",
    "MessageType",
]
