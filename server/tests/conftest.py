"""
Shared fixtures for the Redis-backed tests.

FakeRedis keeps keys, sets and pub/sub channels in memory. Published
messages queue up on each subscribed connection until drain() hands them
to the owning GamePubSub, so tests control exactly when participants
observe each other.
"""

from collections import deque

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from services.session_service import SessionService, SessionStore
from stores.pubsub import GamePubSub
from stores.room_store import RoomStore


class FakePubSubConnection:
    """Stands in for redis.asyncio.client.PubSub."""

    def __init__(self, server: "FakeRedis"):
        self.server = server
        self.channels: set[str] = set()
        self.inbox: deque = deque()

    async def subscribe(self, *channels):
        self.channels.update(channels)

    async def unsubscribe(self, *channels):
        self.channels.difference_update(channels)

    async def get_message(self, ignore_subscribe_messages=False, timeout=0.0):
        if self.inbox:
            return self.inbox.popleft()
        return None

    async def close(self):
        self.channels.clear()


class FakePipeline:
    """Records commands and applies them on execute()."""

    def __init__(self, server: "FakeRedis"):
        self.server = server
        self.ops: list[tuple] = []

    def set(self, key, value, ex=None):
        self.ops.append(("set", key, value, ex))
        return self

    def expire(self, key, seconds):
        self.ops.append(("expire", key, seconds))
        return self

    def sadd(self, key, *values):
        self.ops.append(("sadd", key, *values))
        return self

    def srem(self, key, *values):
        self.ops.append(("srem", key, *values))
        return self

    def delete(self, *keys):
        self.ops.append(("delete", *keys))
        return self

    async def execute(self):
        self.server._check_available()
        results = []
        for name, *args in self.ops:
            results.append(await getattr(self.server, name)(*args))
        self.ops = []
        return results


class FakeRedis:
    """In-memory subset of the redis.asyncio.Redis API used by the stores."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.sets: dict[str, set] = {}
        self.ttls: dict[str, int] = {}
        self.connections: list[FakePubSubConnection] = []
        self.published: list[tuple[str, str]] = []
        self.available = True

    def _check_available(self):
        if not self.available:
            raise RedisConnectionError("Connection refused")

    async def ping(self):
        self._check_available()
        return True

    async def close(self):
        pass

    async def set(self, key, value, ex=None):
        self._check_available()
        self.data[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    async def get(self, key):
        self._check_available()
        return self.data.get(key)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            if self.sets.pop(key, None) is not None:
                removed += 1
        return removed

    async def expire(self, key, seconds):
        if key in self.data:
            self.ttls[key] = seconds
            return True
        return False

    async def sadd(self, key, *values):
        self.sets.setdefault(key, set()).update(values)
        return len(values)

    async def srem(self, key, *values):
        members = self.sets.get(key, set())
        for value in values:
            members.discard(value)
        return len(values)

    async def smembers(self, key):
        self._check_available()
        return set(self.sets.get(key, set()))

    async def scard(self, key):
        return len(self.sets.get(key, set()))

    def pipeline(self):
        return FakePipeline(self)

    def pubsub(self):
        conn = FakePubSubConnection(self)
        self.connections.append(conn)
        return conn

    async def publish(self, channel, payload):
        self._check_available()
        self.published.append((channel, payload))
        receivers = 0
        for conn in self.connections:
            if channel in conn.channels:
                conn.inbox.append({"type": "message", "channel": channel, "data": payload})
                receivers += 1
        return receivers


async def drain(*pubsubs):
    """Deliver queued messages to each GamePubSub until every inbox is empty."""
    delivered = 0
    progressed = True
    while progressed:
        progressed = False
        for ps in pubsubs:
            message = await ps.pubsub.get_message(ignore_subscribe_messages=True)
            if message is not None:
                await ps._handle_message(message)
                delivered += 1
                progressed = True
    return delivered


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def deliver():
    return drain


class Peer:
    """One running app instance: its own pub/sub sender, store and saved session."""

    def __init__(self, redis_client: FakeRedis, name: str, session_path):
        self.name = name
        self.pubsub = GamePubSub(redis_client, sender_id=name)
        self.store = RoomStore(redis_client, self.pubsub)
        self.session_store = SessionStore(str(session_path))
        self.sessions = SessionService(self.store, self.pubsub, self.session_store, think_seconds=0)


@pytest.fixture
def make_peer(fake_redis, tmp_path):
    def _make(name: str) -> Peer:
        return Peer(fake_redis, name, tmp_path / name / "session.json")
    return _make
