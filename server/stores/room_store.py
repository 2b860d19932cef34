"""
Redis-backed shared room records.

Each online room is a single JSON document holding the lobby roster, the
derived status and the latest full game snapshot. The host participant is
the only writer of snapshots; it proves this with a WriterToken issued
when the room is created.

Key patterns:
- tristack:room:{room_code}         -> JSON (room record)
- tristack:room:{room_code}:writer  -> String (writer token)
- tristack:rooms:active             -> Set (active room codes)

Every write is followed by a ROOM_UPDATED publish carrying the whole
record, so subscribers never need to merge.
"""

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis

from constants import BOT_NAMES, HOST_SEAT_ID, MAX_PLAYERS
from errors import NotWriter, RoomNotFound
from room import RoomRecord, generate_room_code
from stores.pubsub import GamePubSub, MessageType, PubSubMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriterToken:
    """Capability to push authoritative snapshots for one room."""

    room_code: str
    value: str


class RoomStore:
    """Redis-backed room records."""

    # Key patterns
    ROOM_KEY = "tristack:room:{room_code}"
    WRITER_KEY = "tristack:room:{room_code}:writer"
    ACTIVE_ROOMS_KEY = "tristack:rooms:active"

    ROOM_TTL = timedelta(hours=24)

    def __init__(
        self,
        redis_client: redis.Redis,
        pubsub: Optional[GamePubSub] = None,
        capacity: int = MAX_PLAYERS,
    ):
        """
        Initialize room store with Redis client.

        Args:
            redis_client: Async Redis client.
            pubsub: Pub/sub used to broadcast record changes.
            capacity: Maximum players per room.
        """
        self.redis = redis_client
        self.pubsub = pubsub
        self.capacity = capacity

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _ttl(self) -> int:
        return int(self.ROOM_TTL.total_seconds())

    async def _save(self, record: RoomRecord) -> None:
        pipe = self.redis.pipeline()
        pipe.set(
            self.ROOM_KEY.format(room_code=record.code),
            json.dumps(record.to_dict()),
            ex=self._ttl(),
        )
        pipe.expire(self.WRITER_KEY.format(room_code=record.code), self._ttl())
        await pipe.execute()

    async def _broadcast(self, record: RoomRecord) -> None:
        if self.pubsub is None:
            return
        await self.pubsub.publish(PubSubMessage(
            type=MessageType.ROOM_UPDATED,
            room_code=record.code,
            data={"room": record.to_dict()},
        ))

    async def _check_writer(self, token: WriterToken) -> None:
        stored = await self.redis.get(self.WRITER_KEY.format(room_code=token.room_code))
        if isinstance(stored, bytes):
            stored = stored.decode()
        if stored is None or not secrets.compare_digest(stored, token.value):
            raise NotWriter(token.room_code)

    # -------------------------------------------------------------------------
    # Room Operations
    # -------------------------------------------------------------------------

    async def get_room(self, room_code: str) -> Optional[RoomRecord]:
        """
        Fetch a room record.

        Args:
            room_code: Room code to look up.

        Returns:
            RoomRecord, or None if not found.
        """
        data = await self.redis.get(self.ROOM_KEY.format(room_code=room_code.upper()))
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode()
        return RoomRecord.from_dict(json.loads(data))

    async def get_active_rooms(self) -> set[str]:
        rooms = await self.redis.smembers(self.ACTIVE_ROOMS_KEY)
        return {r.decode() if isinstance(r, bytes) else r for r in rooms}

    async def create_room(self, host_name: str) -> tuple[RoomRecord, WriterToken]:
        """
        Create a room with the caller as host (seat 0).

        Args:
            host_name: Host display name.

        Returns:
            The new record and the writer token for it.
        """
        code = generate_room_code(await self.get_active_rooms())
        record = RoomRecord(
            code=code,
            host_id=HOST_SEAT_ID,
            players=[{"id": HOST_SEAT_ID, "name": host_name}],
        )
        token = WriterToken(room_code=code, value=secrets.token_hex(16))

        pipe = self.redis.pipeline()
        pipe.set(
            self.ROOM_KEY.format(room_code=code),
            json.dumps(record.to_dict()),
            ex=self._ttl(),
        )
        pipe.set(self.WRITER_KEY.format(room_code=code), token.value, ex=self._ttl())
        pipe.sadd(self.ACTIVE_ROOMS_KEY, code)
        await pipe.execute()

        logger.info(f"Created room {code} hosted by {host_name}")
        return record, token

    async def issue_writer_token(self, room_code: str) -> WriterToken:
        """Re-issue the writer token, e.g. when the host reconnects."""
        token = WriterToken(room_code=room_code, value=secrets.token_hex(16))
        await self.redis.set(
            self.WRITER_KEY.format(room_code=room_code),
            token.value,
            ex=self._ttl(),
        )
        return token

    async def join_room(self, room_code: str, player_name: str) -> tuple[RoomRecord, int]:
        """
        Add a player to a room lobby.

        Read-modify-write; two simultaneous joins may race.

        Args:
            room_code: Room to join (case-insensitive).
            player_name: Joining player's display name.

        Returns:
            The updated record and the new seat id.

        Raises:
            RoomNotFound: No such room.
            RoomAlreadyStarted: Room is not WAITING.
            RoomFull: Room is at capacity.
        """
        record = await self.get_room(room_code)
        if record is None:
            raise RoomNotFound(room_code.upper())

        seat_id = record.add_player(player_name, self.capacity)
        await self._save(record)
        await self._broadcast(record)
        logger.info(f"{player_name} joined room {record.code} as seat {seat_id}")
        return record, seat_id

    async def add_bot(self, token: WriterToken, name: Optional[str] = None) -> tuple[RoomRecord, int]:
        """
        Seat a bot in the lobby (host only).

        Returns:
            The updated record and the bot's seat id.

        Raises:
            NotWriter, RoomNotFound, RoomAlreadyStarted, RoomFull
        """
        await self._check_writer(token)
        record = await self.get_room(token.room_code)
        if record is None:
            raise RoomNotFound(token.room_code)

        if name is None:
            bots = sum(1 for p in record.players if p.get("is_bot"))
            name = BOT_NAMES[bots % len(BOT_NAMES)]
        seat_id = record.add_player(name, self.capacity, is_bot=True)
        await self._save(record)
        await self._broadcast(record)
        logger.info(f"{name} added to room {record.code} as seat {seat_id}")
        return record, seat_id

    async def push_snapshot(self, token: WriterToken, game_state: dict) -> RoomRecord:
        """
        Overwrite the room's snapshot with a full new one.

        Status is derived from the snapshot phase.

        Args:
            token: The room's writer token.
            game_state: Full snapshot dict.

        Returns:
            The updated record.

        Raises:
            NotWriter: Token does not match the room's writer.
            RoomNotFound: Room vanished.
        """
        await self._check_writer(token)
        record = await self.get_room(token.room_code)
        if record is None:
            raise RoomNotFound(token.room_code)

        record.set_game_state(game_state)
        await self._save(record)
        await self._broadcast(record)
        logger.debug(f"Pushed snapshot to {record.code} (status={record.status.value})")
        return record

    async def reset_room_to_lobby(self, token: WriterToken) -> RoomRecord:
        """Clear the snapshot so the room returns to WAITING."""
        await self._check_writer(token)
        record = await self.get_room(token.room_code)
        if record is None:
            raise RoomNotFound(token.room_code)

        record.set_game_state(None)
        await self._save(record)
        await self._broadcast(record)
        logger.info(f"Room {record.code} returned to lobby")
        return record

    async def delete_room(self, token: WriterToken) -> None:
        """Delete a room and tell subscribers it is gone."""
        await self._check_writer(token)
        code = token.room_code

        pipe = self.redis.pipeline()
        pipe.delete(self.ROOM_KEY.format(room_code=code))
        pipe.delete(self.WRITER_KEY.format(room_code=code))
        pipe.srem(self.ACTIVE_ROOMS_KEY, code)
        await pipe.execute()

        if self.pubsub is not None:
            await self.pubsub.publish(PubSubMessage(
                type=MessageType.ROOM_CLOSED,
                room_code=code,
                data={},
            ))
        logger.info(f"Deleted room {code}")

