"""
Host-authoritative synchronization for online rooms.

Each running process attached to an online room owns one Participant.
The participant holding the room's WriterToken (seat 0, the host) is the
single writer: it applies every action through the reducer and pushes
the resulting full snapshot to the room record. Other participants apply
their own actions optimistically and forward them to the host over the
room channel; whatever snapshot the host broadcasts next replaces their
local state outright.

Usage:
    participant = Participant(store, pubsub, room, seat_id=0, writer_token=token)
    await participant.attach()
    await participant.start_match(total_rounds=5)
    await participant.submit(Action(ActionType.SHOW, seat_id=0))
"""

import asyncio
from typing import Awaitable, Callable, Optional

import redis.asyncio as redis

from ai import is_bot_turn, process_cpu_turn
from errors import IllegalAction, NotWriter, ReplicationFailure, RoomNotFound
import errors
from game import Action, Game, GameMode, GameState, Player, mode_for_seat
from logging_config import get_logger
from room import RoomRecord
from stores.pubsub import GamePubSub, MessageType, PubSubMessage
from stores.room_store import RoomStore, WriterToken

logger = get_logger(__name__)

ChangeCallback = Callable[["Participant"], Awaitable[None]]


class Participant:
    """
    One process's seat in an online room.

    Attributes:
        store: Shared room record store.
        pubsub: Room channel transport.
        room: Last room record observed.
        seat_id: Seat this participant controls.
        writer_token: Present only on the host.
        game: Local engine holding the last observed snapshot.
        notices: Replication failures not yet shown to the player.
        closed: True once the host deleted the room.
    """

    def __init__(
        self,
        store: RoomStore,
        pubsub: GamePubSub,
        room: RoomRecord,
        seat_id: int,
        writer_token: Optional[WriterToken] = None,
        think_seconds: Optional[float] = None,
    ):
        self.store = store
        self.pubsub = pubsub
        self.room = room
        self.seat_id = seat_id
        self.writer_token = writer_token
        self.think_seconds = think_seconds
        self.game = Game(local_seat_id=seat_id)
        self.notices: list[ReplicationFailure] = []
        self.closed = False
        self._lock = asyncio.Lock()
        self._on_change: Optional[ChangeCallback] = None
        self.log = logger.with_context(room_code=room.code, seat_id=seat_id)

    @property
    def room_code(self) -> str:
        return self.room.code

    @property
    def is_writer(self) -> bool:
        return self.writer_token is not None

    @property
    def mode(self) -> GameMode:
        return mode_for_seat(self.seat_id)

    def set_change_callback(self, callback: Optional[ChangeCallback]) -> None:
        """Register an async callback run after every local or remote change."""
        self._on_change = callback

    async def _notify(self) -> None:
        if self._on_change is not None:
            await self._on_change(self)

    # -------------------------------------------------------------------------
    # Channel membership
    # -------------------------------------------------------------------------

    async def attach(self) -> None:
        """Subscribe to the room channel and adopt the current record."""
        await self.pubsub.subscribe(self.room_code, self.handle_message)
        self.apply_room(self.room)
        self.log.info(
            f"Seat {self.seat_id} attached to room {self.room_code} "
            f"as {self.mode.value}"
        )

    async def detach(self) -> None:
        await self.pubsub.unsubscribe(self.room_code)

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    def apply_room(self, record: RoomRecord) -> None:
        """
        Adopt a room record wholesale.

        Replaces the local snapshot without merging; applying the same
        record twice leaves the participant unchanged. The local mode is
        re-derived from this participant's seat.
        """
        self.room = record
        if record.game_state:
            state = self.game.load_snapshot(record.game_state)
            state.mode = self.mode
        else:
            self.game.clear()

    async def handle_message(self, msg: PubSubMessage) -> None:
        """Dispatch one message from the room channel."""
        if msg.type == MessageType.ROOM_UPDATED:
            self.apply_room(RoomRecord.from_dict(msg.data["room"]))
            await self._notify()
        elif msg.type == MessageType.ACTION_SUBMITTED:
            if self.is_writer:
                await self.apply_forwarded(Action.from_dict(msg.data["action"]))
        elif msg.type == MessageType.ROOM_CLOSED:
            self.closed = True
            self.game.clear()
            await self._notify()

    async def apply_forwarded(self, action: Action) -> None:
        """
        Apply a client's action on the host.

        Whether or not the action is legal the current authoritative
        snapshot is pushed, so the sender's optimistic state converges.
        """
        async with self._lock:
            try:
                self.game.submit(action, enforce_local_seat=False)
            except IllegalAction as e:
                self.log.info(f"Rejected action from seat {action.seat_id} in {self.room_code}: {e}")
            if self.game.state is not None:
                await self._push(self.game.state)
        await self._notify()
        await self.run_bots()

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def submit(self, action: Action) -> GameState:
        """
        Submit this participant's own action.

        Applied locally first; the host then pushes the snapshot while a
        client forwards the action to the host.

        Raises:
            IllegalAction: The action is not legal locally.
        """
        async with self._lock:
            new_state = self.game.submit(action)
            if self.is_writer:
                await self._push(new_state)
            else:
                await self._forward(action)
        await self._notify()
        if self.is_writer:
            await self.run_bots()
        return new_state

    async def start_match(self, total_rounds: int) -> GameState:
        """Deal round 1 for the lobby roster (host only)."""
        self._require_writer()
        latest = await self.store.get_room(self.room_code)
        if latest is not None:
            self.room = latest
        players = [
            Player(id=p["id"], name=p["name"], is_bot=p.get("is_bot", False))
            for p in self.room.players
        ]
        async with self._lock:
            state = self.game.start_match(players, total_rounds, GameMode.ONLINE_HOST)
            await self._push(state)
        await self._notify()
        return state

    async def add_bot(self) -> int:
        """Seat a bot in the lobby (host only). Returns its seat id."""
        self._require_writer()
        async with self._lock:
            self.room, seat_id = await self.store.add_bot(self.writer_token)
        await self._notify()
        return seat_id

    async def return_to_lobby(self) -> None:
        """Clear the snapshot so the room accepts joins again (host only)."""
        self._require_writer()
        async with self._lock:
            try:
                self.room = await self.store.reset_room_to_lobby(self.writer_token)
            except (redis.RedisError, RoomNotFound) as e:
                self._record_failure(str(e))
            self.game.clear()
        await self._notify()

    async def close_room(self) -> None:
        """Delete the room for everyone (host only)."""
        self._require_writer()
        await self.store.delete_room(self.writer_token)
        self.closed = True
        self.game.clear()

    async def run_bots(self) -> None:
        """Play out consecutive bot seats; only the host drives bots."""
        if not self.is_writer:
            return
        while is_bot_turn(self.game):
            async with self._lock:
                await process_cpu_turn(self.game, think_seconds=self.think_seconds)
                await self._push(self.game.state)
            await self._notify()

    def _require_writer(self) -> None:
        if not self.is_writer:
            raise IllegalAction(errors.HOST_ONLY, "Only the host can do that")

    async def _push(self, state: GameState) -> None:
        try:
            self.room = await self.store.push_snapshot(self.writer_token, state.to_dict())
        except (redis.RedisError, RoomNotFound, NotWriter) as e:
            self._record_failure(str(e))

    async def _forward(self, action: Action) -> None:
        try:
            await self.pubsub.publish(PubSubMessage(
                type=MessageType.ACTION_SUBMITTED,
                room_code=self.room_code,
                data={"action": action.to_dict()},
            ))
        except redis.RedisError as e:
            self._record_failure(str(e))

    def _record_failure(self, reason: str) -> None:
        failure = ReplicationFailure(self.room_code, reason)
        self.log.warning(failure.message)
        self.notices.append(failure)

    def take_notices(self) -> list[ReplicationFailure]:
        """Return and clear pending replication notices."""
        notices, self.notices = self.notices, []
        return notices
