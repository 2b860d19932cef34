"""
Session persistence and reconnection for online rooms.

A participant that creates or joins a room remembers {code, seat_id} in a
small local JSON file. After a restart or dropped connection the session
is read back and the participant is rebuilt from the room record alone:
the lobby roster if the room is WAITING, otherwise the latest snapshot.
History is never replayed.

Usage:
    sessions = SessionService(room_store, pubsub, SessionStore(path))
    result = await sessions.reconnect()
    if result.success:
        participant = result.participant
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from errors import SeatInUse, SessionInvalid
from room import RoomStatus
from services.replication import Participant
from stores.pubsub import GamePubSub
from stores.room_store import RoomStore
from constants import HOST_SEAT_ID

logger = logging.getLogger(__name__)


@dataclass
class Session:
    code: str
    seat_id: int

    def to_dict(self) -> dict:
        return {"code": self.code, "seat_id": self.seat_id}


class SessionStore:
    """One saved session in a local JSON file."""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> Optional[Session]:
        """Read the saved session, or None if absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
            return Session(code=str(data["code"]), seat_id=int(data["seat_id"]))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")
            return None

    def save(self, code: str, seat_id: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(Session(code, seat_id).to_dict()))
        logger.debug(f"Saved session {code}/{seat_id}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.debug("Cleared saved session")


@dataclass
class ReconnectResult:
    """Result of a reconnection attempt."""

    success: bool
    room_code: Optional[str] = None
    seat_id: Optional[int] = None
    status: Optional[RoomStatus] = None
    participant: Optional[Participant] = None
    error: Optional[str] = None


class SessionService:
    """
    Creates, joins and restores online participants.

    Works with the room store (shared record) and the session store
    (local file) so the three entry points stay consistent.

    A process holds at most one participant at a time: every participant
    shares the process pub/sub sender id and the single session file.
    """

    def __init__(
        self,
        room_store: RoomStore,
        pubsub: GamePubSub,
        session_store: SessionStore,
        think_seconds: Optional[float] = None,
    ):
        """
        Initialize session service.

        Args:
            room_store: Shared room records.
            pubsub: Room channel transport for new participants.
            session_store: Local saved session.
            think_seconds: Bot delay used by hosted participants.
        """
        self.room_store = room_store
        self.pubsub = pubsub
        self.session_store = session_store
        self.think_seconds = think_seconds
        self.participant: Optional[Participant] = None

    def _check_vacant(self) -> None:
        if self.participant is not None:
            raise SeatInUse(self.participant.room_code)

    async def create_room(self, host_name: str) -> Participant:
        """Create a room as host and remember the session."""
        self._check_vacant()
        record, token = await self.room_store.create_room(host_name)
        participant = Participant(
            self.room_store, self.pubsub, record, HOST_SEAT_ID,
            writer_token=token, think_seconds=self.think_seconds,
        )
        await participant.attach()
        self.session_store.save(record.code, HOST_SEAT_ID)
        self.participant = participant
        return participant

    async def join_room(self, room_code: str, player_name: str) -> Participant:
        """
        Join an existing lobby and remember the session.

        Raises:
            RoomNotFound, RoomAlreadyStarted, RoomFull: Join rejected.
        """
        self._check_vacant()
        record, seat_id = await self.room_store.join_room(room_code, player_name)
        participant = Participant(
            self.room_store, self.pubsub, record, seat_id,
            think_seconds=self.think_seconds,
        )
        await participant.attach()
        self.session_store.save(record.code, seat_id)
        self.participant = participant
        return participant

    async def reconnect(self) -> ReconnectResult:
        """
        Restore the saved session.

        Returns:
            ReconnectResult; on a missing room the session is cleared and
            the error is SESSION_INVALID.

        Raises:
            SeatInUse: This process already holds a participant.
        """
        self._check_vacant()
        session = self.session_store.load()
        if session is None:
            return ReconnectResult(success=False, error="no_session")

        record = await self.room_store.get_room(session.code)
        if record is None:
            self.session_store.clear()
            invalid = SessionInvalid(session.code)
            logger.info(invalid.message)
            return ReconnectResult(
                success=False,
                room_code=session.code,
                seat_id=session.seat_id,
                error=invalid.code,
            )

        token = None
        if session.seat_id == HOST_SEAT_ID:
            token = await self.room_store.issue_writer_token(record.code)

        participant = Participant(
            self.room_store, self.pubsub, record, session.seat_id,
            writer_token=token, think_seconds=self.think_seconds,
        )
        await participant.attach()
        self.participant = participant
        logger.info(
            f"Reconnected seat {session.seat_id} to room {record.code} "
            f"({record.status.value})"
        )
        return ReconnectResult(
            success=True,
            room_code=record.code,
            seat_id=session.seat_id,
            status=record.status,
            participant=participant,
        )

    async def release(self, participant: Optional[Participant]) -> None:
        """Drop the channel but keep the saved session for a later reconnect."""
        try:
            if participant is not None:
                await participant.detach()
        finally:
            if self.participant is participant:
                self.participant = None

    async def leave(self, participant: Optional[Participant]) -> None:
        """Explicit exit: drop the channel and forget the session."""
        self.session_store.clear()
        await self.release(participant)
