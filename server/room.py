"""
Room records for online Tri-Stack games.

A room is the shared record every participant of an online game reads:
    - A 4-character code for joining
    - The lobby roster ({id, name} per seat, seat 0 is the host)
    - A status derived from the current snapshot
    - The latest full game snapshot (None while in the lobby)

Only the host writes the record; see stores/room_store.py.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from constants import HOST_SEAT_ID, MAX_PLAYERS, ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from errors import RoomAlreadyStarted, RoomFull
from game import GamePhase


class RoomStatus(str, Enum):
    WAITING = "WAITING"
    PLAYING = "PLAYING"
    FINISHED = "FINISHED"


def status_for_state(game_state: Optional[dict]) -> RoomStatus:
    """
    Derive room status from a snapshot dict.

    WAITING with no snapshot, FINISHED at match end, PLAYING otherwise.
    """
    if not game_state:
        return RoomStatus.WAITING
    if game_state.get("phase") == GamePhase.MATCH_END.value:
        return RoomStatus.FINISHED
    return RoomStatus.PLAYING


def generate_room_code(
    existing: Optional[set[str]] = None,
    length: int = ROOM_CODE_LENGTH,
    rng: Optional[random.Random] = None,
    max_attempts: int = 100,
) -> str:
    """Generate a room code not present in existing."""
    rng = rng or random.Random()
    existing = existing or set()
    for _ in range(max_attempts):
        code = "".join(rng.choices(ROOM_CODE_ALPHABET, k=length))
        if code not in existing:
            return code
    raise RuntimeError("Could not generate unique room code")


@dataclass
class RoomRecord:
    """
    The shared record for one online room.

    Attributes:
        code: Room code (e.g., "AB3K").
        host_id: Seat id of the host (always 0).
        players: Lobby roster, one {"id", "name"} dict per seat, plus
            "is_bot": True for seats the host plays automatically.
        status: WAITING, PLAYING or FINISHED.
        game_state: Latest snapshot dict, or None in the lobby.
    """

    code: str
    host_id: int = HOST_SEAT_ID
    players: list[dict] = field(default_factory=list)
    status: RoomStatus = RoomStatus.WAITING
    game_state: Optional[dict] = None

    def add_player(self, name: str, capacity: int = MAX_PLAYERS, is_bot: bool = False) -> int:
        """
        Append a lobby seat.

        Args:
            name: Display name.
            capacity: Maximum seats in the room.
            is_bot: Seat is played by the host's bot policy.

        Returns:
            The new seat id.

        Raises:
            RoomAlreadyStarted: The room has left the lobby.
            RoomFull: No seats left.
        """
        if self.status != RoomStatus.WAITING:
            raise RoomAlreadyStarted(self.code)
        if len(self.players) >= capacity:
            raise RoomFull(self.code, capacity)
        seat_id = max((p["id"] for p in self.players), default=-1) + 1
        seat = {"id": seat_id, "name": name}
        if is_bot:
            seat["is_bot"] = True
        self.players.append(seat)
        return seat_id

    def get_player(self, seat_id: int) -> Optional[dict]:
        for player in self.players:
            if player["id"] == seat_id:
                return player
        return None

    def set_game_state(self, game_state: Optional[dict]) -> None:
        """Replace the snapshot and re-derive status."""
        self.game_state = game_state
        self.status = status_for_state(game_state)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "host_id": self.host_id,
            "players": [dict(p) for p in self.players],
            "status": self.status.value,
            "game_state": self.game_state,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RoomRecord":
        return cls(
            code=d["code"],
            host_id=d.get("host_id", HOST_SEAT_ID),
            players=[dict(p) for p in d.get("players", [])],
            status=RoomStatus(d.get("status", RoomStatus.WAITING.value)),
            game_state=d.get("game_state"),
        )
