"""Exception types raised by the Tri-Stack engine and replication layer."""


class GameError(Exception):
    """Base exception for game-related errors."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(f"[{code}] {message}")


# Error codes
WRONG_PHASE = "WRONG_PHASE"
NOT_YOUR_TURN = "NOT_YOUR_TURN"
NOT_YOUR_SEAT = "NOT_YOUR_SEAT"
BOT_SEAT = "BOT_SEAT"
HOST_ONLY = "HOST_ONLY"
CARD_NOT_IN_HAND = "CARD_NOT_IN_HAND"
RANK_MISMATCH = "RANK_MISMATCH"
DUPLICATE_CARD = "DUPLICATE_CARD"
ALREADY_TOSSED = "ALREADY_TOSSED"
RECLAIM_FORBIDDEN = "RECLAIM_FORBIDDEN"
EMPTY_PILE = "EMPTY_PILE"
ROUNDS_REMAINING = "ROUNDS_REMAINING"
NO_ROUNDS_REMAINING = "NO_ROUNDS_REMAINING"
INVALID_SETUP = "INVALID_SETUP"
ROOM_FULL = "ROOM_FULL"
ROOM_ALREADY_STARTED = "ROOM_ALREADY_STARTED"
ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
NOT_WRITER = "NOT_WRITER"
SESSION_INVALID = "SESSION_INVALID"
REPLICATION_FAILED = "REPLICATION_FAILED"
SEAT_IN_USE = "SEAT_IN_USE"


class IllegalAction(GameError):
    """Action submitted in the wrong phase, by the wrong seat, or against the rules."""


class RoomFull(GameError):
    def __init__(self, room_code: str, capacity: int):
        super().__init__(ROOM_FULL, f"Room {room_code} is full ({capacity} players)")


class RoomAlreadyStarted(GameError):
    def __init__(self, room_code: str):
        super().__init__(ROOM_ALREADY_STARTED, f"Room {room_code} is already playing")


class RoomNotFound(GameError):
    def __init__(self, room_code: str):
        super().__init__(ROOM_NOT_FOUND, f"Room {room_code} not found")


class NotWriter(GameError):
    """Snapshot push attempted without the room's writer token."""

    def __init__(self, room_code: str):
        super().__init__(NOT_WRITER, f"Not the writer for room {room_code}")


class SessionInvalid(GameError):
    """Saved session refers to a room that no longer exists."""

    def __init__(self, room_code: str):
        super().__init__(SESSION_INVALID, f"Saved session for room {room_code} is no longer valid")


class SeatInUse(GameError):
    """This process already controls a seat in an online room."""

    def __init__(self, room_code: str):
        super().__init__(SEAT_IN_USE, f"Already seated in room {room_code}; leave it first")


class ReplicationFailure(GameError):
    """A snapshot could not be pushed to the shared room record."""

    def __init__(self, room_code: str, reason: str):
        super().__init__(REPLICATION_FAILED, f"Sync to room {room_code} failed: {reason}")


def raise_illegal(code: str, message: str):
    raise IllegalAction(code, message)
