"""
Test suite for WebSocket message handlers.

Tests local match flows end to end and the online handlers' error paths
using a mock WebSocket and a mocked session service.

Run with: pytest test_handlers.py -v
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

import errors
from errors import RoomFull, RoomNotFound
from game import GamePhase
from handlers import (
    HANDLERS,
    ConnectionContext,
    handle_create_room,
    handle_discard,
    handle_draw,
    handle_join_room,
    handle_leave_room,
    handle_reconnect,
    handle_return_to_lobby,
    handle_show,
    handle_start_local,
    handle_toss,
)
from services.session_service import ReconnectResult


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self):
        self.messages: list[dict] = []

    async def send_json(self, data: dict):
        self.messages.append(data)

    def last_message(self) -> dict:
        return self.messages[-1] if self.messages else {}

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


def make_ctx(websocket=None):
    """Create a ConnectionContext with sensible defaults."""
    ws = websocket or MockWebSocket()
    return ConnectionContext(websocket=ws, connection_id="conn_123")


async def start_local(ctx, mode="single_player", names=None, rounds=1):
    await handle_start_local(
        {"mode": mode, "names": names or ["You"], "rounds": rounds},
        ctx,
        think_seconds=0,
    )


# =============================================================================
# Local match handlers
# =============================================================================

class TestHandleStartLocal:

    @pytest.mark.asyncio
    async def test_single_player_start(self):
        ctx = make_ctx()
        await start_local(ctx)

        assert ctx.local_game is not None
        assert ctx.participant is None
        state = ctx.websocket.messages_of_type("game_state")[0]["game_state"]
        assert state["mode"] == "single_player"
        assert [p["is_bot"] for p in state["players"]] == [False, True, True, True]
        assert len(state["players"][0]["hand"]) == 3
        assert state["players"][1]["hand"] is None
        assert state["current_player_id"] == 0

    @pytest.mark.asyncio
    async def test_hotseat_needs_two_names(self):
        ctx = make_ctx()
        await start_local(ctx, mode="multiplayer", names=["Ann"])

        error = ctx.websocket.last_message()
        assert error["type"] == "error"
        assert error["code"] == errors.INVALID_SETUP
        assert ctx.local_game is None

    @pytest.mark.asyncio
    async def test_online_modes_rejected(self):
        ctx = make_ctx()
        await start_local(ctx, mode="online_host")
        assert ctx.websocket.last_message()["type"] == "error"

    @pytest.mark.asyncio
    async def test_non_numeric_rounds_rejected(self):
        ctx = make_ctx()
        await start_local(ctx, rounds="five")

        assert ctx.websocket.last_message() == {"type": "error", "message": "Rounds must be a whole number"}
        assert ctx.local_game is None

    @pytest.mark.asyncio
    async def test_unknown_mode(self):
        ctx = make_ctx()
        await start_local(ctx, mode="solitaire")
        assert ctx.websocket.last_message() == {"type": "error", "message": "Unknown mode"}


class TestLocalTurns:

    @pytest.mark.asyncio
    async def test_discard_then_draw_runs_bots(self):
        ctx = make_ctx()
        await start_local(ctx)
        ws = ctx.websocket
        hand = ctx.local_game.current_player().hand

        await handle_discard({"card_id": hand[0].id}, ctx, think_seconds=0)
        assert ctx.local_game.phase == GamePhase.DRAWING

        await handle_draw({"source": "deck"}, ctx, think_seconds=0)

        game = ctx.local_game
        assert game.state.card_count() == 52
        if game.phase == GamePhase.TURN_START:
            # All three bots played and it is the human's turn again
            assert game.current_player().id == 0
        else:
            assert game.phase == GamePhase.ROUND_END
        assert len(ws.messages_of_type("game_state")) >= 4
        assert not ws.messages_of_type("error")

    @pytest.mark.asyncio
    async def test_draw_before_discard_is_rejected(self):
        ctx = make_ctx()
        await start_local(ctx)

        await handle_draw({"source": "deck"}, ctx, think_seconds=0)

        error = ctx.websocket.last_message()
        assert error["type"] == "error"
        assert error["code"] == errors.WRONG_PHASE

    @pytest.mark.asyncio
    async def test_unknown_draw_source(self):
        ctx = make_ctx()
        await start_local(ctx)
        await handle_draw({"source": "sleeve"}, ctx, think_seconds=0)
        assert ctx.websocket.last_message()["message"] == "Unknown draw source"

    @pytest.mark.asyncio
    async def test_bad_toss_is_rejected(self):
        ctx = make_ctx()
        await start_local(ctx)
        hand = ctx.local_game.current_player().hand

        await handle_toss({"card_ids": [hand[0].id, hand[0].id]}, ctx, think_seconds=0)

        assert ctx.websocket.last_message()["code"] == errors.DUPLICATE_CARD
        assert ctx.local_game.phase == GamePhase.TURN_START

    @pytest.mark.asyncio
    async def test_show_reveals_hands(self):
        ctx = make_ctx()
        await start_local(ctx)

        await handle_show({}, ctx, think_seconds=0)

        state = ctx.websocket.messages_of_type("game_state")[-1]["game_state"]
        assert state["phase"] == "round_end"
        assert all(p["hand"] is not None for p in state["players"])

    @pytest.mark.asyncio
    async def test_hotseat_shows_acting_seat(self):
        ctx = make_ctx()
        await start_local(ctx, mode="multiplayer", names=["Ann", "Ben"])
        hand = ctx.local_game.current_player().hand

        await handle_discard({"card_id": hand[0].id}, ctx)
        await handle_draw({"source": "deck"}, ctx)

        state = ctx.websocket.messages_of_type("game_state")[-1]["game_state"]
        assert state["current_player_id"] == 1
        assert state["players"][0]["hand"] is None
        assert len(state["players"][1]["hand"]) == 3

    @pytest.mark.asyncio
    async def test_actions_without_game_are_ignored(self):
        ctx = make_ctx()
        await handle_show({}, ctx)
        await handle_draw({"source": "deck"}, ctx)
        assert ctx.websocket.messages == []

    @pytest.mark.asyncio
    async def test_return_to_lobby_local(self):
        ctx = make_ctx()
        await start_local(ctx)
        await handle_return_to_lobby({}, ctx)
        assert ctx.local_game is None
        assert ctx.websocket.last_message() == {"type": "game_state", "game_state": None}


# =============================================================================
# Online handlers (session service mocked)
# =============================================================================

class TestOnlineHandlers:

    def setup_method(self):
        self.service = AsyncMock()

    @pytest.mark.asyncio
    async def test_join_full_room(self):
        self.service.join_room.side_effect = RoomFull("AB3K", 7)
        ctx = make_ctx()

        await handle_join_room({"room_code": "ab3k", "player_name": "Ann"}, ctx, session_service=self.service)

        self.service.join_room.assert_awaited_once_with("AB3K", "Ann")
        assert ctx.websocket.last_message()["code"] == errors.ROOM_FULL
        assert ctx.participant is None

    @pytest.mark.asyncio
    async def test_join_missing_room(self):
        self.service.join_room.side_effect = RoomNotFound("ZZZZ")
        ctx = make_ctx()

        await handle_join_room({"room_code": "ZZZZ", "player_name": "Ann"}, ctx, session_service=self.service)

        assert ctx.websocket.last_message()["code"] == errors.ROOM_NOT_FOUND

    @pytest.mark.asyncio
    async def test_create_room_binds_participant(self):
        participant = MagicMock()
        participant.room_code = "AB3K"
        participant.seat_id = 0
        participant.game.get_state.return_value = {"phase": None, "players": []}
        participant.room.status.value = "WAITING"
        participant.room.players = [{"id": 0, "name": "Host"}]
        participant.closed = False
        participant.take_notices.return_value = []
        self.service.create_room.return_value = participant
        ctx = make_ctx()

        await handle_create_room({"player_name": "Host"}, ctx, session_service=self.service)

        assert ctx.participant is participant
        created = ctx.websocket.messages_of_type("room_created")[0]
        assert created == {"type": "room_created", "room_code": "AB3K", "seat_id": 0}
        state_msg = ctx.websocket.messages_of_type("game_state")[0]
        assert state_msg["room"]["status"] == "WAITING"
        participant.set_change_callback.assert_called_once()

    @pytest.mark.asyncio
    async def test_reconnect_without_session(self):
        self.service.reconnect.return_value = ReconnectResult(success=False, error="no_session")
        ctx = make_ctx()

        await handle_reconnect({}, ctx, session_service=self.service)

        assert ctx.websocket.last_message() == {"type": "no_session"}

    @pytest.mark.asyncio
    async def test_reconnect_to_deleted_room(self):
        self.service.reconnect.return_value = ReconnectResult(
            success=False, room_code="AB3K", seat_id=2, error=errors.SESSION_INVALID,
        )
        ctx = make_ctx()

        await handle_reconnect({}, ctx, session_service=self.service)

        assert ctx.websocket.last_message() == {"type": "session_invalid", "room_code": "AB3K"}
        assert ctx.participant is None

    @pytest.mark.asyncio
    async def test_leave_room(self):
        participant = MagicMock()
        ctx = make_ctx()
        ctx.participant = participant

        await handle_leave_room({}, ctx, session_service=self.service)

        self.service.leave.assert_awaited_once_with(participant)
        assert ctx.participant is None
        assert ctx.websocket.last_message() == {"type": "left_room"}

    def test_dispatch_table(self):
        assert set(HANDLERS) == {
            "create_room", "join_room", "reconnect", "add_bot", "start_game", "start_local",
            "show", "toss", "discard", "draw", "next_round", "end_match",
            "return_to_lobby", "leave_room",
        }
