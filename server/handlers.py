"""WebSocket message handlers for the Tri-Stack local UI bridge.

Each handler corresponds to a single message type from the UI.
Handlers are dispatched via the HANDLERS dict in main.py.

Local matches (single player, hotseat) run on a Game held by the
connection. Online matches go through a Participant, which replicates
through the shared room record.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket
import redis.asyncio as redis

from ai import run_bot_turns
from constants import DEFAULT_ROUNDS, MAX_SEATS
from errors import GameError, IllegalAction, REPLICATION_FAILED, SESSION_INVALID
from game import Action, ActionType, DrawSource, Game, GameMode, build_roster
from services.replication import Participant

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    participant: Optional[Participant] = None
    local_game: Optional[Game] = None


def active_game(ctx: ConnectionContext) -> Optional[Game]:
    if ctx.participant is not None:
        return ctx.participant.game
    return ctx.local_game


def viewer_seat(ctx: ConnectionContext) -> Optional[int]:
    """Seat whose hand the UI may show."""
    if ctx.participant is not None:
        return ctx.participant.seat_id
    game = ctx.local_game
    if game is None or game.state is None:
        return None
    if game.state.mode == GameMode.SINGLE_PLAYER:
        return 0
    # Hotseat: the device shows whoever is about to act
    current = game.current_player()
    return current.id if current else None


def acting_seat(ctx: ConnectionContext) -> int:
    if ctx.participant is not None:
        return ctx.participant.seat_id
    current = ctx.local_game.current_player() if ctx.local_game else None
    return current.id if current else -1


async def send_error(ctx: ConnectionContext, error: GameError) -> None:
    await ctx.websocket.send_json({
        "type": "error",
        "code": error.code,
        "message": error.message,
    })


async def send_store_unavailable(ctx: ConnectionContext, error: redis.RedisError) -> None:
    logger.warning(f"Room store unavailable for {ctx.connection_id}: {error}")
    await ctx.websocket.send_json({
        "type": "error",
        "code": REPLICATION_FAILED,
        "message": "Room server unavailable, try again",
    })


def parse_rounds(data: dict) -> Optional[int]:
    try:
        return max(1, int(data.get("rounds", DEFAULT_ROUNDS)))
    except (TypeError, ValueError):
        return None


async def send_state(ctx: ConnectionContext) -> None:
    """Push the viewer's projection plus any pending sync notices."""
    game = active_game(ctx)
    message = {
        "type": "game_state",
        "game_state": game.get_state(viewer_seat(ctx)) if game else None,
    }
    if ctx.participant is not None:
        message["room"] = {
            "code": ctx.participant.room_code,
            "status": ctx.participant.room.status.value,
            "players": ctx.participant.room.players,
            "seat_id": ctx.participant.seat_id,
            "closed": ctx.participant.closed,
        }
        for notice in ctx.participant.take_notices():
            await ctx.websocket.send_json({
                "type": "sync_failed",
                "message": notice.message,
            })
    await ctx.websocket.send_json(message)


def bind_participant(ctx: ConnectionContext, participant: Participant) -> None:
    async def on_change(_participant: Participant) -> None:
        await send_state(ctx)

    participant.set_change_callback(on_change)
    ctx.participant = participant
    ctx.local_game = None


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, session_service, **kw) -> None:
    player_name = data.get("player_name", "Host")
    try:
        participant = await session_service.create_room(player_name)
    except GameError as e:
        await send_error(ctx, e)
        return
    except redis.RedisError as e:
        await send_store_unavailable(ctx, e)
        return

    bind_participant(ctx, participant)
    await ctx.websocket.send_json({
        "type": "room_created",
        "room_code": participant.room_code,
        "seat_id": participant.seat_id,
    })
    await send_state(ctx)


async def handle_join_room(data: dict, ctx: ConnectionContext, *, session_service, **kw) -> None:
    room_code = data.get("room_code", "").upper()
    player_name = data.get("player_name", "Player")
    try:
        participant = await session_service.join_room(room_code, player_name)
    except GameError as e:
        await send_error(ctx, e)
        return
    except redis.RedisError as e:
        await send_store_unavailable(ctx, e)
        return

    bind_participant(ctx, participant)
    await ctx.websocket.send_json({
        "type": "room_joined",
        "room_code": participant.room_code,
        "seat_id": participant.seat_id,
    })
    await send_state(ctx)


async def handle_reconnect(data: dict, ctx: ConnectionContext, *, session_service, **kw) -> None:
    try:
        result = await session_service.reconnect()
    except GameError as e:
        await send_error(ctx, e)
        return
    except redis.RedisError as e:
        await send_store_unavailable(ctx, e)
        return

    if not result.success:
        if result.error == SESSION_INVALID:
            await ctx.websocket.send_json({
                "type": "session_invalid",
                "room_code": result.room_code,
            })
        else:
            await ctx.websocket.send_json({"type": "no_session"})
        return

    bind_participant(ctx, result.participant)
    await ctx.websocket.send_json({
        "type": "reconnected",
        "room_code": result.room_code,
        "seat_id": result.seat_id,
        "status": result.status.value,
    })
    await send_state(ctx)
    await result.participant.run_bots()


async def handle_add_bot(data: dict, ctx: ConnectionContext, **kw) -> None:
    if not ctx.participant:
        return
    try:
        await ctx.participant.add_bot()
    except GameError as e:
        await send_error(ctx, e)
    except redis.RedisError as e:
        await send_store_unavailable(ctx, e)


async def handle_start_game(data: dict, ctx: ConnectionContext, **kw) -> None:
    if not ctx.participant:
        return

    rounds = parse_rounds(data)
    if rounds is None:
        await ctx.websocket.send_json({"type": "error", "message": "Rounds must be a whole number"})
        return
    try:
        await ctx.participant.start_match(rounds)
    except GameError as e:
        await send_error(ctx, e)
    except redis.RedisError as e:
        await send_store_unavailable(ctx, e)


async def handle_start_local(data: dict, ctx: ConnectionContext, *, think_seconds=None, **kw) -> None:
    try:
        mode = GameMode(data.get("mode", GameMode.SINGLE_PLAYER.value))
    except ValueError:
        await ctx.websocket.send_json({"type": "error", "message": "Unknown mode"})
        return
    if mode not in (GameMode.SINGLE_PLAYER, GameMode.MULTIPLAYER):
        await ctx.websocket.send_json({"type": "error", "message": "Use create_room for online play"})
        return

    names = list(data.get("names") or ["You"])[:MAX_SEATS]
    rounds = parse_rounds(data)
    if rounds is None:
        await ctx.websocket.send_json({"type": "error", "message": "Rounds must be a whole number"})
        return

    game = Game()
    try:
        game.start_match(build_roster(mode, names), rounds, mode)
    except IllegalAction as e:
        await send_error(ctx, e)
        return

    ctx.participant = None
    ctx.local_game = game
    await send_state(ctx)
    await _run_local_bots(ctx, think_seconds)


async def _run_local_bots(ctx: ConnectionContext, think_seconds) -> None:
    if ctx.local_game is None:
        return

    async def broadcast_cb():
        await send_state(ctx)

    await run_bot_turns(ctx.local_game, broadcast_cb, think_seconds)


# ---------------------------------------------------------------------------
# Turn action handlers
# ---------------------------------------------------------------------------

async def _submit(ctx: ConnectionContext, action: Action, think_seconds=None) -> None:
    try:
        if ctx.participant is not None:
            await ctx.participant.submit(action)
            return
        if ctx.local_game is None:
            return
        ctx.local_game.submit(action)
    except GameError as e:
        await send_error(ctx, e)
        return

    await send_state(ctx)
    await _run_local_bots(ctx, think_seconds)


async def handle_show(data: dict, ctx: ConnectionContext, *, think_seconds=None, **kw) -> None:
    if not active_game(ctx):
        return
    await _submit(ctx, Action(ActionType.SHOW, acting_seat(ctx)), think_seconds)


async def handle_toss(data: dict, ctx: ConnectionContext, *, think_seconds=None, **kw) -> None:
    if not active_game(ctx):
        return
    card_ids = list(data.get("card_ids", []))
    await _submit(ctx, Action(ActionType.TOSS, acting_seat(ctx), card_ids), think_seconds)


async def handle_discard(data: dict, ctx: ConnectionContext, *, think_seconds=None, **kw) -> None:
    if not active_game(ctx):
        return
    card_id = data.get("card_id")
    await _submit(ctx, Action(ActionType.DISCARD, acting_seat(ctx), [card_id] if card_id else []), think_seconds)


async def handle_draw(data: dict, ctx: ConnectionContext, *, think_seconds=None, **kw) -> None:
    if not active_game(ctx):
        return
    try:
        source = DrawSource(data.get("source", DrawSource.DECK.value))
    except ValueError:
        await ctx.websocket.send_json({"type": "error", "message": "Unknown draw source"})
        return
    await _submit(ctx, Action(ActionType.DRAW, acting_seat(ctx), source=source), think_seconds)


async def handle_next_round(data: dict, ctx: ConnectionContext, *, think_seconds=None, **kw) -> None:
    if not active_game(ctx):
        return
    await _submit(ctx, Action(ActionType.NEXT_ROUND, acting_seat(ctx)), think_seconds)


async def handle_end_match(data: dict, ctx: ConnectionContext, **kw) -> None:
    if not active_game(ctx):
        return
    await _submit(ctx, Action(ActionType.END_MATCH, acting_seat(ctx)))


# ---------------------------------------------------------------------------
# Leave / Lobby handlers
# ---------------------------------------------------------------------------

async def handle_return_to_lobby(data: dict, ctx: ConnectionContext, **kw) -> None:
    if ctx.participant is not None:
        try:
            await ctx.participant.return_to_lobby()
        except GameError as e:
            await send_error(ctx, e)
        return

    ctx.local_game = None
    await send_state(ctx)


async def handle_leave_room(data: dict, ctx: ConnectionContext, *, session_service, **kw) -> None:
    if ctx.participant is None:
        return
    participant, ctx.participant = ctx.participant, None
    participant.set_change_callback(None)
    try:
        await session_service.leave(participant)
    except redis.RedisError as e:
        logger.warning(f"Could not unsubscribe from room {participant.room_code}: {e}")
    await ctx.websocket.send_json({"type": "left_room"})


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "reconnect": handle_reconnect,
    "add_bot": handle_add_bot,
    "start_game": handle_start_game,
    "start_local": handle_start_local,
    "show": handle_show,
    "toss": handle_toss,
    "discard": handle_discard,
    "draw": handle_draw,
    "next_round": handle_next_round,
    "end_match": handle_end_match,
    "return_to_lobby": handle_return_to_lobby,
    "leave_room": handle_leave_room,
}
