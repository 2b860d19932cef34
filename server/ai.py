"""Automated player policy for Tri-Stack bot seats."""

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional

from constants import BOT_SHOW_THRESHOLD, BOT_THINK_SECONDS
from game import (
    Action,
    ActionType,
    Card,
    DrawSource,
    Game,
    GamePhase,
    Player,
    Rank,
    card_points,
    DRAW_PHASES,
)


# Debug logging configuration
# Set AI_DEBUG=1 environment variable to enable detailed AI decision logging
AI_DEBUG = os.environ.get("AI_DEBUG", "0") == "1"

# Create a dedicated logger for AI decisions
ai_logger = logging.getLogger("tristack.ai")
if AI_DEBUG:
    ai_logger.setLevel(logging.DEBUG)
    if not ai_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [AI] %(message)s", datefmt="%H:%M:%S"
        ))
        ai_logger.addHandler(handler)


def ai_log(message: str):
    """Log AI decision info when AI_DEBUG is enabled."""
    if AI_DEBUG:
        ai_logger.debug(message)


def find_tossable_pair(hand: list[Card], joker_rank: Optional[Rank]) -> Optional[tuple[Card, Card]]:
    """
    First same-rank pair in the hand that is not of the Joker rank.

    Ranks are examined in hand order, so the pair whose first card sits
    earliest in the hand wins.
    """
    for i, card in enumerate(hand):
        if card.rank == joker_rank:
            continue
        for other in hand[i + 1:]:
            if other.rank == card.rank:
                return card, other
    return None


def highest_value_card(hand: list[Card], joker_rank: Optional[Rank]) -> Card:
    """Highest-scoring card, Joker-rank cards counting 0; first wins ties."""
    best = hand[0]
    for card in hand[1:]:
        if card_points(card, joker_rank) > card_points(best, joker_rank):
            best = card
    return best


def decide_bot_action(
    player: Player,
    joker_rank: Optional[Rank],
    tossed_this_turn: bool,
) -> Action:
    """
    Choose a bot's turn-start action.

    Priority:
        1. Toss the first non-Joker pair (once per turn)
        2. SHOW when the hand is worth BOT_SHOW_THRESHOLD or less
        3. Discard the highest-value card

    Args:
        player: The bot's seat.
        joker_rank: The round's Joker rank.
        tossed_this_turn: Whether the bot already tossed this turn.

    Returns:
        The Action to submit.
    """
    if not tossed_this_turn:
        pair = find_tossable_pair(player.hand, joker_rank)
        if pair:
            ai_log(f"{player.name} tossing pair of {pair[0].rank.value}s")
            return Action(ActionType.TOSS, player.id, [pair[0].id, pair[1].id])

    value = player.hand_value(joker_rank)
    if value <= BOT_SHOW_THRESHOLD:
        ai_log(f"{player.name} calling SHOW with hand value {value}")
        return Action(ActionType.SHOW, player.id)

    card = highest_value_card(player.hand, joker_rank)
    ai_log(f"{player.name} discarding {card.label} (hand value {value})")
    return Action(ActionType.DISCARD, player.id, [card.id])


def choose_draw_source(player: Player) -> DrawSource:
    """Bots always draw blind from the deck."""
    return DrawSource.DECK


def is_bot_turn(game: Game) -> bool:
    """Whether the active seat should be played by the bot policy right now."""
    if game.state is None:
        return False
    if game.state.phase not in (GamePhase.TURN_START,) + DRAW_PHASES:
        return False
    current = game.current_player()
    return current is not None and current.is_bot


async def process_cpu_turn(
    game: Game,
    broadcast_callback: Optional[Callable[[], Awaitable[None]]] = None,
    think_seconds: Optional[float] = None,
) -> None:
    """
    Play one complete turn for the active bot seat.

    Decides at turn start, then draws if the turn needs a draw. The
    callback runs after every accepted action so observers can re-render.
    """
    delay = BOT_THINK_SECONDS if think_seconds is None else think_seconds
    cpu_player = game.current_player()

    ai_log(f"{cpu_player.name} thinking for {delay:.2f}s")
    if delay > 0:
        await asyncio.sleep(delay)

    state = game.state
    if state.phase == GamePhase.TURN_START:
        action = decide_bot_action(cpu_player, state.joker_rank, state.tossed_this_turn)
        game.apply(action)
        if broadcast_callback:
            await broadcast_callback()

    if game.state.phase in DRAW_PHASES:
        game.draw(choose_draw_source(cpu_player), seat_id=cpu_player.id)
        if broadcast_callback:
            await broadcast_callback()


async def run_bot_turns(
    game: Game,
    broadcast_callback: Optional[Callable[[], Awaitable[None]]] = None,
    think_seconds: Optional[float] = None,
) -> int:
    """
    Chain bot turns while the active seat is a bot.

    Returns:
        Number of bot turns played.
    """
    turns = 0
    while is_bot_turn(game):
        await process_cpu_turn(game, broadcast_callback, think_seconds)
        turns += 1
    return turns
