"""
Game logic for Tri-Stack.

This module implements the core mechanics of Tri-Stack, a "least count"
card game: card/deck management, seat state, scoring under a per-round
wildcard rank, and the turn state machine.

Tri-Stack Rules Summary:
    - Each seat holds 3 cards; lowest hand value wins
    - One rank is drawn at random every round as the Joker; those cards score 0
    - On your turn: call SHOW, toss a same-rank pair, or discard one card
    - After a toss or discard you must draw from the deck or the open pile
    - Tossed and discarded cards reach the open pile only once you draw
    - Calling SHOW ends the round; the caller is penalised unless uniquely lowest

Turn flow:
    TURN_START --toss--> TOSSING_DRAW --draw--> TURN_START (next seat)
    TURN_START --discard--> DRAWING --draw--> TURN_START (next seat)
    TURN_START --show--> ROUND_END --> TURN_START (next round) | MATCH_END

State changes go through apply_action(), a pure reducer that returns a
new GameState snapshot or raises IllegalAction. The Game class wraps the
reducer with the current snapshot and a listener hook.
"""

import copy
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from constants import (
    DEFAULT_CARD_VALUES,
    TIE_PENALTY,
    MISCALL_PENALTY,
    HAND_SIZE,
    MIN_SEATS,
    MAX_SEATS,
    HOST_SEAT_ID,
    BOT_NAMES,
)
import errors
from errors import IllegalAction, raise_illegal

logger = logging.getLogger(__name__)


class Suit(Enum):
    """Card suits for a standard deck."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"

    @property
    def symbol(self) -> str:
        return SUIT_SYMBOLS[self]


SUIT_SYMBOLS: dict[Suit, str] = {
    Suit.HEARTS: "♥",
    Suit.DIAMONDS: "♦",
    Suit.CLUBS: "♣",
    Suit.SPADES: "♠",
}


class Rank(Enum):
    """
    Card ranks with their display values.

    Tri-Stack scoring:
        - Ace: 1 point
        - 2-10: Face value
        - Jack/Queen/King: 10 points
        - Any rank equal to the round's Joker: 0 points
    """

    ACE = "A"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    TEN = "10"
    JACK = "J"
    QUEEN = "Q"
    KING = "K"


# Map Rank enum to point values (derived from constants.py as single source of truth)
RANK_VALUES: dict[Rank, int] = {rank: DEFAULT_CARD_VALUES[rank.value] for rank in Rank}


@dataclass(frozen=True)
class Card:
    """
    An immutable playing card.

    Attributes:
        id: Unique identifier within the deck (e.g. "card-12-K-hearts").
        suit: The card's suit.
        rank: The card's rank.
    """

    id: str
    suit: Suit
    rank: Rank

    def value(self) -> int:
        """Get base point value (ignoring the round's Joker)."""
        return RANK_VALUES[self.rank]

    @property
    def label(self) -> str:
        return f"{self.rank.value}{self.suit.symbol}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "suit": self.suit.value,
            "rank": self.rank.value,
            "value": self.value(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Card":
        return cls(id=d["id"], suit=Suit(d["suit"]), rank=Rank(d["rank"]))


# =============================================================================
# Deck & pile management
# =============================================================================

def build_deck() -> list[Card]:
    """Return the ordered 52-card deck, suit major, rank minor."""
    cards = []
    counter = 0
    for suit in Suit:
        for rank in Rank:
            cards.append(Card(f"card-{counter}-{rank.value}-{suit.value}", suit, rank))
            counter += 1
    return cards


def shuffle_deck(cards: list[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """
    Return a Fisher-Yates permutation of cards.

    The input list is left untouched.

    Args:
        cards: Cards to shuffle.
        rng: Random source; a fresh one is used when omitted.

    Returns:
        New list with the same cards in random order.
    """
    rng = rng or random.Random()
    shuffled = list(cards)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def recycle_discard_pile(
    discard_pile: list[Card],
    rng: Optional[random.Random] = None,
) -> Optional[tuple[list[Card], list[Card]]]:
    """
    Turn the open pile into a new draw pile.

    Keeps the top discard visible and shuffles the rest into the deck.

    Args:
        discard_pile: Current open pile, last element on top.
        rng: Random source for the shuffle.

    Returns:
        (new_deck, new_discard_pile), or None if fewer than two cards are
        available and the round has to end.
    """
    if len(discard_pile) < 2:
        return None
    top_card = discard_pile[-1]
    return shuffle_deck(discard_pile[:-1], rng), [top_card]


# =============================================================================
# Scoring
# =============================================================================

def card_points(card: Card, joker_rank: Optional[Rank]) -> int:
    """Point value of a card in a round with the given Joker rank."""
    if joker_rank is not None and card.rank == joker_rank:
        return 0
    return card.value()


def hand_value(hand: list[Card], joker_rank: Optional[Rank]) -> int:
    """Sum of card values, Joker-rank cards counting 0."""
    return sum(card_points(card, joker_rank) for card in hand)


def round_scores(
    players: list["Player"],
    caller_index: int,
    joker_rank: Optional[Rank],
) -> dict[int, int]:
    """
    Score a finished round.

    Non-callers score their hand value. The caller scores 0 when uniquely
    lowest, TIE_PENALTY when tied for lowest and MISCALL_PENALTY otherwise.

    Args:
        players: Seats in seat order.
        caller_index: Index of the seat that ended the round.
        joker_rank: The round's Joker rank.

    Returns:
        Dict mapping seat id to round score.
    """
    values = {p.id: hand_value(p.hand, joker_rank) for p in players}
    lowest = min(values.values())
    lowest_count = sum(1 for v in values.values() if v == lowest)

    caller = players[caller_index]
    scores = dict(values)
    if values[caller.id] == lowest and lowest_count == 1:
        scores[caller.id] = 0
    elif values[caller.id] == lowest:
        scores[caller.id] = TIE_PENALTY
    else:
        scores[caller.id] = MISCALL_PENALTY
    return scores


# =============================================================================
# State types
# =============================================================================

@dataclass
class Player:
    """
    A seat at the Tri-Stack table.

    Attributes:
        id: Stable seat identifier; 0 is the host in online games.
        name: Display name.
        is_bot: Whether the automated policy plays this seat.
        hand: Cards held, normally 3 between turns.
        score: Points scored in the current round.
        total_score: Cumulative points across all rounds.
        last_action: Short label shown beside the seat.
        was_caller: True for the seat that ended the last round.
    """

    id: int
    name: str
    is_bot: bool = False
    hand: list[Card] = field(default_factory=list)
    score: int = 0
    total_score: int = 0
    last_action: str = "Waiting..."
    was_caller: bool = False

    def hand_value(self, joker_rank: Optional[Rank]) -> int:
        return hand_value(self.hand, joker_rank)

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self.hand:
            if card.id == card_id:
                return card
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_bot": self.is_bot,
            "hand": [c.to_dict() for c in self.hand],
            "score": self.score,
            "total_score": self.total_score,
            "last_action": self.last_action,
            "was_caller": self.was_caller,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Player":
        return cls(
            id=d["id"],
            name=d["name"],
            is_bot=d.get("is_bot", False),
            hand=[Card.from_dict(c) for c in d.get("hand", [])],
            score=d.get("score", 0),
            total_score=d.get("total_score", 0),
            last_action=d.get("last_action", ""),
            was_caller=d.get("was_caller", False),
        )


class GamePhase(str, Enum):
    """
    Phases of a Tri-Stack round.

    Flow: SETUP -> TURN_START -> TOSSING_DRAW/DRAWING -> TURN_START ...
    SHOW (or a dead deck) -> ROUND_END -> next round or MATCH_END
    """

    SETUP = "setup"                # Dealing
    TURN_START = "turn_start"      # Active seat may show, toss or discard
    TOSSING_DRAW = "tossing_draw"  # Pair tossed, must draw
    DRAWING = "drawing"            # Card discarded, must draw
    ROUND_END = "round_end"        # Hands revealed and scored
    MATCH_END = "match_end"        # All rounds complete


class GameMode(str, Enum):
    """How seats are controlled locally."""

    SINGLE_PLAYER = "single_player"  # One human, the rest bots
    MULTIPLAYER = "multiplayer"      # Hotseat, all humans share a device
    ONLINE_HOST = "online_host"      # Seat 0, writer of the room record
    ONLINE_CLIENT = "online_client"  # Any other online seat


ONLINE_MODES = (GameMode.ONLINE_HOST, GameMode.ONLINE_CLIENT)
DRAW_PHASES = (GamePhase.TOSSING_DRAW, GamePhase.DRAWING)
REVEAL_PHASES = (GamePhase.ROUND_END, GamePhase.MATCH_END)


def mode_for_seat(seat_id: int) -> GameMode:
    """Effective online mode for a seat: the host seat writes, others follow."""
    return GameMode.ONLINE_HOST if seat_id == HOST_SEAT_ID else GameMode.ONLINE_CLIENT


@dataclass
class GameState:
    """
    Full snapshot of a Tri-Stack match.

    The snapshot is the unit of replication: it is replaced wholesale on
    every accepted action and serialized with to_dict() for the room record.

    Attributes:
        mode: How seats are controlled on this participant.
        deck: Draw pile; the last element is the next card drawn.
        discard_pile: Open pile; the last element is the visible top.
        players: Seats in seat order.
        current_player_index: Index of the active seat.
        joker_rank: This round's wildcard rank.
        current_round: Round number (1-indexed).
        total_rounds: Rounds in the match.
        phase: Current phase.
        turn_log: Human-readable history of the round.
        last_discarded_id: Card discarded this turn (cannot be reclaimed).
        pending_discard: Card discarded this turn, not yet on the open pile.
        pending_toss: Pair tossed this turn, not yet on the open pile.
        tossed_this_turn: Whether the active seat already tossed.
        winner_id: Seat id of the match winner once phase is MATCH_END.
    """

    mode: GameMode = GameMode.SINGLE_PLAYER
    deck: list[Card] = field(default_factory=list)
    discard_pile: list[Card] = field(default_factory=list)
    players: list[Player] = field(default_factory=list)
    current_player_index: int = 0
    joker_rank: Optional[Rank] = None
    current_round: int = 1
    total_rounds: int = 1
    phase: GamePhase = GamePhase.SETUP
    turn_log: list[str] = field(default_factory=list)
    last_discarded_id: Optional[str] = None
    pending_discard: list[Card] = field(default_factory=list)
    pending_toss: list[Card] = field(default_factory=list)
    tossed_this_turn: bool = False
    winner_id: Optional[int] = None

    def current_player(self) -> Optional[Player]:
        if self.players:
            return self.players[self.current_player_index]
        return None

    def get_player(self, seat_id: int) -> Optional[Player]:
        for player in self.players:
            if player.id == seat_id:
                return player
        return None

    def discard_top(self) -> Optional[Card]:
        """Get the top card of the open pile (if any)."""
        if self.discard_pile:
            return self.discard_pile[-1]
        return None

    def card_count(self) -> int:
        """Cards in play across every zone; 52 while a round is running."""
        return (
            len(self.deck)
            + len(self.discard_pile)
            + sum(len(p.hand) for p in self.players)
            + len(self.pending_toss)
            + len(self.pending_discard)
        )

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict (the replicated format)."""
        return {
            "mode": self.mode.value,
            "deck": [c.to_dict() for c in self.deck],
            "discard_pile": [c.to_dict() for c in self.discard_pile],
            "players": [p.to_dict() for p in self.players],
            "current_player_index": self.current_player_index,
            "joker_rank": self.joker_rank.value if self.joker_rank else None,
            "current_round": self.current_round,
            "total_rounds": self.total_rounds,
            "phase": self.phase.value,
            "turn_log": list(self.turn_log),
            "last_discarded_id": self.last_discarded_id,
            "pending_discard": [c.to_dict() for c in self.pending_discard],
            "pending_toss": [c.to_dict() for c in self.pending_toss],
            "tossed_this_turn": self.tossed_this_turn,
            "winner_id": self.winner_id,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "GameState":
        joker = d.get("joker_rank")
        return cls(
            mode=GameMode(d.get("mode", GameMode.SINGLE_PLAYER.value)),
            deck=[Card.from_dict(c) for c in d.get("deck", [])],
            discard_pile=[Card.from_dict(c) for c in d.get("discard_pile", [])],
            players=[Player.from_dict(p) for p in d.get("players", [])],
            current_player_index=d.get("current_player_index", 0),
            joker_rank=Rank(joker) if joker else None,
            current_round=d.get("current_round", 1),
            total_rounds=d.get("total_rounds", 1),
            phase=GamePhase(d.get("phase", GamePhase.SETUP.value)),
            turn_log=list(d.get("turn_log", [])),
            last_discarded_id=d.get("last_discarded_id"),
            pending_discard=[Card.from_dict(c) for c in d.get("pending_discard", [])],
            pending_toss=[Card.from_dict(c) for c in d.get("pending_toss", [])],
            tossed_this_turn=d.get("tossed_this_turn", False),
            winner_id=d.get("winner_id"),
        )


class ActionType(str, Enum):
    SHOW = "show"
    TOSS = "toss"
    DISCARD = "discard"
    DRAW = "draw"
    NEXT_ROUND = "next_round"
    END_MATCH = "end_match"


class DrawSource(str, Enum):
    DECK = "deck"
    DISCARD = "discard"


@dataclass
class Action:
    """
    A player intent submitted to the reducer.

    Attributes:
        type: What the seat wants to do.
        seat_id: The acting seat.
        card_ids: Cards involved (two for TOSS, one for DISCARD).
        source: Pile to draw from (DRAW only).
    """

    type: ActionType
    seat_id: int
    card_ids: list[str] = field(default_factory=list)
    source: Optional[DrawSource] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "seat_id": self.seat_id,
            "card_ids": list(self.card_ids),
            "source": self.source.value if self.source else None,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Action":
        source = d.get("source")
        return cls(
            type=ActionType(d["type"]),
            seat_id=d["seat_id"],
            card_ids=list(d.get("card_ids", [])),
            source=DrawSource(source) if source else None,
        )


# =============================================================================
# Round setup
# =============================================================================

def deal_round(
    players: list[Player],
    round_number: int,
    total_rounds: int,
    mode: GameMode,
    starting_index: int = 0,
    rng: Optional[random.Random] = None,
) -> GameState:
    """
    Build the opening snapshot of a round.

    Shuffles a fresh deck, deals three cards to every seat, picks the
    Joker rank and hands the turn to starting_index.

    Args:
        players: Seats carrying cumulative totals; hands are replaced.
        round_number: 1-indexed round number.
        total_rounds: Rounds in the match.
        mode: Local control mode.
        starting_index: Seat index that acts first.
        rng: Random source for the shuffle and the Joker.

    Returns:
        A GameState in TURN_START.
    """
    rng = rng or random.Random()
    seats = [
        Player(
            id=p.id,
            name=p.name,
            is_bot=p.is_bot,
            total_score=p.total_score,
        )
        for p in players
    ]

    state = GameState(
        mode=mode,
        deck=shuffle_deck(build_deck(), rng),
        players=seats,
        current_round=round_number,
        total_rounds=total_rounds,
        phase=GamePhase.SETUP,
    )

    for _ in range(HAND_SIZE):
        for seat in state.players:
            seat.hand.append(state.deck.pop())

    state.joker_rank = rng.choice(list(Rank))
    state.current_player_index = starting_index % len(seats)
    state.turn_log = [f"Round {round_number} started! Joker is {state.joker_rank.value}"]
    state.phase = GamePhase.TURN_START
    return state


def build_roster(
    mode: GameMode,
    names: list[str],
) -> list[Player]:
    """
    Seats for a local match.

    Single player gets the human plus three bots; hotseat gets one human
    seat per name.
    """
    if mode == GameMode.SINGLE_PLAYER:
        human = names[0] if names else "You"
        seats = [Player(id=0, name=human)]
        for i, bot_name in enumerate(BOT_NAMES, start=1):
            seats.append(Player(id=i, name=bot_name, is_bot=True))
        return seats
    return [Player(id=i, name=name) for i, name in enumerate(names)]


# =============================================================================
# Reducer
# =============================================================================

def apply_action(
    state: GameState,
    action: Action,
    rng: Optional[random.Random] = None,
) -> GameState:
    """
    Apply an action and return the resulting snapshot.

    The input state is never mutated. Illegal actions raise IllegalAction
    and leave nothing changed.

    Args:
        state: Current snapshot.
        action: Action to apply.
        rng: Random source for recycling and next-round deals.

    Returns:
        The new snapshot.
    """
    handler = _REDUCERS.get(action.type)
    if handler is None:
        raise_illegal(errors.WRONG_PHASE, f"Unknown action {action.type}")

    if action.type in (ActionType.NEXT_ROUND, ActionType.END_MATCH):
        _check_advance(state, action)
    else:
        _check_turn(state, action)

    new_state = copy.deepcopy(state)
    return handler(new_state, action, rng)


def _check_turn(state: GameState, action: Action) -> None:
    current = state.current_player()
    if state.phase not in (GamePhase.TURN_START,) + DRAW_PHASES:
        raise_illegal(errors.WRONG_PHASE, f"Cannot {action.type.value} during {state.phase.value}")
    if current is None or current.id != action.seat_id:
        raise_illegal(errors.NOT_YOUR_TURN, f"Seat {action.seat_id} is not the active seat")


def _check_advance(state: GameState, action: Action) -> None:
    if state.phase != GamePhase.ROUND_END:
        raise_illegal(errors.WRONG_PHASE, f"Cannot {action.type.value} during {state.phase.value}")
    if state.mode in ONLINE_MODES and action.seat_id != HOST_SEAT_ID:
        raise_illegal(errors.HOST_ONLY, "Only the host can advance the match")


def _apply_show(state: GameState, action: Action, rng) -> GameState:
    if state.phase != GamePhase.TURN_START:
        raise_illegal(errors.WRONG_PHASE, "SHOW is only allowed at the start of a turn")
    caller = state.current_player()
    _end_round(state, f"{caller.name} called SHOW! Round Ended.", "CALLED SHOW!")
    return state


def _apply_toss(state: GameState, action: Action, rng) -> GameState:
    if state.tossed_this_turn or state.phase == GamePhase.TOSSING_DRAW:
        raise_illegal(errors.ALREADY_TOSSED, "Only one toss per turn")
    if state.phase != GamePhase.TURN_START:
        raise_illegal(errors.WRONG_PHASE, "Toss is only allowed at the start of a turn")
    if len(action.card_ids) != 2:
        raise_illegal(errors.CARD_NOT_IN_HAND, "Toss needs exactly two cards")
    id_a, id_b = action.card_ids
    if id_a == id_b:
        raise_illegal(errors.DUPLICATE_CARD, "Toss needs two different cards")

    player = state.current_player()
    card_a = player.find_card(id_a)
    card_b = player.find_card(id_b)
    if card_a is None or card_b is None:
        raise_illegal(errors.CARD_NOT_IN_HAND, "Tossed cards must come from your hand")
    if card_a.rank != card_b.rank:
        raise_illegal(errors.RANK_MISMATCH, f"Cannot toss {card_a.rank.value} with {card_b.rank.value}")

    player.hand = [c for c in player.hand if c.id not in (id_a, id_b)]
    state.pending_toss = [card_a, card_b]
    state.tossed_this_turn = True
    state.phase = GamePhase.TOSSING_DRAW
    player.last_action = f"Tossed {card_a.rank.value}s"
    state.turn_log.append(f"{player.name} tossed a pair of {card_a.rank.value}s")
    return state


def _apply_discard(state: GameState, action: Action, rng) -> GameState:
    if state.phase != GamePhase.TURN_START:
        raise_illegal(errors.WRONG_PHASE, "Discard is only allowed at the start of a turn")
    if len(action.card_ids) != 1:
        raise_illegal(errors.CARD_NOT_IN_HAND, "Discard needs exactly one card")

    player = state.current_player()
    card = player.find_card(action.card_ids[0])
    if card is None:
        raise_illegal(errors.CARD_NOT_IN_HAND, "Discarded card must come from your hand")

    player.hand = [c for c in player.hand if c.id != card.id]
    state.pending_discard = [card]
    state.last_discarded_id = card.id
    state.phase = GamePhase.DRAWING
    player.last_action = f"Discarded {card.label}"
    state.turn_log.append(f"{player.name} discarded {card.label}")
    return state


def _apply_draw(state: GameState, action: Action, rng) -> GameState:
    if state.phase not in DRAW_PHASES:
        raise_illegal(errors.WRONG_PHASE, "Toss or discard before drawing")
    source = action.source or DrawSource.DECK
    player = state.current_player()

    if not state.deck and len(state.discard_pile) < 2:
        logger.info(
            f"Deck exhausted in round {state.current_round}, "
            f"forcing round end with {player.name} as caller"
        )
        _end_round(
            state,
            f"No cards left to draw! Round ended with {player.name} as caller.",
            "Deck ran out",
        )
        return state

    if source == DrawSource.DISCARD:
        top = state.discard_top()
        if top is None:
            raise_illegal(errors.EMPTY_PILE, "The open pile is empty")
        if state.phase == GamePhase.DRAWING and top.id == state.last_discarded_id:
            raise_illegal(errors.RECLAIM_FORBIDDEN, "Cannot pick up the card you just discarded")
        card = state.discard_pile.pop()
        log_line = f"{player.name} drew from the open pile"
    else:
        if not state.deck:
            state.deck, state.discard_pile = recycle_discard_pile(state.discard_pile, rng)
            state.turn_log.append("Open pile reshuffled into the deck")
        card = state.deck.pop()
        log_line = f"{player.name} drew from the deck"

    player.hand.append(card)
    _commit_pending(state)
    player.last_action = "Ended Turn"
    state.turn_log.append(log_line)
    state.current_player_index = (state.current_player_index + 1) % len(state.players)
    state.phase = GamePhase.TURN_START
    return state


def _apply_next_round(state: GameState, action: Action, rng) -> GameState:
    if state.current_round >= state.total_rounds:
        raise_illegal(errors.NO_ROUNDS_REMAINING, "This was the final round")

    starting_index = 0
    for i, player in enumerate(state.players):
        if player.was_caller:
            starting_index = i
            break

    return deal_round(
        state.players,
        state.current_round + 1,
        state.total_rounds,
        state.mode,
        starting_index=starting_index,
        rng=rng,
    )


def _apply_end_match(state: GameState, action: Action, rng) -> GameState:
    if state.current_round < state.total_rounds:
        raise_illegal(errors.ROUNDS_REMAINING, "Rounds remain in this match")

    # min() keeps the first seat on ties
    winner = min(state.players, key=lambda p: p.total_score)
    state.winner_id = winner.id
    state.phase = GamePhase.MATCH_END
    state.turn_log.append(f"{winner.name} wins the match with {winner.total_score} points")
    return state


def _commit_pending(state: GameState) -> None:
    """Move the tossed pair, then the discard, onto the open pile."""
    state.discard_pile.extend(state.pending_toss)
    state.discard_pile.extend(state.pending_discard)
    state.pending_toss = []
    state.pending_discard = []
    state.tossed_this_turn = False
    state.last_discarded_id = None


def _end_round(state: GameState, log_line: str, caller_label: str) -> None:
    """Score the round with the active seat as caller."""
    _commit_pending(state)
    caller_index = state.current_player_index
    scores = round_scores(state.players, caller_index, state.joker_rank)

    for i, player in enumerate(state.players):
        player.score = scores[player.id]
        player.total_score += player.score
        player.was_caller = i == caller_index
        player.last_action = caller_label if i == caller_index else "Revealed"

    state.phase = GamePhase.ROUND_END
    state.turn_log.append(log_line)


_REDUCERS: dict[ActionType, Callable[[GameState, Action, Any], GameState]] = {
    ActionType.SHOW: _apply_show,
    ActionType.TOSS: _apply_toss,
    ActionType.DISCARD: _apply_discard,
    ActionType.DRAW: _apply_draw,
    ActionType.NEXT_ROUND: _apply_next_round,
    ActionType.END_MATCH: _apply_end_match,
}


# =============================================================================
# Stateful wrapper
# =============================================================================

class Game:
    """
    Holder of the current Tri-Stack snapshot.

    Every accepted action replaces the snapshot and notifies the state
    listener (used by the replication layer to push the new snapshot).

    Attributes:
        state: Current snapshot, or None before a match starts.
        local_seat_id: Seat controlled by this participant in online play.
        rng: Random source shared by deals and recycling.
    """

    def __init__(
        self,
        state: Optional[GameState] = None,
        local_seat_id: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.state = state
        self.local_seat_id = local_seat_id
        self.rng = rng or random.Random()
        self._state_listener: Optional[Callable[[GameState], None]] = None

    def set_state_listener(self, listener: Optional[Callable[[GameState], None]]) -> None:
        """
        Set callback invoked with every new snapshot.

        Args:
            listener: Callable receiving the new GameState.
        """
        self._state_listener = listener

    def _set_state(self, state: GameState) -> GameState:
        self.state = state
        if self._state_listener is not None:
            self._state_listener(state)
        return state

    # -------------------------------------------------------------------------
    # Match lifecycle
    # -------------------------------------------------------------------------

    def start_match(
        self,
        players: list[Player],
        total_rounds: int,
        mode: GameMode,
    ) -> GameState:
        """
        Start a fresh match and deal round 1.

        Args:
            players: Seats in seat order (ids are reassigned 0..n-1).
            total_rounds: Rounds to play.
            mode: Local control mode.

        Returns:
            The opening snapshot.

        Raises:
            IllegalAction: Seat count outside 2-10 or no rounds.
        """
        if not MIN_SEATS <= len(players) <= MAX_SEATS:
            raise IllegalAction(
                errors.INVALID_SETUP,
                f"Need {MIN_SEATS}-{MAX_SEATS} players, got {len(players)}",
            )
        if total_rounds < 1:
            raise IllegalAction(errors.INVALID_SETUP, "Need at least one round")

        seats = [
            Player(id=i, name=p.name, is_bot=p.is_bot)
            for i, p in enumerate(players)
        ]
        logger.info(f"Starting {mode.value} match: {len(seats)} seats, {total_rounds} rounds")
        return self._set_state(deal_round(seats, 1, total_rounds, mode, rng=self.rng))

    def load_snapshot(self, snapshot: Any) -> GameState:
        """
        Replace local state with a received snapshot.

        No merge is attempted; loading the same snapshot twice is a no-op.
        The listener is not called, since the snapshot came from outside.
        """
        if isinstance(snapshot, dict):
            snapshot = GameState.from_dict(snapshot)
        self.state = snapshot
        return snapshot

    def clear(self) -> None:
        self.state = None

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def apply(self, action: Action) -> GameState:
        """Run an action through the reducer and adopt the result."""
        if self.state is None:
            raise IllegalAction(errors.WRONG_PHASE, "No match in progress")
        return self._set_state(apply_action(self.state, action, self.rng))

    def submit(self, action: Action, enforce_local_seat: bool = True) -> GameState:
        """
        Apply an action submitted by a human.

        Rejects actions for bot seats and, in online modes, for any seat
        other than the local one.
        """
        if self.state is None:
            raise IllegalAction(errors.WRONG_PHASE, "No match in progress")
        seat = self.state.get_player(action.seat_id)
        if seat is not None and seat.is_bot:
            raise IllegalAction(errors.BOT_SEAT, f"{seat.name} is played by the computer")
        if (
            enforce_local_seat
            and self.state.mode in ONLINE_MODES
            and self.local_seat_id is not None
            and action.seat_id != self.local_seat_id
        ):
            raise IllegalAction(errors.NOT_YOUR_SEAT, f"You control seat {self.local_seat_id}")
        return self.apply(action)

    def _active_seat(self, seat_id: Optional[int]) -> int:
        if seat_id is not None:
            return seat_id
        current = self.state.current_player() if self.state else None
        return current.id if current else -1

    def declare_round_end(self, seat_id: Optional[int] = None) -> GameState:
        """Call SHOW for the active seat."""
        return self.apply(Action(ActionType.SHOW, self._active_seat(seat_id)))

    def toss_pair(self, card_a: str, card_b: str, seat_id: Optional[int] = None) -> GameState:
        return self.apply(Action(ActionType.TOSS, self._active_seat(seat_id), [card_a, card_b]))

    def discard(self, card_id: str, seat_id: Optional[int] = None) -> GameState:
        return self.apply(Action(ActionType.DISCARD, self._active_seat(seat_id), [card_id]))

    def draw(self, source: DrawSource, seat_id: Optional[int] = None) -> GameState:
        return self.apply(Action(ActionType.DRAW, self._active_seat(seat_id), source=DrawSource(source)))

    def advance_round(self, seat_id: int = HOST_SEAT_ID) -> GameState:
        return self.apply(Action(ActionType.NEXT_ROUND, seat_id))

    def advance_match(self, seat_id: int = HOST_SEAT_ID) -> GameState:
        return self.apply(Action(ActionType.END_MATCH, seat_id))

    # -------------------------------------------------------------------------
    # State Queries
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> Optional[GamePhase]:
        return self.state.phase if self.state else None

    def current_player(self) -> Optional[Player]:
        return self.state.current_player() if self.state else None

    def get_state(self, for_seat_id: Optional[int]) -> dict:
        """
        Get the view of the match for one seat.

        Hides opponents' hands until the round is over; the viewer's own
        hand is always included. Piles are reduced to sizes plus the open
        top card.

        Args:
            for_seat_id: Seat receiving this view, or None for a spectator.

        Returns:
            Dict suitable for JSON serialization.
        """
        state = self.state
        if state is None:
            return {"phase": None, "players": []}

        reveal = state.phase in REVEAL_PHASES
        current = state.current_player()
        players_data = []
        for player in state.players:
            is_self = player.id == for_seat_id
            players_data.append({
                "id": player.id,
                "name": player.name,
                "is_bot": player.is_bot,
                "hand": [c.to_dict() for c in player.hand] if (reveal or is_self) else None,
                "hand_size": len(player.hand),
                "hand_value": player.hand_value(state.joker_rank) if (reveal or is_self) else None,
                "score": player.score if reveal else None,
                "total_score": player.total_score,
                "last_action": player.last_action,
                "was_caller": player.was_caller,
            })

        top = state.discard_top()
        return {
            "mode": state.mode.value,
            "phase": state.phase.value,
            "players": players_data,
            "current_player_id": current.id if current else None,
            "discard_top": top.to_dict() if top else None,
            "discard_count": len(state.discard_pile),
            "deck_count": len(state.deck),
            "pending_toss": [c.to_dict() for c in state.pending_toss],
            "pending_discard": [c.to_dict() for c in state.pending_discard],
            "tossed_this_turn": state.tossed_this_turn,
            "joker_rank": state.joker_rank.value if state.joker_rank else None,
            "current_round": state.current_round,
            "total_rounds": state.total_rounds,
            "turn_log": list(state.turn_log),
            "winner_id": state.winner_id,
            "can_reclaim_discard": (
                top is not None
                and not (state.phase == GamePhase.DRAWING and top.id == state.last_discarded_id)
            ),
        }
