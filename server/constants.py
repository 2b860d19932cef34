"""
Card value and game constants for Tri-Stack.

This module is the single source of truth for card point values and
table limits. Values that operators may tune are read from config.py.

Standard Tri-Stack Scoring:
    - Ace: 1 point
    - 2-10: Face value
    - Jack, Queen, King: 10 points
    - Any card of the round's Joker rank: 0 points
    - Caller: 0 if uniquely lowest, 25 if tied for lowest, 50 otherwise
"""

from config import config


# =============================================================================
# Card Values - Single Source of Truth
# =============================================================================

DEFAULT_CARD_VALUES: dict[str, int] = config.card_values.to_dict()

TIE_PENALTY: int = config.scoring.TIE_PENALTY
MISCALL_PENALTY: int = config.scoring.MISCALL_PENALTY
BOT_SHOW_THRESHOLD: int = config.scoring.BOT_SHOW_THRESHOLD


# =============================================================================
# Game Constants
# =============================================================================

HAND_SIZE = 3
DECK_SIZE = 52
MIN_SEATS = 2
MAX_SEATS = 10
HOST_SEAT_ID = 0

MAX_PLAYERS = config.MAX_PLAYERS_PER_ROOM
ROOM_CODE_LENGTH = config.ROOM_CODE_LENGTH
DEFAULT_ROUNDS = config.game_defaults.rounds
BOT_THINK_SECONDS = config.game_defaults.bot_think_seconds

# No I, O, 0 or 1 so codes read cleanly aloud
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

BOT_NAMES = ["Bot Alpha", "Bot Beta", "Bot Gamma"]

