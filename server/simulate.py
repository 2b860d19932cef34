"""
Tri-Stack Bot Simulation Runner

Runs bot-only matches headless, checking card conservation after every
accepted action. No server or Redis needed.

Usage:
    python simulate.py [num_matches] [num_players] [num_rounds]

Examples:
    python simulate.py 10        # 10 matches, 4 bots, default rounds
    python simulate.py 50 2 3    # 50 matches, 2 bots, 3 rounds each
"""

import random
import sys
from typing import Optional

from ai import choose_draw_source, decide_bot_action
from constants import DECK_SIZE, DEFAULT_ROUNDS
from game import Game, GameMode, GamePhase, GameState, Player, DRAW_PHASES


class ConservationError(AssertionError):
    pass


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.matches_played = 0
        self.total_rounds = 0
        self.total_turns = 0
        self.forced_round_ends = 0
        self.wins: dict[str, int] = {}
        self.actions: dict[str, int] = {}

    def record_action(self, action_type: str):
        self.actions[action_type] = self.actions.get(action_type, 0) + 1

    def record_match(self, state: GameState):
        self.matches_played += 1
        self.total_rounds += state.current_round
        winner = state.get_player(state.winner_id)
        if winner:
            self.wins[winner.name] = self.wins.get(winner.name, 0) + 1

    def report(self) -> str:
        lines = [
            "SIMULATION RESULTS",
            "=" * 50,
            f"Matches played: {self.matches_played}",
            f"Rounds played:  {self.total_rounds}",
            f"Turns played:   {self.total_turns}",
            f"Dead-deck round ends: {self.forced_round_ends}",
            "",
            "Wins:",
        ]
        for name, count in sorted(self.wins.items(), key=lambda kv: -kv[1]):
            lines.append(f"  {name}: {count}")
        lines.append("")
        lines.append("Actions:")
        for action, count in sorted(self.actions.items()):
            lines.append(f"  {action}: {count}")
        return "\n".join(lines)


def check_conservation(state: GameState) -> None:
    """Raise if cards were created or lost while a round is in play."""
    if state.phase in (GamePhase.SETUP, GamePhase.MATCH_END):
        return
    count = state.card_count()
    if count != DECK_SIZE:
        raise ConservationError(
            f"Round {state.current_round}: {count} cards in play, expected {DECK_SIZE}"
        )


def play_bot_turn(game: Game, stats: SimulationStats) -> None:
    """One bot turn without delays: decide, apply, draw if needed."""
    state = game.state
    player = state.current_player()
    action = decide_bot_action(player, state.joker_rank, state.tossed_this_turn)
    game.apply(action)
    stats.record_action(action.type.value)

    if game.state.phase in DRAW_PHASES:
        game.draw(choose_draw_source(player), seat_id=player.id)
        stats.record_action("draw")
        if game.state.phase == GamePhase.ROUND_END:
            stats.forced_round_ends += 1
    stats.total_turns += 1


def run_match(
    num_players: int = 4,
    num_rounds: int = DEFAULT_ROUNDS,
    stats: Optional[SimulationStats] = None,
    rng: Optional[random.Random] = None,
    max_turns: int = 5000,
) -> GameState:
    """
    Play a full bot-only match.

    Returns:
        The final MATCH_END snapshot.
    """
    stats = stats or SimulationStats()
    game = Game(rng=rng)
    game.set_state_listener(check_conservation)

    players = [Player(id=i, name=f"Bot {i + 1}", is_bot=True) for i in range(num_players)]
    game.start_match(players, num_rounds, GameMode.SINGLE_PLAYER)

    turns = 0
    while game.phase != GamePhase.MATCH_END:
        if turns >= max_turns:
            raise RuntimeError(f"Match did not finish within {max_turns} turns")
        if game.phase == GamePhase.ROUND_END:
            if game.state.current_round < game.state.total_rounds:
                game.advance_round()
            else:
                game.advance_match()
            continue
        play_bot_turn(game, stats)
        turns += 1

    stats.record_match(game.state)
    return game.state


def run_simulation(num_matches: int = 10, num_players: int = 4, num_rounds: int = DEFAULT_ROUNDS):
    """Run multiple matches and report statistics."""
    print(f"\nRunning {num_matches} matches with {num_players} bots, {num_rounds} rounds each...")
    print("=" * 50)

    stats = SimulationStats()
    for i in range(num_matches):
        final = run_match(num_players, num_rounds, stats)
        winner = final.get_player(final.winner_id)
        print(f"Match {i + 1}/{num_matches}: {winner.name} wins with {winner.total_score}")

    print("\n")
    print(stats.report())


if __name__ == "__main__":
    num_matches = int(sys.argv[1]) if len(sys.argv) > 1 else 10
    num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
    num_rounds = int(sys.argv[3]) if len(sys.argv) > 3 else DEFAULT_ROUNDS
    run_simulation(num_matches, num_players, num_rounds)
