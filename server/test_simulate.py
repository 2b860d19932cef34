"""
Bot-only match simulations.

Every snapshot is checked for card conservation by simulate.run_match,
so playing many seeded matches doubles as an invariant sweep.

Run with: pytest test_simulate.py -v
"""

import random

import pytest

from game import GamePhase
from simulate import SimulationStats, run_match


class TestSimulation:

    @pytest.mark.parametrize("num_players", [2, 4, 7, 10])
    def test_match_completes(self, num_players):
        stats = SimulationStats()
        final = run_match(num_players, 3, stats, rng=random.Random(num_players))

        assert final.phase == GamePhase.MATCH_END
        assert final.current_round == 3
        lowest = min(p.total_score for p in final.players)
        assert final.get_player(final.winner_id).total_score == lowest
        assert stats.matches_played == 1
        assert stats.total_turns > 0

    def test_many_seeded_matches(self):
        stats = SimulationStats()
        for seed in range(25):
            run_match(4, 2, stats, rng=random.Random(seed))

        assert stats.matches_played == 25
        assert sum(stats.wins.values()) == 25
        assert "SIMULATION RESULTS" in stats.report()
