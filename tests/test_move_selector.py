from __future__ import annotations

from shrine_planner.config import Settings
from shrine_planner.models import Combatant, MoveSlot
from shrine_planner.move_selector import best_from_roster, candidate_slots, choose_best_move

from conftest import make_unit

TARGET = Combatant(species="Target", level=50)
STRIKER = Combatant(species="Striker", level=50, iv=31)
TITAN = Combatant(species="Titan", level=50, iv=31)


def test_equal_moves_break_ties_alphabetically(game_data) -> None:
    pool = [MoveSlot("Beta Strike"), MoveSlot("Alpha Strike")]
    selection = choose_best_move(game_data, STRIKER, TARGET, pool, Settings())
    assert selection.best is not None
    assert selection.best.move == "Alpha Strike"
    assert len(selection.all) == 2


def test_lower_tier_wins_without_one_shot(game_data) -> None:
    pool = [MoveSlot("Spark", priority_tier=2), MoveSlot("Tap", priority_tier=1)]
    selection = choose_best_move(game_data, STRIKER, TARGET, pool, Settings())
    assert selection.best.move == "Tap"


def test_one_shot_beats_lower_tier_chip(game_data) -> None:
    pool = [MoveSlot("Tap", priority_tier=1), MoveSlot("Strike", priority_tier=3)]
    selection = choose_best_move(game_data, TITAN, TARGET, pool, Settings())
    assert selection.best.move == "Strike"
    assert selection.best.one_shot


def test_conserve_power_prefers_closest_one_shot(game_data) -> None:
    pool = [MoveSlot("Big Strike"), MoveSlot("Strike")]
    conserving = choose_best_move(game_data, TITAN, TARGET, pool, Settings())
    assert conserving.best.move == "Strike"

    greedy = choose_best_move(game_data, TITAN, TARGET, pool, Settings(conserve_power=False))
    assert greedy.best.move == "Big Strike"


def test_unusable_slots_are_skipped(game_data) -> None:
    pool = [
        MoveSlot("Strike", enabled=False),
        MoveSlot("Wave", remaining_uses=0),
        MoveSlot("Growl"),
    ]
    assert candidate_slots(pool) == [MoveSlot("Growl")]
    selection = choose_best_move(game_data, STRIKER, TARGET, pool, Settings())
    assert selection.best is None
    assert selection.all == ()


def test_roster_ranking_puts_one_shots_first(game_data) -> None:
    units = [make_unit("weak"), make_unit("strong", species="Titan"), make_unit("idle", moves=("Growl",))]
    picks = best_from_roster(game_data, units, TARGET, Settings())
    assert [pick.unit_id for pick in picks] == ["strong", "weak"]
    assert picks[0].choice.one_shot
