"""Tests for wave scheduling, activation and undo."""

from __future__ import annotations

import pytest

from shrine_planner.battle import FightStatus
from shrine_planner.config import SolverLimits
from shrine_planner.models import FightSpec, MoveSlot, PlanScore, Schedule, SimulationSummary
from shrine_planner.pp import PPLedger
from shrine_planner.solver import (
    PairTable,
    _rank,
    activate_schedule,
    check_schedule,
    iter_perfect_matchings,
    iter_schedule_variants,
    padding_distributions,
    solve_wave,
    undo_fight_log,
    within_slack,
)

from conftest import make_enemy, make_unit

KEYS = ["Target"] + [f"Target#{n}" for n in range(2, 9)]


@pytest.fixture
def units():
    return [make_unit("a"), make_unit("b")]


@pytest.fixture
def enemies():
    return [make_enemy(key) for key in KEYS]


def test_eight_slots_have_105_perfect_matchings() -> None:
    matchings = list(iter_perfect_matchings("ABCDEFGH"))
    assert len(matchings) == 105
    assert len(set(matchings)) == 105
    for matching in matchings:
        covered = sorted(slot for pair in matching for slot in pair)
        assert covered == list("ABCDEFGH")


def test_matching_edge_cases() -> None:
    assert list(iter_perfect_matchings([])) == [()]
    assert list(iter_perfect_matchings("ABC")) == []
    assert len(list(iter_perfect_matchings("ABCD"))) == 3


def test_padding_fills_the_wave_to_eight_slots() -> None:
    distributions = padding_distributions(["A", "B", "C"], SolverLimits())
    assert len(distributions) == 21
    for slots in distributions:
        assert len(slots) == 8
        assert {"A", "B", "C"} <= set(slots)
        assert len(set(slots)) == 8

    capped = padding_distributions(["A", "B", "C"], SolverLimits(max_combos=5))
    assert len(capped) == 5
    assert padding_distributions(list("ABCDEFGHIJ"), SolverLimits()) == [tuple("ABCDEFGH")]


def test_within_slack() -> None:
    best = PlanScore(-2, 1, 0, 4.0, 10.0)
    assert within_slack(PlanScore(-2, 1, 0, 4.5, 0.0), best, 0.5)
    assert not within_slack(PlanScore(-2, 1, 0, 4.6, 0.0), best, 0.5)
    assert not within_slack(PlanScore(-1, 1, 0, 4.0, 10.0), best, 5.0)


def test_pair_table_keeps_tied_options(build_context, units, enemies) -> None:
    weak = make_unit("c", moves=(MoveSlot("Tap", priority_tier=3),))
    table = PairTable(build_context(units + [weak], enemies))
    options = table.options(("Target", "Target#2"))
    assert [option.attackers for option in options] == [("a", "b")]
    assert options[0].worst_tier == 2
    assert table.best_move("a", "Target#5").move == "Strike"


def test_identical_matchings_collapse_to_one_schedule(build_context, units, enemies) -> None:
    table = PairTable(build_context(units, enemies))
    score = PlanScore(0, 2, 4, 8.0, 0.0)
    seen: set = set()
    candidates = [(score, matching) for matching in iter_perfect_matchings(KEYS)]
    variants = list(iter_schedule_variants(candidates, table, SolverLimits(), seen))
    assert len(variants) == 1
    assert len(seen) == 1


def test_solve_wave_covers_every_slot(game_data, units, enemies, quiet_settings) -> None:
    ledger = PPLedger.for_units(units)
    before = ledger.snapshot()

    schedules = solve_wave(game_data, enemies, units, quiet_settings, ledger=ledger)

    assert len(schedules) == 1
    (schedule,) = schedules
    assert check_schedule(schedule, KEYS, SolverLimits())
    assert all(fight.attackers == ("a", "b") for fight in schedule.fights)
    assert schedule.simulation.fights_won == 4
    assert schedule.simulation.pp_spent == 24
    assert schedule.simulation.avg_tier == pytest.approx(2.0)
    assert ledger.snapshot() == before


def test_solve_wave_pads_small_waves(game_data, units, quiet_settings) -> None:
    enemies = [make_enemy(key) for key in KEYS[:6]]
    (schedule,) = solve_wave(game_data, enemies, units, quiet_settings)
    assert len(schedule.defender_slots) == 8
    assert set(KEYS[:6]) <= set(schedule.defender_slots)


def test_solve_wave_needs_two_units_and_enemies(game_data, units, enemies) -> None:
    assert solve_wave(game_data, enemies, units[:1]) == []
    assert solve_wave(game_data, [], units) == []


def test_check_schedule_rejects_gaps_and_large_fights() -> None:
    fights = (
        FightSpec(("a", "b"), ("A", "B", "C")),
        FightSpec(("a", "b"), ("D", "E")),
    )
    schedule = Schedule(fights=fights, score=PlanScore(0, 1, 0, 0.0, 0.0))
    assert check_schedule(schedule, list("ABCDE"), SolverLimits())
    assert not check_schedule(schedule, list("ABCDE"), SolverLimits.for_phase(1))
    assert not check_schedule(schedule, list("ABCDEF"), SolverLimits())


def test_activate_and_undo(game_data, units, enemies, quiet_settings) -> None:
    (schedule,) = solve_wave(game_data, enemies, units, quiet_settings)
    ledger = PPLedger.for_units(units)
    before = ledger.snapshot()
    claimed: set = set()

    entries = activate_schedule(
        game_data, schedule, units, enemies, quiet_settings, ledger=ledger, claimed=claimed
    )

    assert [entry.status for entry in entries] == [FightStatus.WON] * 4
    assert claimed == set(KEYS)
    assert ledger.remaining("a", "Strike") == 20 - 12

    for entry in reversed(entries):
        undo_fight_log(entry, ledger, claimed)
    assert ledger.snapshot() == before
    assert claimed == set()


def test_unsimulated_schedules_rank_last() -> None:
    fights = (FightSpec(("a", "b"), ("A", "B")),)
    score = PlanScore(0, 1, 0, 1.0, 0.0)
    simulated = Schedule(fights=fights, score=score, simulation=SimulationSummary(0, 1, 0, 9.0, 0))
    bare = Schedule(fights=fights, score=score)
    assert sorted([bare, simulated], key=_rank) == [simulated, bare]
