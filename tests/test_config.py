from __future__ import annotations

from fractions import Fraction
from pathlib import Path

import pytest

from shrine_planner import config
from shrine_planner.config import Rules, Settings, SolverLimits
from shrine_planner.models import Combatant, StatStages


def test_settings_clamp_raw_input() -> None:
    settings = Settings(atk_stage=9, enemy_def_stage=-9, hp_fraction=0, turn_cap=0, stab_bonus="x")
    assert settings.atk_stage == 6
    assert settings.enemy_def_stage == -6
    assert settings.hp_fraction == 0.0
    assert settings.turn_cap == 1
    assert settings.stab_bonus == 2.0


def test_settings_from_mapping_accepts_hp_pct_and_ignores_unknown_keys() -> None:
    settings = Settings.from_mapping({"hp_pct": 50, "colour": "blue", "turn_cap": 10})
    assert settings.hp_fraction == 0.5
    assert settings.turn_cap == 10
    assert Settings.from_mapping(None) == Settings()


def test_for_matchup_carries_both_sides() -> None:
    attacker = Combatant("Striker", 50, stages=StatStages(atk=2, spe=1))
    defender = Combatant("Target", 50, stages=StatStages(defense=-1), hp_pct=40)
    settings = Settings().for_matchup(attacker, defender)
    assert (settings.atk_stage, settings.spe_stage) == (2, 1)
    assert settings.enemy_def_stage == -1
    assert settings.hp_fraction == 0.4

    incoming = settings.incoming()
    assert incoming.apply_sturdy is False
    assert incoming.apply_intimidate is False


def test_rules_from_mapping_uses_exact_fractions() -> None:
    rules = Rules.from_mapping({"STAB": 1.5, "RandMin": 0.85, "Claimed_Level": "60"}, {"1": "3/2"})
    assert rules.stab == Fraction(3, 2)
    assert rules.rand_min == Fraction(17, 20)
    assert rules.claimed_level == 60
    assert rules.stage_table[1] == Fraction(3, 2)
    assert rules.spread_mult == Fraction(3, 4)


def test_solver_limits_for_phase() -> None:
    assert SolverLimits.for_phase(1).defender_limit == 2
    assert SolverLimits.for_phase(2).defender_limit == 3
    assert SolverLimits.for_phase(3).defender_limit == 4
    limits = SolverLimits.for_phase(1, slack=0.5, max_variations=0)
    assert limits.slack == 0.5
    assert limits.max_variations == 1


def test_data_dir_honours_environment(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv(config.DATA_DIR_ENV, str(tmp_path))
    assert config.data_dir() == tmp_path
    monkeypatch.delenv(config.DATA_DIR_ENV)
    assert config.data_dir() == config.DEFAULT_DATA_DIR


def test_for_matchup_keeps_hp_below_one_percent() -> None:
    attacker = Combatant("Striker", 50)
    defender = Combatant("Striker", 100, hp_pct=0.4)
    assert Settings().for_matchup(attacker, defender).hp_fraction == pytest.approx(0.004)
