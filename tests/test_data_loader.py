"""Tests for reference data loading and roster/wave parsing."""

from __future__ import annotations

import json
from fractions import Fraction
from pathlib import Path

import pytest

from shrine_planner import data_loader
from shrine_planner.errors import DataLoadError, InputValidationError
from shrine_planner.models import BattleCondition

from conftest import DATA_DIR


@pytest.fixture(scope="module")
def shipped():
    return data_loader.load_game_data(DATA_DIR)


def test_shipped_data_loads(shipped) -> None:
    excadrill = shipped.species["Excadrill"]
    assert excadrill.types == ("Ground", "Steel")
    assert excadrill.base.atk == 135
    assert shipped.moves["Earthquake"].hits_partner
    assert shipped.moves["Rock Slide"].is_area and not shipped.moves["Rock Slide"].hits_partner
    assert shipped.rules.stab == Fraction(3, 2)
    assert shipped.rules.stage_table[-2] == Fraction(1, 2)
    assert shipped.chart.effectiveness("Electric", ["Ground"]) == 0
    assert shipped.enemy_sets["Roggenrola"].ability == "Sturdy"


def test_load_is_cached(shipped) -> None:
    assert data_loader.load_game_data(DATA_DIR) is shipped


def test_missing_directory_raises(tmp_path: Path) -> None:
    with pytest.raises(DataLoadError) as excinfo:
        data_loader.load_game_data(tmp_path)
    assert excinfo.value.category == "data_error"
    assert "dex.json" in excinfo.value.message


def test_invalid_json_raises(tmp_path: Path) -> None:
    for name in ("dex.json", "moves.json", "typing.json", "rules.json"):
        (tmp_path / name).write_text("{}", encoding="utf-8")
    (tmp_path / "moves.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(DataLoadError):
        data_loader.load_game_data(tmp_path, refresh=True)


def test_incomplete_species_raises(tmp_path: Path) -> None:
    (tmp_path / "dex.json").write_text(json.dumps({"Blob": {"types": ["Normal"], "base": {"hp": 1}}}))
    for name in ("moves.json", "typing.json", "rules.json"):
        (tmp_path / name).write_text("{}", encoding="utf-8")
    with pytest.raises(DataLoadError):
        data_loader.load_game_data(tmp_path, refresh=True)


def test_parse_wave_expands_duplicates_and_known_sets(shipped) -> None:
    wave = data_loader.parse_wave(
        {"enemies": ["Roggenrola", {"species": "Roggenrola"}, {"species": "Sandile", "level": 45}]},
        shipped,
    )
    assert [slot.key for slot in wave] == ["Roggenrola", "Roggenrola#2", "Sandile"]
    assert BattleCondition.DAMAGE_REDUCTION_ONCE in wave[1].conditions
    assert wave[1].base_key == "Roggenrola"
    assert wave[2].level == 45
    assert BattleCondition.OFFENSE_DEBUFF_ON_SWITCH_IN in wave[2].conditions
    assert wave[0].moves == ("Rock Blast", "Tackle")


def test_parse_wave_rejects_bad_payloads(shipped) -> None:
    with pytest.raises(InputValidationError):
        data_loader.parse_wave("Roggenrola", shipped)
    with pytest.raises(InputValidationError):
        data_loader.parse_wave([{"level": 50}], shipped)
    with pytest.raises(InputValidationError):
        data_loader.parse_wave([{"species": "Sandile", "level": "high"}], shipped)


def test_parse_units_accepts_legacy_move_fields(shipped) -> None:
    units = data_loader.parse_units(
        [
            {
                "id": "a",
                "species": "Excadrill",
                "moves": ["Earthquake", {"name": "Iron Head", "prio": 1, "use": False, "pp": 3, "pp_max": 8}],
                "tags": ["HH"],
            }
        ],
        shipped.rules,
    )
    (unit,) = units
    quake, head = unit.move_pool
    assert quake.max_uses == shipped.rules.default_move_pp
    assert (head.priority_tier, head.enabled, head.remaining_uses, head.max_uses) == (1, False, 3, 8)
    assert BattleCondition.DAMAGE_SUPPORT_BOOST in unit.conditions


def test_parse_units_rejects_duplicates_and_bad_levels(shipped) -> None:
    with pytest.raises(InputValidationError):
        data_loader.parse_units(
            [{"id": "a", "species": "Excadrill"}, {"id": "a", "species": "Excadrill"}], shipped.rules
        )
    with pytest.raises(InputValidationError):
        data_loader.parse_units([{"id": "a", "species": "Excadrill", "level": "x"}], shipped.rules)
    with pytest.raises(InputValidationError):
        data_loader.parse_units({"roster": "nope"}, shipped.rules)


def test_derive_conditions() -> None:
    found = data_loader.derive_conditions("Intimidate", ["Helping Hand"], ["STU", "bogus"])
    assert found == {
        BattleCondition.OFFENSE_DEBUFF_ON_SWITCH_IN,
        BattleCondition.DAMAGE_SUPPORT_BOOST,
        BattleCondition.DAMAGE_REDUCTION_ONCE,
    }


def test_sample_files_parse(shipped) -> None:
    units = data_loader.load_roster(DATA_DIR / "sample_roster.json", shipped)
    wave = data_loader.load_wave(DATA_DIR / "sample_wave.json", shipped)
    assert len(units) == 5
    assert len(wave) == 8
    assert all(slot.species in shipped.species for slot in wave)
    for unit in units:
        assert unit.species in shipped.species
        assert all(slot.name in shipped.moves for slot in unit.move_pool)


def test_missing_payload_file(shipped, tmp_path: Path) -> None:
    with pytest.raises(InputValidationError):
        data_loader.load_roster(tmp_path / "absent.json", shipped)
