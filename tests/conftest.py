"""Shared fixtures: a tiny in-memory reference data set with hand-checked numbers.

At level 50 a claimed unit (IV 31, EV 0) of ``Striker`` has 120 in every
battle stat and 175 HP; a wild ``Target`` (IV 0) has 140 HP and 85 Def/SpD.
``Strike`` from a ``Striker`` into a ``Target`` therefore rolls 64-76.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from shrine_planner.battle import FightContext  # noqa: E402
from shrine_planner.config import Rules, Settings  # noqa: E402
from shrine_planner.data_loader import GameData  # noqa: E402
from shrine_planner.models import (  # noqa: E402
    BaseStats,
    EnemySlot,
    FriendlyUnit,
    MoveDef,
    MoveSlot,
    Species,
)
from shrine_planner.type_chart import TypeChart  # noqa: E402

ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = ROOT / "data"


def _species(name, types, hp, atk, defense, spa, spd, spe, weight=None):
    return Species(
        name=name,
        types=tuple(types),
        base=BaseStats(hp=hp, atk=atk, defense=defense, spa=spa, spd=spd, spe=spe),
        weight_kg=weight,
    )


@pytest.fixture(scope="session")
def game_data() -> GameData:
    species = [
        _species("Striker", ["Normal"], 100, 100, 100, 100, 100, 100),
        _species("Titan", ["Normal"], 100, 255, 100, 255, 100, 100),
        _species("Target", ["Water"], 80, 50, 80, 50, 80, 30, weight=20.0),
        _species("Racer", ["Normal"], 80, 100, 80, 100, 80, 115),
        _species("Spirit", ["Ghost"], 80, 50, 80, 50, 80, 30),
    ]
    moves = [
        MoveDef("Strike", "Normal", "Physical", 80),
        MoveDef("Alpha Strike", "Normal", "Physical", 80),
        MoveDef("Beta Strike", "Normal", "Physical", 80),
        MoveDef("Big Strike", "Normal", "Physical", 120),
        MoveDef("Tap", "Normal", "Physical", 10),
        MoveDef("Wave", "Normal", "Special", 80, spread="foes"),
        MoveDef("Quake", "Ground", "Physical", 100, spread="all"),
        MoveDef("Spark", "Electric", "Special", 80),
        MoveDef("Low Kick", "Fighting", "Physical", 0),
        MoveDef("Growl", "Normal", "Status", 0),
    ]
    chart = TypeChart.from_mapping(
        {
            "Normal": {"Ghost": 0},
            "Electric": {"Water": 2, "Ground": 0},
            "Fighting": {"Normal": 2, "Ghost": 0},
            "Ground": {"Electric": 2},
        }
    )
    return GameData(
        species={entry.name: entry for entry in species},
        moves={move.name: move for move in moves},
        chart=chart,
        rules=Rules(),
    )


def make_unit(uid: str, species: str = "Striker", moves=("Strike",), **kwargs) -> FriendlyUnit:
    pool = tuple(
        move if isinstance(move, MoveSlot) else MoveSlot(name=move, max_uses=20)
        for move in moves
    )
    return FriendlyUnit(id=uid, species=species, move_pool=pool, **kwargs)


def make_enemy(key: str, species: str = "Target", **kwargs) -> EnemySlot:
    return EnemySlot(key=key, species=species, **kwargs)


@pytest.fixture
def quiet_settings() -> Settings:
    """Settings where enemies never attack."""

    return Settings(threat_model_enabled=False)


@pytest.fixture
def build_context(game_data):
    def _build(units, enemies, settings=None):
        return FightContext.build(game_data, units, enemies, settings or Settings())

    return _build
