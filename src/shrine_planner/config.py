"""Immutable configuration values threaded through every calculation.

``Rules`` holds the numeric constants of the game (loaded from
``rules.json`` and ``stages.json``), ``Settings`` holds the per-call options
of the damage engine and simulator, and ``SolverLimits`` bounds the
schedule search. All three are frozen; derive variants with
:func:`dataclasses.replace` or the helpers below.
"""
from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, fields, replace
from fractions import Fraction
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

from .formulas import DEFAULT_STAGE_TABLE, clamp_stage
from .type_chart import to_fraction

if TYPE_CHECKING:  # pragma: no cover - type checking only.
    from .models import Combatant

DATA_DIR_ENV = "SHRINE_PLANNER_DATA_DIR"
DEFAULT_DATA_DIR = Path(__file__).resolve().parents[2] / "data"


def data_dir() -> Path:
    """Return the reference data directory, honouring ``SHRINE_PLANNER_DATA_DIR``."""

    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return DEFAULT_DATA_DIR


def _clamp_int(value: Any, low: int, high: int, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return max(low, min(high, number))


def _clamp_float(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return max(low, min(high, number))


@dataclass(frozen=True)
class Rules:
    """Numeric constants of the ruleset."""

    stab: Fraction = Fraction(3, 2)
    rand_min: Fraction = Fraction(85, 100)
    rand_max: Fraction = Fraction(1)
    helping_hand_mult: Fraction = Fraction(3, 2)
    spread_mult: Fraction = Fraction(3, 4)
    claimed_level: int = 50
    claimed_iv: int = 31
    claimed_ev: int = 0
    strength_ev: int = 85
    wild_iv: int = 0
    wild_ev: int = 0
    default_move_pp: int = 12
    stage_table: Mapping[int, Fraction] = field(default_factory=lambda: dict(DEFAULT_STAGE_TABLE))

    _KEYS = {
        "STAB": "stab",
        "RandMin": "rand_min",
        "RandMax": "rand_max",
        "HelpingHand_Mult": "helping_hand_mult",
        "Spread_Mult": "spread_mult",
        "Claimed_Level": "claimed_level",
        "Claimed_IV_All": "claimed_iv",
        "Claimed_EV_All": "claimed_ev",
        "StrengthCharm_EV_All": "strength_ev",
        "Wild_IV_Default": "wild_iv",
        "Wild_EV_Default": "wild_ev",
        "Default_Move_PP": "default_move_pp",
    }

    @classmethod
    def from_mapping(
        cls, raw: Mapping[str, Any], stages: Mapping[str, Any] | None = None
    ) -> "Rules":
        """Build rules from ``rules.json`` keys and an optional stage table.

        Unknown keys are ignored and missing ones keep their defaults.
        Multipliers are stored as exact fractions of their decimal text.
        """

        values: dict[str, Any] = {}
        for key, attr in cls._KEYS.items():
            if key not in raw or raw[key] is None:
                continue
            if attr in {"stab", "rand_min", "rand_max", "helping_hand_mult", "spread_mult"}:
                values[attr] = to_fraction(raw[key])
            else:
                values[attr] = int(raw[key])
        if stages:
            table = dict(DEFAULT_STAGE_TABLE)
            for stage, factor in stages.items():
                table[clamp_stage(stage)] = to_fraction(factor)
            values["stage_table"] = table
        return cls(**values)


@dataclass(frozen=True)
class Settings:
    """Options of one damage calculation or simulation.

    Stage fields without a prefix belong to the acting side; ``enemy_*``
    stages belong to the receiving side. Every numeric value is clamped on
    construction so callers may pass raw user input.
    """

    atk_stage: int = 0
    spa_stage: int = 0
    spe_stage: int = 0
    def_stage: int = 0
    spd_stage: int = 0
    enemy_atk_stage: int = 0
    enemy_spa_stage: int = 0
    enemy_def_stage: int = 0
    enemy_spd_stage: int = 0
    enemy_spe_stage: int = 0
    hp_fraction: float = 1.0
    apply_intimidate: bool = True
    apply_sturdy: bool = True
    allow_friendly_fire: bool = False
    enemy_speed_tie_acts_first: bool = True
    conserve_power: bool = True
    conserve_pp_single_target: bool = True
    threat_model_enabled: bool = True
    stab_bonus: float = 2.0
    other_mult: float = 1.0
    enemy_assumed_power: int = 80
    turn_cap: int = 50

    def __post_init__(self) -> None:
        for name in (
            "atk_stage",
            "spa_stage",
            "spe_stage",
            "def_stage",
            "spd_stage",
            "enemy_atk_stage",
            "enemy_spa_stage",
            "enemy_def_stage",
            "enemy_spd_stage",
            "enemy_spe_stage",
        ):
            object.__setattr__(self, name, clamp_stage(getattr(self, name)))
        object.__setattr__(self, "hp_fraction", _clamp_float(self.hp_fraction, 0.0, 1.0, 1.0))
        object.__setattr__(self, "stab_bonus", _clamp_float(self.stab_bonus, 0.0, 100.0, 2.0))
        object.__setattr__(self, "other_mult", _clamp_float(self.other_mult, 0.0, 10.0, 1.0))
        object.__setattr__(
            self, "enemy_assumed_power", _clamp_int(self.enemy_assumed_power, 1, 250, 80)
        )
        object.__setattr__(self, "turn_cap", _clamp_int(self.turn_cap, 1, 500, 50))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "Settings":
        """Build settings from a loose mapping, ignoring unknown keys.

        ``hp_pct`` (1-100) is accepted as an alternative to ``hp_fraction``.
        """

        raw = dict(raw or {})
        if "hp_pct" in raw and "hp_fraction" not in raw:
            raw["hp_fraction"] = _clamp_float(raw.pop("hp_pct"), 1.0, 100.0, 100.0) / 100
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in raw.items() if key in known})

    def for_matchup(self, attacker: "Combatant", defender: "Combatant") -> "Settings":
        """Return settings carrying both combatants' stages and the defender's HP."""

        return replace(
            self,
            atk_stage=attacker.stages.atk,
            spa_stage=attacker.stages.spa,
            spe_stage=attacker.stages.spe,
            def_stage=attacker.stages.defense,
            spd_stage=attacker.stages.spd,
            enemy_atk_stage=defender.stages.atk,
            enemy_spa_stage=defender.stages.spa,
            enemy_def_stage=defender.stages.defense,
            enemy_spd_stage=defender.stages.spd,
            enemy_spe_stage=defender.stages.spe,
            hp_fraction=defender.hp_pct / 100,
        )

    def incoming(self) -> "Settings":
        """Settings for an enemy hitting a friendly unit: no Intimidate or Sturdy."""

        return replace(self, apply_intimidate=False, apply_sturdy=False)


@dataclass(frozen=True)
class SolverLimits:
    """Bounds of the schedule search."""

    slack: float = 0.0
    max_variations: int = 200
    max_combos: int = 64
    per_fight_variants: int = 4
    defender_limit: int = 4

    def __post_init__(self) -> None:
        object.__setattr__(self, "slack", _clamp_float(self.slack, 0.0, 10.0, 0.0))
        object.__setattr__(self, "max_variations", _clamp_int(self.max_variations, 1, 10000, 200))
        object.__setattr__(self, "max_combos", _clamp_int(self.max_combos, 1, 5000, 64))
        object.__setattr__(
            self, "per_fight_variants", _clamp_int(self.per_fight_variants, 1, 64, 4)
        )
        object.__setattr__(self, "defender_limit", _clamp_int(self.defender_limit, 2, 4, 4))

    @classmethod
    def for_phase(cls, phase: int, **overrides: Any) -> "SolverLimits":
        """Limits for a wave phase: phase 1 allows 2 defenders, phase 2 allows 3."""

        limit = {1: 2, 2: 3}.get(int(phase), 4)
        return cls(defender_limit=limit, **overrides)


__all__ = [
    "DATA_DIR_ENV",
    "DEFAULT_DATA_DIR",
    "Rules",
    "Settings",
    "SolverLimits",
    "data_dir",
]
