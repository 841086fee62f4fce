"""Stat and stage formulas used by the damage engine."""

from __future__ import annotations

import math
from fractions import Fraction
from typing import Mapping

STAGE_MIN = -6
STAGE_MAX = 6

#: Standard six-step progression, 2/8 at -6 up to 8/2 at +6.
DEFAULT_STAGE_TABLE: Mapping[int, Fraction] = {
    stage: (Fraction(2, 2 - stage) if stage < 0 else Fraction(2 + stage, 2))
    for stage in range(STAGE_MIN, STAGE_MAX + 1)
}

_WEIGHT_BRACKETS = ((10, 20), (25, 40), (50, 60), (100, 80), (200, 100))
WEIGHT_POWER_FALLBACK = 60


def clamp_stage(stage: object) -> int:
    """Clamp ``stage`` to the -6..+6 range, treating junk input as 0."""

    try:
        value = int(stage)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return 0
    return max(STAGE_MIN, min(STAGE_MAX, value))


def effective_stat(base: int, level: int, iv: int, ev: int, *, is_hp: bool = False) -> int:
    """Return the in-battle value of a stat.

    HP is ``floor(((2*base + iv + floor(ev/4)) * level) / 100) + level + 10``;
    every other stat shares the inner term and adds 5 instead.
    """

    inner = ((2 * base + iv + ev // 4) * level) // 100
    if is_hp:
        return inner + level + 10
    return inner + 5


def stage_multiplier(stage: object, table: Mapping[int, Fraction] | None = None) -> Fraction:
    """Return the exact multiplier for ``stage`` (clamped); unknown stages give 1."""

    lookup = DEFAULT_STAGE_TABLE if table is None else table
    return lookup.get(clamp_stage(stage), Fraction(1))


def apply_stage(value: int, stage: object, table: Mapping[int, Fraction] | None = None) -> int:
    return math.floor(value * stage_multiplier(stage, table))


def weight_based_power(weight_kg: float | None) -> int:
    """Power of weight-scaled moves such as Low Kick, from the target's weight."""

    if weight_kg is None or weight_kg <= 0:
        return WEIGHT_POWER_FALLBACK
    for limit, power in _WEIGHT_BRACKETS:
        if weight_kg < limit:
            return power
    return 120


__all__ = [
    "DEFAULT_STAGE_TABLE",
    "STAGE_MAX",
    "STAGE_MIN",
    "WEIGHT_POWER_FALLBACK",
    "apply_stage",
    "clamp_stage",
    "effective_stat",
    "stage_multiplier",
    "weight_based_power",
]
