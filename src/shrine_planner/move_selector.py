"""Greedy best-move choice under the three-tier priority policy."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from .config import Settings
from .damage import DamageResult, compute_damage_range
from .data_loader import GameData
from .models import Combatant, FriendlyUnit, MoveSlot

MISSING_TIER = 9


@dataclass(frozen=True)
class MoveChoice:
    """A candidate move with its damage result and selection score."""

    move: str
    priority_tier: int
    result: DamageResult
    score: float

    @property
    def one_shot(self) -> bool:
        return self.result.one_shot

    @property
    def min_pct(self) -> float:
        return self.result.min_pct


@dataclass(frozen=True)
class SelectionResult:
    best: Optional[MoveChoice]
    all: Tuple[MoveChoice, ...]


def candidate_slots(move_pool: Iterable[MoveSlot]) -> List[MoveSlot]:
    """Usable slots in (tier, name) order."""

    return sorted(
        (slot for slot in move_pool if slot.usable),
        key=lambda slot: (slot.priority_tier, slot.name),
    )


def _one_shot_key(choice: MoveChoice, settings: Settings) -> tuple:
    closeness = abs(choice.min_pct - 100) if settings.conserve_power else 0.0
    return (
        closeness,
        not choice.result.stab,
        -choice.result.effectiveness,
        -choice.min_pct,
        choice.move,
    )


def _damage_key(choice: MoveChoice) -> tuple:
    return (-choice.score, -choice.min_pct, choice.move)


def choose_best_move(
    data: GameData,
    attacker: Combatant,
    defender: Combatant,
    move_pool: Sequence[MoveSlot],
    settings: Settings,
    conditions: Iterable[object] | None = None,
) -> SelectionResult:
    """Pick the single best move of ``move_pool`` against ``defender``.

    Guaranteed one-shots win: among them the lowest tier is kept, then the
    move whose minimum is closest to 100% (when ``conserve_power``), then
    STAB, effectiveness, higher minimum and name. Without a one-shot the
    lowest tier present is kept and ``min_pct + stab_bonus * stab`` decides,
    then ``min_pct`` and name. ``best`` is ``None`` when nothing is usable.
    """

    choices: List[MoveChoice] = []
    for slot in candidate_slots(move_pool):
        result = compute_damage_range(
            data, attacker, defender, slot.name, settings, conditions
        )
        if not result.ok:
            continue
        score = result.min_pct + (settings.stab_bonus if result.stab else 0.0)
        choices.append(MoveChoice(slot.name, slot.priority_tier, result, score))

    if not choices:
        return SelectionResult(best=None, all=())

    one_shots = [choice for choice in choices if choice.one_shot]
    if one_shots:
        tier = min(choice.priority_tier for choice in one_shots)
        pool = [choice for choice in one_shots if choice.priority_tier == tier]
        best = min(pool, key=lambda choice: _one_shot_key(choice, settings))
    else:
        tier = min(choice.priority_tier for choice in choices)
        pool = [choice for choice in choices if choice.priority_tier == tier]
        best = min(pool, key=_damage_key)
    return SelectionResult(best=best, all=tuple(choices))


@dataclass(frozen=True)
class RosterPick:
    unit_id: str
    species: str
    choice: MoveChoice


def best_from_roster(
    data: GameData,
    units: Iterable[FriendlyUnit],
    defender: Combatant,
    settings: Settings,
) -> List[RosterPick]:
    """Rank every unit by its best move against one defender.

    Order: one-shots first, then lower tier, higher ``min_pct`` and species.
    Units without a usable damaging move are left out.
    """

    picks: List[RosterPick] = []
    for unit in units:
        attacker = unit.to_combatant(data.rules)
        selection = choose_best_move(
            data, attacker, defender, unit.move_pool, settings.for_matchup(attacker, defender)
        )
        if selection.best is not None:
            picks.append(RosterPick(unit.id, unit.species, selection.best))
    picks.sort(
        key=lambda pick: (
            not pick.choice.one_shot,
            pick.choice.priority_tier,
            -pick.choice.min_pct,
            pick.species,
            pick.unit_id,
        )
    )
    return picks


__all__ = [
    "MISSING_TIER",
    "MoveChoice",
    "RosterPick",
    "SelectionResult",
    "best_from_roster",
    "candidate_slots",
    "choose_best_move",
]
