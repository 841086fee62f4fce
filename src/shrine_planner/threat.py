"""Incoming threat: which hit an enemy lands on a friendly unit."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from .config import Settings
from .damage import DamageResult, compute_damage_range, compute_generic_damage_range
from .data_loader import GameData
from .models import PHYSICAL, SPECIAL, Combatant


@dataclass(frozen=True)
class Threat:
    """The enemy's chosen hit against one friendly unit."""

    move: str
    result: DamageResult
    area: bool
    hits_partner: bool
    assumed: bool
    enemy_acts_first: bool

    @property
    def avg_pct(self) -> float:
        return self.result.avg_pct


def _rank(result: DamageResult) -> tuple:
    return (-result.avg_pct, -result.max_pct, -result.min_pct, result.move or "")


def enemy_moves(data: GameData, enemy_species: str, known: Sequence[str] = ()) -> List[str]:
    if known:
        return list(known)
    known_set = data.enemy_sets.get(enemy_species)
    return list(known_set.moves) if known_set else []


def enemy_threat(
    data: GameData,
    enemy: Combatant,
    friendly: Combatant,
    settings: Settings,
    moves: Sequence[str] = (),
) -> Optional[Threat]:
    """Return the enemy's best hit on ``friendly``, or ``None`` when disabled.

    The enemy is the attacker here: its stages act offensively, the friendly
    unit's stages defensively, and Intimidate/Sturdy are not applied. The
    known moveset maximising average damage is chosen (ties: max roll, min
    roll, name). Without a known damaging move, a generic profile of every
    enemy type in both categories at ``enemy_assumed_power`` stands in.
    """

    if not settings.threat_model_enabled:
        return None
    view = settings.for_matchup(enemy, friendly).incoming()

    results = []
    for name in enemy_moves(data, enemy.species, moves):
        result = compute_damage_range(data, enemy, friendly, name, view)
        if result.ok:
            results.append(result)
    assumed = False
    if not results:
        species = data.species.get(enemy.species)
        if species is None or friendly.species not in data.species:
            return None
        assumed = True
        for move_type in species.types or ("Normal",):
            for category in (PHYSICAL, SPECIAL):
                profile = {
                    "type": move_type,
                    "category": category,
                    "power": settings.enemy_assumed_power,
                }
                result = compute_generic_damage_range(data, enemy, friendly, profile, view)
                if result.ok:
                    results.append(result)
    if not results:
        return None

    best = min(results, key=_rank)
    move_def = data.moves.get(best.move or "") if not assumed else None
    faster = best.attacker_speed > best.defender_speed
    tie = best.attacker_speed == best.defender_speed
    return Threat(
        move=best.move or "",
        result=best,
        area=bool(move_def and move_def.is_area),
        hits_partner=bool(move_def and move_def.hits_partner),
        assumed=assumed,
        enemy_acts_first=faster or (tie and settings.enemy_speed_tie_acts_first),
    )


__all__ = ["Threat", "enemy_moves", "enemy_threat"]
