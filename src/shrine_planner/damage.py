"""Deterministic min/max damage for one attacker, defender and move.

Every multiplier is an exact :class:`~fractions.Fraction`, so each floor in
the pipeline rounds exactly as the integer formula intends. Missing data
never raises: the result carries ``ok=False`` and a ``reason`` instead.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Iterable, Mapping, Optional

from .config import Settings
from .data_loader import GameData
from .formulas import apply_stage, effective_stat, stage_multiplier, weight_based_power
from .models import PHYSICAL, SPECIAL, BattleCondition, Combatant, MoveDef, Species

NON_DAMAGING = "non-damaging"
MISSING_SPECIES = "missing species"
BAD_PROFILE = "bad-profile"

_STURDY_THRESHOLD = 0.999
_EPSILON = 1e-9

_WEIGHT_MOVES = {"Low Kick", "Grass Knot"}
_FIXED_MULTI_HIT = {"Bonemerang": 2, "Dual Chop": 2, "DoubleSlap": 2}
_PUNCH_MOVES = {
    "Drain Punch",
    "ThunderPunch",
    "Fire Punch",
    "Ice Punch",
    "DynamicPunch",
    "Bullet Punch",
    "Mach Punch",
}
_RECOIL_MOVES = {
    "Brave Bird",
    "Double-Edge",
    "Head Smash",
    "Jump Kick",
    "High Jump Kick",
    "Take Down",
    "Wild Charge",
}
_GROUND_IMMUNE_ABILITIES = {"levitate"}
_GROUND_IMMUNE_ITEMS = {"Air Balloon"}


@dataclass(frozen=True)
class DamageResult:
    """Outcome of one damage calculation; percentages are of ``target_hp``."""

    ok: bool
    reason: Optional[str] = None
    move: Optional[str] = None
    min: int = 0
    max: int = 0
    min_pct: float = 0.0
    max_pct: float = 0.0
    one_shot: bool = False
    move_type: Optional[str] = None
    category: Optional[str] = None
    uses: Optional[str] = None
    power: int = 0
    stab: bool = False
    effectiveness: float = 1.0
    support_boost: bool = False
    max_hp: int = 0
    target_hp: int = 0
    attacker_speed: int = 0
    defender_speed: int = 0
    slower: bool = False

    @property
    def avg_pct(self) -> float:
        return (self.min_pct + self.max_pct) / 2

    def applied_pct(self, multiplier: Fraction = Fraction(1)) -> float:
        """Minimum roll times ``multiplier`` as a percentage of maximum HP."""

        if self.max_hp <= 0:
            return 0.0
        return math.floor(self.min * multiplier) / self.max_hp * 100

    def as_dict(self) -> dict:
        data = {name: getattr(self, name) for name in self.__dataclass_fields__}
        data["avg_pct"] = self.avg_pct
        return data


def _failure(reason: str, move: str | None = None) -> DamageResult:
    return DamageResult(ok=False, reason=reason, move=move)


def _lower(value: str | None) -> str:
    return (value or "").strip().lower()


def is_ground_immune(combatant: Combatant) -> bool:
    """Levitate or an Air Balloon makes a combatant ignore Ground moves."""

    return (
        _lower(combatant.ability) in _GROUND_IMMUNE_ABILITIES
        or (combatant.item or "") in _GROUND_IMMUNE_ITEMS
    )


def effective_speed(
    data: GameData, combatant: Combatant, stage: int | None = None
) -> int:
    """Speed after the stage multiplier and a Choice Scarf; 0 for unknown species."""

    species = data.species.get(combatant.species)
    if species is None:
        return 0
    rules = data.rules
    raw = effective_stat(species.base.spe, combatant.level, combatant.iv, combatant.ev)
    stage = combatant.stages.spe if stage is None else stage
    scarf = Fraction(3, 2) if combatant.item == "Choice Scarf" else Fraction(1)
    return math.floor(raw * stage_multiplier(stage, rules.stage_table) * scarf)


def _item_offense(item: str | None, move: MoveDef, eff: Fraction) -> Fraction:
    if not item:
        return Fraction(1)
    mult = Fraction(1)
    if item.endswith(" Plate") and item[: -len(" Plate")] == move.type:
        mult *= Fraction(6, 5)
    if item.endswith(" Gem") and item[: -len(" Gem")] == move.type:
        mult *= Fraction(13, 10)
    if item == "Muscle Band" and move.category == PHYSICAL:
        mult *= Fraction(11, 10)
    if item == "Wise Glasses" and move.category == SPECIAL:
        mult *= Fraction(11, 10)
    if item == "Choice Band" and move.category == PHYSICAL:
        mult *= Fraction(3, 2)
    if item == "Choice Specs" and move.category == SPECIAL:
        mult *= Fraction(3, 2)
    if item == "Life Orb":
        mult *= Fraction(13, 10)
    if item == "Expert Belt" and eff > 1:
        mult *= Fraction(6, 5)
    return mult


def _ability_offense(ability: str, move: MoveDef) -> Fraction:
    mult = Fraction(1)
    if ability == "toxic boost" and move.category == PHYSICAL:
        mult *= Fraction(3, 2)
    if ability == "iron fist" and move.name in _PUNCH_MOVES:
        mult *= Fraction(6, 5)
    if ability == "reckless" and move.name in _RECOIL_MOVES:
        mult *= Fraction(6, 5)
    return mult


def _move_power(move: MoveDef, ability: str, attacker: Combatant, target: Species) -> int:
    power = move.power
    if move.name in _WEIGHT_MOVES:
        power = weight_based_power(target.weight_kg)
    if move.name in _FIXED_MULTI_HIT:
        hits = _FIXED_MULTI_HIT[move.name]
        if move.name == "DoubleSlap" and ability == "skill link":
            hits = 5
        power *= hits
    if move.name == "Acrobatics" and not attacker.item:
        power *= 2
    return power


def _resolve_conditions(
    attacker: Combatant,
    defender: Combatant,
    conditions: Iterable[object] | None,
) -> Mapping[str, bool]:
    if conditions is not None:
        explicit = BattleCondition.from_tags(conditions)
        return {
            "intimidate": BattleCondition.OFFENSE_DEBUFF_ON_SWITCH_IN in explicit,
            "sturdy": BattleCondition.DAMAGE_REDUCTION_ONCE in explicit,
            "support": BattleCondition.DAMAGE_SUPPORT_BOOST in explicit,
        }
    return {
        "intimidate": defender.has(BattleCondition.OFFENSE_DEBUFF_ON_SWITCH_IN),
        "sturdy": defender.has(BattleCondition.DAMAGE_REDUCTION_ONCE),
        "support": attacker.has(BattleCondition.DAMAGE_SUPPORT_BOOST),
    }


def _calculate(
    data: GameData,
    attacker: Combatant,
    defender: Combatant,
    move: MoveDef,
    settings: Settings,
    conditions: Iterable[object] | None,
) -> DamageResult:
    atk_species = data.species.get(attacker.species)
    def_species = data.species.get(defender.species)
    if atk_species is None or def_species is None:
        return _failure(MISSING_SPECIES, move.name)

    rules = data.rules
    table = rules.stage_table
    flags = _resolve_conditions(attacker, defender, conditions)
    ability = _lower(attacker.ability)

    max_hp = effective_stat(
        def_species.base.hp, defender.level, defender.iv, defender.ev, is_hp=True
    )
    target_hp = max(1, math.floor(max_hp * settings.hp_fraction + _EPSILON))

    uses = move.uses or ("Atk" if move.category == PHYSICAL else "SpA")
    atk_stage = settings.atk_stage if uses == "Atk" else settings.spa_stage
    if settings.apply_intimidate and flags["intimidate"] and uses == "Atk":
        atk_stage -= 1
    raw_attack = effective_stat(
        atk_species.base.get(uses), attacker.level, attacker.iv, attacker.ev
    )
    attack = apply_stage(raw_attack, atk_stage, table)
    if uses == "Atk" and ability in {"huge power", "pure power"}:
        attack *= 2

    if move.targets in {"Def", "SpD"}:
        def_key = move.targets
    else:
        def_key = "SpD" if move.category == SPECIAL else "Def"
    def_stage = settings.enemy_spd_stage if def_key == "SpD" else settings.enemy_def_stage
    raw_defense = effective_stat(
        def_species.base.get(def_key), defender.level, defender.iv, defender.ev
    )
    defense = max(1, apply_stage(raw_defense, def_stage, table))
    if def_key == "SpD" and defender.item == "Assault Vest":
        defense = max(1, math.floor(defense * Fraction(3, 2)))

    power = _move_power(move, ability, attacker, def_species)
    level_term = (2 * attacker.level) // 5 + 2
    damage = (level_term * power * attack // defense) // 50 + 2

    stab = move.type in atk_species.types
    eff = data.chart.effectiveness(move.type, def_species.types)
    if move.type == "Ground" and is_ground_immune(defender):
        eff = Fraction(0)
    modifier = (
        (rules.stab if stab else Fraction(1))
        * eff
        * (rules.helping_hand_mult if flags["support"] else Fraction(1))
        * Fraction(str(settings.other_mult))
        * _item_offense(attacker.item, move, eff)
        * _ability_offense(ability, move)
    )
    damage = math.floor(damage * modifier)

    low = math.floor(damage * rules.rand_min)
    high = math.floor(damage * rules.rand_max)
    if (
        settings.apply_sturdy
        and flags["sturdy"]
        and settings.hp_fraction >= _STURDY_THRESHOLD
        and high >= target_hp
    ):
        cap = max(0, target_hp - 1)
        low = min(low, cap)
        high = min(high, cap)

    attacker_speed = effective_speed(data, attacker, settings.spe_stage)
    defender_speed = effective_speed(data, defender, settings.enemy_spe_stage)
    return DamageResult(
        ok=True,
        move=move.name,
        min=low,
        max=high,
        min_pct=low / target_hp * 100,
        max_pct=high / target_hp * 100,
        one_shot=low >= target_hp,
        move_type=move.type,
        category=move.category,
        uses=uses,
        power=power,
        stab=stab,
        effectiveness=float(eff),
        support_boost=flags["support"],
        max_hp=max_hp,
        target_hp=target_hp,
        attacker_speed=attacker_speed,
        defender_speed=defender_speed,
        slower=attacker_speed < defender_speed,
    )


def compute_damage_range(
    data: GameData,
    attacker: Combatant,
    defender: Combatant,
    move_name: str,
    settings: Settings,
    conditions: Iterable[object] | None = None,
) -> DamageResult:
    """Return the damage range of ``move_name`` from ``attacker`` to ``defender``.

    Args:
        data: Reference data set.
        attacker: The acting combatant.
        defender: The receiving combatant.
        move_name: Name of a move in ``data.moves``.
        settings: Stages, HP fraction and modifier flags for this call.
        conditions: Optional legacy tags or :class:`BattleCondition` values
            that apply to this matchup. When omitted, Intimidate and Sturdy
            come from the defender and the support boost from the attacker.

    Returns:
        A :class:`DamageResult`. ``ok`` is ``False`` with reason
        ``"non-damaging"`` for unknown or status moves and
        ``"missing species"`` when either species record is absent.
    """

    move = data.moves.get(move_name)
    if move is None or not move.type or move.category not in (PHYSICAL, SPECIAL):
        return _failure(NON_DAMAGING, move_name)
    if move.power <= 0 and move.name not in _WEIGHT_MOVES:
        return _failure(NON_DAMAGING, move_name)
    return _calculate(data, attacker, defender, move, settings, conditions)


def compute_generic_damage_range(
    data: GameData,
    attacker: Combatant,
    defender: Combatant,
    profile: Mapping[str, object],
    settings: Settings,
    conditions: Iterable[object] | None = None,
) -> DamageResult:
    """Run the same pipeline for an assumed ``{type, category, power}`` hit."""

    move_type = profile.get("type")
    category = profile.get("category")
    try:
        power = int(profile.get("power") or 0)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        power = 0
    if not move_type or category not in (PHYSICAL, SPECIAL) or power <= 0:
        return _failure(BAD_PROFILE)
    move = MoveDef(
        name=f"{move_type} {category} ({power})",
        type=str(move_type),
        category=str(category),
        power=power,
    )
    return _calculate(data, attacker, defender, move, settings, conditions)


__all__ = [
    "BAD_PROFILE",
    "DamageResult",
    "MISSING_SPECIES",
    "NON_DAMAGING",
    "compute_damage_range",
    "compute_generic_damage_range",
    "effective_speed",
    "is_ground_immune",
]
