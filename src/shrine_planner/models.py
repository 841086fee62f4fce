"""Records shared by the damage engine, simulator and solver."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, FrozenSet, Iterable, NamedTuple, Optional, Tuple

from .formulas import clamp_stage

if TYPE_CHECKING:  # pragma: no cover - type checking only.
    from .config import Rules

PHYSICAL = "Physical"
SPECIAL = "Special"
STATUS = "Status"
CATEGORIES = (PHYSICAL, SPECIAL, STATUS)

STAT_KEYS = ("HP", "Atk", "Def", "SpA", "SpD", "Spe")

AREA_FOES = "foes"
AREA_ALL = "all"

INSTANCE_SEPARATOR = "#"


def base_key(instance_key: str) -> str:
    """Strip the ``#n`` duplicate suffix from an enemy instance key."""

    return str(instance_key).split(INSTANCE_SEPARATOR)[0]


def expand_instance_keys(keys: Iterable[str]) -> Tuple[str, ...]:
    """Give repeated keys ``#2``, ``#3``... suffixes so every slot is distinct."""

    counts: dict[str, int] = {}
    out = []
    for raw in keys:
        base = base_key(raw)
        counts[base] = counts.get(base, 0) + 1
        n = counts[base]
        out.append(base if n == 1 else f"{base}{INSTANCE_SEPARATOR}{n}")
    return tuple(out)


def clamp_pct(value: object, low: float = 0.0) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 100.0
    if number != number:  # NaN
        return 100.0
    return max(low, min(100.0, number))


class BattleCondition(str, Enum):
    """Conditional mechanics that change damage, resolved once per combatant."""

    DAMAGE_REDUCTION_ONCE = "STU"
    OFFENSE_DEBUFF_ON_SWITCH_IN = "INT"
    DAMAGE_SUPPORT_BOOST = "HH"

    @classmethod
    def from_tags(cls, tags: Iterable[object] | None) -> FrozenSet["BattleCondition"]:
        """Parse legacy tag strings; unknown tags are ignored."""

        found = set()
        for tag in tags or ():
            if isinstance(tag, cls):
                found.add(tag)
                continue
            text = str(tag).strip()
            for member in cls:
                if text in (member.value, member.name):
                    found.add(member)
        return frozenset(found)


@dataclass(frozen=True)
class BaseStats:
    hp: int
    atk: int
    defense: int
    spa: int
    spd: int
    spe: int

    def get(self, key: str) -> int:
        return {
            "HP": self.hp,
            "Atk": self.atk,
            "Def": self.defense,
            "SpA": self.spa,
            "SpD": self.spd,
            "Spe": self.spe,
        }[key]


@dataclass(frozen=True)
class Species:
    """Reference record for one species."""

    name: str
    types: Tuple[str, ...]
    base: BaseStats
    weight_kg: Optional[float] = None


@dataclass(frozen=True)
class MoveDef:
    """Reference record for one move."""

    name: str
    type: Optional[str]
    category: Optional[str]
    power: int = 0
    uses: Optional[str] = None
    targets: Optional[str] = None
    spread: Optional[str] = None
    priority: int = 0

    @property
    def is_area(self) -> bool:
        return self.spread in (AREA_FOES, AREA_ALL)

    @property
    def hits_partner(self) -> bool:
        return self.spread == AREA_ALL


@dataclass(frozen=True)
class StatStages:
    """Atk/Def/SpA/SpD/Spe stages, each clamped to -6..+6."""

    atk: int = 0
    defense: int = 0
    spa: int = 0
    spd: int = 0
    spe: int = 0

    def __post_init__(self) -> None:
        for name in ("atk", "defense", "spa", "spd", "spe"):
            object.__setattr__(self, name, clamp_stage(getattr(self, name)))

    @classmethod
    def from_mapping(cls, raw: Optional[dict]) -> "StatStages":
        raw = raw or {}
        return cls(
            atk=raw.get("atk", raw.get("Atk", 0)),
            defense=raw.get("def", raw.get("Def", raw.get("defense", 0))),
            spa=raw.get("spa", raw.get("SpA", 0)),
            spd=raw.get("spd", raw.get("SpD", 0)),
            spe=raw.get("spe", raw.get("Spe", 0)),
        )


@dataclass(frozen=True)
class Combatant:
    """A species as it stands in one matchup."""

    species: str
    level: int
    iv: int = 0
    ev: int = 0
    conditions: FrozenSet[BattleCondition] = frozenset()
    stages: StatStages = field(default_factory=StatStages)
    hp_pct: float = 100.0
    ability: Optional[str] = None
    item: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "hp_pct", clamp_pct(self.hp_pct))
        object.__setattr__(self, "conditions", BattleCondition.from_tags(self.conditions))

    def has(self, condition: BattleCondition) -> bool:
        return condition in self.conditions

    def at_hp(self, hp_pct: float) -> "Combatant":
        return replace(self, hp_pct=hp_pct)


@dataclass(frozen=True)
class MoveSlot:
    """One entry of a unit's move pool.

    ``remaining_uses`` defaults to ``max_uses`` and is clamped to
    ``0..max_uses``; a slot without uses left is never usable.
    """

    name: str
    priority_tier: int = 2
    enabled: bool = True
    max_uses: int = 12
    remaining_uses: Optional[int] = None

    def __post_init__(self) -> None:
        tier = max(1, min(3, int(self.priority_tier)))
        max_uses = max(0, int(self.max_uses))
        remaining = max_uses if self.remaining_uses is None else int(self.remaining_uses)
        object.__setattr__(self, "priority_tier", tier)
        object.__setattr__(self, "max_uses", max_uses)
        object.__setattr__(self, "remaining_uses", max(0, min(max_uses, remaining)))

    @property
    def usable(self) -> bool:
        return self.enabled and (self.remaining_uses or 0) > 0


MovePool = Tuple[MoveSlot, ...]


@dataclass(frozen=True)
class FriendlyUnit:
    """A roster unit the player can send into a fight."""

    id: str
    species: str
    move_pool: MovePool = ()
    level: Optional[int] = None
    strength: bool = False
    ability: Optional[str] = None
    item: Optional[str] = None
    stages: StatStages = field(default_factory=StatStages)
    hp_pct: float = 100.0
    conditions: FrozenSet[BattleCondition] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "move_pool", tuple(self.move_pool))
        object.__setattr__(self, "hp_pct", clamp_pct(self.hp_pct, low=1.0))
        object.__setattr__(self, "conditions", BattleCondition.from_tags(self.conditions))

    def to_combatant(self, rules: "Rules") -> Combatant:
        return Combatant(
            species=self.species,
            level=self.level if self.level is not None else rules.claimed_level,
            iv=rules.claimed_iv,
            ev=rules.strength_ev if self.strength else rules.claimed_ev,
            conditions=self.conditions,
            stages=self.stages,
            hp_pct=self.hp_pct,
            ability=self.ability,
            item=self.item,
        )


@dataclass(frozen=True)
class EnemySlot:
    """One enemy instance of a wave. Never mutated by the solver."""

    key: str
    species: str
    level: int = 50
    conditions: FrozenSet[BattleCondition] = frozenset()
    stages: StatStages = field(default_factory=StatStages)
    hp_pct: float = 100.0
    moves: Tuple[str, ...] = ()
    ability: Optional[str] = None
    item: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "moves", tuple(self.moves))
        object.__setattr__(self, "hp_pct", clamp_pct(self.hp_pct, low=1.0))
        object.__setattr__(self, "conditions", BattleCondition.from_tags(self.conditions))

    @property
    def base_key(self) -> str:
        return base_key(self.key)

    def to_combatant(self, rules: "Rules") -> Combatant:
        return Combatant(
            species=self.species,
            level=self.level,
            iv=rules.wild_iv,
            ev=rules.wild_ev,
            conditions=self.conditions,
            stages=self.stages,
            hp_pct=self.hp_pct,
            ability=self.ability,
            item=self.item,
        )


@dataclass(frozen=True)
class FightSpec:
    """Two attacker ids against two to four defender slot keys."""

    attackers: Tuple[str, str]
    defenders: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "attackers", tuple(self.attackers))
        object.__setattr__(self, "defenders", tuple(self.defenders))
        if len(self.attackers) != 2:
            raise ValueError("A fight needs exactly two attackers.")
        if not 2 <= len(self.defenders) <= 4:
            raise ValueError("A fight needs between two and four defenders.")

    def canonical_key(self) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        return (
            tuple(sorted(self.attackers)),
            tuple(sorted(base_key(key) for key in self.defenders)),
        )


class PlanScore(NamedTuple):
    """Lexicographic matching cost; lower is better."""

    neg_one_shots: int
    worst_tier: int
    fights_above_tier1: int
    sum_avg_tier: float
    overkill: float


@dataclass(frozen=True)
class SimulationSummary:
    """What re-simulating a whole schedule produced."""

    fights_won: int
    fights_stalled: int
    actions: int
    avg_tier: float
    pp_spent: int


@dataclass(frozen=True)
class Schedule:
    """Up to four fights covering every defender slot exactly once."""

    fights: Tuple[FightSpec, ...]
    score: PlanScore
    simulation: Optional[SimulationSummary] = None

    def canonical_key(self) -> Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...]:
        return tuple(sorted(fight.canonical_key() for fight in self.fights))

    @property
    def defender_slots(self) -> Tuple[str, ...]:
        return tuple(key for fight in self.fights for key in fight.defenders)


__all__ = [
    "AREA_ALL",
    "AREA_FOES",
    "BaseStats",
    "BattleCondition",
    "CATEGORIES",
    "Combatant",
    "EnemySlot",
    "FightSpec",
    "FriendlyUnit",
    "MoveDef",
    "MovePool",
    "MoveSlot",
    "PHYSICAL",
    "PlanScore",
    "STAT_KEYS",
    "SPECIAL",
    "STATUS",
    "Schedule",
    "SimulationSummary",
    "Species",
    "StatStages",
    "base_key",
    "clamp_pct",
    "expand_instance_keys",
]
