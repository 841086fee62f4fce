"""Load the read-only reference data and parse roster/wave payloads."""
from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import Rules, data_dir
from .errors import DataLoadError, InputValidationError
from .models import (
    CATEGORIES,
    BattleCondition,
    BaseStats,
    EnemySlot,
    FriendlyUnit,
    MoveDef,
    MoveSlot,
    Species,
    StatStages,
    expand_instance_keys,
)
from .observability import get_logger
from .type_chart import TypeChart

LOGGER = get_logger(__name__)

_REQUIRED_FILES = ("dex.json", "moves.json", "typing.json", "rules.json")
_CACHE: Dict[Path, "GameData"] = {}
_CACHE_LOCK = threading.Lock()

_ABILITY_CONDITIONS = {
    "Intimidate": BattleCondition.OFFENSE_DEBUFF_ON_SWITCH_IN,
    "Sturdy": BattleCondition.DAMAGE_REDUCTION_ONCE,
}
_MOVE_CONDITIONS = {
    "Helping Hand": BattleCondition.DAMAGE_SUPPORT_BOOST,
}


@dataclass(frozen=True)
class EnemySet:
    """Known ability and moveset of a wild species."""

    ability: Optional[str] = None
    moves: Tuple[str, ...] = ()
    item: Optional[str] = None


@dataclass(frozen=True)
class GameData:
    """Everything the combat core reads but never writes."""

    species: Mapping[str, Species]
    moves: Mapping[str, MoveDef]
    chart: TypeChart
    rules: Rules = field(default_factory=Rules)
    enemy_sets: Mapping[str, EnemySet] = field(default_factory=dict)


def _load_json(directory: Path, name: str, *, required: bool = True) -> Any:
    path = directory / name
    if not path.exists():
        if not required:
            return None
        raise DataLoadError(
            f"Reference data file '{name}' is missing.",
            remediation="Check SHRINE_PLANNER_DATA_DIR or reinstall the package data.",
            context={"path": str(path)},
        )
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DataLoadError(
            f"Reference data file '{name}' is not valid JSON.",
            remediation="Restore the file from version control.",
            context={"path": str(path), "line": exc.lineno},
        ) from exc


def parse_species(raw: Mapping[str, Any]) -> Dict[str, Species]:
    out: Dict[str, Species] = {}
    for name, entry in raw.items():
        base = entry.get("base") or {}
        try:
            stats = BaseStats(
                hp=int(base["hp"]),
                atk=int(base["atk"]),
                defense=int(base["def"]),
                spa=int(base["spa"]),
                spd=int(base["spd"]),
                spe=int(base["spe"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DataLoadError(
                f"Species '{name}' has incomplete base stats.",
                context={"species": name},
            ) from exc
        types = tuple(t for t in entry.get("types") or () if t)
        weight = entry.get("weight_kg")
        out[name] = Species(
            name=name,
            types=types,
            base=stats,
            weight_kg=float(weight) if weight is not None else None,
        )
    return out


def parse_moves(raw: Mapping[str, Any]) -> Dict[str, MoveDef]:
    out: Dict[str, MoveDef] = {}
    for name, entry in raw.items():
        category = entry.get("category")
        out[name] = MoveDef(
            name=name,
            type=entry.get("type") or None,
            category=category if category in CATEGORIES else None,
            power=int(entry.get("power") or 0),
            uses=entry.get("uses") or None,
            targets=entry.get("targets") or None,
            spread=entry.get("spread") or None,
            priority=int(entry.get("priority") or 0),
        )
    return out


def parse_enemy_sets(raw: Mapping[str, Any] | None) -> Dict[str, EnemySet]:
    out: Dict[str, EnemySet] = {}
    for species, entry in (raw or {}).items():
        if not isinstance(entry, Mapping):
            continue
        ability = str(entry.get("ability") or "").strip() or None
        out[species] = EnemySet(
            ability=ability,
            moves=tuple(m for m in entry.get("moves") or () if m),
            item=entry.get("item") or None,
        )
    return out


def load_game_data(directory: Path | str | None = None, *, refresh: bool = False) -> GameData:
    """Load and cache the reference data set from ``directory``.

    Raises:
        DataLoadError: If a required file is missing or malformed.
    """

    root = Path(directory) if directory is not None else data_dir()
    key = root.resolve()
    with _CACHE_LOCK:
        if not refresh and key in _CACHE:
            return _CACHE[key]

    dex, moves, typing_raw, rules_raw = (_load_json(root, name) for name in _REQUIRED_FILES)
    stages_raw = _load_json(root, "stages.json", required=False)
    sets_raw = _load_json(root, "enemy_sets.json", required=False)
    chart_raw = typing_raw.get("chart", typing_raw) if isinstance(typing_raw, Mapping) else {}

    try:
        data = GameData(
            species=parse_species(dex),
            moves=parse_moves(moves),
            chart=TypeChart.from_mapping(chart_raw),
            rules=Rules.from_mapping(rules_raw, stages_raw),
            enemy_sets=parse_enemy_sets(sets_raw),
        )
    except (AttributeError, TypeError, ValueError, ZeroDivisionError) as exc:
        raise DataLoadError(
            "Reference data contains malformed values.",
            remediation="Check numeric fields in moves.json, rules.json and stages.json.",
            context={"path": str(root), "error": str(exc)},
        ) from exc
    with _CACHE_LOCK:
        _CACHE[key] = data
    LOGGER.info(
        "reference_data_loaded",
        extra={
            "event": "reference_data_loaded",
            "path": str(root),
            "species": len(data.species),
            "moves": len(data.moves),
        },
    )
    return data


def clear_cache() -> None:
    with _CACHE_LOCK:
        _CACHE.clear()


def derive_conditions(
    ability: str | None, moves: Iterable[str] = (), tags: Iterable[object] = ()
) -> frozenset:
    """Resolve battle conditions from explicit tags, an ability and a moveset."""

    found = set(BattleCondition.from_tags(tags))
    if ability and ability.strip() in _ABILITY_CONDITIONS:
        found.add(_ABILITY_CONDITIONS[ability.strip()])
    for move in moves:
        if move in _MOVE_CONDITIONS:
            found.add(_MOVE_CONDITIONS[move])
    return frozenset(found)


def _require(entry: Mapping[str, Any], key: str, what: str) -> Any:
    value = entry.get(key)
    if value in (None, ""):
        raise InputValidationError(
            f"{what} is missing '{key}'.",
            remediation=f"Add a '{key}' field to every {what.lower()}.",
            context={"entry": dict(entry)},
        )
    return value


def parse_move_slot(raw: Any, rules: Rules) -> MoveSlot:
    if isinstance(raw, str):
        return MoveSlot(name=raw, max_uses=rules.default_move_pp)
    if not isinstance(raw, Mapping):
        raise InputValidationError("Move pool entries must be names or objects.")
    max_uses = raw.get("max_uses", raw.get("pp_max", rules.default_move_pp))
    try:
        return MoveSlot(
            name=str(_require(raw, "name", "Move")),
            priority_tier=int(raw.get("priority_tier", raw.get("prio", 2))),
            enabled=bool(raw.get("enabled", raw.get("use", True))),
            max_uses=int(max_uses),
            remaining_uses=raw.get("remaining_uses", raw.get("pp")),
        )
    except (TypeError, ValueError) as exc:
        raise InputValidationError(
            "Move pool entry has non-numeric fields.",
            context={"entry": dict(raw)},
        ) from exc


def parse_unit(raw: Mapping[str, Any], rules: Rules) -> FriendlyUnit:
    if not isinstance(raw, Mapping):
        raise InputValidationError("Roster entries must be objects.")
    unit_id = str(_require(raw, "id", "Roster entry"))
    level = raw.get("level")
    try:
        level = int(level) if level is not None else None
    except (TypeError, ValueError) as exc:
        raise InputValidationError(
            "Roster entry level must be an integer.", context={"id": unit_id}
        ) from exc
    return FriendlyUnit(
        id=unit_id,
        species=str(_require(raw, "species", "Roster entry")),
        move_pool=tuple(parse_move_slot(m, rules) for m in raw.get("moves") or ()),
        level=level,
        strength=bool(raw.get("strength", False)),
        ability=raw.get("ability") or None,
        item=raw.get("item") or None,
        stages=StatStages.from_mapping(raw.get("stages")),
        hp_pct=raw.get("hp_pct", 100),
        conditions=BattleCondition.from_tags(raw.get("tags")),
    )


def parse_units(raw: Any, rules: Rules) -> List[FriendlyUnit]:
    entries = raw.get("roster", raw.get("units")) if isinstance(raw, Mapping) else raw
    if not isinstance(entries, Sequence) or isinstance(entries, (str, bytes)):
        raise InputValidationError(
            "Roster payload must be a list of units.",
            remediation="Provide a JSON list or an object with a 'roster' list.",
        )
    units = [parse_unit(entry, rules) for entry in entries]
    ids = [unit.id for unit in units]
    if len(set(ids)) != len(ids):
        raise InputValidationError("Roster ids must be unique.", context={"ids": ids})
    return units


def parse_wave(raw: Any, data: GameData) -> List[EnemySlot]:
    """Parse wave enemies, filling abilities and moves from the known sets.

    Repeated keys (or species when no key is given) get ``#n`` suffixes.
    """

    entries = raw.get("enemies", raw.get("wave")) if isinstance(raw, Mapping) else raw
    if not isinstance(entries, Sequence) or isinstance(entries, (str, bytes)):
        raise InputValidationError(
            "Wave payload must be a list of enemies.",
            remediation="Provide a JSON list or an object with an 'enemies' list.",
        )
    parsed = []
    for entry in entries:
        if isinstance(entry, str):
            entry = {"species": entry}
        if not isinstance(entry, Mapping):
            raise InputValidationError("Wave entries must be species names or objects.")
        species = str(_require(entry, "species", "Wave entry"))
        known = data.enemy_sets.get(species, EnemySet())
        moves = tuple(entry.get("moves") or known.moves)
        ability = entry.get("ability") or known.ability
        try:
            level = int(entry.get("level", data.rules.claimed_level))
        except (TypeError, ValueError) as exc:
            raise InputValidationError(
                "Wave entry level must be an integer.", context={"species": species}
            ) from exc
        parsed.append(
            (
                str(entry.get("key") or species),
                dict(
                    species=species,
                    level=level,
                    conditions=derive_conditions(ability, moves, entry.get("tags") or ()),
                    stages=StatStages.from_mapping(entry.get("stages")),
                    hp_pct=entry.get("hp_pct", 100),
                    moves=moves,
                    ability=ability,
                    item=entry.get("item") or known.item,
                ),
            )
        )
    keys = expand_instance_keys(key for key, _ in parsed)
    return [EnemySlot(key=key, **fields) for key, (_, fields) in zip(keys, parsed)]


def _read_payload(path: Path | str) -> Any:
    source = Path(path)
    try:
        return json.loads(source.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise InputValidationError(
            f"File '{source}' does not exist.", context={"path": str(source)}
        ) from exc
    except json.JSONDecodeError as exc:
        raise InputValidationError(
            f"File '{source}' is not valid JSON.",
            context={"path": str(source), "line": exc.lineno},
        ) from exc


def load_roster(path: Path | str, data: GameData) -> List[FriendlyUnit]:
    return parse_units(_read_payload(path), data.rules)


def load_wave(path: Path | str, data: GameData) -> List[EnemySlot]:
    return parse_wave(_read_payload(path), data)


__all__ = [
    "EnemySet",
    "GameData",
    "clear_cache",
    "derive_conditions",
    "load_game_data",
    "load_roster",
    "load_wave",
    "parse_enemy_sets",
    "parse_move_slot",
    "parse_moves",
    "parse_species",
    "parse_unit",
    "parse_units",
    "parse_wave",
]
