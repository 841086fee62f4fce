"""High level planning operations shared by the CLI and the HTTP API.

Every function takes loosely typed JSON payloads, validates them into the
core records and returns JSON-ready dictionaries. Validation problems are
raised as :class:`~shrine_planner.errors.InputValidationError`.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Sequence, Tuple

from .battle import FightContext, init_fight, run_fight, set_manual_action
from .config import Rules, Settings, SolverLimits
from .damage import compute_damage_range
from .data_loader import GameData, derive_conditions, parse_units, parse_wave
from .errors import InputValidationError
from .models import Combatant, EnemySlot, Schedule, StatStages
from .move_selector import best_from_roster
from .pp import PPLedger
from .report import schedule_payload
from .solver import solve_wave


def _mapping(payload: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise InputValidationError(
            f"{what} must be a JSON object.",
            remediation=f"Send {what.lower()} as an object with named fields.",
        )
    return payload


def parse_combatant(raw: Any, data: GameData, *, friendly: bool) -> Combatant:
    """Build a combatant; friendly units get claimed IV/EV, enemies wild ones."""

    raw = _mapping(raw, "Combatant")
    species = raw.get("species")
    if not species:
        raise InputValidationError(
            "Combatant is missing 'species'.",
            remediation="Name a species from the reference dex.",
        )
    if species not in data.species:
        raise InputValidationError(
            f"Unknown species '{species}'.",
            remediation="Check the spelling against dex.json.",
            context={"species": species},
        )
    rules: Rules = data.rules
    if friendly:
        iv = rules.claimed_iv
        ev = rules.strength_ev if raw.get("strength") else rules.claimed_ev
    else:
        iv, ev = rules.wild_iv, rules.wild_ev
    try:
        level = int(raw.get("level", rules.claimed_level))
        iv = int(raw.get("iv", iv))
        ev = int(raw.get("ev", ev))
    except (TypeError, ValueError) as exc:
        raise InputValidationError(
            "Combatant level, iv and ev must be integers.", context={"species": species}
        ) from exc
    ability = raw.get("ability") or None
    moves = raw.get("moves") or ()
    conditions = derive_conditions(ability, moves if not friendly else (), raw.get("tags") or ())
    return Combatant(
        species=str(species),
        level=level,
        iv=iv,
        ev=ev,
        conditions=conditions,
        stages=StatStages.from_mapping(raw.get("stages")),
        hp_pct=raw.get("hp_pct", 100),
        ability=ability,
        item=raw.get("item") or None,
    )


def damage_report(data: GameData, payload: Any) -> Dict[str, Any]:
    """Damage range of one move between two combatants."""

    payload = _mapping(payload, "Damage request")
    move = payload.get("move")
    if not move:
        raise InputValidationError("Damage request is missing 'move'.")
    attacker = parse_combatant(payload.get("attacker"), data, friendly=True)
    defender = parse_combatant(payload.get("defender"), data, friendly=False)
    settings = Settings.from_mapping(payload.get("settings")).for_matchup(attacker, defender)
    result = compute_damage_range(
        data, attacker, defender, str(move), settings, payload.get("conditions")
    )
    return result.as_dict()


def best_move_report(data: GameData, payload: Any) -> List[Dict[str, Any]]:
    """Every roster unit's best move against one defender, best first."""

    payload = _mapping(payload, "Best-move request")
    units = parse_units(payload.get("roster") or [], data.rules)
    defender = parse_combatant(payload.get("defender"), data, friendly=False)
    settings = Settings.from_mapping(payload.get("settings"))
    return [
        {
            "unit": pick.unit_id,
            "species": pick.species,
            "move": pick.choice.move,
            "priority_tier": pick.choice.priority_tier,
            "one_shot": pick.choice.one_shot,
            "min_pct": pick.choice.min_pct,
            "max_pct": pick.choice.result.max_pct,
        }
        for pick in best_from_roster(data, units, defender, settings)
    ]


def _ids(value: Any, what: str) -> List[str]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        raise InputValidationError(f"'{what}' must be a list of names.")
    return [str(item) for item in value]


def simulate_report(data: GameData, payload: Any) -> Dict[str, Any]:
    """Auto-play one fight and return its final state and log."""

    payload = _mapping(payload, "Simulation request")
    units = parse_units(payload.get("roster") or [], data.rules)
    enemies = parse_wave(payload.get("wave") or [], data)
    attackers = _ids(payload.get("attackers") or [unit.id for unit in units[:2]], "attackers")
    defenders = _ids(payload.get("defenders") or [slot.key for slot in enemies[:4]], "defenders")
    known_units = {unit.id for unit in units}
    unknown = [uid for uid in attackers if uid not in known_units]
    if unknown or len(attackers) < 2:
        raise InputValidationError(
            "A fight needs two attackers from the roster.",
            context={"attackers": attackers, "unknown": unknown},
        )
    if not 2 <= len(defenders) <= 4:
        raise InputValidationError(
            "A fight needs between two and four defenders.",
            context={"defenders": defenders},
        )

    context = FightContext.build(data, units, enemies, Settings.from_mapping(payload.get("settings")))
    state = init_fight(context, attackers, defenders, PPLedger.for_units(units, data.rules.default_move_pp))
    for uid, action in _mapping(payload.get("manual") or {}, "Manual actions").items():
        action = _mapping(action, "Manual action")
        set_manual_action(state, str(uid), action.get("move"), action.get("target"))
    run_fight(state)
    summary = state.summary()
    result = state.as_dict()
    result["summary"] = {
        "status": summary.status.value,
        "turns": summary.turns,
        "attacker_actions": summary.attacker_actions,
        "avg_tier": summary.avg_tier,
        "pp_spent": summary.pp_spent,
    }
    return result


def solve_schedules(data: GameData, payload: Any) -> Tuple[List[EnemySlot], List[Schedule]]:
    """Parse a solve request and return the wave with its ranked schedules."""

    payload = _mapping(payload, "Solve request")
    units = parse_units(payload.get("roster") or [], data.rules)
    enemies = parse_wave(payload.get("wave") or [], data)
    raw_limits = dict(payload.get("limits") or {})
    phase = payload.get("phase")
    try:
        limits = SolverLimits.for_phase(int(phase), **raw_limits) if phase else SolverLimits(**raw_limits)
    except (TypeError, ValueError) as exc:
        raise InputValidationError(
            "Solver limits are malformed.",
            remediation="Use slack, max_variations, max_combos, per_fight_variants or defender_limit.",
            context={"limits": raw_limits},
        ) from exc
    schedules = solve_wave(
        data, enemies, units, Settings.from_mapping(payload.get("settings")), limits
    )
    return enemies, schedules


def solve_report(data: GameData, payload: Any) -> Dict[str, Any]:
    """Ranked schedules for one wave."""

    enemies, schedules = solve_schedules(data, payload)
    return {
        "enemies": [slot.key for slot in enemies],
        "schedules": [schedule_payload(schedule) for schedule in schedules],
    }


__all__ = [
    "best_move_report",
    "damage_report",
    "parse_combatant",
    "simulate_report",
    "solve_schedules",
    "solve_report",
]
