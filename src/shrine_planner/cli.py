"""Command line interface for damage checks, fight simulation and wave solving."""
from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Sequence

from . import analysis, data_loader
from .errors import InputValidationError, ShrinePlannerError
from .observability import configure_logging, generate_trace_id, get_logger
from .report import export_schedules_csv, export_schedules_excel, schedule_payload


def _read_json(path: str) -> Any:
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


def _add_settings_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--settings", help="JSON file with simulation settings")
    parser.add_argument("--turn-cap", type=int, dest="turn_cap")
    parser.add_argument(
        "--friendly-fire",
        action="store_true",
        dest="allow_friendly_fire",
        help="Allow area moves that could faint the partner",
    )
    parser.add_argument(
        "--no-threat-model",
        action="store_false",
        dest="threat_model_enabled",
        help="Enemies do not attack",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Plan two-versus-N shrine fights and whole waves"
    )
    parser.add_argument("--data-dir", help="Directory holding the reference JSON files")
    parser.add_argument("--output", choices=["text", "json"], default="text")

    subparsers = parser.add_subparsers(dest="command", required=True)

    damage_parser = subparsers.add_parser("damage", help="Damage range of one move")
    damage_parser.add_argument("--attacker", required=True, help="Attacking species")
    damage_parser.add_argument("--defender", required=True, help="Defending species")
    damage_parser.add_argument("--move", required=True)
    damage_parser.add_argument("--attacker-level", type=int, dest="attacker_level")
    damage_parser.add_argument("--defender-level", type=int, dest="defender_level")
    damage_parser.add_argument("--strength", action="store_true", help="Attacker has boosted EVs")
    damage_parser.add_argument("--hp-pct", type=float, default=100.0, dest="hp_pct")
    damage_parser.add_argument("--atk-stage", type=int, default=0, dest="atk_stage")
    damage_parser.add_argument("--def-stage", type=int, default=0, dest="def_stage")
    damage_parser.add_argument(
        "--tags", nargs="*", default=[], help="Condition tags of the matchup (STU, INT, HH)"
    )

    best_parser = subparsers.add_parser("best-move", help="Rank a roster against one defender")
    best_parser.add_argument("--roster", required=True, help="Roster JSON file")
    best_parser.add_argument("--defender", required=True, help="Defending species")
    best_parser.add_argument("--defender-level", type=int, dest="defender_level")
    best_parser.add_argument("--hp-pct", type=float, default=100.0, dest="hp_pct")

    simulate_parser = subparsers.add_parser("simulate", help="Auto-play one fight")
    simulate_parser.add_argument("--roster", required=True, help="Roster JSON file")
    simulate_parser.add_argument("--wave", required=True, help="Wave JSON file")
    simulate_parser.add_argument("--attackers", nargs=2, metavar=("FIRST", "SECOND"))
    simulate_parser.add_argument("--defenders", nargs="+", help="Defender keys, two to four")
    _add_settings_arguments(simulate_parser)

    solve_parser = subparsers.add_parser("solve", help="Rank fight schedules for a wave")
    solve_parser.add_argument("--roster", required=True, help="Roster JSON file")
    solve_parser.add_argument("--wave", required=True, help="Wave JSON file")
    solve_parser.add_argument("--phase", type=int, help="Wave phase (sets the defender limit)")
    solve_parser.add_argument("--slack", type=float, default=0.0)
    solve_parser.add_argument("--max-variations", type=int, default=200, dest="max_variations")
    solve_parser.add_argument("--top", type=int, default=5, help="Schedules to print")
    solve_parser.add_argument("--csv", help="Write ranked schedules to this CSV file")
    solve_parser.add_argument("--excel", help="Write ranked schedules to this .xlsx file")
    _add_settings_arguments(solve_parser)

    return parser


def _settings_payload(args: argparse.Namespace) -> Dict[str, Any]:
    settings: Dict[str, Any] = {}
    if getattr(args, "settings", None):
        loaded = _read_json(args.settings)
        if not isinstance(loaded, dict):
            raise InputValidationError("Settings file must hold a JSON object.")
        settings.update(loaded)
    if getattr(args, "turn_cap", None) is not None:
        settings["turn_cap"] = args.turn_cap
    if getattr(args, "allow_friendly_fire", False):
        settings["allow_friendly_fire"] = True
    if getattr(args, "threat_model_enabled", True) is False:
        settings["threat_model_enabled"] = False
    return settings


def _defender_payload(args: argparse.Namespace) -> Dict[str, Any]:
    defender: Dict[str, Any] = {"species": args.defender, "hp_pct": args.hp_pct}
    if args.defender_level is not None:
        defender["level"] = args.defender_level
    return defender


def _print_damage(result: Dict[str, Any]) -> None:
    if not result["ok"]:
        print(f"{result['move']}: no damage ({result['reason']}).")
        return
    print(
        f"{result['move']}: {result['min']}-{result['max']} HP "
        f"({result['min_pct']:.1f}%-{result['max_pct']:.1f}% of {result['target_hp']})"
    )
    details = [f"effectiveness x{result['effectiveness']:g}"]
    if result["stab"]:
        details.append("STAB")
    if result["one_shot"]:
        details.append("guaranteed one-shot")
    print("  " + ", ".join(details))


def _print_picks(picks: List[Dict[str, Any]]) -> None:
    if not picks:
        print("No unit has a usable damaging move.")
        return
    for idx, pick in enumerate(picks, 1):
        marker = " [OHKO]" if pick["one_shot"] else ""
        print(
            f"{idx}. {pick['unit']} ({pick['species']}) - {pick['move']} "
            f"tier {pick['priority_tier']}, {pick['min_pct']:.1f}%-{pick['max_pct']:.1f}%{marker}"
        )


def _print_schedules(result: Dict[str, Any], top: int) -> None:
    schedules = result["schedules"]
    if not schedules:
        print("No schedule found: the wave needs enemies and at least two units.")
        return
    print(f"{len(schedules)} schedule(s) tied for best on {len(result['enemies'])} enemies.")
    for idx, schedule in enumerate(schedules[: max(1, top)], 1):
        sim = schedule["simulation"] or {}
        print(
            f"#{idx}: won {sim.get('fights_won', 0)}/{len(schedule['fights'])}, "
            f"avg tier {sim.get('avg_tier', 0):.2f}, PP {sim.get('pp_spent', 0)}"
        )
        for number, fight in enumerate(schedule["fights"], 1):
            print(
                f"  Fight {number}: {' + '.join(fight['attackers'])} vs "
                f"{', '.join(fight['defenders'])}"
            )


def main(argv: Sequence[str] | None = None) -> None:
    configure_logging()
    logger = get_logger(__name__)
    parser = build_parser()
    args = parser.parse_args(argv)
    trace_id = generate_trace_id()

    try:
        data = data_loader.load_game_data(args.data_dir)

        if args.command == "damage":
            attacker: Dict[str, Any] = {
                "species": args.attacker,
                "strength": args.strength,
                "stages": {"atk": args.atk_stage, "spa": args.atk_stage},
            }
            if args.attacker_level is not None:
                attacker["level"] = args.attacker_level
            defender = _defender_payload(args)
            defender["stages"] = {"def": args.def_stage, "spd": args.def_stage}
            result = analysis.damage_report(
                data,
                {
                    "attacker": attacker,
                    "defender": defender,
                    "move": args.move,
                    "conditions": args.tags or None,
                },
            )
            if args.output == "json":
                print(json.dumps(result, indent=2))
            else:
                _print_damage(result)

        elif args.command == "best-move":
            picks = analysis.best_move_report(
                data,
                {"roster": _read_json(args.roster), "defender": _defender_payload(args)},
            )
            if args.output == "json":
                print(json.dumps(picks, indent=2))
            else:
                _print_picks(picks)

        elif args.command == "simulate":
            payload: Dict[str, Any] = {
                "roster": _read_json(args.roster),
                "wave": _read_json(args.wave),
                "settings": _settings_payload(args),
            }
            if args.attackers:
                payload["attackers"] = args.attackers
            if args.defenders:
                payload["defenders"] = args.defenders
            result = analysis.simulate_report(data, payload)
            if args.output == "json":
                print(json.dumps(result, indent=2))
            else:
                for line in result["log"]:
                    print(line)
                summary = result["summary"]
                print(
                    f"Result: {summary['status']} after {summary['turns']} turn(s), "
                    f"avg tier {summary['avg_tier']:.2f}, PP spent {summary['pp_spent']}."
                )

        elif args.command == "solve":
            payload = {
                "roster": _read_json(args.roster),
                "wave": _read_json(args.wave),
                "settings": _settings_payload(args),
                "phase": args.phase,
                "limits": {"slack": args.slack, "max_variations": args.max_variations},
            }
            enemies, schedules = analysis.solve_schedules(data, payload)
            result = {
                "enemies": [slot.key for slot in enemies],
                "schedules": [schedule_payload(schedule) for schedule in schedules],
            }
            if args.csv:
                path = export_schedules_csv(schedules, args.csv)
                logger.info(
                    "schedules_exported",
                    extra={"event": "schedules_exported", "trace_id": trace_id, "path": str(path)},
                )
            if args.excel:
                path = export_schedules_excel(schedules, args.excel)
                logger.info(
                    "schedules_exported",
                    extra={"event": "schedules_exported", "trace_id": trace_id, "path": str(path)},
                )
            if args.output == "json":
                print(json.dumps(result, indent=2))
            else:
                _print_schedules(result, args.top)
                if args.csv:
                    print(f"Saved CSV to {args.csv}")
                if args.excel:
                    print(f"Saved Excel workbook to {args.excel}")

        logger.info(
            "cli_command_completed",
            extra={"event": "cli_command_completed", "trace_id": trace_id, "command": args.command},
        )
    except ShrinePlannerError as exc:
        logger.error(
            "cli_command_failed",
            extra={"event": "cli_command_failed", "trace_id": trace_id, "error": exc.to_payload()},
        )
        parser.error(f"{exc.message} (trace: {trace_id})")
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception(
            "cli_unhandled_error",
            extra={"event": "cli_unhandled_error", "trace_id": trace_id},
        )
        parser.error(f"Unexpected error: {exc}. Reference trace {trace_id}.")


if __name__ == "__main__":  # pragma: no cover
    main()
