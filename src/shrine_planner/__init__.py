"""Damage calculation, fight simulation and wave scheduling for shrine battles."""

from . import (
    analysis,
    api,
    battle,
    config,
    damage,
    data_loader,
    errors,
    formulas,
    move_selector,
    observability,
    pp,
    report,
    solver,
    threat,
    type_chart,
)
from .battle import choose_reinforcement, init_fight, run_fight, set_manual_action, step_turn
from .damage import compute_damage_range, compute_generic_damage_range
from .data_loader import load_game_data
from .move_selector import choose_best_move
from .solver import activate_schedule, iter_perfect_matchings, solve_wave, undo_fight_log

__all__ = [
    "activate_schedule",
    "analysis",
    "api",
    "battle",
    "choose_best_move",
    "choose_reinforcement",
    "compute_damage_range",
    "compute_generic_damage_range",
    "config",
    "damage",
    "data_loader",
    "errors",
    "formulas",
    "init_fight",
    "iter_perfect_matchings",
    "load_game_data",
    "move_selector",
    "observability",
    "pp",
    "report",
    "run_fight",
    "set_manual_action",
    "solve_wave",
    "solver",
    "step_turn",
    "threat",
    "type_chart",
    "undo_fight_log",
]
