"""Tabular views of ranked schedules.

pandas provides the DataFrame view; CSV export falls back to the ``csv``
module when pandas is absent so the CLI keeps working in a bare install.
"""
from __future__ import annotations

import csv
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, List, Sequence

from .errors import DependencyError
from .models import Schedule

pd: ModuleType | None = None
try:  # pandas is an optional extra.
    import pandas as _pd
except ModuleNotFoundError:  # pragma: no cover - exercised when pandas is absent.
    pd = None
else:
    pd = _pd

COLUMNS = (
    "rank",
    "fight",
    "attackers",
    "defenders",
    "one_shots",
    "worst_tier",
    "sum_avg_tier",
    "overkill",
    "fights_won",
    "fights_stalled",
    "sim_avg_tier",
    "pp_spent",
)


def schedule_payload(schedule: Schedule) -> Dict[str, Any]:
    """JSON-ready view of one schedule."""

    sim = schedule.simulation
    return {
        "fights": [
            {"attackers": list(fight.attackers), "defenders": list(fight.defenders)}
            for fight in schedule.fights
        ],
        "score": schedule.score._asdict(),
        "simulation": (
            {
                "fights_won": sim.fights_won,
                "fights_stalled": sim.fights_stalled,
                "actions": sim.actions,
                "avg_tier": sim.avg_tier,
                "pp_spent": sim.pp_spent,
            }
            if sim
            else None
        ),
    }


def schedule_rows(schedules: Sequence[Schedule]) -> List[Dict[str, Any]]:
    """One row per fight of every schedule, schedule-level metrics repeated."""

    rows: List[Dict[str, Any]] = []
    for rank, schedule in enumerate(schedules, 1):
        sim = schedule.simulation
        for number, fight in enumerate(schedule.fights, 1):
            rows.append(
                {
                    "rank": rank,
                    "fight": number,
                    "attackers": " + ".join(fight.attackers),
                    "defenders": " + ".join(fight.defenders),
                    "one_shots": -schedule.score.neg_one_shots,
                    "worst_tier": schedule.score.worst_tier,
                    "sum_avg_tier": round(schedule.score.sum_avg_tier, 3),
                    "overkill": round(schedule.score.overkill, 2),
                    "fights_won": sim.fights_won if sim else None,
                    "fights_stalled": sim.fights_stalled if sim else None,
                    "sim_avg_tier": round(sim.avg_tier, 3) if sim else None,
                    "pp_spent": sim.pp_spent if sim else None,
                }
            )
    return rows


def schedules_to_frame(schedules: Sequence[Schedule]):
    """Return a :class:`pandas.DataFrame` of :func:`schedule_rows`."""

    if pd is None:
        raise DependencyError(
            "pandas is required for DataFrame output.",
            remediation="Install the 'pandas' extra: pip install shrine-planner[pandas].",
        )
    return pd.DataFrame(schedule_rows(schedules), columns=list(COLUMNS))


def export_schedules_csv(schedules: Sequence[Schedule], path: Path | str) -> Path:
    """Write ranked schedules to ``path`` as UTF-8 CSV and return the path."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if pd is not None:
        schedules_to_frame(schedules).to_csv(target, index=False)
        return target
    with target.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=list(COLUMNS))
        writer.writeheader()
        writer.writerows(schedule_rows(schedules))
    return target


def export_schedules_excel(schedules: Sequence[Schedule], path: Path | str) -> Path:
    """Write ranked schedules to an ``.xlsx`` workbook (needs pandas and openpyxl)."""

    target = Path(path)
    frame = schedules_to_frame(schedules)
    target.parent.mkdir(parents=True, exist_ok=True)
    try:
        frame.to_excel(target, index=False, sheet_name="schedules")
    except ImportError as exc:
        raise DependencyError(
            "openpyxl is required for Excel output.",
            remediation="Install the 'pandas' extra: pip install shrine-planner[pandas].",
        ) from exc
    return target


__all__ = [
    "COLUMNS",
    "export_schedules_csv",
    "export_schedules_excel",
    "schedule_payload",
    "schedule_rows",
    "schedules_to_frame",
]
