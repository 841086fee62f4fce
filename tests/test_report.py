from __future__ import annotations

import csv
from pathlib import Path

import pytest

from shrine_planner import report
from shrine_planner.errors import DependencyError
from shrine_planner.models import FightSpec, PlanScore, Schedule, SimulationSummary


def _schedule() -> Schedule:
    return Schedule(
        fights=(
            FightSpec(("a", "b"), ("Target", "Target#2")),
            FightSpec(("a", "c"), ("Rock", "Rock#2")),
        ),
        score=PlanScore(-1, 2, 2, 3.5, 12.25),
        simulation=SimulationSummary(fights_won=2, fights_stalled=0, actions=7, avg_tier=1.5, pp_spent=7),
    )


def test_schedule_rows_repeat_schedule_metrics() -> None:
    rows = report.schedule_rows([_schedule()])
    assert [row["fight"] for row in rows] == [1, 2]
    assert rows[1]["attackers"] == "a + c"
    assert rows[0]["one_shots"] == 1
    assert rows[0]["overkill"] == 12.25
    assert rows[1]["pp_spent"] == 7
    assert set(rows[0]) == set(report.COLUMNS)


def test_schedule_payload_is_json_ready() -> None:
    payload = report.schedule_payload(_schedule())
    assert payload["fights"][0] == {"attackers": ["a", "b"], "defenders": ["Target", "Target#2"]}
    assert payload["score"]["sum_avg_tier"] == 3.5
    assert payload["simulation"]["fights_won"] == 2

    bare = report.schedule_payload(Schedule(fights=(), score=PlanScore(0, 0, 0, 0.0, 0.0)))
    assert bare["simulation"] is None


def test_export_csv_writes_header_and_rows(tmp_path: Path) -> None:
    path = report.export_schedules_csv([_schedule()], tmp_path / "out" / "schedules.csv")
    with path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert len(rows) == 2
    assert rows[0]["defenders"] == "Target + Target#2"
    assert list(rows[0]) == list(report.COLUMNS)


def test_frame_requires_pandas(monkeypatch) -> None:
    monkeypatch.setattr(report, "pd", None)
    with pytest.raises(DependencyError):
        report.schedules_to_frame([_schedule()])


def test_frame_columns_follow_report_order() -> None:
    pytest.importorskip("pandas")
    frame = report.schedules_to_frame([_schedule()])
    assert list(frame.columns) == list(report.COLUMNS)
    assert frame["rank"].tolist() == [1, 1]


def test_excel_export(tmp_path: Path) -> None:
    pytest.importorskip("pandas")
    pytest.importorskip("openpyxl")
    path = report.export_schedules_excel([_schedule()], tmp_path / "schedules.xlsx")
    assert path.exists()
