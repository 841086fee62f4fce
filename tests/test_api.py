import json
import sys
from pathlib import Path

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient  # noqa: E402

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from shrine_planner import api  # noqa: E402
from shrine_planner.observability import metrics_snapshot  # noqa: E402

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
ROSTER = json.loads((DATA_DIR / "sample_roster.json").read_text(encoding="utf-8"))
WAVE = json.loads((DATA_DIR / "sample_wave.json").read_text(encoding="utf-8"))


@pytest.fixture
def client() -> TestClient:
    return TestClient(api.create_app())


def test_health_and_security_headers(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_damage_endpoint_returns_range(client: TestClient) -> None:
    response = client.post(
        "/damage",
        json={
            "attacker": {"species": "Excadrill", "strength": True},
            "defender": {"species": "Roggenrola"},
            "move": "Iron Head",
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["move"] == "Iron Head"
    assert body["effectiveness"] == 2.0
    assert body["min"] <= body["max"]
    assert response.headers.get("X-Trace-Id")


def test_damage_endpoint_rejects_unknown_species(client: TestClient) -> None:
    before = metrics_snapshot()["counters"].get("shrine_planner_api_failures_total", 0.0)
    response = client.post(
        "/damage",
        json={"attacker": {"species": "Agumon"}, "defender": {"species": "Roggenrola"}, "move": "Tackle"},
    )
    assert response.status_code == 400
    error = response.json()["error"]
    assert error["category"] == "input_error"
    assert error["trace_id"] == response.headers["X-Trace-Id"]
    after = metrics_snapshot()["counters"]["shrine_planner_api_failures_total"]
    assert after == before + 1


def test_empty_body_is_rejected(client: TestClient) -> None:
    response = client.post("/solve")
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Request body is empty."


def test_best_move_endpoint_ranks_roster(client: TestClient) -> None:
    response = client.post("/best-move", json={"roster": ROSTER, "defender": {"species": "Roggenrola"}})
    assert response.status_code == 200
    picks = response.json()
    assert {pick["unit"] for pick in picks} <= {unit["id"] for unit in ROSTER["roster"]}
    assert picks


def test_simulate_endpoint_runs_to_terminal_state(client: TestClient) -> None:
    response = client.post(
        "/simulate",
        json={
            "roster": ROSTER,
            "wave": WAVE,
            "attackers": ["excadrill", "samurott"],
            "defenders": ["Sandile", "Krokorok"],
            "settings": {"turn_cap": 20},
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["summary"]["status"] in {"won", "lost", "stalled"}
    assert body["log"][0].startswith("Fight started")


def test_simulate_endpoint_validates_attackers(client: TestClient) -> None:
    response = client.post(
        "/simulate",
        json={"roster": ROSTER, "wave": WAVE, "attackers": ["excadrill", "mewtwo"]},
    )
    assert response.status_code == 400
    assert response.json()["error"]["category"] == "input_error"


def test_solve_endpoint_returns_schedules(client: TestClient) -> None:
    response = client.post(
        "/solve",
        json={"roster": ROSTER, "wave": WAVE, "limits": {"max_variations": 3}},
    )
    assert response.status_code == 200
    body = response.json()
    assert len(body["enemies"]) == 8
    assert body["schedules"]
    schedule = body["schedules"][0]
    slots = sorted(key for fight in schedule["fights"] for key in fight["defenders"])
    assert slots == sorted(body["enemies"])
    assert all(len(fight["attackers"]) == 2 for fight in schedule["fights"])


def test_solve_endpoint_rejects_bad_limits(client: TestClient) -> None:
    response = client.post("/solve", json={"roster": ROSTER, "wave": WAVE, "limits": {"depth": 3}})
    assert response.status_code == 400


def test_metrics_endpoint(client: TestClient) -> None:
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "shrine_planner_api_requests_total" in response.text
