from __future__ import annotations

import json
import logging

from shrine_planner.errors import DependencyError, InputValidationError, sanitize_context
from shrine_planner.observability import (
    StructuredLogFormatter,
    generate_trace_id,
    health_snapshot,
    metrics,
    render_metrics,
)


def test_error_payload_masks_sensitive_context() -> None:
    error = InputValidationError(
        "Roster entry is missing 'id'.",
        remediation="Add an id.",
        context={"trainer_name": "Cheren", "entry": {"token": "abc"}},
    )
    payload = error.to_payload(trace_id="abc123")
    assert payload["category"] == "input_error"
    assert payload["trace_id"] == "abc123"
    assert payload["context"]["trainer_name"] == "Ch***en"
    assert payload["context"]["entry"]["token"] == "***"
    assert error.http_status == 400
    assert DependencyError("x").http_status == 503


def test_sanitize_handles_lists() -> None:
    assert sanitize_context({"email": ["a@b.example"]}) == {"email": ["a@***le"]}


def test_structured_formatter_emits_json() -> None:
    record = logging.LogRecord("shrine_planner.test", logging.INFO, __file__, 1, "wave_solved", (), None)
    record.event = "wave_solved"
    record.schedules = 3
    line = json.loads(StructuredLogFormatter().format(record))
    assert line["event"] == "wave_solved"
    assert line["level"] == "INFO"
    assert line["context"] == {"schedules": 3}


def test_metrics_render_in_prometheus_format() -> None:
    metrics.increment("shrine_planner_solves_total", 0)
    text = render_metrics()
    assert "# TYPE shrine_planner_solves_total counter" in text
    assert "shrine_planner_solve_duration_seconds_count" in text


def test_health_snapshot_reports_reference_data() -> None:
    snapshot = health_snapshot()
    assert snapshot["status"] == "ok"
    assert snapshot["components"]["data"]["reference_data"] is True
    assert len(generate_trace_id()) == 12
