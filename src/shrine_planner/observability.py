"""Logging, metrics, and health tooling for shrine_planner."""
from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from .errors import sanitize_context

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics",
    "metrics_snapshot",
    "render_metrics",
    "health_snapshot",
    "generate_trace_id",
]


_STANDARD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys())
_LOGGER_NAME = "shrine_planner"
_LEVEL_ENV = "SHRINE_PLANNER_LOG_LEVEL"
_CONFIGURED = False
_LOCK = threading.Lock()


class StructuredLogFormatter(logging.Formatter):
    """Format log records as structured JSON strings."""

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        event = getattr(record, "event", None) or "log"
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": event,
            "message": message,
        }

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and key not in {"message", "asctime", "event"}
        }
        if extras:
            payload["context"] = sanitize_context(extras)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


def configure_logging(level: int | str | None = None) -> logging.Logger:
    """Configure structured logging once and return the package logger.

    When ``level`` is omitted the ``SHRINE_PLANNER_LOG_LEVEL`` environment
    variable is consulted, falling back to ``WARNING`` so library callers are
    not flooded by per-fight events.
    """

    global _CONFIGURED
    with _LOCK:
        logger = logging.getLogger(_LOGGER_NAME)
        if not _CONFIGURED:
            handler = logging.StreamHandler()
            handler.setFormatter(StructuredLogFormatter())
            logger.addHandler(handler)
            logger.propagate = False
            _CONFIGURED = True
        if level is None:
            level = os.environ.get(_LEVEL_ENV) or None
        if level is not None:
            logger.setLevel(level if isinstance(level, int) else logging.getLevelName(level.upper()))
        elif logger.level == logging.NOTSET:
            logger.setLevel(logging.WARNING)
    return logging.getLogger(_LOGGER_NAME)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a child logger with structured configuration."""

    configure_logging()
    if name:
        if name.startswith(f"{_LOGGER_NAME}."):
            return logging.getLogger(name)
        return logging.getLogger(f"{_LOGGER_NAME}.{name}")
    return logging.getLogger(_LOGGER_NAME)


class MetricsRegistry:
    """Thread-safe, in-process metrics collector with Prometheus rendering."""

    def __init__(self) -> None:
        self._metadata: Dict[str, Tuple[str, str]] = {}
        self._counters: Dict[str, float] = {}
        self._gauges: Dict[str, float] = {}
        self._summaries: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def register_counter(self, name: str, description: str) -> None:
        self._metadata[name] = ("counter", description)

    def register_gauge(self, name: str, description: str) -> None:
        self._metadata[name] = ("gauge", description)
        self._gauges.setdefault(name, 0.0)

    def register_summary(self, name: str, description: str) -> None:
        self._metadata[name] = ("summary", description)
        self._summaries.setdefault(name, [])

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0.0) + amount

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = value

    def observe(self, name: str, value: float) -> None:
        with self._lock:
            bucket = self._summaries.setdefault(name, [])
            bucket.append(value)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "summaries": {key: list(values) for key, values in self._summaries.items()},
            }

    def render_prometheus(self) -> str:
        lines: List[str] = []
        snapshot = self.snapshot()
        for name, (metric_type, description) in self._metadata.items():
            lines.append(f"# HELP {name} {description}")
            lines.append(f"# TYPE {name} {metric_type}")
            if metric_type == "counter":
                value = snapshot["counters"].get(name, 0.0)
                lines.append(f"{name} {value}")
            elif metric_type == "gauge":
                value = snapshot["gauges"].get(name, 0.0)
                lines.append(f"{name} {value}")
            elif metric_type == "summary":
                values = snapshot["summaries"].get(name, [])
                count = float(len(values))
                total = float(sum(values))
                average = total / count if count else 0.0
                lines.append(f"{name}_count {count}")
                lines.append(f"{name}_sum {total}")
                lines.append(f"{name}_avg {average}")
        return "\n".join(lines) + "\n"


metrics = MetricsRegistry()
metrics.register_counter(
    "shrine_planner_fights_simulated_total", "Total fights simulated to a terminal state.")
metrics.register_counter(
    "shrine_planner_fights_stalled_total", "Simulated fights that hit the turn cap.")
metrics.register_counter(
    "shrine_planner_solves_total", "Total wave solves requested.")
metrics.register_counter(
    "shrine_planner_solve_candidates_total", "Schedules re-simulated by the solver.")
metrics.register_summary(
    "shrine_planner_solve_duration_seconds", "Wave solve duration in seconds.")
metrics.register_gauge(
    "shrine_planner_data_ready", "1 when the reference data set loaded successfully.")
metrics.register_counter(
    "shrine_planner_api_requests_total", "Total planning API requests.")
metrics.register_counter(
    "shrine_planner_api_failures_total", "Planning API requests that failed.")
metrics.register_summary(
    "shrine_planner_api_duration_seconds", "Planning API request duration in seconds.")


def metrics_snapshot() -> Dict[str, Any]:
    """Return a simple dictionary snapshot of the in-process metrics."""

    return metrics.snapshot()


def render_metrics() -> str:
    """Render metrics in Prometheus exposition format."""

    return metrics.render_prometheus()


def _data_status() -> Dict[str, Any]:
    from . import data_loader
    from .errors import DataLoadError

    try:
        data = data_loader.load_game_data()
    except DataLoadError as exc:
        metrics.set_gauge("shrine_planner_data_ready", 0.0)
        return {"reference_data": False, "reason": exc.message}
    metrics.set_gauge("shrine_planner_data_ready", 1.0)
    return {
        "reference_data": True,
        "species": len(data.species),
        "moves": len(data.moves),
    }


def health_snapshot() -> Dict[str, Any]:
    """Return a structured health snapshot for the API health endpoint."""

    data = _data_status()
    status = "ok" if data.get("reference_data") else "degraded"
    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {"data": data},
        "metrics": metrics_snapshot(),
    }


def generate_trace_id() -> str:
    """Generate a short-lived trace identifier suitable for user feedback."""

    return uuid.uuid4().hex[:12]
