"""REST API exposing damage checks, roster ranking, simulation and wave solving."""
from __future__ import annotations

import time
from typing import Any, Callable, Dict

from . import analysis, data_loader
from .errors import DependencyError, InputValidationError, ShrinePlannerError
from .observability import (
    configure_logging,
    generate_trace_id,
    get_logger,
    health_snapshot,
    metrics,
    render_metrics,
)

try:  # pragma: no cover - optional dependency
    from fastapi import Body, FastAPI, Request  # type: ignore[import-not-found]
    from fastapi.responses import JSONResponse, PlainTextResponse  # type: ignore[import-not-found]
except Exception:  # pragma: no cover - gracefully handled at runtime
    Body = None  # type: ignore
    FastAPI = None  # type: ignore
    Request = None  # type: ignore
    JSONResponse = None  # type: ignore
    PlainTextResponse = None  # type: ignore


LOGGER = get_logger(__name__)

_SECURE_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'; base-uri 'none'; form-action 'none'",
}


def _validate_dependency() -> None:
    if FastAPI is None:
        raise DependencyError(
            "FastAPI is required to use shrine_planner.api.",
            remediation="Install the 'api' extra: pip install shrine-planner[api].",
        )


def _error_response(exc: ShrinePlannerError, trace_id: str) -> "JSONResponse":
    assert JSONResponse is not None
    response = JSONResponse(
        status_code=exc.http_status,
        content={"error": exc.to_payload(trace_id=trace_id)},
    )
    response.headers["X-Trace-Id"] = trace_id
    return response


def _run(operation: str, handler: Callable[[Any, Any], Any], payload: Any) -> "JSONResponse":
    """Execute ``handler`` with structured logging, metrics and error mapping."""

    assert JSONResponse is not None
    trace_id = generate_trace_id()
    metrics.increment("shrine_planner_api_requests_total")
    start_time = time.perf_counter()
    try:
        if payload is None:
            raise InputValidationError(
                "Request body is empty.",
                remediation="Send a JSON object describing the request.",
            )
        result = handler(data_loader.load_game_data(), payload)
    except InputValidationError as exc:
        metrics.increment("shrine_planner_api_failures_total")
        LOGGER.warning(
            f"{operation}_validation_failed",
            extra={"event": f"{operation}_validation_failed", "trace_id": trace_id, "error": exc.to_payload()},
        )
        return _error_response(exc, trace_id)
    except ShrinePlannerError as exc:
        metrics.increment("shrine_planner_api_failures_total")
        LOGGER.error(
            f"{operation}_failed",
            extra={"event": f"{operation}_failed", "trace_id": trace_id, "error": exc.to_payload()},
        )
        return _error_response(exc, trace_id)
    except Exception:
        metrics.increment("shrine_planner_api_failures_total")
        LOGGER.exception(
            f"{operation}_unhandled_error",
            extra={"event": f"{operation}_unhandled_error", "trace_id": trace_id},
        )
        response = JSONResponse(
            status_code=500,
            content={
                "error": {
                    "category": "internal_error",
                    "message": f"Unexpected error while processing the {operation} request.",
                    "remediation": "Retry the request or report it with the trace identifier.",
                    "trace_id": trace_id,
                }
            },
        )
        response.headers["X-Trace-Id"] = trace_id
        return response

    duration = time.perf_counter() - start_time
    metrics.observe("shrine_planner_api_duration_seconds", duration)
    LOGGER.info(
        f"{operation}_completed",
        extra={"event": f"{operation}_completed", "trace_id": trace_id, "duration": round(duration, 4)},
    )
    response = JSONResponse(content=result)
    response.headers["X-Trace-Id"] = trace_id
    return response


def create_app() -> "FastAPI":
    """Return a configured FastAPI application exposing the planner."""

    _validate_dependency()
    assert FastAPI is not None and Body is not None  # for mypy

    configure_logging()

    app = FastAPI(title="Shrine Planner", version="1.0.0")

    assert Request is not None  # for mypy

    @app.middleware("http")
    async def add_security_headers(request: "Request", call_next):  # type: ignore[override]
        response = await call_next(request)
        for header, value in _SECURE_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    @app.get("/health", tags=["system"])
    async def healthcheck() -> Dict[str, Any]:
        return health_snapshot()

    assert PlainTextResponse is not None  # for mypy

    @app.get("/metrics", tags=["system"], response_class=PlainTextResponse)
    async def metrics_endpoint() -> "PlainTextResponse":
        return PlainTextResponse(render_metrics(), media_type="text/plain; version=0.0.4")

    @app.post("/damage", tags=["planning"])
    def damage_endpoint(payload: Any = Body(None)) -> "JSONResponse":
        return _run("damage", analysis.damage_report, payload)

    @app.post("/best-move", tags=["planning"])
    def best_move_endpoint(payload: Any = Body(None)) -> "JSONResponse":
        return _run("best_move", analysis.best_move_report, payload)

    @app.post("/simulate", tags=["planning"])
    def simulate_endpoint(payload: Any = Body(None)) -> "JSONResponse":
        return _run("simulate", analysis.simulate_report, payload)

    @app.post("/solve", tags=["planning"])
    def solve_endpoint(payload: Any = Body(None)) -> "JSONResponse":
        return _run("solve", analysis.solve_report, payload)

    return app


try:  # pragma: no cover - optional when module imported for app discovery
    app = create_app()
except DependencyError:  # FastAPI missing
    app = None  # type: ignore


__all__ = ["create_app", "app"]
