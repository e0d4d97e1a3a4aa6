"""Management API router: read-only monitor queries plus config reload.

All routes are mounted under ``/manage/v1/`` by ``server/app.py``.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route, Router

from toolwatch.constants import SERVER_VERSION
from toolwatch.runtime.service import MonitorService
from toolwatch.server.management.schemas import (
    DashboardResponse,
    ErrorResponse,
    EventItem,
    EventsResponse,
    HealthResponse,
    HealthTargets,
    HistoryResponse,
    IncidentsResponse,
    MetricsResponse,
    ReloadResponse,
    StatusConfig,
    StatusMonitor,
    StatusResponse,
    StatusService,
    TargetsResponse,
)

logger = logging.getLogger(__name__)

SSE_HEARTBEAT_INTERVAL = 30  # seconds

_SEVERITIES = ("debug", "info", "warning", "error", "critical")


class _BadParam(ValueError):
    pass


# ── Helpers ──────────────────────────────────────────────────────────────


def _get_service(request: Request) -> MonitorService:
    """Retrieve the MonitorService instance from app state."""
    service: Optional[MonitorService] = getattr(request.app.state, "monitor_service", None)
    if service is None:
        raise RuntimeError("MonitorService not found on app.state")
    return service


def _error_json(error: str, message: str, status_code: int = 500) -> JSONResponse:
    body = ErrorResponse(error=error, message=message)
    return JSONResponse(body.model_dump(), status_code=status_code)


def _int_param(request: Request, name: str, default: int, minimum: int = 0) -> int:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise _BadParam(f"'{name}' must be an integer, got '{raw}'") from None
    if value < minimum:
        raise _BadParam(f"'{name}' must be >= {minimum}")
    return value


def _float_param(request: Request, name: str) -> Optional[float]:
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        raise _BadParam(f"'{name}' must be a number, got '{raw}'") from None
    if value <= 0:
        raise _BadParam(f"'{name}' must be > 0")
    return value


def _time_param(request: Request, name: str) -> Optional[datetime]:
    """ISO-8601 timestamp; naive values are taken as UTC."""
    raw = request.query_params.get(name)
    if raw is None or raw == "":
        return None
    try:
        value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise _BadParam(f"'{name}' must be an ISO-8601 timestamp, got '{raw}'") from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _bool_param(request: Request, name: str) -> bool:
    raw = (request.query_params.get(name) or "").lower()
    if raw in ("", "0", "false", "no"):
        return False
    if raw in ("1", "true", "yes"):
        return True
    raise _BadParam(f"'{name}' must be a boolean, got '{raw}'")


def _unknown_target(target_id: str) -> JSONResponse:
    return _error_json("not_found", f"Target '{target_id}' not found.", 404)


# ── GET /manage/v1/health ────────────────────────────────────────────────


async def handle_health(request: Request) -> JSONResponse:
    """Liveness probe: 200 while the process is alive, status summarises targets."""
    service = _get_service(request)
    svc_status = await service.get_service_status()

    if not service.is_running:
        health = "unhealthy"
    elif svc_status.targets_healthy == svc_status.targets_total:
        health = "healthy"
    else:
        health = "degraded"

    resp = HealthResponse(
        status=health,
        state=svc_status.state.value,
        uptime_seconds=svc_status.uptime_seconds,
        version=SERVER_VERSION,
        targets=HealthTargets(
            total=svc_status.targets_total,
            healthy=svc_status.targets_healthy,
        ),
    )
    return JSONResponse(resp.model_dump())


# ── GET /manage/v1/status ───────────────────────────────────────────────


async def handle_status(request: Request) -> JSONResponse:
    """Full service snapshot: lifecycle state, config and monitor counters."""
    service = _get_service(request)
    svc_status = await service.get_service_status()
    config = service.config

    resp = StatusResponse(
        service=StatusService(
            name=svc_status.server_name,
            version=svc_status.server_version,
            state=svc_status.state.value,
            uptime_seconds=svc_status.uptime_seconds,
            started_at=svc_status.started_at.isoformat() if svc_status.started_at else None,
            error_message=svc_status.error_message,
        ),
        config=StatusConfig(
            file_path=svc_status.config_path,
            target_count=len(config.targets) if config else 0,
            dependency_count=len(config.dependencies) if config else 0,
            aggregation_period=svc_status.aggregation_period,
        ),
        monitor=StatusMonitor(
            targets_total=svc_status.targets_total,
            targets_healthy=svc_status.targets_healthy,
            open_incidents=svc_status.open_incidents,
            dropped_ticks=svc_status.dropped_ticks,
            persistence_failures=svc_status.persistence_failures,
        ),
    )
    return JSONResponse(resp.model_dump())


# ── GET /manage/v1/targets ──────────────────────────────────────────────


async def handle_targets(request: Request) -> JSONResponse:
    """Status row and circuit breaker state for every target."""
    service = _get_service(request)
    resp = TargetsResponse(targets=await service.list_statuses())
    return JSONResponse(resp.model_dump(mode="json"))


async def handle_target(request: Request) -> JSONResponse:
    service = _get_service(request)
    target_id = request.path_params["target_id"]
    status = await service.get_target_status(target_id)
    if status is None:
        return _unknown_target(target_id)
    return JSONResponse(status.model_dump(mode="json"))


async def handle_target_history(request: Request) -> JSONResponse:
    """Most recent results first."""
    service = _get_service(request)
    target_id = request.path_params["target_id"]
    if target_id not in service.targets:
        return _unknown_target(target_id)
    try:
        limit = _int_param(request, "limit", 50, minimum=1)
    except _BadParam as exc:
        return _error_json("bad_request", str(exc), 400)

    resp = HistoryResponse(
        target_id=target_id, results=await service.get_history(target_id, limit)
    )
    return JSONResponse(resp.model_dump(mode="json"))


async def handle_target_metrics(request: Request) -> JSONResponse:
    """Metric buckets overlapping ``[start, end)``; ``hours`` means the last N hours."""
    service = _get_service(request)
    target_id = request.path_params["target_id"]
    if target_id not in service.targets:
        return _unknown_target(target_id)
    try:
        hours = _float_param(request, "hours")
        start = _time_param(request, "start")
        end = _time_param(request, "end")
    except _BadParam as exc:
        return _error_json("bad_request", str(exc), 400)
    if start is not None and end is not None and start >= end:
        return _error_json("bad_request", "'start' must be before 'end'", 400)

    metric = request.query_params.get("metric") or None
    buckets = await service.get_metrics(target_id, metric, start=start, end=end, hours=hours)
    resp = MetricsResponse(
        target_id=target_id,
        metric=metric,
        start=start.isoformat() if start else None,
        end=end.isoformat() if end else None,
        buckets=buckets,
    )
    return JSONResponse(resp.model_dump(mode="json"))


# ── GET /manage/v1/incidents ────────────────────────────────────────────


async def handle_incidents(request: Request) -> JSONResponse:
    """Open cascade incidents (add ``include_resolved=true`` for all)."""
    service = _get_service(request)
    try:
        include_resolved = _bool_param(request, "include_resolved")
    except _BadParam as exc:
        return _error_json("bad_request", str(exc), 400)
    resp = IncidentsResponse(incidents=await service.get_incidents(include_resolved))
    return JSONResponse(resp.model_dump(mode="json"))


# ── GET /manage/v1/dashboard ────────────────────────────────────────────


async def handle_dashboard(request: Request) -> JSONResponse:
    service = _get_service(request)
    summary = await service.dashboard()
    resp = DashboardResponse(**summary.model_dump())
    return JSONResponse(resp.model_dump())


# ── GET /manage/v1/events ───────────────────────────────────────────────


async def handle_events(request: Request) -> JSONResponse:
    """Recent events (polling)."""
    service = _get_service(request)

    try:
        limit = _int_param(request, "limit", 100)
    except _BadParam as exc:
        return _error_json("bad_request", str(exc), 400)
    severity = request.query_params.get("severity")
    if severity and severity not in _SEVERITIES:
        return _error_json("bad_request", f"Unknown severity '{severity}'", 400)

    raw_events = service.get_events(
        limit=limit,
        since=request.query_params.get("since"),
        severity=severity,
        target_id=request.query_params.get("target_id"),
    )
    items = [
        EventItem(
            id=e["id"],
            timestamp=e["timestamp"],
            stage=e["stage"],
            message=e["message"],
            severity=e.get("severity", "info"),
            target_id=e.get("target_id"),
            details=e.get("details"),
        )
        for e in raw_events
    ]
    resp = EventsResponse(events=items)
    return JSONResponse(resp.model_dump())


# ── GET /manage/v1/events/stream ────────────────────────────────────────


async def handle_events_stream(request: Request) -> StreamingResponse:
    """Server-Sent Events stream for real-time event delivery."""
    service = _get_service(request)
    queue = service.subscribe()

    async def event_generator():
        try:
            yield _sse_format("heartbeat", {"message": "connected"}, "hb-0")
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=SSE_HEARTBEAT_INTERVAL)
                    yield _sse_format(event.get("stage", "event"), event, event.get("id", ""))
                except asyncio.TimeoutError:
                    yield _sse_format("heartbeat", {"message": "ping"})
        except asyncio.CancelledError:
            logger.debug("SSE event stream client disconnected.")
        finally:
            service.unsubscribe(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


def _sse_format(event_type: str, data: Any, event_id: Optional[str] = None) -> str:
    """Format a Server-Sent Event string."""
    parts = [f"event: {event_type}"]
    parts.append(f"data: {json.dumps(data, default=str)}")
    if event_id:
        parts.append(f"id: {event_id}")
    parts.append("\n")
    return "\n".join(parts)


# ── POST /manage/v1/reload ──────────────────────────────────────────────


async def handle_reload(request: Request) -> JSONResponse:
    """Re-read the config file and re-register changed targets."""
    service = _get_service(request)

    if not service.is_running:
        return _error_json("service_unavailable", "Service is not running.", 503)

    result = await service.reload()
    resp = ReloadResponse(**result)
    status_code = 200 if resp.reloaded else 422
    return JSONResponse(resp.model_dump(), status_code=status_code)


# ── Router ───────────────────────────────────────────────────────────────


management_routes = Router(
    routes=[
        Route("/health", endpoint=handle_health, methods=["GET"]),
        Route("/status", endpoint=handle_status, methods=["GET"]),
        Route("/targets", endpoint=handle_targets, methods=["GET"]),
        Route("/targets/{target_id}", endpoint=handle_target, methods=["GET"]),
        Route("/targets/{target_id}/history", endpoint=handle_target_history, methods=["GET"]),
        Route("/targets/{target_id}/metrics", endpoint=handle_target_metrics, methods=["GET"]),
        Route("/incidents", endpoint=handle_incidents, methods=["GET"]),
        Route("/dashboard", endpoint=handle_dashboard, methods=["GET"]),
        Route("/events", endpoint=handle_events, methods=["GET"]),
        Route("/events/stream", endpoint=handle_events_stream, methods=["GET"]),
        Route("/reload", endpoint=handle_reload, methods=["POST"]),
    ]
)
