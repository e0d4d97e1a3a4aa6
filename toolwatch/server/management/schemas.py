"""Pydantic response schemas for the Management API.

Where possible they reuse models from ``toolwatch.monitor.models`` and
``toolwatch.runtime.models``.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from toolwatch.monitor.models import CascadeIncident, HealthResult, MetricBucket, TargetStatus
from toolwatch.runtime.models import DashboardSummary

# ── /manage/v1/health ────────────────────────────────────────────────────


class HealthTargets(BaseModel):
    total: int = 0
    healthy: int = 0


class HealthResponse(BaseModel):
    status: str = Field(description="healthy | degraded | unhealthy")
    state: str = "pending"
    uptime_seconds: Optional[float] = None
    version: str = ""
    targets: HealthTargets = Field(default_factory=HealthTargets)


# ── /manage/v1/status ───────────────────────────────────────────────────


class StatusService(BaseModel):
    name: str
    version: str
    state: str
    uptime_seconds: Optional[float] = None
    started_at: Optional[str] = None  # ISO-8601
    error_message: Optional[str] = None


class StatusConfig(BaseModel):
    file_path: Optional[str] = None
    target_count: int = 0
    dependency_count: int = 0
    aggregation_period: Optional[str] = None


class StatusMonitor(BaseModel):
    targets_total: int = 0
    targets_healthy: int = 0
    open_incidents: int = 0
    dropped_ticks: int = 0
    persistence_failures: int = 0


class StatusResponse(BaseModel):
    service: StatusService
    config: StatusConfig = Field(default_factory=StatusConfig)
    monitor: StatusMonitor = Field(default_factory=StatusMonitor)


# ── /manage/v1/targets ──────────────────────────────────────────────────


class TargetsResponse(BaseModel):
    targets: List[TargetStatus] = Field(default_factory=list)


class HistoryResponse(BaseModel):
    target_id: str
    results: List[HealthResult] = Field(default_factory=list)


class MetricsResponse(BaseModel):
    target_id: str
    metric: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    buckets: List[MetricBucket] = Field(default_factory=list)


# ── /manage/v1/incidents ────────────────────────────────────────────────


class IncidentsResponse(BaseModel):
    incidents: List[CascadeIncident] = Field(default_factory=list)


# ── /manage/v1/dashboard ────────────────────────────────────────────────


class DashboardResponse(DashboardSummary):
    pass


# ── /manage/v1/events ───────────────────────────────────────────────────


class EventItem(BaseModel):
    id: str
    timestamp: str  # ISO-8601
    stage: str
    message: str
    severity: str = "info"  # debug | info | warning | error | critical
    target_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class EventsResponse(BaseModel):
    events: List[EventItem] = Field(default_factory=list)


# ── Errors ──────────────────────────────────────────────────────────────


class ErrorResponse(BaseModel):
    error: str
    message: str


# ── /manage/v1/reload (POST) ────────────────────────────────────────────


class ReloadResponse(BaseModel):
    reloaded: bool = False
    targets_added: List[str] = Field(default_factory=list)
    targets_removed: List[str] = Field(default_factory=list)
    targets_changed: List[str] = Field(default_factory=list)
    dependencies_changed: bool = False
    errors: List[str] = Field(default_factory=list)
