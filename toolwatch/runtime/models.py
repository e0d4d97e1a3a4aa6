"""Pydantic models for Toolwatch runtime state.

These double as management API response schemas.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class ServiceState(str, Enum):
    """Lifecycle states for the monitor service.

    Valid transitions:
        PENDING  → STARTING
        STARTING → RUNNING | ERROR
        RUNNING  → STOPPING
        STOPPING → STOPPED | ERROR
        ERROR    → STARTING | STOPPING
        STOPPED  → STARTING
    """

    PENDING = "pending"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"


_VALID_TRANSITIONS: Dict[ServiceState, frozenset] = {
    ServiceState.PENDING: frozenset({ServiceState.STARTING}),
    ServiceState.STARTING: frozenset({ServiceState.RUNNING, ServiceState.ERROR}),
    ServiceState.RUNNING: frozenset({ServiceState.STOPPING}),
    ServiceState.STOPPING: frozenset({ServiceState.STOPPED, ServiceState.ERROR}),
    ServiceState.STOPPED: frozenset({ServiceState.STARTING}),
    ServiceState.ERROR: frozenset({ServiceState.STARTING, ServiceState.STOPPING}),
}


def is_valid_transition(current: ServiceState, target: ServiceState) -> bool:
    """Check whether a state transition is allowed."""
    return target in _VALID_TRANSITIONS.get(current, frozenset())


class HealthCounts(BaseModel):
    """How many targets are in each status."""

    healthy: int = 0
    degraded: int = 0
    unhealthy: int = 0
    skipped: int = 0
    unknown: int = 0


class DashboardSummary(BaseModel):
    """Overall health score: healthy targets over all targets, in percent."""

    overall_health_score: int = 100
    total_targets: int = 0
    counts: HealthCounts = Field(default_factory=HealthCounts)
    open_circuits: int = 0
    open_incidents: int = 0
    critical_unhealthy: int = 0


class ServiceStatus(BaseModel):
    """Overall service status snapshot."""

    state: ServiceState = ServiceState.PENDING
    server_name: str = ""
    server_version: str = ""
    started_at: Optional[datetime] = None
    uptime_seconds: Optional[float] = None
    targets_total: int = 0
    targets_healthy: int = 0
    open_incidents: int = 0
    aggregation_period: Optional[str] = None
    dropped_ticks: int = 0
    persistence_failures: int = 0
    error_message: Optional[str] = None
    config_path: Optional[str] = None

    def compute_uptime(self) -> None:
        """Update uptime_seconds based on started_at."""
        if self.started_at is not None:
            delta = datetime.now(timezone.utc) - self.started_at
            self.uptime_seconds = delta.total_seconds()
