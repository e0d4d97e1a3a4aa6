"""Domain models for health monitoring.

Targets, probe specs and dependency edges are immutable inputs built from
configuration.  Results, status rows, metric buckets and incidents are
Pydantic models so they double as management API payloads.
"""

from __future__ import annotations

import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from toolwatch.constants import (
    DEFAULT_CHECK_INTERVAL,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_SUCCESS_THRESHOLD,
)
from toolwatch.errors import ConfigurationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ────────────────────────────────────────────────────────────────


class TargetKind(str, Enum):
    """What sort of thing a target is."""

    SERVICE = "service"
    TOOL_INTEGRATION = "tool-integration"


class ImpactClass(str, Enum):
    """How much of the console is lost when a target goes down."""

    IDENTITY = "identity"
    GATEWAY = "gateway"
    CATALOG = "catalog"
    STANDARD = "standard"


class HealthStatus(str, Enum):
    """Verdict of a single probe (``unknown`` only before the first one)."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    SKIPPED = "skipped"
    UNKNOWN = "unknown"


class IncidentSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class UserImpact(str, Enum):
    MINIMAL = "minimal"
    DEGRADED_PERFORMANCE = "degraded_performance"
    PARTIAL_OUTAGE = "partial_outage"
    COMPLETE_OUTAGE = "complete_outage"


class ResolutionStatus(str, Enum):
    ONGOING = "ongoing"
    RESOLVED = "resolved"


# ── Targets ──────────────────────────────────────────────────────────────

_TEMPLATE_FIELDS = frozenset({"base_url", "target_id"})


@dataclass(frozen=True)
class ProbeSpec:
    """How to probe one target.

    ``endpoint`` and ``readiness_endpoint`` are templates that may
    reference ``{base_url}`` and ``{target_id}``.
    """

    endpoint: str
    base_url: str = ""
    readiness_endpoint: Optional[str] = None
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = DEFAULT_PROBE_TIMEOUT
    interval: float = DEFAULT_CHECK_INTERVAL
    expected_status: FrozenSet[int] = frozenset({200})
    degraded_latency_ms: Optional[float] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Target:
    """A monitored backend service or tool integration."""

    id: str
    kind: TargetKind
    probe: ProbeSpec
    display_name: str = ""
    critical: bool = False
    impact_class: ImpactClass = ImpactClass.STANDARD
    checker: Optional[str] = None
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    success_threshold: int = DEFAULT_SUCCESS_THRESHOLD
    cooldown: float = DEFAULT_COOLDOWN_SECONDS

    @property
    def name(self) -> str:
        return self.display_name or self.id

    @property
    def checker_key(self) -> str:
        """Registry key used to pick this target's checker."""
        return self.checker or self.kind.value

    def render(self, template: str) -> str:
        return template.format(base_url=self.probe.base_url.rstrip("/"), target_id=self.id)

    @property
    def health_url(self) -> str:
        return self.render(self.probe.endpoint)

    @property
    def readiness_url(self) -> Optional[str]:
        if not self.probe.readiness_endpoint:
            return None
        return self.render(self.probe.readiness_endpoint)


def _check_template(target_id: str, label: str, template: str) -> None:
    try:
        names = {fname for _, fname, _, _ in string.Formatter().parse(template) if fname}
    except ValueError as exc:
        raise ConfigurationError(
            f"Target '{target_id}': malformed {label} template '{template}': {exc}"
        ) from exc
    unknown = names - _TEMPLATE_FIELDS
    if unknown:
        raise ConfigurationError(
            f"Target '{target_id}': {label} template references unknown "
            f"placeholder(s) {sorted(unknown)}"
        )


def validate_target(target: Target) -> Target:
    """Reject a malformed target definition with :class:`ConfigurationError`."""
    if not target.id or target.id.strip() != target.id:
        raise ConfigurationError(f"Invalid target id: {target.id!r}")
    probe = target.probe
    if probe.interval <= 0:
        raise ConfigurationError(f"Target '{target.id}': interval must be > 0")
    if probe.timeout <= 0:
        raise ConfigurationError(f"Target '{target.id}': timeout must be > 0")
    if target.failure_threshold < 1 or target.success_threshold < 1:
        raise ConfigurationError(f"Target '{target.id}': thresholds must be >= 1")
    if target.cooldown < 0:
        raise ConfigurationError(f"Target '{target.id}': cooldown must be >= 0")
    if not probe.expected_status:
        raise ConfigurationError(f"Target '{target.id}': expected_status must not be empty")

    _check_template(target.id, "endpoint", probe.endpoint)
    if probe.readiness_endpoint:
        _check_template(target.id, "readiness endpoint", probe.readiness_endpoint)

    url = target.health_url
    if not url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Target '{target.id}': endpoint '{url}' must start with http:// or https://"
        )
    return target


@dataclass(frozen=True)
class DependencyEdge:
    """``dependent`` needs ``source`` to work."""

    source: str
    dependent: str
    critical: bool = True


# ── Probe results ────────────────────────────────────────────────────────


@dataclass
class ProbeOutcome:
    """Uniform checker output, independent of which checker ran."""

    status: HealthStatus
    response_time_ms: float = 0.0
    metrics: Dict[str, float] = field(default_factory=dict)
    detail: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class HealthResult(BaseModel):
    """One completed (or skipped) probe of a target."""

    target_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    status: HealthStatus
    response_time_ms: Optional[float] = None
    metrics: Dict[str, float] = Field(default_factory=dict)
    detail: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def from_outcome(
        cls, target_id: str, outcome: ProbeOutcome, timestamp: Optional[datetime] = None
    ) -> "HealthResult":
        return cls(
            target_id=target_id,
            timestamp=timestamp or utcnow(),
            status=outcome.status,
            response_time_ms=round(outcome.response_time_ms, 2),
            metrics=dict(outcome.metrics),
            detail=dict(outcome.detail),
            error=outcome.error,
        )

    @classmethod
    def skipped(
        cls, target_id: str, reason: str, timestamp: Optional[datetime] = None
    ) -> "HealthResult":
        """A result recorded in place of a probe that was not run."""
        return cls(
            target_id=target_id,
            timestamp=timestamp or utcnow(),
            status=HealthStatus.SKIPPED,
            detail={"skipped_reason": reason},
        )


class BreakerSnapshot(BaseModel):
    """Point-in-time view of a target's circuit breaker."""

    state: str = "closed"
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    last_failure_at: Optional[datetime] = None
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    success_threshold: int = DEFAULT_SUCCESS_THRESHOLD
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS


class TargetStatus(BaseModel):
    """The single mutable status row kept per target."""

    target_id: str
    display_name: str = ""
    kind: str = TargetKind.SERVICE.value
    critical: bool = False
    status: HealthStatus = HealthStatus.UNKNOWN
    last_check: Optional[datetime] = None
    last_healthy: Optional[datetime] = None
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    response_time_ms: Optional[float] = None
    error: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)
    breaker: BreakerSnapshot = Field(default_factory=BreakerSnapshot)

    @classmethod
    def for_target(cls, target: Target) -> "TargetStatus":
        return cls(
            target_id=target.id,
            display_name=target.name,
            kind=target.kind.value,
            critical=target.critical,
            breaker=BreakerSnapshot(
                failure_threshold=target.failure_threshold,
                success_threshold=target.success_threshold,
                cooldown_seconds=target.cooldown,
            ),
        )


class MetricBucket(BaseModel):
    """Running aggregate of one metric over one fixed time bucket."""

    target_id: str
    metric: str
    period: str
    period_start: datetime
    period_end: datetime
    avg: float = 0.0
    min: Optional[float] = None
    max: Optional[float] = None
    sample_count: int = 0


class CascadeIncident(BaseModel):
    """A critical target's failure correlated with the dependents it affects."""

    incident_id: str
    root_cause: str
    affected_targets: List[str] = Field(default_factory=list)
    severity: IncidentSeverity = IncidentSeverity.LOW
    user_impact: UserImpact = UserImpact.MINIMAL
    detected_at: datetime = Field(default_factory=utcnow)
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    occurrences: int = 1
    resolution_status: ResolutionStatus = ResolutionStatus.ONGOING
    resolved_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.resolution_status == ResolutionStatus.ONGOING
