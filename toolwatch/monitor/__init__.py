"""Health monitoring core: breakers, checkers, scheduling, recording, cascades."""

from toolwatch.monitor.cascade import CascadeDetector
from toolwatch.monitor.circuit_breaker import CircuitBreaker, CircuitState
from toolwatch.monitor.metrics import AggregationPeriod, MetricsAggregator
from toolwatch.monitor.models import (
    CascadeIncident,
    DependencyEdge,
    HealthResult,
    HealthStatus,
    MetricBucket,
    ProbeOutcome,
    ProbeSpec,
    Target,
    TargetKind,
    TargetStatus,
)
from toolwatch.monitor.recorder import ResultRecorder
from toolwatch.monitor.scheduler import HealthScheduler
from toolwatch.monitor.store import FileHealthStore, MemoryHealthStore

__all__ = [
    "AggregationPeriod",
    "CascadeDetector",
    "CascadeIncident",
    "CircuitBreaker",
    "CircuitState",
    "DependencyEdge",
    "FileHealthStore",
    "HealthResult",
    "HealthScheduler",
    "HealthStatus",
    "MemoryHealthStore",
    "MetricBucket",
    "MetricsAggregator",
    "ProbeOutcome",
    "ProbeSpec",
    "ResultRecorder",
    "Target",
    "TargetKind",
    "TargetStatus",
]
