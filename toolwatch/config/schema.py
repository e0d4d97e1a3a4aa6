"""Pydantic configuration models for Toolwatch.

Defines the validated config structure using the versioned v1 format.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from toolwatch.constants import (
    DEFAULT_CHECK_INTERVAL,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_DELIVERY_WINDOW_HOURS,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_HISTORY_SIZE,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_RESOLVE_AFTER,
    DEFAULT_SUCCESS_THRESHOLD,
)

# ── Targets ──────────────────────────────────────────────────────────────


class ProbeConfig(BaseModel):
    """Probe parameters for one target.

    Unset timing and threshold fields fall back to the ``monitor`` section.
    """

    endpoint: str = Field(
        default="{base_url}/health",
        min_length=1,
        description="Health endpoint template ({base_url}, {target_id}).",
    )
    readiness_endpoint: Optional[str] = Field(
        default=None,
        description="Readiness endpoint template, probed for critical targets only.",
    )
    method: Literal["GET", "HEAD", "POST"] = "GET"
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra request headers. Values support ${ENV_VAR} and are redacted in logs.",
    )
    timeout: Optional[float] = Field(default=None, gt=0)
    interval: Optional[float] = Field(default=None, gt=0)
    expected_status: List[int] = Field(default_factory=lambda: [200], min_length=1)
    degraded_latency_ms: Optional[float] = Field(default=None, gt=0)

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("expected_status")
    @classmethod
    def _check_status_codes(cls, v: List[int]) -> List[int]:
        for code in v:
            if not 100 <= code <= 599:
                raise ValueError(f"HTTP status {code} is out of range")
        return v


class TargetConfig(BaseModel):
    """A monitored service or tool integration."""

    kind: Literal["service", "tool-integration"] = "service"
    display_name: Optional[str] = None
    base_url: str = Field(default="", description="Substituted for {base_url} in templates.")
    checker: Optional[str] = Field(
        default=None,
        description="Specialised checker key (rate-limit, queue-depth, webhook-delivery).",
    )
    impact_class: Literal["identity", "gateway", "catalog", "standard"] = "standard"
    critical: bool = False
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    options: Dict[str, Any] = Field(
        default_factory=dict, description="Checker-specific options."
    )
    failure_threshold: Optional[int] = Field(default=None, ge=1)
    success_threshold: Optional[int] = Field(default=None, ge=1)
    cooldown: Optional[float] = Field(default=None, ge=0)

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, v: str) -> str:
        v = v.strip()
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"URL '{v}' must start with http:// or https://")
        return v.rstrip("/")


class DependencyConfig(BaseModel):
    """``dependent`` cannot work while ``source`` is down."""

    source: str = Field(..., min_length=1)
    dependent: str = Field(..., min_length=1)
    critical: bool = True


# ── Sections ─────────────────────────────────────────────────────────────


class ManagementSettings(BaseModel):
    """Management API configuration."""

    enabled: bool = True


class ServerSettings(BaseModel):
    """HTTP server settings."""

    host: str = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    management: ManagementSettings = Field(default_factory=ManagementSettings)


class MonitorSettings(BaseModel):
    """Monitor-wide defaults and aggregation settings."""

    default_interval: float = Field(default=DEFAULT_CHECK_INTERVAL, gt=0)
    default_timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, gt=0)
    failure_threshold: int = Field(default=DEFAULT_FAILURE_THRESHOLD, ge=1)
    success_threshold: int = Field(default=DEFAULT_SUCCESS_THRESHOLD, ge=1)
    cooldown: float = Field(default=DEFAULT_COOLDOWN_SECONDS, ge=0)
    aggregation_period: Literal["minute", "hour", "day"] = "hour"
    history_size: int = Field(default=DEFAULT_HISTORY_SIZE, ge=1)
    resolve_after: int = Field(
        default=DEFAULT_RESOLVE_AFTER,
        ge=1,
        description="Consecutive healthy probes of a root cause before its incident resolves.",
    )
    watch_config: bool = Field(default=False, description="Reload on config file change.")


class DeliveryCounts(BaseModel):
    total: int = Field(default=0, ge=0)
    successful: int = Field(default=0, ge=0)
    last_received: Optional[str] = None

    @model_validator(mode="after")
    def _successful_within_total(self) -> "DeliveryCounts":
        if self.successful > self.total:
            raise ValueError("successful deliveries cannot exceed total")
        return self


class DeliveryStatsConfig(BaseModel):
    """Where the webhook-delivery checker reads its counts from."""

    type: Literal["http", "static"] = "static"
    base_url: Optional[str] = None
    window_hours: int = Field(default=DEFAULT_DELIVERY_WINDOW_HOURS, ge=1)
    timeout: float = Field(default=DEFAULT_PROBE_TIMEOUT, gt=0)
    counts: Dict[str, DeliveryCounts] = Field(
        default_factory=dict,
        description="Per-tool counts for the static source.",
    )

    @model_validator(mode="after")
    def _http_needs_url(self) -> "DeliveryStatsConfig":
        if self.type == "http" and not self.base_url:
            raise ValueError("delivery_stats.base_url is required when type is 'http'")
        return self


class AuditConfig(BaseModel):
    """Audit logging settings."""

    enabled: bool = Field(default=True, description="Enable audit event logging.")
    file: str = Field(
        default="logs/audit.jsonl",
        description="Path to the JSON-line audit log file.",
    )
    max_size_mb: int = Field(default=100, ge=1, description="Max file size in MB before rotation.")
    backup_count: int = Field(
        default=5, ge=0, description="Number of rotated backup files to keep."
    )


class StorageConfig(BaseModel):
    """Where status rows, history, buckets and incidents live."""

    type: Literal["memory", "file"] = "memory"
    path: str = "data/toolwatch-state.json"


# ── Top-level config ────────────────────────────────────────────────────


class ToolwatchConfig(BaseModel):
    """Top-level validated configuration for Toolwatch.

    Supports version ``"1"`` format::

        {
            "version": "1",
            "monitor": { ... },
            "targets": {
                "identity-provider": { "kind": "service", ... }
            },
            "dependencies": [
                { "source": "identity-provider", "dependent": "github" }
            ]
        }
    """

    version: str = "1"
    server: ServerSettings = Field(default_factory=ServerSettings)
    monitor: MonitorSettings = Field(default_factory=MonitorSettings)
    targets: Dict[str, TargetConfig] = Field(default_factory=dict)
    dependencies: List[DependencyConfig] = Field(default_factory=list)
    delivery_stats: DeliveryStatsConfig = Field(default_factory=DeliveryStatsConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("targets")
    @classmethod
    def _validate_target_ids(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        for name in v:
            stripped = name.strip()
            if not stripped:
                raise ValueError("Target id must be a non-empty string")
            if stripped != name:
                raise ValueError(f"Target id '{name}' has leading/trailing whitespace")
        return v

    @model_validator(mode="after")
    def _validate_dependencies(self) -> "ToolwatchConfig":
        problems: List[str] = []
        for edge in self.dependencies:
            if edge.source == edge.dependent:
                problems.append(f"'{edge.source}' cannot depend on itself")
            for end in (edge.source, edge.dependent):
                if end not in self.targets:
                    problems.append(f"dependency references unknown target '{end}'")
        if problems:
            raise ValueError("; ".join(problems))
        return self
