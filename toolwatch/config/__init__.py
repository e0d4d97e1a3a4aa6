"""Configuration loading and validation for Toolwatch."""

from toolwatch.config.diff import ConfigDiff, compute_diff
from toolwatch.config.env import expand_env_vars
from toolwatch.config.loader import (
    build_dependencies,
    build_targets,
    load_toolwatch_config,
    parse_config,
    target_from_config,
)
from toolwatch.config.schema import (
    AuditConfig,
    DeliveryStatsConfig,
    DependencyConfig,
    MonitorSettings,
    ProbeConfig,
    ServerSettings,
    StorageConfig,
    TargetConfig,
    ToolwatchConfig,
)

__all__ = [
    "AuditConfig",
    "ConfigDiff",
    "DeliveryStatsConfig",
    "DependencyConfig",
    "MonitorSettings",
    "ProbeConfig",
    "ServerSettings",
    "StorageConfig",
    "TargetConfig",
    "ToolwatchConfig",
    "build_dependencies",
    "build_targets",
    "compute_diff",
    "expand_env_vars",
    "load_toolwatch_config",
    "parse_config",
    "target_from_config",
]
