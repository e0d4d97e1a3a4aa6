"""Configuration file loading and validation.

Loads a YAML configuration file, expands ``${ENV_VAR}`` placeholders,
and validates against Pydantic models defined in :mod:`schema`.

:func:`load_toolwatch_config` returns the validated model;
:func:`build_targets` and :func:`build_dependencies` turn it into the
immutable :class:`~toolwatch.monitor.models.Target` and
:class:`~toolwatch.monitor.models.DependencyEdge` objects the monitor runs on.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterable, List, Optional

import yaml
from pydantic import ValidationError

from toolwatch.config.env import expand_env_vars, find_unresolved
from toolwatch.config.schema import MonitorSettings, TargetConfig, ToolwatchConfig
from toolwatch.display.logging_config import secret_redaction_filter
from toolwatch.errors import ConfigurationError
from toolwatch.monitor.models import (
    DependencyEdge,
    ImpactClass,
    ProbeSpec,
    Target,
    TargetKind,
    validate_target,
)

logger = logging.getLogger(__name__)

# Recognised config file extensions.
_YAML_EXTS = frozenset({".yaml", ".yml"})


def _read_config_file(cfg_fpath: str) -> Dict[str, Any]:
    """Read and parse a YAML config file from *cfg_fpath*.

    Raises :class:`ConfigurationError` on I/O or parse errors.
    """
    ext = os.path.splitext(cfg_fpath)[1].lower()
    if ext not in _YAML_EXTS:
        raise ConfigurationError(
            f"Unsupported config file extension '{ext}'. "
            "Only YAML files (.yaml, .yml) are supported."
        )

    try:
        with open(cfg_fpath, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Error reading configuration file: {cfg_fpath}\n  {exc}") from exc

    if raw_data is None:
        raw_data = {}
    if not isinstance(raw_data, dict):
        raise ConfigurationError(
            "Top-level configuration content must be a YAML mapping (dictionary)."
        )
    return raw_data


def _format_validation_errors(exc: ValidationError) -> str:
    """Format Pydantic validation errors into a readable multi-line string."""
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"]) or "(root)"
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


def parse_config(raw_data: Dict[str, Any]) -> ToolwatchConfig:
    """Expand env vars in *raw_data* and validate it (all errors at once)."""
    raw_data = expand_env_vars(raw_data)
    missing = find_unresolved(raw_data)
    if missing:
        logger.warning(
            "Unset environment variable(s) left unexpanded: %s", ", ".join(sorted(missing))
        )

    try:
        config = ToolwatchConfig.model_validate(raw_data)
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n{error_summary}"
        ) from exc

    # Probe headers usually carry tokens.
    for target_cfg in config.targets.values():
        for value in target_cfg.probe.headers.values():
            secret_redaction_filter.register(value)
    return config


def load_toolwatch_config(cfg_fpath: str) -> ToolwatchConfig:
    """Load, expand and validate the full :class:`ToolwatchConfig`.

    Raises:
        ConfigurationError: On file I/O errors, parse errors, or
            validation failures.
    """
    logger.debug("Loading configuration file: %s", cfg_fpath)

    if not os.path.exists(cfg_fpath):
        raise ConfigurationError(f"Configuration file does not exist: {cfg_fpath}")

    config = parse_config(_read_config_file(cfg_fpath))
    logger.info(
        "Configuration '%s' loaded (v%s). %d target(s), %d dependency edge(s).",
        cfg_fpath,
        config.version,
        len(config.targets),
        len(config.dependencies),
    )
    return config


# ── Conversion to monitor models ────────────────────────────────────────


def target_from_config(
    target_id: str,
    cfg: TargetConfig,
    defaults: Optional[MonitorSettings] = None,
    known_checkers: Optional[Iterable[str]] = None,
) -> Target:
    """Build a validated :class:`Target` from its config entry.

    Timing and threshold fields missing on the target fall back to
    *defaults*.  When *known_checkers* is given, an unknown ``checker``
    key is rejected.
    """
    defaults = defaults or MonitorSettings()
    if known_checkers is not None and cfg.checker is not None:
        if cfg.checker not in set(known_checkers):
            raise ConfigurationError(f"Target '{target_id}': unknown checker '{cfg.checker}'")

    probe_cfg = cfg.probe
    probe = ProbeSpec(
        endpoint=probe_cfg.endpoint,
        base_url=cfg.base_url,
        readiness_endpoint=probe_cfg.readiness_endpoint,
        method=probe_cfg.method,
        headers=dict(probe_cfg.headers),
        timeout=probe_cfg.timeout if probe_cfg.timeout is not None else defaults.default_timeout,
        interval=(
            probe_cfg.interval if probe_cfg.interval is not None else defaults.default_interval
        ),
        expected_status=frozenset(probe_cfg.expected_status),
        degraded_latency_ms=probe_cfg.degraded_latency_ms,
        options=dict(cfg.options),
    )
    target = Target(
        id=target_id,
        kind=TargetKind(cfg.kind),
        probe=probe,
        display_name=cfg.display_name or target_id,
        critical=cfg.critical,
        impact_class=ImpactClass(cfg.impact_class),
        checker=cfg.checker,
        failure_threshold=(
            cfg.failure_threshold
            if cfg.failure_threshold is not None
            else defaults.failure_threshold
        ),
        success_threshold=(
            cfg.success_threshold
            if cfg.success_threshold is not None
            else defaults.success_threshold
        ),
        cooldown=cfg.cooldown if cfg.cooldown is not None else defaults.cooldown,
    )
    return validate_target(target)


def build_targets(
    config: ToolwatchConfig, known_checkers: Optional[Iterable[str]] = None
) -> Dict[str, Target]:
    """Convert every configured target, preserving config order."""
    checkers = list(known_checkers) if known_checkers is not None else None
    targets: Dict[str, Target] = {}
    for target_id, cfg in config.targets.items():
        targets[target_id] = target_from_config(target_id, cfg, config.monitor, checkers)
        logger.debug("Target '%s' (kind=%s) validated.", target_id, cfg.kind)
    return targets


def build_dependencies(config: ToolwatchConfig) -> List[DependencyEdge]:
    return [
        DependencyEdge(source=edge.source, dependent=edge.dependent, critical=edge.critical)
        for edge in config.dependencies
    ]
