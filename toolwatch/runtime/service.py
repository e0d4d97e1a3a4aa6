"""Toolwatch runtime service: lifecycle management with a state machine.

MonitorService owns the scheduler, circuit breakers, checker registry,
store, recorder and cascade detector, and drives the full
startup/shutdown/reload sequence.  It does NOT import the display layer;
status is available through query methods so callers (lifespan, the
management API, the CLI) can render it however they choose.
"""

import asyncio
import logging
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from toolwatch.audit import AuditLogger, MonitorEvent
from toolwatch.config import (
    ToolwatchConfig,
    build_dependencies,
    build_targets,
    compute_diff,
    load_toolwatch_config,
)
from toolwatch.config.schema import DeliveryStatsConfig
from toolwatch.config.watcher import ConfigWatcher
from toolwatch.constants import SERVER_NAME, SERVER_VERSION
from toolwatch.errors import ConfigurationError, PersistenceError
from toolwatch.monitor.cascade import CascadeDetector
from toolwatch.monitor.checkers import CheckerRegistry
from toolwatch.monitor.circuit_breaker import CircuitBreaker, CircuitState
from toolwatch.monitor.delivery import (
    DeliveryStats,
    DeliveryStatsSource,
    HttpDeliveryStatsSource,
    StaticDeliveryStatsSource,
)
from toolwatch.monitor.metrics import AggregationPeriod, MetricsAggregator
from toolwatch.monitor.models import (
    CascadeIncident,
    HealthResult,
    HealthStatus,
    IncidentSeverity,
    MetricBucket,
    Target,
    TargetStatus,
    utcnow,
    validate_target,
)
from toolwatch.monitor.recorder import ResultRecorder
from toolwatch.monitor.scheduler import HealthScheduler
from toolwatch.monitor.store import FileHealthStore, MemoryHealthStore
from toolwatch.runtime.models import (
    DashboardSummary,
    HealthCounts,
    ServiceState,
    ServiceStatus,
    is_valid_transition,
)

logger = logging.getLogger(__name__)

_INCIDENT_SEVERITY = {
    IncidentSeverity.LOW: "info",
    IncidentSeverity.MEDIUM: "warning",
    IncidentSeverity.HIGH: "error",
    IncidentSeverity.CRITICAL: "critical",
}


class _InvalidStateTransition(Exception):
    """Raised internally when an illegal state transition is attempted."""

    def __init__(self, current: ServiceState, target: ServiceState) -> None:
        super().__init__(f"Invalid state transition: {current.value} → {target.value}")
        self.current = current
        self.target = target


def build_delivery_source(
    cfg: DeliveryStatsConfig, client: httpx.AsyncClient
) -> DeliveryStatsSource:
    if cfg.type == "http":
        return HttpDeliveryStatsSource(client, cfg.base_url or "", timeout=cfg.timeout)
    return StaticDeliveryStatsSource(
        {
            tool: DeliveryStats(
                total=counts.total,
                successful=counts.successful,
                last_received=counts.last_received,
            )
            for tool, counts in cfg.counts.items()
        }
    )


class MonitorService:
    """Manages the full lifecycle of the health monitor.

    State machine::

        PENDING ─► STARTING ─► RUNNING ─► STOPPING ─► STOPPED
                       │                      │
                       └──────► ERROR ◄───────┘

    Parameters
    ----------
    http_client:
        Client for probes and delivery stats.  Created (and closed on stop)
        when not given.
    store:
        Overrides the store chosen by the ``storage`` config section.
    audit_logger:
        Overrides the audit logger built from the ``audit`` section.
    delivery_source:
        Overrides the ``delivery_stats`` section.
    clock:
        Monotonic time source for circuit breaker cooldowns.
    wall_clock:
        UTC time source for result timestamps, buckets and incidents.

    Usage::

        service = MonitorService()
        await service.start(config_path="/path/to/config.yaml")
        # ... probes are running ...
        await service.stop()
    """

    # ------------------------------------------------------------------ #
    #  Initialisation
    # ------------------------------------------------------------------ #

    def __init__(
        self,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        store: Optional[MemoryHealthStore] = None,
        audit_logger: Optional[AuditLogger] = None,
        delivery_source: Optional[DeliveryStatsSource] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._state: ServiceState = ServiceState.PENDING
        self._started_at: Optional[datetime] = None
        self._error_message: Optional[str] = None
        self._config_path: Optional[str] = None
        self._config: Optional[ToolwatchConfig] = None

        self._http_client = http_client
        self._owns_client = http_client is None
        self._store_override = store
        self._audit_override = audit_logger
        self._delivery_override = delivery_source
        self._clock = clock
        self._wall_clock = wall_clock

        # Monitor components (built in start())
        self._targets: Dict[str, Target] = {}
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._store: MemoryHealthStore = store or MemoryHealthStore()
        self._aggregator: Optional[MetricsAggregator] = None
        self._recorder: Optional[ResultRecorder] = None
        self._detector: Optional[CascadeDetector] = None
        self._checkers: Optional[CheckerRegistry] = None
        self._scheduler: Optional[HealthScheduler] = None
        self._audit: Optional[AuditLogger] = audit_logger
        self._config_watcher: Optional[ConfigWatcher] = None

        self._ready_event: asyncio.Event = asyncio.Event()
        self._reload_lock: asyncio.Lock = asyncio.Lock()

        # Event system
        self._events: deque = deque(maxlen=500)
        self._event_subscribers: List[asyncio.Queue] = []

        logger.info("MonitorService initialized (state=%s).", self._state.value)

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ServiceState.RUNNING

    @property
    def config(self) -> Optional[ToolwatchConfig]:
        return self._config

    @property
    def config_path(self) -> Optional[str]:
        return self._config_path

    @property
    def store(self) -> MemoryHealthStore:
        return self._store

    @property
    def scheduler(self) -> Optional[HealthScheduler]:
        return self._scheduler

    @property
    def checkers(self) -> Optional[CheckerRegistry]:
        return self._checkers

    @property
    def detector(self) -> Optional[CascadeDetector]:
        return self._detector

    @property
    def targets(self) -> Dict[str, Target]:
        return dict(self._targets)

    def breaker(self, target_id: str) -> Optional[CircuitBreaker]:
        return self._breakers.get(target_id)

    def _transition(self, target: ServiceState) -> None:
        """Transition to *target* state if the move is valid."""
        if not is_valid_transition(self._state, target):
            raise _InvalidStateTransition(self._state, target)
        prev = self._state
        self._state = target
        logger.info("Service state: %s → %s", prev.value, target.value)
        self.emit_event("status", f"State changed: {prev.value} → {target.value}")

    # ------------------------------------------------------------------ #
    #  Lifecycle: start
    # ------------------------------------------------------------------ #

    async def start(
        self,
        config_path: Optional[str] = None,
        *,
        config: Optional[ToolwatchConfig] = None,
    ) -> None:
        """Load configuration, build the monitor and begin probing.

        Exactly one of *config_path* and *config* is expected; an
        in-memory *config* cannot be reloaded.

        Raises:
            ConfigurationError: If config loading/validation fails.
            _InvalidStateTransition: If the service cannot start from its
                current state.
        """
        self._transition(ServiceState.STARTING)
        self._error_message = None
        self._config_path = config_path

        try:
            # --- Phase 1: Config ------------------------------------------
            if config is None:
                if config_path is None:
                    raise ConfigurationError("No configuration given")
                logger.info("Loading configuration: %s", config_path)
                config = load_toolwatch_config(config_path)
            self._config = config

            # --- Phase 2: Components --------------------------------------
            self._build_components(config)
            await self._store.load()

            targets = build_targets(config, self._checkers.keys())
            for target in targets.values():
                await self.register_target(target)
            self.emit_event("config", f"Configuration loaded: {len(targets)} target(s) defined.")

            # --- Transition to RUNNING ------------------------------------
            self._started_at = datetime.now(timezone.utc)
            self._transition(ServiceState.RUNNING)
            self._scheduler.start()
            self._ready_event.set()

            if self._config_path and config.monitor.watch_config:
                self._config_watcher = ConfigWatcher(
                    config_path=self._config_path,
                    on_change=self._on_config_file_changed,
                )
                self._config_watcher.start()

            logger.info("MonitorService is RUNNING (%d target(s)).", len(self._targets))

        except Exception as exc:
            self._error_message = f"{type(exc).__name__}: {exc}"
            self._transition(ServiceState.ERROR)
            self._ready_event.clear()
            raise

    def _build_components(self, config: ToolwatchConfig) -> None:
        self._targets.clear()
        self._breakers.clear()
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(follow_redirects=False)
            self._owns_client = True

        if self._store_override is None:
            if config.storage.type == "file":
                self._store = FileHealthStore(
                    config.storage.path, history_size=config.monitor.history_size
                )
            else:
                self._store = MemoryHealthStore(history_size=config.monitor.history_size)

        if self._audit_override is None and self._audit is None:
            self._audit = AuditLogger(
                config.audit.file,
                max_bytes=config.audit.max_size_mb * 1024 * 1024,
                backup_count=config.audit.backup_count,
                enabled=config.audit.enabled,
            )

        self._aggregator = MetricsAggregator(
            self._store,
            AggregationPeriod(config.monitor.aggregation_period),
            clock=self._wall_clock,
        )
        self._recorder = ResultRecorder(
            self._store, self._aggregator, on_persistence_error=self._on_persistence_error
        )
        self._detector = CascadeDetector(
            self._store,
            build_dependencies(config),
            resolve_after=config.monitor.resolve_after,
            clock=self._wall_clock,
            on_incident=self._on_incident,
        )
        delivery = self._delivery_override or build_delivery_source(
            config.delivery_stats, self._http_client
        )
        self._checkers = CheckerRegistry.create_default(
            self._http_client,
            delivery,
            delivery_window_hours=config.delivery_stats.window_hours,
        )
        self._scheduler = HealthScheduler(self._run_probe, self._handle_result)

    # ------------------------------------------------------------------ #
    #  Lifecycle: stop
    # ------------------------------------------------------------------ #

    async def stop(self) -> None:
        """Cancel all probes, flush the store and transition to STOPPED.

        Safe to call after a failed start.
        """
        if self._state in (ServiceState.RUNNING, ServiceState.ERROR):
            self._transition(ServiceState.STOPPING)
        elif self._state == ServiceState.STARTING:
            self._state = ServiceState.ERROR
            logger.warning("Stop requested while still STARTING — forcing ERROR state.")
            self._transition(ServiceState.STOPPING)
        elif self._state in (ServiceState.STOPPED, ServiceState.PENDING):
            logger.info("Stop requested but service is already %s.", self._state.value)
            return
        elif self._state == ServiceState.STOPPING:
            logger.warning("Stop already in progress — ignoring duplicate call.")
            return

        try:
            if self._config_watcher is not None:
                await self._config_watcher.stop()
                self._config_watcher = None
            if self._scheduler is not None:
                await self._scheduler.stop()
            await self._store.close()
            if self._owns_client and self._http_client is not None:
                await self._http_client.aclose()
                self._http_client = None
            self._transition(ServiceState.STOPPED)
            if self._audit is not None and self._audit_override is None:
                self._audit.close()
                self._audit = None
        except Exception as exc:
            self._error_message = f"Shutdown error: {type(exc).__name__}: {exc}"
            logger.exception("Error during shutdown: %s", exc)
            self._transition(ServiceState.ERROR)
        finally:
            self._ready_event.clear()

    # ------------------------------------------------------------------ #
    #  Target registration
    # ------------------------------------------------------------------ #

    async def register_target(self, target: Target) -> None:
        """Start monitoring *target*; its first probe fires immediately.

        Raises :class:`ConfigurationError` for a malformed target, an
        unknown checker key or a duplicate id.
        """
        if self._scheduler is None or self._checkers is None:
            raise RuntimeError("MonitorService has not been started")
        validate_target(target)
        self._checkers.resolve(target)
        if target.id in self._targets:
            raise ConfigurationError(f"Target '{target.id}' is already registered")

        self._breakers[target.id] = CircuitBreaker(
            target.id,
            failure_threshold=target.failure_threshold,
            success_threshold=target.success_threshold,
            cooldown_seconds=target.cooldown,
            clock=self._clock,
            on_transition=self._on_breaker_transition,
        )
        self._targets[target.id] = target
        await self._recorder.ensure_row(target)
        self._scheduler.register(target)
        logger.info(
            "Monitoring '%s' (%s) every %.1fs", target.id, target.kind.value, target.probe.interval
        )
        self.emit_event(
            "target_registered", f"Target '{target.id}' registered.", target_id=target.id
        )

    async def unregister_target(self, target_id: str) -> bool:
        """Stop monitoring *target_id* and drop its breaker and stored data.

        An ongoing incident rooted at the target is resolved, since no
        later probe could close it.
        """
        if not self._detach(target_id):
            return False
        if self._detector is not None:
            await self._detector.resolve_root(target_id, "deregistered")
        try:
            await self._store.delete_target(target_id)
            await self._store.flush()
        except PersistenceError as exc:
            self._on_persistence_error(target_id, exc)
        logger.info("Stopped monitoring '%s'", target_id)
        self.emit_event(
            "target_deregistered", f"Target '{target_id}' deregistered.", target_id=target_id
        )
        return True

    async def replace_target(self, target: Target) -> None:
        """Swap in a changed target definition with a fresh breaker.

        The status row, history, metric buckets and incidents are kept.
        The new definition is validated before the old one is detached.
        """
        if target.id not in self._targets:
            raise KeyError(target.id)
        validate_target(target)
        self._checkers.resolve(target)
        self._detach(target.id)
        await self.register_target(target)

    def _detach(self, target_id: str) -> bool:
        if target_id not in self._targets:
            return False
        if self._scheduler is not None:
            self._scheduler.unregister(target_id)
        self._targets.pop(target_id, None)
        self._breakers.pop(target_id, None)
        return True

    # ------------------------------------------------------------------ #
    #  Probe pipeline
    # ------------------------------------------------------------------ #

    async def _run_probe(self, target: Target) -> HealthResult:
        breaker = self._breakers.get(target.id)
        if breaker is not None and not breaker.allows_request:
            return HealthResult.skipped(target.id, "circuit_open", self._wall_clock())
        checker = self._checkers.resolve(target)
        outcome = await checker.check(target)
        return HealthResult.from_outcome(target.id, outcome, self._wall_clock())

    async def _handle_result(self, target: Target, result: HealthResult) -> None:
        breaker = self._breakers.get(target.id)
        if breaker is None:
            return
        breaker.record(result.status)
        status = await self._recorder.record(target, result, breaker.snapshot())
        await self._detector.evaluate(target, result, status)
        if result.status == HealthStatus.UNHEALTHY:
            logger.info("[%s] unhealthy: %s", target.id, result.error)

    async def probe_now(self, target_id: str) -> Optional[HealthResult]:
        """Run one probe for *target_id* through the full pipeline and wait.

        Returns None when a probe is already in flight (the tick is dropped).
        """
        if self._scheduler is None:
            raise RuntimeError("MonitorService has not been started")
        if target_id not in self._targets:
            raise KeyError(target_id)
        task = self._scheduler.tick(target_id)
        if task is None:
            return None
        await task
        history = await self._store.get_history(target_id, limit=1)
        return history[0] if history else None

    # ------------------------------------------------------------------ #
    #  Callbacks
    # ------------------------------------------------------------------ #

    def _on_breaker_transition(
        self, target_id: str, old_state: CircuitState, new_state: CircuitState
    ) -> None:
        self.emit_event(
            "breaker_transition",
            f"Circuit '{target_id}': {old_state.value} → {new_state.value}",
            severity="warning" if new_state == CircuitState.OPEN else "info",
            target_id=target_id,
            details={"from": old_state.value, "to": new_state.value},
        )

    def _on_incident(self, stage: str, incident: CascadeIncident) -> None:
        severity = _INCIDENT_SEVERITY[incident.severity]
        if stage == "incident_resolved":
            severity = "info"
        self.emit_event(
            stage,
            f"Cascade incident {incident.incident_id}: root '{incident.root_cause}', "
            f"{len(incident.affected_targets)} affected",
            severity=severity,
            target_id=incident.root_cause,
            details=incident.model_dump(mode="json"),
        )

    def _on_persistence_error(self, target_id: str, exc: PersistenceError) -> None:
        self.emit_event(
            "persistence_error",
            str(exc),
            severity="error",
            target_id=target_id,
        )

    # ------------------------------------------------------------------ #
    #  Lifecycle: reload
    # ------------------------------------------------------------------ #

    async def reload(self) -> Dict[str, Any]:
        """Hot-reload config: re-read from disk, diff targets and re-register.

        Returns a dict with keys: reloaded, targets_added, targets_removed,
        targets_changed, dependencies_changed, errors.
        """
        result: Dict[str, Any] = {
            "reloaded": False,
            "targets_added": [],
            "targets_removed": [],
            "targets_changed": [],
            "dependencies_changed": False,
            "errors": [],
        }
        if self._state != ServiceState.RUNNING:
            result["errors"].append(f"Cannot reload in state: {self._state.value}")
            return result
        if self._config_path is None:
            result["errors"].append("No config path available.")
            return result

        async with self._reload_lock:
            try:
                new_config = load_toolwatch_config(self._config_path)
                new_targets = build_targets(new_config, self._checkers.keys())
            except ConfigurationError as exc:
                msg = f"Config reload failed: {exc}"
                logger.error(msg)
                result["errors"].append(msg)
                self.emit_event("config_reloaded", msg, severity="error")
                return result

            old_edges = self._detector.edges
            new_edges = build_dependencies(new_config)
            diff = compute_diff(self._targets, new_targets, old_edges, new_edges)
            result.update(
                targets_added=list(diff.added),
                targets_removed=list(diff.removed),
                targets_changed=list(diff.changed),
                dependencies_changed=diff.dependencies_changed,
            )

            for target_id in diff.removed:
                await self.unregister_target(target_id)
            for target_id in diff.changed:
                try:
                    await self.replace_target(new_targets[target_id])
                except ConfigurationError as exc:
                    result["errors"].append(str(exc))
            for target_id in diff.added:
                try:
                    await self.register_target(new_targets[target_id])
                except ConfigurationError as exc:
                    result["errors"].append(str(exc))

            self._detector.set_edges(new_edges)
            self._detector.resolve_after = new_config.monitor.resolve_after
            self._config = new_config

            result["reloaded"] = True
            self.emit_event(
                "config_reloaded", f"Config reloaded: {diff.summary()}", details=diff.to_dict()
            )
            logger.info(
                "Config reloaded: added=%s removed=%s changed=%s errors=%s",
                result["targets_added"],
                result["targets_removed"],
                result["targets_changed"],
                result["errors"],
            )
            return result

    async def _on_config_file_changed(self) -> None:
        logger.info("Config file change detected by watcher, invoking reload...")
        result = await self.reload()
        if result.get("errors"):
            logger.warning("Auto-reload completed with errors: %s", result["errors"])

    # ------------------------------------------------------------------ #
    #  Queries
    # ------------------------------------------------------------------ #

    async def list_statuses(self) -> List[TargetStatus]:
        """Status row per registered target, in registration order."""
        rows = {s.target_id: s for s in await self._store.list_statuses()}
        statuses = []
        for target_id in self._targets:
            row = rows.get(target_id)
            if row is None:
                row = TargetStatus.for_target(self._targets[target_id])
            statuses.append(self._with_live_breaker(row))
        return statuses

    async def get_target_status(self, target_id: str) -> Optional[TargetStatus]:
        if target_id not in self._targets:
            return None
        row = await self._store.get_status(target_id)
        if row is None:
            row = TargetStatus.for_target(self._targets[target_id])
        return self._with_live_breaker(row)

    def _with_live_breaker(self, row: TargetStatus) -> TargetStatus:
        breaker = self._breakers.get(row.target_id)
        if breaker is not None:
            row.breaker = breaker.snapshot()
        return row

    async def get_history(self, target_id: str, limit: Optional[int] = None) -> List[HealthResult]:
        return await self._store.get_history(target_id, limit)

    async def get_metrics(
        self,
        target_id: str,
        metric: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        hours: Optional[float] = None,
    ) -> List[MetricBucket]:
        """Buckets for a target (and optionally one metric) in a time range.

        *hours* is shorthand for ``start = now - hours``.
        """
        if hours is not None and start is None:
            start = self._wall_clock() - timedelta(hours=hours)
        return await self._store.query_buckets(target_id, metric, start, end)

    async def get_incidents(self, include_resolved: bool = False) -> List[CascadeIncident]:
        return await self._store.list_incidents(include_resolved=include_resolved)

    async def dashboard(self) -> DashboardSummary:
        statuses = await self.list_statuses()
        counts = HealthCounts()
        for row in statuses:
            setattr(counts, row.status.value, getattr(counts, row.status.value) + 1)
        total = len(statuses)
        score = round(counts.healthy / total * 100) if total else 100
        incidents = await self.get_incidents()
        return DashboardSummary(
            overall_health_score=score,
            total_targets=total,
            counts=counts,
            open_circuits=sum(1 for s in statuses if s.breaker.state == CircuitState.OPEN.value),
            open_incidents=len(incidents),
            critical_unhealthy=sum(
                1 for s in statuses if s.critical and s.status == HealthStatus.UNHEALTHY
            ),
        )

    async def get_service_status(self) -> ServiceStatus:
        statuses = await self.list_statuses()
        incidents = await self.get_incidents()
        status = ServiceStatus(
            state=self._state,
            server_name=SERVER_NAME,
            server_version=SERVER_VERSION,
            started_at=self._started_at,
            targets_total=len(statuses),
            targets_healthy=sum(1 for s in statuses if s.status == HealthStatus.HEALTHY),
            open_incidents=len(incidents),
            aggregation_period=(
                self._aggregator.period.value if self._aggregator is not None else None
            ),
            dropped_ticks=(
                sum(s["dropped_ticks"] for s in self._scheduler.stats().values())
                if self._scheduler is not None
                else 0
            ),
            persistence_failures=(
                self._recorder.persistence_failures if self._recorder is not None else 0
            ),
            error_message=self._error_message,
            config_path=self._config_path,
        )
        if self._state == ServiceState.RUNNING:
            status.compute_uptime()
        return status

    # ------------------------------------------------------------------ #
    #  Events
    # ------------------------------------------------------------------ #

    def emit_event(
        self,
        stage: str,
        message: str,
        *,
        severity: str = "info",
        target_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Record an event in the buffer, the audit trail and all subscribers."""
        event = MonitorEvent(
            stage=stage,
            message=message,
            severity=severity,
            target_id=target_id,
            details=details or {},
        )
        if self._audit is not None:
            self._audit.emit(event)
        payload = event.model_dump(mode="json")
        self._events.append(payload)
        for queue in self._event_subscribers:
            try:
                queue.put_nowait(payload)
            except asyncio.QueueFull:
                logger.debug("Event subscriber queue full, dropping %s", event.id)
        return payload

    def get_events(
        self,
        *,
        limit: int = 100,
        since: Optional[str] = None,
        severity: Optional[str] = None,
        target_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return recent events, optionally filtered."""
        result = list(self._events)
        if since:
            result = [e for e in result if e["timestamp"] > since]
        if severity:
            result = [e for e in result if e["severity"] == severity]
        if target_id:
            result = [e for e in result if e["target_id"] == target_id]
        return result[-limit:] if limit > 0 else []

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=256)
        self._event_subscribers.append(queue)
        logger.debug("Event subscriber added (total: %d).", len(self._event_subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._event_subscribers:
            self._event_subscribers.remove(queue)
            logger.debug("Event subscriber removed (total: %d).", len(self._event_subscribers))

    # ------------------------------------------------------------------ #
    #  Readiness
    # ------------------------------------------------------------------ #

    async def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the service reaches RUNNING state.

        Returns ``True`` if the service is ready, ``False`` on timeout.
        """
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
