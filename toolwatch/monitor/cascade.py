"""Cascade failure detection across the static dependency graph.

When a critical target goes unhealthy, every dependent reachable over a
critical edge is affected.  One ``ongoing`` incident is kept per root
cause; repeated failures update it instead of opening another one.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional

from toolwatch.constants import DEFAULT_RESOLVE_AFTER
from toolwatch.errors import PersistenceError
from toolwatch.monitor.models import (
    CascadeIncident,
    DependencyEdge,
    HealthResult,
    HealthStatus,
    ImpactClass,
    IncidentSeverity,
    ResolutionStatus,
    Target,
    TargetStatus,
    UserImpact,
    utcnow,
)
from toolwatch.monitor.store import MemoryHealthStore

logger = logging.getLogger(__name__)

IncidentCallback = Callable[[str, CascadeIncident], None]

_OUTAGE_CLASSES = (ImpactClass.IDENTITY, ImpactClass.GATEWAY)


def incident_id_for(root_cause: str, started_at: datetime) -> str:
    return f"cascade-{root_cause}-{int(started_at.timestamp() * 1000)}"


def severity_for(root: Target, affected_count: int) -> IncidentSeverity:
    if root.impact_class in _OUTAGE_CLASSES:
        return IncidentSeverity.CRITICAL
    if affected_count >= 3:
        return IncidentSeverity.HIGH
    if affected_count >= 1:
        return IncidentSeverity.MEDIUM
    return IncidentSeverity.LOW


def user_impact_for(root: Target, affected_count: int) -> UserImpact:
    if root.impact_class in _OUTAGE_CLASSES:
        return UserImpact.COMPLETE_OUTAGE
    if root.impact_class == ImpactClass.CATALOG:
        return UserImpact.PARTIAL_OUTAGE
    if affected_count >= 2:
        return UserImpact.DEGRADED_PERFORMANCE
    return UserImpact.MINIMAL


class CascadeDetector:
    """Opens, updates and resolves cascade incidents.

    Parameters
    ----------
    store:
        Incident storage.
    edges:
        Dependency edges in configuration order.
    resolve_after:
        Consecutive healthy probes of the root cause that resolve its
        ongoing incident.
    clock:
        Wall-clock source.
    on_incident:
        Called as ``(event, incident)`` with ``event`` one of
        ``incident_opened``, ``incident_updated``, ``incident_resolved``.
    """

    def __init__(
        self,
        store: MemoryHealthStore,
        edges: Iterable[DependencyEdge] = (),
        resolve_after: int = DEFAULT_RESOLVE_AFTER,
        clock: Callable[[], datetime] = utcnow,
        on_incident: Optional[IncidentCallback] = None,
    ) -> None:
        self._store = store
        self._edges: List[DependencyEdge] = []
        self._dependents: Dict[str, List[str]] = {}
        self.resolve_after = resolve_after
        self._clock = clock
        self._on_incident = on_incident
        self.set_edges(edges)

    def set_edges(self, edges: Iterable[DependencyEdge]) -> None:
        """Replace the dependency graph (on config reload)."""
        self._edges = list(edges)
        dependents: Dict[str, List[str]] = {}
        for edge in self._edges:
            if not edge.critical:
                continue
            bucket = dependents.setdefault(edge.source, [])
            if edge.dependent not in bucket:
                bucket.append(edge.dependent)
        self._dependents = dependents

    @property
    def edges(self) -> List[DependencyEdge]:
        return list(self._edges)

    def dependents_of(self, target_id: str) -> List[str]:
        """Unique critical dependents of *target_id*, in config order."""
        return list(self._dependents.get(target_id, ()))

    async def evaluate(
        self, target: Target, result: HealthResult, status: Optional[TargetStatus] = None
    ) -> Optional[CascadeIncident]:
        """Feed one recorded result to the detector.

        Returns the incident that was opened, updated or resolved, if any.
        """
        if result.status == HealthStatus.UNHEALTHY and target.critical:
            return await self._upsert(target)
        if result.status == HealthStatus.HEALTHY and status is not None:
            if status.consecutive_successes >= self.resolve_after:
                return await self._resolve(target.id, "healthy again")
        return None

    async def _upsert(self, root: Target) -> Optional[CascadeIncident]:
        dependents = self.dependents_of(root.id)
        if not dependents:
            return None

        now = self._clock()
        async with self._store.locked(f"incident:{root.id}"):
            incident = await self._store.get_open_incident(root.id)
            if incident is None:
                event = "incident_opened"
                incident = CascadeIncident(
                    incident_id=incident_id_for(root.id, now),
                    root_cause=root.id,
                    affected_targets=dependents,
                    detected_at=now,
                    started_at=now,
                    updated_at=now,
                )
            else:
                event = "incident_updated"
                for dependent in dependents:
                    if dependent not in incident.affected_targets:
                        incident.affected_targets.append(dependent)
                incident.updated_at = now
                incident.occurrences += 1

            affected = len(incident.affected_targets)
            incident.severity = severity_for(root, affected)
            incident.user_impact = user_impact_for(root, affected)
            await self._save(incident)

        if event == "incident_opened":
            logger.warning(
                "Cascade incident %s: '%s' down, %d dependent(s) affected (%s)",
                incident.incident_id,
                root.id,
                affected,
                incident.severity.value,
            )
        else:
            logger.debug(
                "Cascade incident %s updated (occurrence %d)",
                incident.incident_id,
                incident.occurrences,
            )
        self._notify(event, incident)
        return incident

    async def resolve_root(self, root_id: str, reason: str) -> Optional[CascadeIncident]:
        """Resolve the ongoing incident of *root_id* without waiting for probes.

        Used when the root cause stops being monitored, since no further
        healthy result could close its incident.
        """
        return await self._resolve(root_id, reason)

    async def _resolve(self, root_id: str, reason: str) -> Optional[CascadeIncident]:
        async with self._store.locked(f"incident:{root_id}"):
            incident = await self._store.get_open_incident(root_id)
            if incident is None:
                return None
            now = self._clock()
            incident.resolution_status = ResolutionStatus.RESOLVED
            incident.resolved_at = now
            incident.updated_at = now
            await self._save(incident)

        logger.info("Cascade incident %s resolved ('%s' %s)", incident.incident_id, root_id, reason)
        self._notify("incident_resolved", incident)
        return incident

    async def _save(self, incident: CascadeIncident) -> None:
        try:
            await self._store.put_incident(incident)
            await self._store.flush()
        except PersistenceError as exc:
            logger.error(
                "[%s] Incident %s not persisted: %s", incident.root_cause, incident.incident_id, exc
            )

    def _notify(self, event: str, incident: CascadeIncident) -> None:
        if self._on_incident is None:
            return
        try:
            self._on_incident(event, incident)
        except Exception:
            logger.exception("Incident callback failed for %s", incident.incident_id)
