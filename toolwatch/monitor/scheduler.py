"""Per-target periodic probe scheduling.

Each registered target gets its own ticker task.  The first tick fires
immediately, later ones every ``probe.interval`` seconds.  A tick that
arrives while the previous probe (including its recording) is still in
flight is dropped, not queued, so results for one target are strictly
ordered.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from toolwatch.errors import ConfigurationError
from toolwatch.monitor.models import HealthResult, Target

logger = logging.getLogger(__name__)

ProbeFn = Callable[[Target], Awaitable[HealthResult]]
ResultFn = Callable[[Target, HealthResult], Awaitable[Any]]


class _Slot:
    """Scheduling state of one registered target.

    A slot's identity is what ties an in-flight probe to its registration:
    after unregister or replace, the old slot is gone and its late result
    is discarded.
    """

    __slots__ = ("target", "ticker", "inflight", "ticks", "dropped_ticks", "completed")

    def __init__(self, target: Target) -> None:
        self.target = target
        self.ticker: Optional[asyncio.Task[None]] = None
        self.inflight: Optional[asyncio.Task[None]] = None
        self.ticks = 0
        self.dropped_ticks = 0
        self.completed = 0

    @property
    def busy(self) -> bool:
        return self.inflight is not None and not self.inflight.done()

    def to_dict(self) -> dict:
        return {
            "interval": self.target.probe.interval,
            "ticks": self.ticks,
            "dropped_ticks": self.dropped_ticks,
            "completed": self.completed,
            "in_flight": self.busy,
        }


class HealthScheduler:
    """Runs one independent ticker per target.

    Parameters
    ----------
    probe:
        ``await probe(target) -> HealthResult``.  Expected not to raise.
    on_result:
        ``await on_result(target, result)``; runs inside the in-flight
        slot, so the next probe for the target cannot start before it
        returns.
    """

    def __init__(self, probe: ProbeFn, on_result: ResultFn) -> None:
        self._probe = probe
        self._on_result = on_result
        self._slots: Dict[str, _Slot] = {}
        self._running = False
        self.discarded_results = 0

    # ── Registration ─────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    def target_ids(self) -> List[str]:
        return list(self._slots)

    def get_target(self, target_id: str) -> Optional[Target]:
        slot = self._slots.get(target_id)
        return slot.target if slot is not None else None

    def register(self, target: Target) -> None:
        """Add *target*; if the scheduler is running its first probe fires now."""
        if target.id in self._slots:
            raise ConfigurationError(f"Target '{target.id}' is already registered")
        slot = _Slot(target)
        self._slots[target.id] = slot
        if self._running:
            self._start_ticker(slot)
        logger.debug("Registered target '%s' (interval %.1fs)", target.id, target.probe.interval)

    def unregister(self, target_id: str) -> bool:
        """Stop ticking *target_id*.

        An in-flight probe is left to finish; its result is discarded.
        """
        slot = self._slots.pop(target_id, None)
        if slot is None:
            return False
        if slot.ticker is not None:
            slot.ticker.cancel()
        logger.debug("Unregistered target '%s'", target_id)
        return True

    def replace(self, target: Target) -> None:
        """Re-register a target whose configuration changed."""
        self.unregister(target.id)
        self.register(target)

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        for slot in self._slots.values():
            self._start_ticker(slot)
        logger.info("Health scheduler started (%d target(s))", len(self._slots))

    async def stop(self) -> None:
        """Cancel every ticker and in-flight probe and wait for them."""
        self._running = False
        tasks: List[asyncio.Task] = []
        for slot in self._slots.values():
            for task in (slot.ticker, slot.inflight):
                if task is not None and not task.done():
                    task.cancel()
                    tasks.append(task)
            slot.ticker = None
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Health scheduler stopped.")

    # ── Ticking ──────────────────────────────────────────────────────

    def _start_ticker(self, slot: _Slot) -> None:
        slot.ticker = asyncio.create_task(self._tick_loop(slot), name=f"ticker-{slot.target.id}")

    async def _tick_loop(self, slot: _Slot) -> None:
        while True:
            self.tick(slot.target.id)
            await asyncio.sleep(slot.target.probe.interval)

    def tick(self, target_id: str) -> Optional[asyncio.Task]:
        """Start a probe for *target_id* unless one is already in flight.

        Returns the probe task, or None when the tick was dropped.
        """
        slot = self._slots.get(target_id)
        if slot is None:
            return None
        slot.ticks += 1
        if slot.busy:
            slot.dropped_ticks += 1
            logger.debug(
                "[%s] Probe still in flight, dropping tick (%d dropped)",
                target_id,
                slot.dropped_ticks,
            )
            return None
        slot.inflight = asyncio.create_task(self._execute(slot), name=f"probe-{target_id}")
        return slot.inflight

    async def _execute(self, slot: _Slot) -> None:
        target = slot.target
        result = await self._probe(target)
        if self._slots.get(target.id) is not slot:
            self.discarded_results += 1
            logger.debug("[%s] Discarding result of a deregistered slot", target.id)
            return
        try:
            await self._on_result(target, result)
        except Exception:
            logger.exception("[%s] Failed to handle probe result", target.id)
        slot.completed += 1

    # ── Introspection ────────────────────────────────────────────────

    def stats(self) -> Dict[str, dict]:
        return {tid: slot.to_dict() for tid, slot in self._slots.items()}

    def dropped_ticks(self, target_id: str) -> int:
        slot = self._slots.get(target_id)
        return slot.dropped_ticks if slot is not None else 0
