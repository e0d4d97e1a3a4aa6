"""Async config file watcher with debounce.

Polls the config file's ``(mtime, size)`` signature and calls the reload
callback once the file has stopped changing for the debounce period.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Awaitable, Callable, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL: float = 2.0
DEFAULT_DEBOUNCE: float = 1.0

_Signature = Optional[Tuple[float, int]]


class ConfigWatcher:
    """Poll-based async config file watcher.

    Parameters
    ----------
    config_path:
        Path to the config file to watch.
    on_change:
        Async callback invoked when the file changes (after debounce);
        typically ``service.reload``.
    poll_interval:
        Seconds between ``os.stat`` polls.
    debounce:
        Seconds the file must stay unchanged before the callback fires.
    """

    def __init__(
        self,
        config_path: str,
        on_change: Callable[[], Awaitable[Any]],
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        self._path = config_path
        self._on_change = on_change
        self._poll_interval = poll_interval
        self._debounce = debounce

        self._task: Optional[asyncio.Task[None]] = None
        self._signature: _Signature = None
        self.reload_count = 0

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self) -> None:
        """Begin watching.  Safe to call multiple times."""
        if self.watching:
            return
        self._signature = self._stat()
        self._task = asyncio.create_task(self._poll_loop(), name="config-watcher")
        logger.info("Config watcher started: %s", self._path)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Config watcher stopped.")

    @property
    def watching(self) -> bool:
        return self._task is not None and not self._task.done()

    # ── Internal ─────────────────────────────────────────────────────

    def _stat(self) -> _Signature:
        try:
            st = os.stat(self._path)
        except OSError:
            return None
        return (st.st_mtime, st.st_size)

    async def poll_once(self) -> bool:
        """Check the file once; returns True if the callback was invoked."""
        current = self._stat()
        if current is None or current == self._signature:
            return False

        logger.debug("Config change detected (%s → %s), debouncing...", self._signature, current)
        self._signature = current
        await asyncio.sleep(self._debounce)
        settled = self._stat()
        if settled != current:
            # Still being written; pick it up on a later poll.
            self._signature = settled
            return False

        logger.info("Config file changed, triggering reload...")
        self.reload_count += 1
        try:
            await self._on_change()
        except Exception:
            logger.exception("Error in config-change callback.")
        return True

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            await self.poll_once()
