"""JSON-line audit trail for monitor events, with file rotation."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from toolwatch.audit.models import MonitorEvent

logger = logging.getLogger(__name__)

# Custom log level so the audit trail survives a WARNING-only config.
AUDIT_LEVEL = 35  # between WARNING (30) and ERROR (40)
logging.addLevelName(AUDIT_LEVEL, "AUDIT")

DEFAULT_AUDIT_FILE = os.path.join("logs", "audit.jsonl")
DEFAULT_MAX_BYTES = 100 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5


class AuditLogger:
    """Writes :class:`MonitorEvent` records as JSON lines.

    Parameters
    ----------
    path:
        Audit file path; its directory is created if needed.
    max_bytes:
        Maximum file size before rotation.
    backup_count:
        Number of rotated files to keep.
    enabled:
        When False, :meth:`emit` is a no-op and no file is opened.
    """

    def __init__(
        self,
        path: str = DEFAULT_AUDIT_FILE,
        *,
        max_bytes: int = DEFAULT_MAX_BYTES,
        backup_count: int = DEFAULT_BACKUP_COUNT,
        enabled: bool = True,
    ) -> None:
        self._enabled = enabled
        self._path = path
        self._file_handler: Optional[RotatingFileHandler] = None
        # One logger per file so several instances (tests) don't share handlers.
        self._audit_logger = logging.getLogger(f"toolwatch.audit.trail.{id(self):x}")
        self._audit_logger.setLevel(AUDIT_LEVEL)
        self._audit_logger.propagate = False

        if enabled:
            directory = os.path.dirname(os.path.abspath(path))
            os.makedirs(directory, exist_ok=True)
            self._file_handler = RotatingFileHandler(
                path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            self._file_handler.setLevel(AUDIT_LEVEL)
            self._file_handler.setFormatter(logging.Formatter("%(message)s"))
            self._audit_logger.addHandler(self._file_handler)
            logger.info(
                "Audit logger initialized: %s (max %d MB, %d backups)",
                path,
                max_bytes // (1024 * 1024),
                backup_count,
            )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def path(self) -> str:
        return self._path

    def emit(self, event: MonitorEvent) -> None:
        if not self._enabled:
            return
        try:
            self._audit_logger.log(AUDIT_LEVEL, event.model_dump_json())
        except Exception:
            logger.exception("Failed to emit audit event %s", event.id)

    def close(self) -> None:
        if self._file_handler is not None:
            self._file_handler.close()
            self._audit_logger.removeHandler(self._file_handler)
            self._file_handler = None
