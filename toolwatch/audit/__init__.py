"""Audit trail: monitor events as rotating JSON lines."""

from toolwatch.audit.logger import AuditLogger
from toolwatch.audit.models import MonitorEvent

__all__ = ["AuditLogger", "MonitorEvent"]
