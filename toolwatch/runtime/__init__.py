"""Runtime service layer for Toolwatch."""

from toolwatch.runtime.models import DashboardSummary, ServiceState, ServiceStatus
from toolwatch.runtime.service import MonitorService

__all__ = ["DashboardSummary", "MonitorService", "ServiceState", "ServiceStatus"]
