"""Monitor event model.

One record per notable state change: breaker transitions, incidents,
target registration and config reloads.  The same model feeds the
in-memory event buffer and the JSON-line audit file.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class MonitorEvent(BaseModel):
    """A single structured monitor event."""

    id: str = Field(default_factory=lambda: f"evt-{uuid4().hex[:12]}")
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    stage: str = Field(description="Event type, e.g. 'breaker_transition', 'incident_opened'.")
    message: str = ""
    severity: str = "info"  # "info" | "warning" | "error" | "critical"
    target_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
