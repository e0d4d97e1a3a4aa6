"""Rich tables for the ``status`` and ``validate`` commands."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from toolwatch.monitor.models import Target

STATUS_STYLES: Dict[str, str] = {
    "healthy": "bold green",
    "degraded": "yellow",
    "unhealthy": "bold red",
    "skipped": "magenta",
    "unknown": "dim",
}

BREAKER_STYLES: Dict[str, str] = {
    "closed": "green",
    "half-open": "yellow",
    "open": "bold red",
}


def _fmt_ms(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.0f} ms"


def build_status_table(targets: Iterable[Dict[str, Any]]) -> Table:
    """Table of target status rows as returned by ``GET /targets``."""
    table = Table(title="Target health", header_style="bold cyan")
    table.add_column("Target", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Circuit")
    table.add_column("Latency", justify="right")
    table.add_column("Fail/OK", justify="right")
    table.add_column("Last check")
    table.add_column("Error", overflow="fold")

    for row in targets:
        status = row.get("status", "unknown")
        breaker = (row.get("breaker") or {}).get("state", "closed")
        name = row.get("display_name") or row.get("target_id", "?")
        if row.get("critical"):
            name = f"{name} *"
        table.add_row(
            name,
            row.get("kind", ""),
            Text(status, style=STATUS_STYLES.get(status, "")),
            Text(breaker, style=BREAKER_STYLES.get(breaker, "")),
            _fmt_ms(row.get("response_time_ms")),
            f"{row.get('consecutive_failures', 0)}/{row.get('consecutive_successes', 0)}",
            (row.get("last_check") or "-")[:19].replace("T", " "),
            row.get("error") or "",
        )
    return table


def build_incident_table(incidents: Iterable[Dict[str, Any]]) -> Optional[Table]:
    rows: List[Dict[str, Any]] = list(incidents)
    if not rows:
        return None
    table = Table(title="Cascade incidents", header_style="bold red")
    table.add_column("Incident")
    table.add_column("Root cause", style="bold")
    table.add_column("Severity")
    table.add_column("Impact")
    table.add_column("Affected", overflow="fold")
    table.add_column("Seen", justify="right")
    for inc in rows:
        table.add_row(
            inc.get("incident_id", ""),
            inc.get("root_cause", ""),
            inc.get("severity", ""),
            inc.get("user_impact", ""),
            ", ".join(inc.get("affected_targets", [])),
            str(inc.get("occurrences", 1)),
        )
    return table


def build_targets_table(targets: Iterable[Target]) -> Table:
    """Table of validated target definitions (``toolwatch validate``)."""
    table = Table(title="Configured targets", header_style="bold cyan")
    table.add_column("Target", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Checker")
    table.add_column("Impact")
    table.add_column("Critical")
    table.add_column("Endpoint", overflow="fold")
    table.add_column("Every", justify="right")
    for target in targets:
        table.add_row(
            target.id,
            target.kind.value,
            target.checker_key,
            target.impact_class.value,
            "yes" if target.critical else "",
            target.health_url,
            f"{target.probe.interval:g}s",
        )
    return table


def render_status(
    payload: Dict[str, Any], console: Optional[Console] = None
) -> None:
    """Print the dashboard line, the target table and any open incidents."""
    console = console or Console()
    dashboard = payload.get("dashboard") or {}
    score = dashboard.get("overall_health_score")
    if score is not None:
        style = "green" if score >= 90 else "yellow" if score >= 50 else "red"
        console.print(
            Text.assemble(
                "Overall health: ",
                (f"{score}%", f"bold {style}"),
                f"  ({dashboard.get('total_targets', 0)} target(s))",
            )
        )
    console.print(build_status_table(payload.get("targets", [])))
    incidents = build_incident_table(payload.get("incidents", []))
    if incidents is not None:
        console.print(incidents)
