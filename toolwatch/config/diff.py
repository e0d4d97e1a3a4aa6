"""Target-set diffing for config reloads.

Shared by the manual ``reload()`` path and the file-watcher path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Mapping, Sequence

from toolwatch.monitor.models import DependencyEdge, Target


@dataclass(frozen=True)
class ConfigDiff:
    """Targets added, removed and changed between two config snapshots.

    Lists keep the order the targets appear in their config file.
    """

    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    changed: List[str] = field(default_factory=list)
    dependencies_changed: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.changed or self.dependencies_changed)

    def summary(self) -> str:
        text = f"+{len(self.added)} -{len(self.removed)} ~{len(self.changed)}"
        if self.dependencies_changed:
            text += " (dependencies changed)"
        return text

    def to_dict(self) -> dict:
        return {
            "added": list(self.added),
            "removed": list(self.removed),
            "changed": list(self.changed),
            "dependencies_changed": self.dependencies_changed,
        }


def compute_diff(
    old_targets: Mapping[str, Target],
    new_targets: Mapping[str, Target],
    old_edges: Sequence[DependencyEdge] = (),
    new_edges: Sequence[DependencyEdge] = (),
) -> ConfigDiff:
    """Compare two target maps (``id → Target``) and their dependency edges.

    Targets are frozen dataclasses, so any field change (endpoint,
    thresholds, interval, checker options) marks the target as changed.
    """
    added = [tid for tid in new_targets if tid not in old_targets]
    removed = [tid for tid in old_targets if tid not in new_targets]
    changed = [
        tid for tid in new_targets if tid in old_targets and old_targets[tid] != new_targets[tid]
    ]
    return ConfigDiff(
        added=added,
        removed=removed,
        changed=changed,
        dependencies_changed=list(old_edges) != list(new_edges),
    )
