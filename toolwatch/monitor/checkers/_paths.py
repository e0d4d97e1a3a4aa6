"""Dotted-path lookup into decoded JSON bodies."""

from __future__ import annotations

from typing import Any

_MISSING = object()


def lookup(body: Any, path: str, default: Any = None) -> Any:
    """Resolve ``"a.b.0.c"`` against nested dicts and lists."""
    node = body
    for part in path.split("."):
        if isinstance(node, dict):
            node = node.get(part, _MISSING)
        elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
            node = node[int(part)]
        else:
            return default
        if node is _MISSING:
            return default
    return node
