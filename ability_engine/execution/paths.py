"""Dot-path helpers for chain output mapping (``"data.items.0.id"``)."""

from __future__ import annotations

from typing import Any, Dict, List

_MISSING = object()


def _segments(path: str) -> List[str]:
    parts = [p for p in path.strip().split(".") if p != ""]
    if not parts:
        raise ValueError(f"Empty path: {path!r}")
    return parts


def get_path(source: Any, path: str, default: Any = None) -> Any:
    """Read a value by dot path; numeric segments index into lists."""
    current = source
    for part in _segments(path):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            index = int(part)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            return default
    return current


def set_path(target: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """Write a value by dot path, creating intermediate dicts as needed."""
    parts = _segments(path)
    current = target
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value
    return target
