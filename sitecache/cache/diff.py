"""
Structural diff between a stored value and a candidate value.

Paths are dot-joined; array indices are path segments (``repos.0.stars``) and
the root itself is ``$``. ``None`` and a missing key are both "absent".
"""
from typing import Any, List

from .core import ChangeResult

ROOT_PATH = "$"

_ABSENT = object()


def detect_changes(stored: Any, candidate: Any) -> ChangeResult:
    """
    Compare two structured values.

    A missing stored or candidate value is treated as an empty object.
    ``changed_fields`` lists every differing path in discovery order: keys of
    the stored value first, in stored order, then keys only the candidate has.
    Added and removed paths are also reported in their own lists.
    """
    result = ChangeResult()
    _compare(
        {} if stored is None else stored,
        {} if candidate is None else candidate,
        "",
        result,
    )
    return result


def _is_absent(value: Any) -> bool:
    return value is None or value is _ABSENT


def _join(path: str, segment: Any) -> str:
    return f"{path}.{segment}" if path else str(segment)


def _kind(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _leaf_paths(value: Any, path: str) -> List[str]:
    """Paths of every present leaf under ``value``; empty containers are leaves."""
    paths: List[str] = []
    if isinstance(value, dict):
        for key, child in value.items():
            if not _is_absent(child):
                paths.extend(_leaf_paths(child, _join(path, key)))
    elif isinstance(value, (list, tuple)):
        for index, child in enumerate(value):
            if not _is_absent(child):
                paths.extend(_leaf_paths(child, _join(path, index)))
    if not paths:
        paths.append(path or ROOT_PATH)
    return paths


def _compare(old: Any, new: Any, path: str, result: ChangeResult) -> None:
    old_absent = _is_absent(old)
    new_absent = _is_absent(new)

    if old_absent and new_absent:
        return

    if old_absent:
        for leaf in _leaf_paths(new, path):
            result.added_fields.append(leaf)
            result.changed_fields.append(leaf)
        return

    if new_absent:
        for leaf in _leaf_paths(old, path):
            result.removed_fields.append(leaf)
            result.changed_fields.append(leaf)
        return

    kind = _kind(old)
    if kind != _kind(new):
        # Type change counts as a difference of the node itself
        result.changed_fields.append(path or ROOT_PATH)
        return

    if kind == "object":
        for key, old_child in old.items():
            _compare(old_child, new.get(key, _ABSENT), _join(path, key), result)
        for key, new_child in new.items():
            if key not in old:
                _compare(_ABSENT, new_child, _join(path, key), result)
    elif kind == "array":
        for index in range(max(len(old), len(new))):
            old_child = old[index] if index < len(old) else _ABSENT
            new_child = new[index] if index < len(new) else _ABSENT
            _compare(old_child, new_child, _join(path, index), result)
    elif old != new:
        result.changed_fields.append(path or ROOT_PATH)
