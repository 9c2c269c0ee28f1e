"""
Structured tree differ: path-addressed changes between two JSON values.

Walks both values in pre-order over the union of keys/indices and emits a
flat list of added/removed/changed records. Input is JSON-derived, so it is
a tree and plain recursion is safe.

Path format:
  object key     → ``key`` at the root, ``parent.key`` below it
  array index    → ``parent[3]``
  root scalar    → ``""``
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ChangeType(StrEnum):
    ADDED = "added"
    REMOVED = "removed"
    CHANGED = "changed"


@dataclass(frozen=True)
class StructuredChange:
    path: str
    type: ChangeType
    left: Any
    right: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "type": self.type.value,
            "left": self.left,
            "right": self.right,
        }


class _Missing:
    """Marks a key or index absent from one side (distinct from JSON null)."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()


def _child_key_path(parent: str, key: str) -> str:
    return f"{parent}.{key}" if parent else str(key)


def _scalars_differ(a: Any, b: Any) -> bool:
    # JSON distinguishes true from 1, Python does not
    if isinstance(a, bool) or isinstance(b, bool):
        return not (type(a) is type(b) and a == b)
    return a != b


def _walk(path: str, a: Any, b: Any, changes: list[StructuredChange]) -> None:
    if a is MISSING and b is MISSING:
        return
    if a is MISSING:
        changes.append(StructuredChange(path, ChangeType.ADDED, None, b))
        return
    if b is MISSING:
        changes.append(StructuredChange(path, ChangeType.REMOVED, a, None))
        return

    a_list = isinstance(a, list)
    b_list = isinstance(b, list)
    if a_list or b_list:
        if not (a_list and b_list):
            changes.append(StructuredChange(path, ChangeType.CHANGED, a, b))
            return
        for i in range(max(len(a), len(b))):
            _walk(
                f"{path}[{i}]",
                a[i] if i < len(a) else MISSING,
                b[i] if i < len(b) else MISSING,
                changes,
            )
        return

    a_obj = isinstance(a, dict)
    b_obj = isinstance(b, dict)
    if a_obj or b_obj:
        if not (a_obj and b_obj):
            changes.append(StructuredChange(path, ChangeType.CHANGED, a, b))
            return
        keys = list(a)
        keys.extend(k for k in b if k not in a)
        for key in keys:
            _walk(_child_key_path(path, key), a.get(key, MISSING), b.get(key, MISSING), changes)
        return

    if _scalars_differ(a, b):
        changes.append(StructuredChange(path, ChangeType.CHANGED, a, b))


def diff_structured(left: Any, right: Any) -> list[StructuredChange]:
    """
    Compare two JSON-like values.

    Returns:
        StructuredChange records in pre-order of the key/index union.
    """
    changes: list[StructuredChange] = []
    _walk("", left, right, changes)
    return changes
