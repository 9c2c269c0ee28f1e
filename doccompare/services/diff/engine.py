"""
Sequence diff engine: computes a minimal edit script between two token lists.

Uses Myers' O(ND) shortest-edit-script search in its linear-space form
(middle snake, divide and conquer), so time grows with the size of the
difference and memory with the input length only.
Common prefixes and suffixes are trimmed before the search, which keeps
typical "small edit in a long document" comparisons close to linear.

The edit script is returned as maximal EditSegments whose values, projected
onto either side, reproduce that side's text exactly.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from doccompare.services.diff.tokenizer import DiffUnit, tokenize


class DiffKind(StrEnum):
    UNCHANGED = "unchanged"
    INSERTED = "inserted"
    REMOVED = "removed"


@dataclass(frozen=True)
class EditSegment:
    """One maximal run of the edit script."""

    value: str
    kind: DiffKind

    @property
    def added(self) -> bool:
        return self.kind == DiffKind.INSERTED

    @property
    def removed(self) -> bool:
        return self.kind == DiffKind.REMOVED


# ── Myers search ──────────────────────────────────────────────────────── #

# Edit operations produced by the search, in document order
_EQUAL = 0
_DELETE = 1
_INSERT = 2


def _intern(left: Sequence[str], right: Sequence[str]) -> tuple[list[int], list[int]]:
    """Map tokens to small integers so the inner loop compares ints."""
    table: dict[str, int] = {}
    a = [table.setdefault(tok, len(table)) for tok in left]
    b = [table.setdefault(tok, len(table)) for tok in right]
    return a, b


def _middle_snake(a: list[int], b: list[int]) -> tuple[int, int] | None:
    """
    Run the forward and reverse searches until their D-paths overlap.

    Returns the point where the forward path reaches the overlap, which
    splits the problem into two halves of roughly half the edit distance
    each. Only one diagonal vector per direction is kept, so memory stays
    linear in ``len(a) + len(b)``. Returns None when no overlap exists.

    Expects the common prefix and suffix to be trimmed already.
    """
    n, m = len(a), len(b)
    max_d = (n + m + 1) // 2
    offset = max_d
    size = 2 * max_d + 2
    forward = [-1] * size
    reverse = [-1] * size
    forward[offset + 1] = 0
    reverse[offset + 1] = 0
    delta = n - m
    # With an odd delta the paths meet on a forward step, otherwise on a reverse step
    odd = delta % 2 != 0
    k1_start = k1_end = k2_start = k2_end = 0

    for d in range(max_d):
        for k1 in range(-d + k1_start, d + 1 - k1_end, 2):
            k1_offset = offset + k1
            if k1 == -d or (k1 != d and forward[k1_offset - 1] < forward[k1_offset + 1]):
                x1 = forward[k1_offset + 1]
            else:
                x1 = forward[k1_offset - 1] + 1
            y1 = x1 - k1
            while x1 < n and y1 < m and a[x1] == b[y1]:
                x1 += 1
                y1 += 1
            forward[k1_offset] = x1
            if x1 > n:
                k1_end += 2
            elif y1 > m:
                k1_start += 2
            elif odd:
                k2_offset = offset + delta - k1
                if 0 <= k2_offset < size and reverse[k2_offset] != -1:
                    if x1 >= n - reverse[k2_offset]:
                        return x1, y1

        for k2 in range(-d + k2_start, d + 1 - k2_end, 2):
            k2_offset = offset + k2
            if k2 == -d or (k2 != d and reverse[k2_offset - 1] < reverse[k2_offset + 1]):
                x2 = reverse[k2_offset + 1]
            else:
                x2 = reverse[k2_offset - 1] + 1
            y2 = x2 - k2
            while x2 < n and y2 < m and a[n - x2 - 1] == b[m - y2 - 1]:
                x2 += 1
                y2 += 1
            reverse[k2_offset] = x2
            if x2 > n:
                k2_end += 2
            elif y2 > m:
                k2_start += 2
            elif not odd:
                k1_offset = offset + delta - k2
                if 0 <= k1_offset < size and forward[k1_offset] != -1:
                    x1 = forward[k1_offset]
                    if x1 >= n - x2:
                        return x1, offset + x1 - k1_offset

    return None


def _edit_ops(a: list[int], b: list[int], ops: list[int]) -> None:
    """Append the shortest edit script turning ``a`` into ``b`` to ``ops``."""
    n, m = len(a), len(b)
    prefix = 0
    limit = min(n, m)
    while prefix < limit and a[prefix] == b[prefix]:
        prefix += 1
    suffix = 0
    limit -= prefix
    while suffix < limit and a[n - 1 - suffix] == b[m - 1 - suffix]:
        suffix += 1

    ops.extend([_EQUAL] * prefix)
    a = a[prefix:n - suffix]
    b = b[prefix:m - suffix]

    if not a:
        ops.extend([_INSERT] * len(b))
    elif not b:
        ops.extend([_DELETE] * len(a))
    else:
        split = None if set(a).isdisjoint(b) else _middle_snake(a, b)
        if split is None:
            ops.extend([_DELETE] * len(a))
            ops.extend([_INSERT] * len(b))
        else:
            x, y = split
            _edit_ops(a[:x], b[:y], ops)
            _edit_ops(a[x:], b[y:], ops)

    ops.extend([_EQUAL] * suffix)


def _shortest_edit(a: list[int], b: list[int]) -> list[int]:
    """
    Return the shortest edit script turning ``a`` into ``b``.

    The result is one operation per consumed element: ``_EQUAL`` consumes
    one element of each side, ``_DELETE`` one of ``a``, ``_INSERT`` one of ``b``.
    Sides with no token in common short-circuit to delete-all, insert-all.
    """
    ops: list[int] = []
    _edit_ops(a, b, ops)
    return ops


# ── Segment assembly ──────────────────────────────────────────────────── #


def _append(segments: list[EditSegment], value: str, kind: DiffKind) -> None:
    """Append a run, merging it into the previous segment when kinds match."""
    if not value:
        return
    if segments and segments[-1].kind == kind:
        segments[-1] = EditSegment(value=segments[-1].value + value, kind=kind)
    else:
        segments.append(EditSegment(value=value, kind=kind))


def diff_tokens(left: Sequence[str], right: Sequence[str]) -> list[EditSegment]:
    """
    Produce the edit script between two token sequences.

    Within a change region all removed tokens come first, followed by all
    inserted tokens, so disjoint inputs yield exactly one REMOVED and one
    INSERTED segment.

    Returns:
        Maximal EditSegments ordered by position in the documents.
    """
    a, b = _intern(left, right)

    prefix = 0
    limit = min(len(a), len(b))
    while prefix < limit and a[prefix] == b[prefix]:
        prefix += 1

    suffix = 0
    limit -= prefix
    while suffix < limit and a[len(a) - 1 - suffix] == b[len(b) - 1 - suffix]:
        suffix += 1

    segments: list[EditSegment] = []
    _append(segments, "".join(left[:prefix]), DiffKind.UNCHANGED)

    mid_left = left[prefix:len(left) - suffix]
    mid_right = right[prefix:len(right) - suffix]
    ops = _shortest_edit(a[prefix:len(a) - suffix], b[prefix:len(b) - suffix])

    i = j = 0
    removed: list[str] = []
    inserted: list[str] = []
    equal: list[str] = []

    for op in ops:
        if op == _EQUAL:
            if removed or inserted:
                _append(segments, "".join(removed), DiffKind.REMOVED)
                _append(segments, "".join(inserted), DiffKind.INSERTED)
                removed, inserted = [], []
            equal.append(mid_left[i])
            i += 1
            j += 1
        else:
            if equal:
                _append(segments, "".join(equal), DiffKind.UNCHANGED)
                equal = []
            if op == _DELETE:
                removed.append(mid_left[i])
                i += 1
            else:
                inserted.append(mid_right[j])
                j += 1

    _append(segments, "".join(equal), DiffKind.UNCHANGED)
    _append(segments, "".join(removed), DiffKind.REMOVED)
    _append(segments, "".join(inserted), DiffKind.INSERTED)
    _append(segments, "".join(left[len(left) - suffix:]), DiffKind.UNCHANGED)
    return segments


def diff_texts(left: str, right: str, unit: DiffUnit) -> list[EditSegment]:
    """Tokenize both texts with ``unit`` and diff them."""
    return diff_tokens(tokenize(left, unit), tokenize(right, unit))


def project_left(segments: Sequence[EditSegment]) -> str:
    """Reassemble the left text (unchanged + removed runs)."""
    return "".join(s.value for s in segments if s.kind != DiffKind.INSERTED)


def project_right(segments: Sequence[EditSegment]) -> str:
    """Reassemble the right text (unchanged + inserted runs)."""
    return "".join(s.value for s in segments if s.kind != DiffKind.REMOVED)


def has_changes(segments: Sequence[EditSegment]) -> bool:
    """Return True if the script contains any inserted or removed run."""
    return any(s.kind != DiffKind.UNCHANGED for s in segments)
