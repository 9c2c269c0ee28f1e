"""
HTML render builders for an edit script.

Two independent views are built from the same segments:

  inline        → one annotated stream
  side-by-side  → two streams (left/right) whose rows stay aligned

Words mode renders spans; lines mode renders one ``diff-line`` block per
logical line. All literal text is HTML-escaped.

Placeholder widths are counted in code points, which is an approximation
for wide (CJK) or combining characters.
"""

from __future__ import annotations

import html
from collections.abc import Sequence
from dataclasses import dataclass

from doccompare.services.diff.engine import DiffKind, EditSegment
from doccompare.services.diff.tokenizer import DiffUnit, split_logical_lines

_SPAN_CLASS: dict[DiffKind, str] = {
    DiffKind.UNCHANGED: "",
    DiffKind.INSERTED: "diff-added",
    DiffKind.REMOVED: "diff-removed",
}


@dataclass(frozen=True)
class SideBySide:
    left: str
    right: str

    def to_dict(self) -> dict[str, str]:
        return {"left": self.left, "right": self.right}


def _css_class(kind: DiffKind) -> str:
    try:
        return _SPAN_CLASS[kind]
    except KeyError:
        raise ValueError(f"Unknown segment kind: {kind!r}") from None


def _span(text: str, css: str = "") -> str:
    if css:
        return f'<span class="{css}">{html.escape(text)}</span>'
    return f"<span>{html.escape(text)}</span>"


def _line(text: str, css: str = "") -> str:
    classes = f"diff-line {css}" if css else "diff-line"
    return f'<div class="{classes}">{html.escape(text)}</div>'


def _blank_line() -> str:
    return '<div class="diff-line diff-empty"></div>'


def _wrap_lines(blocks: list[str]) -> str:
    if not blocks:
        return ""
    return f'<div class="diff-lines">{"".join(blocks)}</div>'


# ── Words mode ────────────────────────────────────────────────────────── #


def build_inline_words(segments: Sequence[EditSegment]) -> str:
    return "".join(_span(s.value, _css_class(s.kind)) for s in segments)


def build_side_by_side_words(segments: Sequence[EditSegment]) -> SideBySide:
    """Pad the opposite stream with a blank run of equal character length."""
    left: list[str] = []
    right: list[str] = []

    for segment in segments:
        css = _css_class(segment.kind)
        if segment.kind == DiffKind.INSERTED:
            right.append(_span(segment.value, css))
            left.append(_span(" " * len(segment.value), "diff-empty"))
        elif segment.kind == DiffKind.REMOVED:
            left.append(_span(segment.value, css))
            right.append(_span(" " * len(segment.value), "diff-empty"))
        else:
            left.append(_span(segment.value))
            right.append(_span(segment.value))

    return SideBySide(left="".join(left), right="".join(right))


# ── Lines mode ────────────────────────────────────────────────────────── #


def build_inline_lines(segments: Sequence[EditSegment]) -> str:
    blocks: list[str] = []
    for segment in segments:
        css = _css_class(segment.kind)
        blocks.extend(_line(line, css) for line in split_logical_lines(segment.value))
    return _wrap_lines(blocks)


def build_side_by_side_lines(segments: Sequence[EditSegment]) -> SideBySide:
    """
    Render two aligned line columns.

    A removed segment immediately followed by an inserted one is a
    replacement: its lines are paired row by row and the shorter side is
    padded with empty blocks. Lone inserted/removed segments get one empty
    block per line on the opposite side.
    """
    left: list[str] = []
    right: list[str] = []

    i = 0
    while i < len(segments):
        segment = segments[i]
        lines = split_logical_lines(segment.value)

        if segment.kind == DiffKind.UNCHANGED:
            for line in lines:
                left.append(_line(line))
                right.append(_line(line))
            i += 1
            continue

        removed_lines: list[str] = []
        inserted_lines: list[str] = []
        if segment.kind == DiffKind.REMOVED:
            removed_lines = lines
            follower = segments[i + 1] if i + 1 < len(segments) else None
            if follower is not None and follower.kind == DiffKind.INSERTED:
                inserted_lines = split_logical_lines(follower.value)
                i += 1
        elif segment.kind == DiffKind.INSERTED:
            inserted_lines = lines
        else:
            raise ValueError(f"Unknown segment kind: {segment.kind!r}")
        i += 1

        rows = max(len(removed_lines), len(inserted_lines))
        for row in range(rows):
            if row < len(removed_lines):
                left.append(_line(removed_lines[row], "diff-removed"))
            else:
                left.append(_blank_line())
            if row < len(inserted_lines):
                right.append(_line(inserted_lines[row], "diff-added"))
            else:
                right.append(_blank_line())

    return SideBySide(left=_wrap_lines(left), right=_wrap_lines(right))


# ── Dispatch ──────────────────────────────────────────────────────────── #


def build_inline(segments: Sequence[EditSegment], unit: DiffUnit) -> str:
    if unit == DiffUnit.LINES:
        return build_inline_lines(segments)
    return build_inline_words(segments)


def build_side_by_side(segments: Sequence[EditSegment], unit: DiffUnit) -> SideBySide:
    if unit == DiffUnit.LINES:
        return build_side_by_side_lines(segments)
    return build_side_by_side_words(segments)
