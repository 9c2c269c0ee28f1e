"""
Change-excerpt collector: bounded samples of inserted/removed text.

The excerpts are grounding evidence for the insights summarizer, so they
are cleaned, truncated and de-duplicated to keep the prompt small.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from doccompare.services.diff.engine import DiffKind, EditSegment

_WHITESPACE_RE = re.compile(r"\s+")

_MIN_SNIPPET_CHARS = 4
_ELLIPSIS = "…"


@dataclass
class ChangeExcerpts:
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {"added": list(self.added), "removed": list(self.removed)}


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def truncate_text(text: str, max_len: int) -> str:
    """Cut ``text`` to at most ``max_len`` characters, ending in an ellipsis if cut."""
    if len(text) <= max_len:
        return text
    return f"{text[: max_len - 1]}{_ELLIPSIS}"


def collect_excerpts(
    segments: Sequence[EditSegment],
    max_snippets: int = 12,
    max_len: int = 220,
) -> ChangeExcerpts:
    """
    Sample inserted and removed runs in document order.

    Each bucket is de-duplicated case-insensitively and capped at
    ``max_snippets``; scanning stops once both buckets are full.
    """
    excerpts = ChangeExcerpts()
    seen: dict[DiffKind, set[str]] = {DiffKind.INSERTED: set(), DiffKind.REMOVED: set()}

    for segment in segments:
        if segment.kind == DiffKind.INSERTED:
            bucket = excerpts.added
        elif segment.kind == DiffKind.REMOVED:
            bucket = excerpts.removed
        else:
            continue
        if len(bucket) >= max_snippets:
            continue

        cleaned = collapse_whitespace(segment.value)
        if len(cleaned) < _MIN_SNIPPET_CHARS:
            continue

        snippet = truncate_text(cleaned, max_len)
        key = snippet.lower()
        if key in seen[segment.kind]:
            continue
        seen[segment.kind].add(key)
        bucket.append(snippet)

        if len(excerpts.added) >= max_snippets and len(excerpts.removed) >= max_snippets:
            break

    return excerpts
