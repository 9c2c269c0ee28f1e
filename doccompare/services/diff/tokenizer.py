"""
Tokenizer: splits extracted text into the units the diff engine compares.

Tokenization is lossless in both modes: joining the tokens reproduces the
input byte-for-byte. No case folding, Unicode normalisation or whitespace
collapsing happens here; the comparison is content-exact.
"""

from __future__ import annotations

import re
from enum import StrEnum


class DiffUnit(StrEnum):
    """Comparison granularity for one request."""

    WORDS = "words"
    LINES = "lines"

    @classmethod
    def parse(cls, value: str | None) -> DiffUnit:
        """Map a form value to a unit. Anything unrecognised means words."""
        normalized = (value or "").strip().lower()
        if normalized == cls.LINES.value:
            return cls.LINES
        return cls.WORDS


# ── Compiled patterns (module-level for performance) ─────────────────── #

# Leading whitespace, or a run of non-whitespace plus the whitespace after it
_WORD_TOKEN_RE = re.compile(r"^\s+|\S+\s*")

# Letters/digits optionally joined by a single apostrophe or hyphen
_COUNTABLE_WORD_RE = re.compile(r"[^\W_]+(?:['’\-][^\W_]+)*")

# Each line keeps its terminating newline
_LINE_TOKEN_RE = re.compile(r"[^\n]*\n|[^\n]+")


def tokenize(text: str, unit: DiffUnit) -> list[str]:
    """
    Split text into comparison tokens.

    Words mode yields words with their trailing whitespace; lines mode
    yields lines with their trailing newline. ``"".join(tokens) == text``.
    """
    if not text:
        return []
    if unit == DiffUnit.LINES:
        return _LINE_TOKEN_RE.findall(text)
    return _WORD_TOKEN_RE.findall(text)


def count_words(text: str) -> int:
    """Count countable words; punctuation-only runs count zero."""
    if not text:
        return 0
    return len(_COUNTABLE_WORD_RE.findall(text))


def split_logical_lines(text: str) -> list[str]:
    """
    Split a segment value into the lines it renders as.

    A trailing empty element produced by a terminal newline is not a line.
    """
    if not text:
        return []
    lines = text.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return lines


def count_lines(text: str) -> int:
    """Count logical lines in a segment value."""
    return len(split_logical_lines(text))
