"""Unit tests for doccompare.services.diff.excerpts."""
from doccompare.services.diff.engine import DiffKind, EditSegment
from doccompare.services.diff.excerpts import (
    collapse_whitespace,
    collect_excerpts,
    truncate_text,
)


def _ins(value):
    return EditSegment(value, DiffKind.INSERTED)


def _rem(value):
    return EditSegment(value, DiffKind.REMOVED)


def test_collapse_whitespace():
    assert collapse_whitespace("  a\n\n b\t c  ") == "a b c"


def test_truncate_text_keeps_short_text():
    assert truncate_text("short", 10) == "short"


def test_truncate_text_ends_with_ellipsis_within_limit():
    out = truncate_text("abcdefghij", 5)
    assert out == "abcd…"
    assert len(out) == 5


def test_buckets_follow_segment_kind_and_skip_unchanged():
    excerpts = collect_excerpts(
        [EditSegment("same text", DiffKind.UNCHANGED), _rem("old clause"), _ins("new clause")]
    )
    assert excerpts.to_dict() == {"added": ["new clause"], "removed": ["old clause"]}


def test_short_snippets_are_dropped():
    excerpts = collect_excerpts([_ins("a "), _ins("  ok\n"), _rem("1.")])
    assert excerpts.to_dict() == {"added": [], "removed": []}


def test_dedup_is_case_insensitive_within_a_bucket():
    excerpts = collect_excerpts(
        [_ins("Net 30 days"), _rem("other"), _ins("net   30 DAYS"), _rem("Net 30 days")]
    )
    assert excerpts.added == ["Net 30 days"]
    assert excerpts.removed == ["other", "Net 30 days"]


def test_caps_each_bucket():
    segments = []
    for i in range(10):
        segments.append(_ins(f"added text {i}"))
        segments.append(_rem(f"removed text {i}"))
    excerpts = collect_excerpts(segments, max_snippets=3)
    assert excerpts.added == ["added text 0", "added text 1", "added text 2"]
    assert excerpts.removed == ["removed text 0", "removed text 1", "removed text 2"]


def test_long_snippets_truncated():
    excerpts = collect_excerpts([_ins("word " * 100)], max_len=20)
    assert len(excerpts.added[0]) == 20
    assert excerpts.added[0].endswith("…")
