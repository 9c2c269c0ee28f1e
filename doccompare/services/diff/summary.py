"""Summary aggregator: reduces an edit script to addition/removal counts."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from doccompare.services.diff.engine import DiffKind, EditSegment
from doccompare.services.diff.tokenizer import DiffUnit, count_lines, count_words


@dataclass(frozen=True)
class ComparisonSummary:
    additions: int
    removals: int
    total_parts: int
    unit: DiffUnit

    def to_dict(self) -> dict[str, object]:
        return {
            "additions": self.additions,
            "removals": self.removals,
            "totalParts": self.total_parts,
            "diffMode": self.unit.value,
            "unit": self.unit.value,
        }


def summarize(segments: Sequence[EditSegment], unit: DiffUnit) -> ComparisonSummary:
    """
    Count units in inserted and removed segments.

    ``total_parts`` counts segments of every kind, not units.
    """
    counter = count_lines if unit == DiffUnit.LINES else count_words
    additions = sum(counter(s.value) for s in segments if s.kind == DiffKind.INSERTED)
    removals = sum(counter(s.value) for s in segments if s.kind == DiffKind.REMOVED)
    return ComparisonSummary(
        additions=additions,
        removals=removals,
        total_parts=len(segments),
        unit=unit,
    )
