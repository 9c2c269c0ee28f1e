"""Prometheus metrics shared across the service."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

COMPARISONS = Counter(
    "doccompare_comparisons_total",
    "Document comparisons handled, by diff mode and outcome",
    ["diff_mode", "outcome"],
)

DIFF_SECONDS = Histogram(
    "doccompare_diff_seconds",
    "Time spent computing the text diff and its views",
    ["diff_mode"],
)

EXTRACTIONS = Counter(
    "doccompare_extractions_total",
    "Extraction requests submitted, by path",
    ["mode"],
)

INSIGHTS = Counter(
    "doccompare_insights_total",
    "Insights generations, by outcome",
    ["outcome"],
)
