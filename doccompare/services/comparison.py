"""
Comparison pipeline.

  extract both sides (concurrently)
    → tokenize + diff the plain text (worker thread)
    → summary counts, inline and side-by-side HTML
    → structured diff (when both sides produced structured output)
    → insights digest → optional LLM insights

Only extraction failures abort a comparison; insights degrade to a
disabled result.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass

import structlog

from doccompare.config.settings import Settings
from doccompare.core.errors import AppError
from doccompare.core.metrics import COMPARISONS, DIFF_SECONDS
from doccompare.schemas.compare import CompareResponse
from doccompare.services.diff.engine import EditSegment, diff_texts
from doccompare.services.diff.render import SideBySide, build_inline, build_side_by_side
from doccompare.services.diff.structured import StructuredChange, diff_structured
from doccompare.services.diff.summary import ComparisonSummary, summarize
from doccompare.services.diff.tokenizer import DiffUnit
from doccompare.services.extraction.client import (
    ExtractionClient,
    ExtractionResult,
    StructuredRequest,
    UploadedDocument,
)
from doccompare.services.llm.insights import InsightsService
from doccompare.services.llm.prompt_engine import build_insights_input

_log = structlog.get_logger(__name__)


@dataclass
class ComparisonRequest:
    left: UploadedDocument
    right: UploadedDocument
    diff_mode: str | None = None
    structured: StructuredRequest | None = None


def _diff_and_render(
    left: str, right: str, unit: DiffUnit
) -> tuple[list[EditSegment], ComparisonSummary, str, SideBySide]:
    segments = diff_texts(left, right, unit)
    summary = summarize(segments, unit)
    return segments, summary, build_inline(segments, unit), build_side_by_side(segments, unit)


class ComparisonService:
    """Runs one comparison end to end and builds the response body."""

    def __init__(
        self,
        settings: Settings,
        extraction: ExtractionClient,
        insights: InsightsService,
    ) -> None:
        self._settings = settings
        self._extraction = extraction
        self._insights = insights

    async def _extract_both(
        self, request: ComparisonRequest
    ) -> tuple[ExtractionResult, ExtractionResult]:
        """Extract both sides concurrently; the first failure cancels the other side."""
        try:
            async with asyncio.TaskGroup() as group:
                left = group.create_task(
                    self._extraction.extract(request.left, request.structured)
                )
                right = group.create_task(
                    self._extraction.extract(request.right, request.structured)
                )
        except ExceptionGroup as failures:
            raise failures.exceptions[0] from None
        return left.result(), right.result()

    async def compare(self, request: ComparisonRequest) -> CompareResponse:
        unit = DiffUnit.parse(request.diff_mode)
        log = _log.bind(
            left=request.left.filename,
            right=request.right.filename,
            diff_mode=unit.value,
            structured=request.structured is not None,
        )
        log.info("comparison_started")

        try:
            left, right = await self._extract_both(request)
        except AppError as exc:
            COMPARISONS.labels(diff_mode=unit.value, outcome="extraction_failed").inc()
            log.warning("comparison_failed", error_code=exc.code.value)
            raise

        started = time.perf_counter()
        segments, summary, inline_html, side_by_side = await asyncio.to_thread(
            _diff_and_render, left.text, right.text, unit
        )
        elapsed = time.perf_counter() - started
        DIFF_SECONDS.labels(diff_mode=unit.value).observe(elapsed)

        structured_changes: list[StructuredChange] = []
        if left.structured_output is not None and right.structured_output is not None:
            structured_changes = diff_structured(left.structured_output, right.structured_output)

        insights_input = build_insights_input(
            left_name=request.left.filename,
            right_name=request.right.filename,
            summary=summary,
            segments=segments,
            structured_changes=structured_changes,
            settings=self._settings,
        )
        insights = await self._insights.generate(insights_input)

        COMPARISONS.labels(diff_mode=unit.value, outcome="ok").inc()
        log.info(
            "comparison_completed",
            additions=summary.additions,
            removals=summary.removals,
            parts=summary.total_parts,
            structured_changes=len(structured_changes),
            insights=insights.enabled,
            diff_ms=int(elapsed * 1000),
        )

        limit = self._settings.structured_diff_response_limit
        return CompareResponse.model_validate(
            {
                "summary": summary.to_dict(),
                "inlineHtml": inline_html,
                "sideBySideHtml": side_by_side.to_dict(),
                "extracted": {"left": left.text, "right": right.text},
                "insights": insights,
                "structuredOutput": {
                    "left": left.structured_output,
                    "right": right.structured_output,
                },
                "structuredDiff": {
                    "total": len(structured_changes),
                    "changes": [change.to_dict() for change in structured_changes[:limit]],
                },
            }
        )
