"""Comparison request/response schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class SummaryOut(BaseModel):
    additions: int
    removals: int
    totalParts: int  # noqa: N815
    diffMode: Literal["words", "lines"]  # noqa: N815
    unit: Literal["words", "lines"]


class SideBySideOut(BaseModel):
    left: str
    right: str


class ExtractedOut(BaseModel):
    left: str
    right: str


class StructuredOutputOut(BaseModel):
    left: Any = None
    right: Any = None


class StructuredChangeOut(BaseModel):
    path: str
    type: Literal["added", "removed", "changed"]
    left: Any = None
    right: Any = None


class StructuredDiffOut(BaseModel):
    total: int = 0
    changes: list[StructuredChangeOut] = Field(default_factory=list)


class InsightsResult(BaseModel):
    """Outcome of the insights call. ``enabled`` is False whenever no result is available."""

    model_config = ConfigDict(protected_namespaces=())

    enabled: bool
    provider: str
    model: str | None = None
    result: dict[str, Any] | None = None
    error: str | None = None


class CompareResponse(BaseModel):
    summary: SummaryOut
    inlineHtml: str  # noqa: N815
    sideBySideHtml: SideBySideOut  # noqa: N815
    extracted: ExtractedOut
    insights: InsightsResult
    structuredOutput: StructuredOutputOut  # noqa: N815
    structuredDiff: StructuredDiffOut  # noqa: N815


class HealthOut(BaseModel):
    status: Literal["healthy", "degraded"]
    extraction: Literal["configured", "unconfigured"]
    insights: Literal["ok", "disabled", "unavailable"]
    version: str
