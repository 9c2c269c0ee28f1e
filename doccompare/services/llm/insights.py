"""
Change insights: asks the LLM to summarise a comparison digest.

Insights are additive. ``InsightsService.generate`` never raises; every
failure mode (disabled, no template, circuit open, upstream error, timeout,
malformed reply) comes back as ``enabled=False`` with an error message, and
the comparison result is returned regardless.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from typing import Any

import jsonschema
import structlog

from doccompare.config.settings import Settings
from doccompare.core.errors import AppError
from doccompare.core.metrics import INSIGHTS
from doccompare.schemas.compare import InsightsResult
from doccompare.services.llm.client import OllamaClient
from doccompare.services.llm.prompt_engine import PromptEngine

_log = structlog.get_logger(__name__)

PROVIDER = "ollama"

_HIGHLIGHT = {
    "type": "object",
    "additionalProperties": False,
    "properties": {"title": {"type": "string"}, "evidence": {"type": "string"}},
    "required": ["title", "evidence"],
}

INSIGHTS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "overall_summary": {"type": "string"},
        "added_highlights": {"type": "array", "items": _HIGHLIGHT},
        "removed_highlights": {"type": "array", "items": _HIGHLIGHT},
        "change_categories": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "category": {
                        "type": "string",
                        "enum": [
                            "numbers",
                            "dates",
                            "money",
                            "links",
                            "people",
                            "organizations",
                            "sections",
                            "formatting",
                            "other",
                        ],
                    },
                    "summary": {"type": "string"},
                },
                "required": ["category", "summary"],
            },
        },
        "risks": {
            "type": "array",
            "items": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "severity": {"type": "string", "enum": ["Low", "Medium", "High"]},
                    "message": {"type": "string"},
                },
                "required": ["severity", "message"],
            },
        },
        "suggested_checks": {"type": "array", "items": {"type": "string"}},
        "confidence": {"type": "string", "enum": ["Low", "Medium", "High"]},
    },
    "required": [
        "overall_summary",
        "added_highlights",
        "removed_highlights",
        "change_categories",
        "risks",
        "suggested_checks",
        "confidence",
    ],
}

_validator = jsonschema.Draft7Validator(INSIGHTS_SCHEMA)


def extract_first_json_object(text: str) -> str:
    """
    Extract the first JSON object from an LLM reply.

    Handles markdown code fences and surrounding prose.
    """
    t = (text or "").strip().replace("```json", "```").replace("```", "")

    start = t.find("{")
    if start < 0:
        raise ValueError("No JSON object found.")

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(t)):
        ch = t[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return t[start : i + 1]

    raise ValueError("Unbalanced JSON braces.")


def parse_insights_reply(text: str) -> dict[str, Any]:
    """
    Parse and validate the model's reply against INSIGHTS_SCHEMA.

    Raises:
        ValueError: If no valid object is found or it fails validation.
    """
    parsed = json.loads(extract_first_json_object(text))
    errors = sorted(_validator.iter_errors(parsed), key=lambda e: list(e.path))
    if errors:
        first = errors[0]
        where = ".".join(str(p) for p in first.path) or "root"
        raise ValueError(f"{where}: {first.message}")
    return parsed


class InsightsService:
    """Turns a comparison digest into an InsightsResult."""

    def __init__(self, settings: Settings, client: OllamaClient, prompt_engine: PromptEngine) -> None:
        self._settings = settings
        self._client = client
        self._prompt_engine = prompt_engine

    def _disabled(self, error: str, outcome: str) -> InsightsResult:
        INSIGHTS.labels(outcome=outcome).inc()
        return InsightsResult(enabled=False, provider=PROVIDER, error=error)

    async def generate(self, insights_input: Mapping[str, Any]) -> InsightsResult:
        if not self._settings.insights_enabled:
            return self._disabled("Insights disabled by INSIGHTS_ENABLED.", "disabled")
        if not self._prompt_engine.available:
            return self._disabled("Missing insights prompt template file.", "disabled")

        prompt = self._prompt_engine.compile(insights_input)
        timeout = self._settings.insights_timeout_seconds
        log = _log.bind(model=self._client.model, prompt_hash=prompt.prompt_hash)

        try:
            log.info("insights_requested")
            response = await asyncio.wait_for(
                self._client.complete_json(
                    prompt.system_prompt, prompt.user_prompt, INSIGHTS_SCHEMA
                ),
                timeout=timeout,
            )
            result = parse_insights_reply(response.content)
        except TimeoutError:
            self._client.circuit.record_failure()
            log.warning("insights_failed", reason="timeout", timeout_seconds=timeout)
            return self._disabled(f"Insights timed out after {timeout:g}s.", "timeout")
        except AppError as exc:
            log.warning("insights_failed", reason=exc.code.value, error=exc.message)
            return self._disabled(exc.message, "error")
        except ValueError as exc:
            log.warning("insights_failed", reason="invalid_reply", error=str(exc))
            return self._disabled(f"Insights reply was not valid JSON: {exc}", "invalid")

        INSIGHTS.labels(outcome="ok").inc()
        log.info("insights_generated", eval_count=response.eval_count)
        return InsightsResult(
            enabled=True,
            provider=PROVIDER,
            model=response.model,
            result=result,
        )
