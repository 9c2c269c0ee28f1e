"""
Prompt compiler for change insights.

The user prompt comes from a template file with ``{{ name }}`` placeholders.
Substitution is plain name lookup with no loops or filters, and lives in
``render_template``.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from doccompare.config.settings import Settings
from doccompare.services.diff.engine import EditSegment
from doccompare.services.diff.excerpts import collect_excerpts, truncate_text
from doccompare.services.diff.structured import StructuredChange
from doccompare.services.diff.summary import ComparisonSummary

_log = structlog.get_logger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([a-zA-Z0-9_]+)\s*\}\}")

_DEFAULT_TEMPLATE = Path(__file__).resolve().parents[2] / "prompts" / "insights_prompt.txt"

_SYSTEM_INSTRUCTIONS = """\
You are a careful document analyst. You compare two versions of a document \
using only the evidence supplied to you.

Strict requirements:
- Base every statement on the excerpts and structured changes provided.
- Do NOT invent numbers, dates, names or sections that are not in the evidence.
- Keep evidence quotes short and verbatim.
- Respond with a single JSON object that matches the requested schema.
"""


def render_template(template: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{ name }}`` placeholders; unknown or None values render as ''."""

    def _sub(match: re.Match[str]) -> str:
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_sub, template or "")


def load_prompt_template(path: Path | None = None) -> str:
    """
    Read the insights prompt template.

    Returns an empty string when the file cannot be read; insights are then
    reported as disabled instead of failing the comparison.
    """
    template_path = path or _DEFAULT_TEMPLATE
    try:
        return template_path.read_text(encoding="utf-8")
    except OSError as exc:
        _log.warning("insights_template_unreadable", path=str(template_path), error=str(exc))
        return ""


def _sample_value(value: Any, max_len: int) -> Any:
    return truncate_text(value, max_len) if isinstance(value, str) else value


def build_insights_input(
    *,
    left_name: str | None,
    right_name: str | None,
    summary: ComparisonSummary,
    segments: Sequence[EditSegment],
    structured_changes: Sequence[StructuredChange],
    settings: Settings,
) -> dict[str, Any]:
    """
    Build the bounded, serialisable digest the summarizer works from.

    Contains counts, sampled text excerpts and the head of the structured
    diff; never the full documents.
    """
    excerpts = collect_excerpts(
        segments,
        max_snippets=settings.excerpt_max_snippets,
        max_len=settings.excerpt_max_len,
    )
    value_len = settings.structured_sample_value_len
    sample = [
        {
            "path": change.path,
            "type": change.type.value,
            "left": _sample_value(change.left, value_len),
            "right": _sample_value(change.right, value_len),
        }
        for change in structured_changes[: settings.structured_sample_size]
    ]
    return {
        "meta": {
            "left_name": left_name or "Document A",
            "right_name": right_name or "Document B",
            "diff_mode": summary.unit.value,
            "unit": summary.unit.value,
            "additions": summary.additions,
            "removals": summary.removals,
            "diff_chunks": summary.total_parts,
            "structured_changes": len(structured_changes),
        },
        "excerpts": excerpts.to_dict(),
        "structured_diff_sample": sample,
    }


@dataclass
class CompiledPrompt:
    """The output of PromptEngine.compile()."""

    system_prompt: str
    user_prompt: str
    prompt_hash: str


class PromptEngine:
    """Compiles the insights prompt pair from a template and a digest."""

    def __init__(self, template: str) -> None:
        self._template = template

    @property
    def available(self) -> bool:
        return bool(self._template.strip())

    def compile(self, insights_input: Mapping[str, Any]) -> CompiledPrompt:
        input_json = json.dumps(insights_input, indent=2, ensure_ascii=False)
        user_prompt = render_template(self._template, {"input_json": input_json})

        prompt_hash = hashlib.sha256(
            json.dumps(
                {"system": _SYSTEM_INSTRUCTIONS, "user": user_prompt}, sort_keys=True
            ).encode()
        ).hexdigest()
        _log.debug("prompt_compiled", prompt_hash=prompt_hash, prompt_chars=len(user_prompt))

        return CompiledPrompt(
            system_prompt=_SYSTEM_INSTRUCTIONS,
            user_prompt=user_prompt,
            prompt_hash=prompt_hash,
        )
