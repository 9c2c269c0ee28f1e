"""
Field resolution for extraction payloads.

Providers name the same field differently across endpoints and versions, so
each field is resolved through an ordered list of candidate dotted paths;
the first non-empty match wins.
"""

from __future__ import annotations

from typing import Any

TEXT_FIELDS: tuple[str, ...] = (
    "content",
    "text",
    "markdown",
    "document.text",
    "document.content",
    "document.markdown",
    "result.text",
    "result.content",
    "result.markdown",
    "output.text",
    "output.content",
)

STRUCTURED_FIELDS: tuple[str, ...] = (
    "structured_output",
    "structuredOutput",
)

RESULT_URL_FIELDS: tuple[str, ...] = (
    "url",
    "result.url",
    "output.url",
    "data.url",
)


def lookup(payload: Any, dotted_path: str) -> Any:
    """Follow ``a.b.c`` through nested dicts; None when any hop is missing."""
    current = payload
    for part in dotted_path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def first_match(payload: Any, candidates: tuple[str, ...]) -> Any:
    """Return the first truthy value among ``candidates``, else None."""
    for path in candidates:
        value = lookup(payload, path)
        if value:
            return value
    return None


def extract_text(payload: Any) -> str:
    value = first_match(payload, TEXT_FIELDS)
    return value if isinstance(value, str) else ""


def extract_structured_output(payload: Any) -> Any:
    """Structured output may legitimately be falsy (``{}``), so only None is skipped."""
    for path in STRUCTURED_FIELDS:
        value = lookup(payload, path)
        if value is not None:
            return value
    return None


def extract_result_url(payload: Any) -> str:
    value = first_match(payload, RESULT_URL_FIELDS)
    return value if isinstance(value, str) else ""


def is_url_backed(payload: Any) -> bool:
    if not isinstance(payload, dict):
        return False
    return payload.get("is_url") is True or payload.get("isUrl") is True
