"""Integration tests: POST /api/v1/compare, /health and /metrics."""
import asyncio
import json
import re
from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from ollama import ResponseError
from pydantic import SecretStr

from doccompare.main import create_app

pytestmark = pytest.mark.asyncio

_ROW_RE = re.compile(r'<div class="diff-line(?: ([a-z-]+))?">(.*?)</div>')


def _files(left=("left.txt", b"left bytes"), right=("right.txt", b"right bytes")):
    files = {}
    if left is not None:
        files["left"] = (left[0], left[1], "text/plain")
    if right is not None:
        files["right"] = (right[0], right[1], "text/plain")
    return files


async def _compare(client, files=None, **data):
    return await client.post("/api/v1/compare", files=files or _files(), data=data)


# ─── Happy paths ──────────────────────────────────────────────────────────────

async def test_words_comparison(client, pulse, mock_ollama):
    pulse.add("left.txt", "hello world")
    pulse.add("right.txt", "hello brave world")

    resp = await _compare(client, diff_mode="words")

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["summary"] == {
        "additions": 1,
        "removals": 0,
        "totalParts": 3,
        "diffMode": "words",
        "unit": "words",
    }
    assert '<span class="diff-added">brave </span>' in body["inlineHtml"]
    assert '<span class="diff-empty">      </span>' in body["sideBySideHtml"]["left"]
    assert body["extracted"] == {"left": "hello world", "right": "hello brave world"}
    assert body["structuredOutput"] == {"left": None, "right": None}
    assert body["structuredDiff"] == {"total": 0, "changes": []}

    insights = body["insights"]
    assert insights["enabled"] is True
    assert insights["provider"] == "ollama"
    assert insights["result"]["confidence"] == "High"
    mock_ollama.chat.assert_awaited_once()


async def test_lines_comparison_side_by_side_rows(client, pulse):
    pulse.add("left.txt", "a\nb\n")
    pulse.add("right.txt", "a\nc\n")

    resp = await _compare(client, diff_mode="lines")

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert (body["summary"]["additions"], body["summary"]["removals"]) == (1, 1)
    assert body["summary"]["unit"] == "lines"
    assert _ROW_RE.findall(body["sideBySideHtml"]["left"]) == [("", "a"), ("diff-removed", "b")]
    assert _ROW_RE.findall(body["sideBySideHtml"]["right"]) == [("", "a"), ("diff-added", "c")]


async def test_unknown_diff_mode_falls_back_to_words(client, pulse):
    pulse.add("left.txt", "x")
    pulse.add("right.txt", "y")
    resp = await _compare(client, diff_mode="paragraphs")
    assert resp.status_code == 200
    assert resp.json()["summary"]["diffMode"] == "words"


async def test_empty_documents(client, pulse):
    pulse.add("left.txt", "")
    pulse.add("right.txt", "")

    resp = await _compare(client)

    body = resp.json()
    assert body["summary"]["totalParts"] == 0
    assert body["inlineHtml"] == ""
    assert body["sideBySideHtml"] == {"left": "", "right": ""}


async def test_html_in_documents_is_escaped(client, pulse):
    pulse.add("left.txt", "<b>bold</b>")
    pulse.add("right.txt", "<i>italic</i>")
    body = (await _compare(client)).json()
    assert "<b>" not in body["inlineHtml"]
    assert "&lt;b&gt;" in body["inlineHtml"]


async def test_structured_comparison(client, pulse):
    schema = {"type": "object", "properties": {"invoice_number": {"type": "string"}}}
    pulse.add("left.txt", "Invoice 1", structured={"invoice_number": "1", "total": 10})
    pulse.add("right.txt", "Invoice 2", structured={"invoice_number": "2", "total": 10})

    resp = await _compare(
        client,
        structured_enabled="true",
        structured_schema=json.dumps(schema),
        structured_prompt="Invoice header fields",
    )

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["structuredDiff"] == {
        "total": 1,
        "changes": [
            {"path": "invoice_number", "type": "changed", "left": "1", "right": "2"}
        ],
    }
    assert body["structuredOutput"]["left"] == {"invoice_number": "1", "total": 10}
    sent = pulse.requests[0].content
    assert b"Invoice header fields" in sent
    assert b'name="structured_output"' in sent


async def test_structured_diff_skipped_when_one_side_missing(client, pulse):
    pulse.add("left.txt", "a", structured={"k": 1})
    pulse.add("right.txt", "b")
    resp = await _compare(
        client, structured_enabled="true", structured_schema='{"type": "object"}'
    )
    assert resp.json()["structuredDiff"] == {"total": 0, "changes": []}


async def test_large_file_goes_through_async_extraction(client, pulse):
    big = b"x" * (1024 * 1024 + 10)
    pulse.add("big.pdf", "large document text")
    pulse.add("right.txt", "large document text")

    resp = await _compare(client, files=_files(left=("big.pdf", big)))

    assert resp.status_code == 200, resp.text
    paths = [r.url.path for r in pulse.requests]
    assert "/extract_async" in paths
    assert "/job/job-1" in paths
    assert resp.json()["summary"]["totalParts"] == 1


# ─── Input validation ─────────────────────────────────────────────────────────

@pytest.mark.parametrize("missing", ["left", "right"])
async def test_missing_file_returns_400(client, missing):
    files = _files(**{missing: None})
    resp = await client.post("/api/v1/compare", files=files)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Please upload both documents."


async def test_structured_without_schema_returns_400(client):
    resp = await _compare(client, structured_enabled="true")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "IN_003"


async def test_structured_schema_not_json_returns_400(client):
    resp = await _compare(client, structured_enabled="true", structured_schema="{not json")
    assert resp.status_code == 400
    assert "must be valid JSON" in resp.json()["error"]["message"]


async def test_structured_schema_not_object_returns_400(client):
    resp = await _compare(client, structured_enabled="true", structured_schema="[1, 2]")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "IN_004"


async def test_structured_schema_invalid_json_schema_returns_400(client):
    resp = await _compare(client, structured_enabled="true", structured_schema='{"type": 12}')
    assert resp.status_code == 400
    assert "not a valid JSON Schema" in resp.json()["error"]["message"]


async def test_structured_schema_ignored_when_disabled(client, pulse):
    pulse.add("left.txt", "a")
    pulse.add("right.txt", "a")
    resp = await _compare(client, structured_enabled="false", structured_schema="{not json")
    assert resp.status_code == 200
    assert b'name="structured_output"' not in pulse.requests[0].content


async def test_oversized_file_returns_400(pulse, mock_ollama, settings):
    app = create_app(
        settings=settings.model_copy(update={"max_upload_size_mb": 1}),
        extraction_transport=httpx.MockTransport(pulse.handler),
        ollama_client=mock_ollama,
    )
    too_big = b"x" * (1024 * 1024 + 1)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        resp = await _compare(c, files=_files(right=("huge.pdf", too_big)))
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "IN_002"
    assert pulse.requests == []


# ─── Collaborator failures ────────────────────────────────────────────────────

async def test_missing_api_key_returns_500(pulse, mock_ollama, settings):
    app = create_app(
        settings=settings.model_copy(update={"pulse_api_key": SecretStr("")}),
        extraction_transport=httpx.MockTransport(pulse.handler),
        ollama_client=mock_ollama,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        resp = await _compare(c)
    assert resp.status_code == 500
    assert "PULSE_API_KEY" in resp.json()["error"]["message"]


async def test_provider_rejection_passes_status_through(client, pulse):
    pulse.fail_with = (400, {"message": "File appears to be corrupted"})
    resp = await _compare(client)
    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "File appears to be corrupted"


async def test_provider_outage_returns_502(client, pulse):
    pulse.fail_with = (500, {"message": "internal"})
    resp = await _compare(client)
    assert resp.status_code == 502
    assert resp.json()["error"]["code"] == "EXT_003"


async def test_extraction_failure_cancels_the_other_side(mock_ollama, settings):
    polls = []

    def handler(request):
        if b'filename="left.txt"' in request.content:
            return httpx.Response(400, json={"message": "Unsupported file type"})
        if request.url.path == "/extract_async":
            return httpx.Response(200, json={"job_id": "slow-job", "status": "pending"})
        polls.append(request)
        return httpx.Response(200, json={"status": "processing"})

    app = create_app(
        settings=settings,
        extraction_transport=httpx.MockTransport(handler),
        ollama_client=mock_ollama,
    )
    big = b"x" * (1024 * 1024 + 10)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        resp = await _compare(c, files=_files(right=("big.pdf", big)))

    assert resp.status_code == 400
    assert resp.json()["error"]["message"] == "Unsupported file type"
    seen = len(polls)
    await asyncio.sleep(0.1)
    assert len(polls) == seen


async def test_insights_failure_does_not_fail_comparison(client, pulse, mock_ollama):
    pulse.add("left.txt", "one")
    pulse.add("right.txt", "two")
    mock_ollama.chat = AsyncMock(side_effect=ResponseError("model not loaded", 500))

    resp = await _compare(client)

    assert resp.status_code == 200
    insights = resp.json()["insights"]
    assert insights["enabled"] is False
    assert "Ollama request failed" in insights["error"]
    assert resp.json()["summary"]["additions"] == 1


# ─── Health / metrics / middleware ────────────────────────────────────────────

async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "healthy",
        "extraction": "configured",
        "insights": "ok",
        "version": "1.0.0",
    }


async def test_health_degraded_when_llm_unreachable(client, mock_ollama):
    mock_ollama.list = AsyncMock(side_effect=ConnectionError("refused"))
    body = (await client.get("/health")).json()
    assert body["status"] == "degraded"
    assert body["insights"] == "unavailable"


async def test_metrics_exposes_comparison_counter(client, pulse):
    pulse.add("left.txt", "a")
    pulse.add("right.txt", "b")
    await _compare(client)
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "doccompare_comparisons_total" in resp.text


async def test_correlation_id_is_echoed(client):
    resp = await client.get("/health", headers={"X-Correlation-ID": "req-42"})
    assert resp.headers["X-Correlation-ID"] == "req-42"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
