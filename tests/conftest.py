"""
Shared pytest fixtures for doccompare tests.

Provides:
  - TEST_SETTINGS (no .env, fast polling, rate limits off)
  - FakePulse: in-memory extraction API served through httpx.MockTransport
  - mock Ollama client (no real LLM calls)
  - FastAPI app + async HTTP client wired to both fakes
"""
from __future__ import annotations

import json
import re
from collections.abc import AsyncGenerator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from doccompare.config.settings import Settings
from doccompare.main import create_app


# ─── Settings override ────────────────────────────────────────────────────────

TEST_SETTINGS = Settings(
    _env_file=None,
    environment="testing",
    debug=True,
    log_json=False,
    cors_origins=["http://localhost:5173"],
    rate_limit_enabled=False,
    pulse_base_url="https://pulse.test",
    pulse_api_key="test-pulse-key",
    pulse_poll_interval_seconds=0.01,
    pulse_poll_timeout_seconds=1.0,
    pulse_large_file_threshold_mb=1.0,
    ollama_base_url="http://ollama.test:11434",
    ollama_model="llama3.1:8b",
    insights_timeout_seconds=2.0,
)


VALID_INSIGHTS: dict[str, Any] = {
    "overall_summary": "One word was inserted.",
    "added_highlights": [{"title": "New adjective", "evidence": "brave"}],
    "removed_highlights": [],
    "change_categories": [{"category": "other", "summary": "Wording change."}],
    "risks": [],
    "suggested_checks": ["Confirm the new wording is intended."],
    "confidence": "High",
}


@pytest.fixture
def settings() -> Settings:
    return TEST_SETTINGS


# ─── Fake extraction API ──────────────────────────────────────────────────────

_FILENAME_RE = re.compile(rb'filename="([^"]+)"')


class FakePulse:
    """
    Minimal stand-in for the extraction API.

    Documents are registered by filename; ``/extract`` answers directly and
    ``/extract_async`` hands out a job that completes on its first poll.
    """

    def __init__(self) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: tuple[int, dict[str, Any]] | None = None
        self._jobs: dict[str, dict[str, Any]] = {}

    def add(self, filename: str, text: str, structured: Any = None) -> None:
        payload: dict[str, Any] = {"markdown": text, "page_count": 1}
        if structured is not None:
            payload["structured_output"] = structured
        self.documents[filename] = payload

    def _lookup(self, request: httpx.Request) -> dict[str, Any]:
        match = _FILENAME_RE.search(request.content)
        assert match is not None, "multipart upload without a filename"
        return self.documents[match.group(1).decode()]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            status, body = self.fail_with
            return httpx.Response(status, json=body)

        path = request.url.path
        if path == "/extract":
            return httpx.Response(200, json=self._lookup(request))
        if path == "/extract_async":
            job_id = f"job-{len(self._jobs) + 1}"
            self._jobs[job_id] = self._lookup(request)
            return httpx.Response(200, json={"job_id": job_id, "status": "pending"})
        if path.startswith("/job/"):
            job_id = path.rsplit("/", 1)[-1]
            return httpx.Response(
                200, json={"job_id": job_id, "status": "completed", "result": self._jobs[job_id]}
            )
        return httpx.Response(404, json={"message": "not found"})


@pytest.fixture
def pulse() -> FakePulse:
    return FakePulse()


# ─── Mock Ollama ──────────────────────────────────────────────────────────────

def chat_reply(content: str, model: str = "llama3.1:8b") -> SimpleNamespace:
    return SimpleNamespace(
        message=SimpleNamespace(content=content),
        model=model,
        prompt_eval_count=42,
        eval_count=17,
    )


@pytest.fixture
def mock_ollama() -> MagicMock:
    """An ollama.AsyncClient double that answers with VALID_INSIGHTS."""
    mock = MagicMock()
    mock.chat = AsyncMock(return_value=chat_reply(json.dumps(VALID_INSIGHTS)))
    mock.list = AsyncMock(
        return_value=SimpleNamespace(models=[SimpleNamespace(model="llama3.1:8b")])
    )
    return mock


# ─── App & HTTP client ────────────────────────────────────────────────────────

@pytest.fixture
def app(pulse: FakePulse, mock_ollama: MagicMock):
    return create_app(
        settings=TEST_SETTINGS,
        extraction_transport=httpx.MockTransport(pulse.handler),
        ollama_client=mock_ollama,
    )


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c
