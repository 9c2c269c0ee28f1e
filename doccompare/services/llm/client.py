"""
Ollama HTTP client with a circuit breaker, used for change insights.

Requests ask for JSON output constrained by a JSON Schema. When the native
chat endpoint is missing (404) the OpenAI-compatible ``/v1/chat/completions``
route is tried instead.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx
import structlog
from ollama import AsyncClient, RequestError, ResponseError

from doccompare.config.settings import Settings
from doccompare.core.errors import ErrorCode, ServiceUnavailableError

_log = structlog.get_logger(__name__)


# ── Circuit Breaker ───────────────────────────────────────────────────── #


class CircuitState(StrEnum):
    CLOSED = "closed"       # Normal operation
    OPEN = "open"           # Failing; reject calls immediately
    HALF_OPEN = "half_open" # Probe state; allow one call


@dataclass
class CircuitBreaker:
    """
    Simple time-based circuit breaker.

    States:
      CLOSED   → normal; failures increment counter.
      OPEN     → rejects all calls; transitions to HALF_OPEN after timeout.
      HALF_OPEN→ allows one test call; success → CLOSED, failure → OPEN.
    """

    threshold: int
    timeout_seconds: float
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _last_failure_time: float = field(default=0.0, init=False)

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self.timeout_seconds:
                self._state = CircuitState.HALF_OPEN
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()
        if self._failure_count >= self.threshold or self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            _log.warning(
                "circuit_opened",
                failures=self._failure_count,
                threshold=self.threshold,
            )

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)


# ── Response dataclass ────────────────────────────────────────────────── #


@dataclass
class OllamaResponse:
    content: str
    model: str
    prompt_eval_count: int
    eval_count: int


# ── Client ────────────────────────────────────────────────────────────── #


class OllamaClient:
    """
    Async Ollama API client.

    One instance lives for the application lifetime so the circuit breaker
    sees consecutive failures across requests.
    """

    def __init__(
        self,
        settings: Settings,
        client: AsyncClient | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._circuit = CircuitBreaker(
            threshold=settings.insights_circuit_breaker_threshold,
            timeout_seconds=settings.insights_circuit_breaker_timeout_seconds,
        )
        self._base_url = str(settings.ollama_base_url).rstrip("/")
        self._client = client or AsyncClient(host=self._base_url)

    @property
    def model(self) -> str:
        return self._settings.ollama_model

    @property
    def circuit(self) -> CircuitBreaker:
        return self._circuit

    @staticmethod
    def _messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    @staticmethod
    def _extract_chat_content(chat_response: Any) -> str:
        message = getattr(chat_response, "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, str):
            return content
        if isinstance(chat_response, dict):
            return str(chat_response.get("message", {}).get("content", ""))
        return ""

    async def _v1_chat_completion(
        self, system_prompt: str, user_prompt: str, json_schema: dict[str, Any]
    ) -> str:
        payload = {
            "model": self.model,
            "messages": self._messages(system_prompt, user_prompt),
            "stream": False,
            "temperature": self._settings.insights_temperature,
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "document_diff_insights",
                    "strict": True,
                    "schema": json_schema,
                },
            },
        }
        async with httpx.AsyncClient(
            timeout=self._settings.insights_timeout_seconds, transport=self._transport
        ) as client:
            resp = await client.post(f"{self._base_url}/v1/chat/completions", json=payload)
            resp.raise_for_status()
            return self._extract_completion_content(resp.json())

    @staticmethod
    def _extract_completion_content(data: Any) -> str:
        """
        Pull ``choices[0].message.content`` out of a chat-completions body.

        Raises:
            ValueError: If the body does not have that shape.
        """
        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list):
            raise ValueError("chat completion body has no choices list")
        if not choices:
            return ""
        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise ValueError("chat completion choice has no message content")
        return content

    async def health_check(self) -> bool:
        """Return True if Ollama is reachable and the configured model is pulled."""
        try:
            list_response = await self._client.list()
        except (RequestError, ResponseError, httpx.HTTPError, ConnectionError):
            return False
        models = [m.model for m in getattr(list_response, "models", [])]
        model_base = self.model.split(":")[0]
        return any(model_base in (m or "") for m in models)

    async def complete_json(
        self,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any],
    ) -> OllamaResponse:
        """
        Non-streaming completion constrained to ``json_schema``.

        Raises:
            ServiceUnavailableError: If the circuit is open or the call fails.
        """
        if not self._circuit.allow_request():
            raise ServiceUnavailableError(
                ErrorCode.INSIGHTS_CIRCUIT_OPEN,
                "Insights circuit breaker is open. Please wait before retrying.",
            )

        try:
            response = await self._client.chat(
                model=self.model,
                messages=self._messages(system_prompt, user_prompt),
                stream=False,
                format=json_schema,
                options={"temperature": self._settings.insights_temperature},
            )
        except ResponseError as exc:
            if getattr(exc, "status_code", None) != 404:
                raise self._failure(exc) from exc
            _log.warning("ollama_chat_endpoint_missing_fallback_v1")
            try:
                content = await self._v1_chat_completion(system_prompt, user_prompt, json_schema)
            except (httpx.HTTPError, ValueError) as fallback_exc:
                raise self._failure(fallback_exc) from fallback_exc
            self._circuit.record_success()
            return OllamaResponse(
                content=content, model=self.model, prompt_eval_count=0, eval_count=0
            )
        except (RequestError, httpx.HTTPError, ConnectionError) as exc:
            raise self._failure(exc) from exc

        self._circuit.record_success()
        return OllamaResponse(
            content=self._extract_chat_content(response),
            model=getattr(response, "model", None) or self.model,
            prompt_eval_count=getattr(response, "prompt_eval_count", None) or 0,
            eval_count=getattr(response, "eval_count", None) or 0,
        )

    def _failure(self, exc: Exception) -> ServiceUnavailableError:
        """Count the failure against the circuit and wrap it."""
        self._circuit.record_failure()
        _log.warning("ollama_request_failed", error=str(exc))
        return ServiceUnavailableError(
            ErrorCode.INSIGHTS_UNAVAILABLE,
            f"Ollama request failed: {exc}",
        )
