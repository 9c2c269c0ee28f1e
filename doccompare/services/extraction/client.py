"""
Extraction API client (Pulse-style REST over httpx).

Small files are extracted synchronously; files at or above the configured
threshold are submitted as async jobs and polled until they complete, fail
or pass their deadline. Completed jobs may point at a signed URL holding
the real result, which is downloaded and merged with the job envelope.

Provider failures are translated into the application error taxonomy:
  provider 5xx / transport error  → UpstreamError (502)
  provider 4xx                    → UpstreamError with the provider status
  polling deadline / HTTP timeout → UpstreamTimeoutError (504)
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from doccompare.config.settings import Settings
from doccompare.core.errors import (
    AppError,
    ConfigurationError,
    ErrorCode,
    UpstreamError,
    UpstreamTimeoutError,
)
from doccompare.core.metrics import EXTRACTIONS
from doccompare.services.extraction import payload as fields

_log = structlog.get_logger(__name__)

_EXTRACT_PATH = "/extract"
_EXTRACT_ASYNC_PATH = "/extract_async"
_JOB_PATH = "/job/{job_id}"

_DONE_STATUSES = frozenset({"completed"})
_FAILED_STATUSES = frozenset({"failed", "canceled", "cancelled"})


@dataclass
class UploadedDocument:
    """One side of a comparison as received from the client."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class StructuredRequest:
    """Schema-guided extraction options shared by both sides."""

    schema: dict[str, Any]
    schema_prompt: str | None = None

    def to_form_value(self) -> str:
        body: dict[str, Any] = {"schema": self.schema}
        if self.schema_prompt:
            body["schema_prompt"] = self.schema_prompt
        return json.dumps(body)


@dataclass
class ExtractionResult:
    text: str
    structured_output: Any = None
    payload: dict[str, Any] = field(default_factory=dict)


def _error_message(response: httpx.Response, fallback: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip()[:500] or fallback
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        message = body.get("message") or error or body.get("detail")
        if isinstance(message, str) and message:
            return message
    return fallback


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    fallback = f"Extraction request failed ({response.status_code} {response.reason_phrase})"
    message = _error_message(response, fallback)
    status = 502 if response.status_code >= 500 else response.status_code
    code = ErrorCode.EXTRACT_UPSTREAM_FAILED if status == 502 else ErrorCode.EXTRACT_REJECTED
    _log.warning(
        "extraction_http_error",
        upstream_status=response.status_code,
        http_status=status,
        message=message,
    )
    raise UpstreamError(code, message, http_status=status)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise UpstreamError(
            ErrorCode.EXTRACT_RESULT_INVALID, "Extraction API did not return valid JSON."
        ) from exc
    if not isinstance(body, dict):
        raise UpstreamError(
            ErrorCode.EXTRACT_RESULT_INVALID, "Extraction API returned an unexpected payload."
        )
    return body


class ExtractionClient:
    """
    Async client for the extraction collaborator.

    ``transport`` overrides the httpx transport; ``sleep`` is awaited between
    job polls.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._sleep = sleep
        self._base_url = str(settings.pulse_base_url).rstrip("/")

    @property
    def configured(self) -> bool:
        return bool(self._settings.pulse_api_key.get_secret_value())

    def is_large(self, document: UploadedDocument) -> bool:
        return document.size >= self._settings.large_file_threshold_bytes

    def _api_client(self) -> httpx.AsyncClient:
        api_key = self._settings.pulse_api_key.get_secret_value()
        if not api_key:
            raise ConfigurationError(
                ErrorCode.EXTRACT_NOT_CONFIGURED,
                "Missing PULSE_API_KEY environment variable",
            )
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"x-api-key": api_key, "Accept": "application/json"},
            timeout=self._settings.pulse_request_timeout_seconds,
            transport=self._transport,
        )

    async def extract(
        self,
        document: UploadedDocument,
        structured: StructuredRequest | None = None,
    ) -> ExtractionResult:
        """
        Extract text (and optional structured output) from one document.

        Raises:
            ConfigurationError: If no API key is configured.
            UpstreamError: If the provider rejects or fails the request.
            UpstreamTimeoutError: If the provider does not answer in time.
        """
        use_async = self.is_large(document)
        mode = "async" if use_async else "sync"
        log = _log.bind(filename=document.filename, mode=mode, size_bytes=document.size)

        async with self._api_client() as client:
            try:
                log.info("extraction_submitted", structured=structured is not None)
                EXTRACTIONS.labels(mode=mode).inc()
                if use_async:
                    result = await self._extract_async(client, document, structured)
                else:
                    result = await self._extract_sync(client, document, structured)
            except AppError:
                raise
            except httpx.TimeoutException as exc:
                log.warning("extraction_timeout", error=str(exc))
                raise UpstreamTimeoutError(
                    ErrorCode.EXTRACT_TIMEOUT, "Extraction request timed out."
                ) from exc
            except httpx.HTTPError as exc:
                log.warning("extraction_transport_error", error=str(exc))
                raise UpstreamError(
                    ErrorCode.EXTRACT_UPSTREAM_FAILED, f"Extraction service unreachable: {exc}"
                ) from exc

        text = fields.extract_text(result)
        log.info("extraction_completed", text_chars=len(text))
        return ExtractionResult(
            text=text,
            structured_output=fields.extract_structured_output(result),
            payload=result,
        )

    # ── Request paths ─────────────────────────────────────────────────── #

    @staticmethod
    def _form(
        document: UploadedDocument, structured: StructuredRequest | None
    ) -> tuple[dict[str, Any], dict[str, str]]:
        files = {"file": (document.filename, document.content, document.content_type)}
        data: dict[str, str] = {}
        if structured is not None:
            data["structured_output"] = structured.to_form_value()
        return files, data

    async def _extract_sync(
        self,
        client: httpx.AsyncClient,
        document: UploadedDocument,
        structured: StructuredRequest | None,
    ) -> dict[str, Any]:
        files, data = self._form(document, structured)
        response = await client.post(_EXTRACT_PATH, files=files, data=data)
        _raise_for_status(response)
        return _json_body(response)

    async def _extract_async(
        self,
        client: httpx.AsyncClient,
        document: UploadedDocument,
        structured: StructuredRequest | None,
    ) -> dict[str, Any]:
        files, data = self._form(document, structured)
        response = await client.post(_EXTRACT_ASYNC_PATH, files=files, data=data)
        _raise_for_status(response)
        job = _json_body(response)

        job_id = job.get("job_id") or job.get("jobId") or job.get("id")
        if not job_id:
            raise UpstreamError(
                ErrorCode.EXTRACT_RESULT_INVALID, "Extraction job was accepted without a job id."
            )
        _log.info("extraction_job_enqueued", job_id=job_id)

        final = await self._poll(client, str(job_id))
        result = final.get("result") or final
        return await self._resolve_url_backed(result)

    async def _poll(self, client: httpx.AsyncClient, job_id: str) -> dict[str, Any]:
        deadline = time.monotonic() + self._settings.pulse_poll_timeout_seconds
        while time.monotonic() < deadline:
            response = await client.get(_JOB_PATH.format(job_id=job_id))
            _raise_for_status(response)
            job = _json_body(response)

            status = str(job.get("status") or "").lower()
            _log.debug("extraction_poll", job_id=job_id, status=status)
            if status in _DONE_STATUSES or job.get("result"):
                return job
            if status in _FAILED_STATUSES:
                message = job.get("error") or "Extraction job failed"
                raise UpstreamError(ErrorCode.EXTRACT_JOB_FAILED, str(message))

            await self._sleep(self._settings.pulse_poll_interval_seconds)

        _log.warning("extraction_poll_timeout", job_id=job_id)
        raise UpstreamTimeoutError(
            ErrorCode.EXTRACT_TIMEOUT, "Extraction timed out while polling"
        )

    async def _resolve_url_backed(self, result: Any) -> Any:
        """
        Download the real result when the job only returned a pointer to it.

        Plain ``https://`` URLs are followed even without the ``is_url`` flag;
        a flagged result with a non-https URL is refused.
        """
        if not isinstance(result, dict):
            return result
        url = fields.extract_result_url(result)
        if not url:
            return result

        flagged = fields.is_url_backed(result)
        if not flagged and not url.startswith("https://"):
            return result
        if not url.startswith("https://"):
            raise UpstreamError(
                ErrorCode.EXTRACT_RESULT_INVALID, "Extraction result URL must be https."
            )

        _log.info("extraction_result_fetch", url=url)
        async with httpx.AsyncClient(
            timeout=self._settings.pulse_result_fetch_timeout_seconds,
            transport=self._transport,
        ) as client:
            response = await client.get(url, headers={"Accept": "application/json"})
        if response.status_code >= 400:
            raise UpstreamError(
                ErrorCode.EXTRACT_UPSTREAM_FAILED,
                f"Failed to fetch extraction result ({response.status_code} "
                f"{response.reason_phrase})",
            )
        try:
            resolved = response.json()
        except ValueError as exc:
            raise UpstreamError(
                ErrorCode.EXTRACT_RESULT_INVALID,
                "Extraction result URL did not return valid JSON.",
            ) from exc
        if not isinstance(resolved, dict):
            return result

        return {
            **resolved,
            "extraction_url": resolved.get("extraction_url", result.get("extraction_url")),
            "page_count": resolved.get("page_count", result.get("page_count")),
            "url": url,
        }
