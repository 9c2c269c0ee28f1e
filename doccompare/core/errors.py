"""
Structured error taxonomy for doccompare.

Every application error has:
  - A stable error code (prefixed by domain)
  - An HTTP status code
  - A human-readable message
  - An optional detail dict for machine consumers

Failures are grouped by who caused them: the caller (bad input), the
deployment (configuration), or a collaborator (upstream failure, timeout).
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    """Stable, versioned error codes. Never reuse a retired code."""

    # Input
    INPUT_MISSING_FILE = "IN_001"
    INPUT_FILE_TOO_LARGE = "IN_002"
    INPUT_SCHEMA_MISSING = "IN_003"
    INPUT_SCHEMA_INVALID = "IN_004"

    # Extraction
    EXTRACT_NOT_CONFIGURED = "EXT_001"
    EXTRACT_REJECTED = "EXT_002"
    EXTRACT_UPSTREAM_FAILED = "EXT_003"
    EXTRACT_JOB_FAILED = "EXT_004"
    EXTRACT_TIMEOUT = "EXT_005"
    EXTRACT_RESULT_INVALID = "EXT_006"

    # Insights
    INSIGHTS_UNAVAILABLE = "INS_001"
    INSIGHTS_CIRCUIT_OPEN = "INS_002"

    # Generic
    VALIDATION_ERROR = "GEN_001"
    INTERNAL_ERROR = "GEN_002"
    RATE_LIMITED = "GEN_004"


class AppError(Exception):
    """Base class for all application errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        http_status: int = 500,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.detail = detail or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "detail": self.detail,
            }
        }


# ── Typed convenience subclasses ──────────────────────────────────────── #


class ValidationError(AppError):
    """The request itself is unusable (HTTP 400)."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, http_status=400, detail=detail)


class ConfigurationError(AppError):
    """The deployment is missing required configuration (HTTP 500)."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(code=code, message=message, http_status=500)


class UpstreamError(AppError):
    """
    A collaborator failed or refused the request.

    Server-side failures map to 502; client errors reported by the provider
    (unsupported or corrupted file) keep their 4xx status.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        http_status: int = 502,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(code=code, message=message, http_status=http_status, detail=detail)


class UpstreamTimeoutError(AppError):
    """A collaborator did not answer before its deadline (HTTP 504)."""

    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(code=code, message=message, http_status=504)


class ServiceUnavailableError(AppError):
    def __init__(self, code: ErrorCode, message: str) -> None:
        super().__init__(code=code, message=message, http_status=503)
