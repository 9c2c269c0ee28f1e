"""Document comparison endpoint."""

# Annotations stay evaluated: the slowapi wrapper hides this module's globals
# from FastAPI's forward-reference resolution.

import json
from typing import Annotated, Any

import jsonschema
from fastapi import APIRouter, File, Form, Request, UploadFile

from doccompare.api.deps import AppSettings, Comparisons
from doccompare.config.settings import Settings
from doccompare.core.errors import ErrorCode, ValidationError
from doccompare.core.rate_limit import compare_limit, limiter
from doccompare.schemas.compare import CompareResponse
from doccompare.services.comparison import ComparisonRequest
from doccompare.services.extraction.client import StructuredRequest, UploadedDocument

router = APIRouter(prefix="/compare", tags=["compare"])


def _is_checked(value: str | None) -> bool:
    return (value or "").strip().lower() in {"true", "1", "on", "yes"}


def parse_structured_options(
    enabled: str | None, schema_text: str | None, prompt: str | None
) -> StructuredRequest | None:
    """
    Validate the structured-extraction form fields.

    Returns None when structured extraction is off.

    Raises:
        ValidationError: If the schema is missing, not JSON, not an object,
            or not a valid JSON Schema.
    """
    if not _is_checked(enabled):
        return None

    raw = (schema_text or "").strip()
    if not raw:
        raise ValidationError(
            "Structured extraction is enabled but no JSON schema was provided.",
            code=ErrorCode.INPUT_SCHEMA_MISSING,
        )

    try:
        schema: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(
            "Structured schema must be valid JSON.",
            code=ErrorCode.INPUT_SCHEMA_INVALID,
            detail={"line": exc.lineno, "column": exc.colno},
        ) from exc

    if not isinstance(schema, dict):
        raise ValidationError(
            "Structured schema must be a JSON object.",
            code=ErrorCode.INPUT_SCHEMA_INVALID,
        )

    try:
        jsonschema.validators.validator_for(schema).check_schema(schema)
    except jsonschema.SchemaError as exc:
        raise ValidationError(
            f"Structured schema is not a valid JSON Schema: {exc.message}",
            code=ErrorCode.INPUT_SCHEMA_INVALID,
        ) from exc

    return StructuredRequest(schema=schema, schema_prompt=(prompt or "").strip() or None)


async def _read_upload(upload: UploadFile, settings: Settings) -> UploadedDocument:
    raw = await upload.read()
    limit = settings.max_upload_size_bytes
    if len(raw) > limit:
        raise ValidationError(
            f"File exceeds maximum allowed size of {settings.max_upload_size_mb}MB",
            code=ErrorCode.INPUT_FILE_TOO_LARGE,
            detail={"filename": upload.filename, "size_bytes": len(raw), "limit_bytes": limit},
        )
    return UploadedDocument(
        filename=upload.filename or "document",
        content=raw,
        content_type=upload.content_type or "application/octet-stream",
    )


@router.post(
    "",
    response_model=CompareResponse,
    summary="Compare two documents",
)
@limiter.limit(compare_limit)
async def compare_documents(
    request: Request,
    settings: AppSettings,
    comparisons: Comparisons,
    left: Annotated[UploadFile | None, File(description="Original document")] = None,
    right: Annotated[UploadFile | None, File(description="Revised document")] = None,
    diff_mode: Annotated[str | None, Form()] = None,
    structured_enabled: Annotated[str | None, Form()] = None,
    structured_schema: Annotated[str | None, Form()] = None,
    structured_prompt: Annotated[str | None, Form()] = None,
) -> CompareResponse:
    """
    Extract both documents, diff their text and return the rendered views.

    ``diff_mode`` is ``words`` (default) or ``lines``. With
    ``structured_enabled`` set, ``structured_schema`` must be a JSON Schema
    object; both sides are then extracted against it and their structured
    outputs are diffed too.
    """
    if left is None or right is None:
        raise ValidationError(
            "Please upload both documents.", code=ErrorCode.INPUT_MISSING_FILE
        )

    structured = parse_structured_options(
        structured_enabled, structured_schema, structured_prompt
    )
    left_doc = await _read_upload(left, settings)
    right_doc = await _read_upload(right, settings)

    return await comparisons.compare(
        ComparisonRequest(
            left=left_doc,
            right=right_doc,
            diff_mode=diff_mode,
            structured=structured,
        )
    )
