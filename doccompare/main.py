"""
doccompare: FastAPI application factory.

Components are built once per application from a single Settings object and
kept on ``app.state``:
  settings            → the resolved configuration
  extraction_client   → Pulse extraction client
  ollama_client       → LLM client (owns the insights circuit breaker)
  comparison_service  → the compare pipeline used by the API
"""

from __future__ import annotations

import httpx
import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from ollama import AsyncClient
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from doccompare.api.v1.router import router as v1_router
from doccompare.config.logging_config import configure_logging
from doccompare.config.settings import Environment, Settings, get_settings
from doccompare.core.errors import AppError
from doccompare.core.middleware import (
    CorrelationIDMiddleware,
    SecurityHeadersMiddleware,
    app_error_handler,
    rate_limit_handler,
    request_validation_handler,
    unhandled_exception_handler,
)
from doccompare.core.rate_limit import configure_limiter
from doccompare.schemas.compare import HealthOut
from doccompare.services.comparison import ComparisonService
from doccompare.services.extraction.client import ExtractionClient
from doccompare.services.llm.client import OllamaClient
from doccompare.services.llm.insights import InsightsService
from doccompare.services.llm.prompt_engine import PromptEngine, load_prompt_template

_log = structlog.get_logger(__name__)


def _build_services(
    app: FastAPI,
    settings: Settings,
    extraction_transport: httpx.AsyncBaseTransport | None,
    ollama_client: AsyncClient | None,
) -> None:
    extraction = ExtractionClient(settings, transport=extraction_transport)
    ollama = OllamaClient(settings, client=ollama_client)
    prompt_engine = PromptEngine(load_prompt_template(settings.insights_prompt_path))
    insights = InsightsService(settings, ollama, prompt_engine)

    app.state.settings = settings
    app.state.extraction_client = extraction
    app.state.ollama_client = ollama
    app.state.comparison_service = ComparisonService(settings, extraction, insights)


def create_app(
    settings: Settings | None = None,
    *,
    extraction_transport: httpx.AsyncBaseTransport | None = None,
    ollama_client: AsyncClient | None = None,
) -> FastAPI:
    """
    Application factory. Returns a configured FastAPI instance.

    ``extraction_transport`` and ``ollama_client`` replace the real network
    collaborators, for tests and local stubs.
    """
    settings = settings or get_settings()
    configure_logging(log_level=settings.log_level.value, json_logs=settings.log_json)
    expose_docs = settings.environment != Environment.PRODUCTION

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Compare two documents: extracted text is diffed word-by-word or "
            "line-by-line, optional structured outputs are diffed field-by-field, "
            "and an LLM summarises the changes."
        ),
        docs_url="/docs" if expose_docs else None,
        redoc_url="/redoc" if expose_docs else None,
        openapi_url="/openapi.json" if expose_docs else None,
    )
    _build_services(app, settings, extraction_transport, ollama_client)

    # ── Startup / Shutdown ────────────────────────────────────────────── #
    @app.on_event("startup")
    async def on_startup() -> None:
        _log.info(
            "doccompare_ready",
            version=settings.app_version,
            environment=settings.environment.value,
            extraction_configured=app.state.extraction_client.configured,
            insights_enabled=settings.insights_enabled,
        )

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        _log.info("doccompare_shutdown")

    # ── Rate Limiting ─────────────────────────────────────────────────── #
    app.state.limiter = configure_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)

    # ── CORS ──────────────────────────────────────────────────────────── #
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )

    # ── Custom Middleware (applied in reverse order) ───────────────────── #
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CorrelationIDMiddleware)

    # ── Exception Handlers ────────────────────────────────────────────── #
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routes ────────────────────────────────────────────────────────── #
    app.include_router(v1_router)

    # ── Health ────────────────────────────────────────────────────────── #
    @app.get("/health", tags=["health"], summary="Health check", response_model=HealthOut)
    async def health() -> HealthOut:
        """Reports extraction configuration and LLM reachability."""
        extraction_ok = app.state.extraction_client.configured
        if not settings.insights_enabled:
            insights = "disabled"
        elif await app.state.ollama_client.health_check():
            insights = "ok"
        else:
            insights = "unavailable"

        return HealthOut(
            status="healthy" if extraction_ok and insights != "unavailable" else "degraded",
            extraction="configured" if extraction_ok else "unconfigured",
            insights=insights,
            version=settings.app_version,
        )

    # ── Metrics (Prometheus) ──────────────────────────────────────────── #
    @app.get("/metrics", tags=["observability"], summary="Prometheus metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
