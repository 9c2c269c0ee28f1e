"""
FastAPI dependency providers.

Long-lived components are built once by the application factory and kept on
``app.state``; routes reach them only through these providers.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from doccompare.config.settings import Settings
from doccompare.services.comparison import ComparisonService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_comparison_service(request: Request) -> ComparisonService:
    return request.app.state.comparison_service


AppSettings = Annotated[Settings, Depends(get_app_settings)]
Comparisons = Annotated[ComparisonService, Depends(get_comparison_service)]
