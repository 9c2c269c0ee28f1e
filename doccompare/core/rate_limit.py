"""
Shared slowapi limiter.

Route decorators need the limiter at import time, so the limit strings are
resolved lazily from whatever the application factory installed through
``configure_limiter``.
"""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from doccompare.config.settings import Settings

_limits: dict[str, str] = {
    "default": "100/minute",
    "compare": "20/minute",
}


def default_limit() -> str:
    return _limits["default"]


def compare_limit() -> str:
    return _limits["compare"]


limiter = Limiter(key_func=get_remote_address, default_limits=[default_limit])


def configure_limiter(settings: Settings) -> Limiter:
    """Apply the rate-limit settings and return the shared limiter."""
    _limits["default"] = settings.rate_limit_default
    _limits["compare"] = settings.rate_limit_compare
    limiter.enabled = settings.rate_limit_enabled
    limiter.reset()
    return limiter
