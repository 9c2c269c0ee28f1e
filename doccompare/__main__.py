"""Run the service: ``python -m doccompare``."""

from __future__ import annotations

import uvicorn

from doccompare.config.settings import Environment, get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "doccompare.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        reload=settings.debug and settings.environment == Environment.DEVELOPMENT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
