"""Main ASGI application entry point.

Architecture:
    Starlette App
      ├── POST /api/createIndex      → insert one document
      ├── GET  /api/getAll           → equality filters (status, tag, firstName)
      ├── GET  /api/search           → text / tag / geo-near search
      ├── GET  /api/explain          → query plan for a search
      ├── GET  /api/documents/{id}   → fetch by id
      ├── GET  /health
      └── GET  /metrics

Usage:
    python -m docindex_server

    # Or override settings from the environment
    PORT=8080 LOG_LEVEL=debug python -m docindex_server
"""

from __future__ import annotations

import logging

from pydantic import ValidationError
from starlette.applications import Starlette

from docindex_server.app_builder import AppBuilder
from docindex_server.config import Settings
from docindex_server.engine.engine import DocumentEngine


logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, engine: DocumentEngine | None = None) -> Starlette:
    """Create the Starlette app serving one document collection."""
    return AppBuilder(settings, engine).build()


def main() -> None:
    """Entry point for the docindex server."""
    import uvicorn

    try:
        settings = Settings()
    except ValidationError as exc:
        logger.error("Configuration is invalid: %s", exc)
        return

    app = create_app(settings)

    logger.info("Starting server on %s:%d", settings.host, settings.port)
    logger.info("Health check: http://%s:%d/health", settings.host, settings.port)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        log_config=None,  # Don't let uvicorn override our logging config
    )


if __name__ == "__main__":
    main()
