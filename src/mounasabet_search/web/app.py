"""FastAPI application for the Mounasabet search service.

The lifespan builds one ``SearchContainer`` and stores it on
``app.state``; it is closed (draining pending analytics) on shutdown.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .. import __version__
from ..config import Settings
from ..container import SearchContainer
from .api import search

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Settings are resolved here rather than at import time so tests can
    build an app against temporary stores.
    """
    if settings is None:
        from ..config import settings as default_settings

        settings = default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        container = SearchContainer(settings)
        await container.initialize()
        app.state.container = container
        try:
            yield
        finally:
            await container.close()
            app.state.container = None

    app = FastAPI(
        title="Mounasabet Search",
        description="Catalog search, result caching and search analytics",
        version=__version__,
        lifespan=lifespan,
    )

    @app.get("/health", tags=["health"])
    async def health_check():
        """Basic liveness check; does not touch dependencies."""
        return {"status": "healthy"}

    app.include_router(search.router)
    return app


def main() -> None:
    """Run the HTTP server."""
    import uvicorn

    from ..config import settings

    logging.basicConfig(level=settings.logging.level.upper(), format=settings.logging.format)
    logger.info(f"Starting Mounasabet search server on {settings.http.host}:{settings.http.port}")
    uvicorn.run(create_app(settings), host=settings.http.host, port=settings.http.port)


if __name__ == "__main__":
    main()
