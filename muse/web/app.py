"""FastAPI application for the muse agent backend."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from muse import __version__
from muse.services import Services


def create_app(services: Services) -> FastAPI:
    """Create the API application around a built service graph."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("muse API starting")
        yield
        await services.close()
        logger.info("muse API stopped")

    app = FastAPI(
        title="muse",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Store dependencies in app state
    app.state.services = services
    app.state.chat = services.chat
    app.state.knowledge = services.knowledge

    # Include routers
    from muse.web.routes.cache import router as cache_router
    from muse.web.routes.chat import router as chat_router
    from muse.web.routes.health import router as health_router
    from muse.web.routes.ingest import router as ingest_router
    from muse.web.routes.persona import router as persona_router
    from muse.web.routes.works import router as works_router

    app.include_router(chat_router)
    app.include_router(persona_router)
    app.include_router(works_router)
    app.include_router(ingest_router)
    app.include_router(cache_router)
    app.include_router(health_router)

    return app
