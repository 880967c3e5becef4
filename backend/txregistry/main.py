"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from txregistry.config import settings
from txregistry.routes import registry
from txregistry.services.registry import RegistryService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events for startup/shutdown."""
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)

    # Startup: restore the saved snapshot and start the crawl schedule
    service = RegistryService()
    await service.initialize()
    app.state.registry = service

    yield  # Application runs here

    # Shutdown: stop crawling and save the current snapshot
    await service.shutdown()


app = FastAPI(
    title="FHIR Terminology Server Registry",
    description="Crawls the terminology server federation and resolves code system/value set queries",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(registry.router)


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict:
    """Root endpoint with API info."""
    return {
        "name": "FHIR Terminology Server Registry",
        "version": "0.1.0",
        "docs": "/docs",
    }
