import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.exceptions import RequestValidationError

from biolink_app.api import counters, profiles, uploads
from biolink_app.config import settings
from biolink_app.database.connection import StoreConnectionManager
from biolink_app.dependencies import get_connection_manager, get_media_storage
from biolink_app.exceptions import (
    BioLinkException,
    StoreUnavailableError,
    biolink_exception_handler,
    validation_exception_handler,
)
from biolink_app.logging_config import setup_logging

setup_logging(settings.log_level, settings.log_file or None)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Connect eagerly so the first request doesn't wait
    if settings.store_eager_connect:
        try:
            await get_connection_manager().acquire()
        except StoreUnavailableError as e:
            logger.warning("⚠️  MongoDB initial connect failed: %s", e.diagnostic)

    logger.info("✅ %s running on http://%s:%s", settings.app_name, settings.host, settings.port)
    yield

    await get_connection_manager().close()
    await get_media_storage().close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Public profile pages with view/click counters and media uploads",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_exception_handler(BioLinkException, biolink_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
    }


@app.get("/health")
async def health_check(
    connections: StoreConnectionManager = Depends(get_connection_manager)
):
    """Health check endpoint, including a store probe"""
    try:
        await connections.acquire()
        store = "connected"
    except StoreUnavailableError:
        store = "unavailable"
    return {"status": "healthy", "environment": settings.environment, "store": store}




######## Include routers
app.include_router(profiles.router, prefix="/api")
app.include_router(counters.router, prefix="/api")
app.include_router(uploads.router, prefix="/api")
