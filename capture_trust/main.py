"""
FastAPI application entry point.
Capture Trust - multi-signal confidence scoring for photo provenance.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from capture_trust import __version__
from capture_trust.config import get_settings
from capture_trust.logging_config import configure_logging
from capture_trust.api.routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    configure_logging(settings.log_level, settings.log_format)
    logger.info("Starting %s (%s)", settings.app_name, settings.app_env)
    yield


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Multi-signal confidence aggregation and cross-validation "
                "for LiDAR-backed photo provenance.",
    version=__version__,
    lifespan=lifespan,
)

# Include API routes
app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "capture_trust.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
