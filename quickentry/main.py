"""
FastAPI application entry point for the quick-entry service.

This module creates the FastAPI app instance and registers all routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quickentry.config import settings
from quickentry.routes.health import router as health_router
from quickentry.routes.offline_queue import router as offline_queue_router
from quickentry.routes.quick_entry import router as quick_entry_router
from quickentry.services.session import registry

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def _get_cors_origins() -> list[str]:
    """
    Get allowed CORS origins based on environment.

    - ENVIRONMENT=production: CORS_ORIGINS (comma separated), none if empty
    - anything else: all origins
    """
    environment = settings.ENVIRONMENT

    if settings.is_production():
        origins = [origin.strip() for origin in settings.CORS_ORIGINS if origin.strip()]
        if origins:
            logger.info(f"CORS configured for production with {len(origins)} allowed origins")
            return origins
        logger.warning(
            "CORS_ORIGINS is empty in production. "
            "No web origins allowed. Set CORS_ORIGINS for web clients."
        )
        return []

    logger.info(f"CORS configured for {environment}: allowing all origins")
    return ["*"]


@asynccontextmanager
async def lifespan(app: FastAPI):
    registry.start_sweeper()
    yield
    # Stop the sweeper and liveness polls; queued mutations stay on disk
    await registry.shutdown()
    logger.info("Quick-entry sessions closed")


app = FastAPI(
    title="Quick Entry API",
    description="Calculator quick entry, usage inference and offline queue for the finance tracker",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log detailed validation errors for debugging 422s from the client."""
    logger.error(
        f"Validation error on {request.method} {request.url.path}: {exc.errors()}"
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "details": jsonable_encoder(exc.errors()),
        }
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(quick_entry_router)
app.include_router(offline_queue_router)

logger.info("FastAPI app initialized successfully")
