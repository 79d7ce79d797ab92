"""Feedback Synth: Main FastAPI Application.

Collapses product feedback from many channels into deduplicated features,
each annotated with the customer value behind it.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import api_router
from .core import async_session_factory, close_db, get_settings, init_db
from .schemas import ErrorResponse
from .services.errors import (
    ExtractorUnavailableError,
    InvalidArgumentError,
    NotFoundError,
    SynthesisError,
)
from .services.extractor import get_extractor
from .services.synthesis_queue import SynthesisQueue
from .services.synthesizer import SynthesisConfig, SynthesisPipeline

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Startup - skip init_db in production (migrations own the schema)
    if settings.environment != "production":
        await init_db()

    if not settings.ai_enabled:
        logger.warning("GEMINI_API_KEY not set; synthesis will fail until it is configured")

    pipeline = SynthesisPipeline(
        async_session_factory,
        get_extractor(settings),
        SynthesisConfig.from_settings(settings),
    )
    queue = SynthesisQueue(
        pipeline,
        workers=settings.synthesis_workers,
        max_attempts=settings.synthesis_max_attempts,
        retry_base_seconds=settings.synthesis_retry_base_seconds,
    )
    queue.start()
    app.state.pipeline = pipeline
    app.state.synthesis_queue = queue
    logger.info(f"{settings.app_name} {settings.app_version} started ({settings.environment})")

    yield

    # Shutdown
    await queue.shutdown()
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    ## Feedback Synth API

    Turns raw customer feedback into a deduplicated list of feature requests.

    ### Key Features

    - **Synthesis**: Every item is classified into an existing feature or starts a new one.
    - **Revenue at risk**: Features carry the combined ARR of the distinct customers asking.
    - **Review tooling**: Similar-feature search and manual merge for duplicates.
    """,
    openapi_url=f"{settings.api_prefix}/openapi.json",
    docs_url=f"{settings.api_prefix}/docs",
    redoc_url=f"{settings.api_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS", "PATCH", "HEAD"],
    allow_headers=["*"],
)


# Service errors that escaped a route's own handling
@app.exception_handler(SynthesisError)
async def synthesis_exception_handler(request: Request, exc: SynthesisError):
    if isinstance(exc, NotFoundError):
        status_code, error = status.HTTP_404_NOT_FOUND, "not_found"
    elif isinstance(exc, InvalidArgumentError):
        status_code, error = status.HTTP_400_BAD_REQUEST, "invalid_argument"
    elif isinstance(exc, ExtractorUnavailableError):
        status_code, error = status.HTTP_503_SERVICE_UNAVAILABLE, "extractor_unavailable"
    else:
        status_code, error = status.HTTP_500_INTERNAL_SERVER_ERROR, "synthesis_error"
        logger.error(f"Unhandled synthesis error on {request.url.path}: {exc}")

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=str(exc)).model_dump(),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unhandled exception on {request.url.path}")

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="internal_error",
            message=f"An unexpected error occurred: {str(exc)[:200]}",
        ).model_dump(),
    )


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check(request: Request):
    """Health check endpoint."""
    queue: SynthesisQueue | None = getattr(request.app.state, "synthesis_queue", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "ai_enabled": settings.ai_enabled,
        "synthesis_running": bool(queue and queue.running),
    }


# Include API routes
app.include_router(api_router, prefix=settings.api_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "feedback_synth.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
