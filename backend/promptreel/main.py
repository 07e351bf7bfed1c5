"""Main FastAPI application."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from .config import settings
from .database import init_db
from .exceptions import PromptReelError
from .utils.helpers import ensure_dir
from .api import videos, sessions, credits, billing, health, webhooks

# Configure logging based on debug setting
log_level = logging.DEBUG if settings.debug else logging.INFO
logging.basicConfig(
    level=log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="PromptReel API",
    description="Text-to-video generation with credit billing",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Parse origins from config (comma-separated string or "*")
cors_origins = settings.cors_origins
if cors_origins == "*":
    allow_origins = ["*"]
else:
    allow_origins = [origin.strip() for origin in cors_origins.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=86400,  # Cache preflight for 24 hours
)


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info("Starting PromptReel API...")

    ensure_dir(settings.storage_path)
    logger.info(f"Storage path: {settings.storage_path}")

    init_db()
    logger.info("Database initialized")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    logger.info("Shutting down PromptReel API...")


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Welcome to PromptReel API", "version": "1.0.0", "docs": "/docs"}


@app.exception_handler(PromptReelError)
async def domain_exception_handler(request: Request, exc: PromptReelError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    if settings.debug:
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc),
                "type": type(exc).__name__,
            },
        )
    else:
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


# Include routers
app.include_router(health.router, prefix="/api")
app.include_router(webhooks.router, prefix="/api")
app.include_router(videos.router, prefix="/api")
app.include_router(sessions.router, prefix="/api")
app.include_router(credits.router, prefix="/api")
app.include_router(billing.router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "promptreel.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
