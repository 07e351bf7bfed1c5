"""
Health check endpoints and monitoring utilities.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import redis
import logging

from ..config import settings
from ..database import SessionLocal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "PromptReel API"


def check_database() -> bool:
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
    finally:
        db.close()


def check_redis() -> bool:
    try:
        redis.from_url(settings.redis_url).ping()
        return True
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        return False


@router.get("/")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": SERVICE_NAME, "version": "1.0.0"}


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - verifies the database and the task broker.
    Returns 200 if ready, 503 if not ready.
    """
    checks = {
        "database": check_database(),
        "redis": check_redis(),
    }

    all_healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={"status": "ready" if all_healthy else "not ready", "checks": checks},
    )


@router.get("/live")
async def liveness_check():
    """Liveness check - the process is up."""
    return {"status": "alive", "service": SERVICE_NAME}
