"""Celery tasks for asynchronous video generation and scheduled maintenance."""

from celery import Celery
from celery.schedules import crontab
from sqlalchemy.orm import Session
import logging

from ..config import settings
from ..database import SessionLocal
from ..services import billing_service, url_cache_service, video_service
from ..services.generation_service import GenerationResult, get_video_generator

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Initialize Celery
celery_app = Celery(
    "promptreel", broker=settings.celery_broker_url, backend=settings.celery_result_backend
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=3600,  # 1 hour max
    task_soft_time_limit=3300,  # 55 minutes soft limit
    worker_concurrency=settings.celery_worker_concurrency,
    worker_prefetch_multiplier=settings.celery_worker_prefetch_multiplier,
    beat_schedule={
        "grant-monthly-credits": {
            "task": "grant_monthly_credits_task",
            "schedule": crontab(hour=0, minute=5),
        },
        "sweep-expired-urls": {
            "task": "sweep_expired_urls_task",
            "schedule": crontab(minute=0),
        },
    },
)


@celery_app.task(bind=True, name="generate_video_task")
def generate_video_task(self, video_id: str) -> dict:
    """
    Run the external generation for a prepared video.

    Args:
        video_id: ID of a video in the ``generating`` state

    Returns:
        Dictionary with the generation result
    """
    db: Session = SessionLocal()

    try:
        logger.info(f"[VIDEO:{video_id}] Task started")
        self.update_state(state="PROGRESS", meta={"video_id": video_id})

        try:
            generator = get_video_generator()
        except Exception as e:
            error = f"Video generator unavailable: {e}"
            logger.error(f"[VIDEO:{video_id}] {error}", exc_info=True)
            video_service.update_status(
                db, video_id, "failed", error=error, log_message=f"Generation failed: {error}"
            )
            return GenerationResult(success=False, video_id=video_id, error=error).to_dict()

        result = generator.run(db, video_id)

        if result.success:
            logger.info(f"[VIDEO:{video_id}] Generation completed successfully")
        else:
            logger.warning(f"[VIDEO:{video_id}] Generation failed: {result.error}")

        return result.to_dict()

    except Exception as e:
        logger.error(f"[VIDEO:{video_id}] Task crashed: {e}", exc_info=True)
        raise

    finally:
        db.close()


@celery_app.task(name="grant_monthly_credits_task")
def grant_monthly_credits_task() -> dict:
    """Daily trigger for the monthly subscription grant (acts on the 1st only)."""
    db: Session = SessionLocal()

    try:
        return billing_service.grant_monthly_credits(db)

    except Exception as e:
        db.rollback()
        logger.error(f"Monthly credit grant failed: {e}", exc_info=True)
        raise

    finally:
        db.close()


@celery_app.task(name="sweep_expired_urls_task")
def sweep_expired_urls_task() -> dict:
    """Invalidate expired cached playback URLs."""
    db: Session = SessionLocal()

    try:
        return url_cache_service.sweep_expired(db)

    except Exception as e:
        db.rollback()
        logger.error(f"URL sweep failed: {e}", exc_info=True)
        raise

    finally:
        db.close()
