"""Video lifecycle state machine.

States: ``generating`` -> ``completed`` | ``failed``; ``failed`` may go back to
``generating`` through ``retry`` up to ``settings.max_retries`` times. Every
transition appends to the video's processing log.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session
import logging

from ..config import settings
from ..exceptions import (
    Unauthorized,
    VideoNotFound,
    InvalidState,
    RetryLimitExceeded,
    ValidationError,
)
from ..models import Video
from ..utils.helpers import utcnow
from . import credit_service, rate_limit_service, session_service

logger = logging.getLogger(__name__)

STATUSES = ("generating", "completed", "failed")
TERMINAL_STATUSES = ("completed", "failed")

# Allowed targets of update_status; failed -> generating only goes through retry
TRANSITIONS = {
    "generating": ("generating", "completed", "failed"),
    "completed": (),
    "failed": (),
}


def _append_log(video: Video, message: str, level: str = "info") -> None:
    # Reassign so SQLAlchemy sees the JSON column change
    video.processing_logs = [
        *(video.processing_logs or []),
        {"timestamp": utcnow().isoformat(), "message": message, "level": level},
    ]


def get_owned_video(db: Session, video_id: str, user_id: Optional[str] = None) -> Video:
    """Load a video, enforcing ownership when a user id is given."""
    video = db.query(Video).filter(Video.id == video_id).first()
    if video is None:
        raise VideoNotFound("Video not found")
    if user_id is not None and video.user_id != user_id:
        raise Unauthorized("Unauthorized")
    return video


def create_video_record(
    db: Session,
    user_id: str,
    title: str,
    prompt: str,
    aspect_ratio: str = "16:9",
    duration: int = 5,
    negative_prompt: Optional[str] = None,
    cfg_scale: float = 0.5,
) -> Video:
    """
    Re-check the rate limit and insert a ``generating`` video in one transaction.

    The user's ledger row is locked first so concurrent creations for the
    same user serialize on it.
    """
    try:
        credit_service.get_credit_record(db, user_id, for_update=True)
        rate_limit_service.enforce_rate_limit(db, user_id)

        video = Video(
            user_id=user_id,
            title=title,
            prompt=prompt,
            status="generating",
            created_at=utcnow(),
            retry_count=0,
            processing_logs=[],
            aspect_ratio=aspect_ratio,
            duration=duration,
            negative_prompt=negative_prompt,
            cfg_scale=cfg_scale,
        )
        _append_log(video, "Video generation requested")
        db.add(video)
        db.flush()

        session_service.add_active_video(db, user_id, video.id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(video)
    logger.info(f"[VIDEO:{video.id}] Created for user {user_id}")
    return video


def update_status(
    db: Session,
    video_id: str,
    status: str,
    error: Optional[str] = None,
    fal_status: Optional[str] = None,
    queue_position: Optional[int] = None,
    log_message: Optional[str] = None,
    user_id: Optional[str] = None,
    fal_request_id: Optional[str] = None,
) -> Video:
    """
    Apply a status update and log it.

    Only ``generating`` videos can change status here; use ``retry`` to
    bring a failed video back.
    """
    if status not in STATUSES:
        raise ValidationError(f"Invalid status: {status}")

    video = get_owned_video(db, video_id, user_id)
    if status not in TRANSITIONS.get(video.status, ()):
        raise InvalidState(f"Cannot change a {video.status} video to {status}")
    if status == "completed" and not video.storage_id:
        raise InvalidState("A video can only complete once its file is stored")

    video.status = status
    if status in TERMINAL_STATUSES and video.completed_at is None:
        video.completed_at = utcnow()
    if error:
        video.error = error
    if fal_status is not None:
        video.fal_status = fal_status
    if queue_position is not None:
        video.queue_position = queue_position
    if fal_request_id is not None:
        video.fal_request_id = fal_request_id

    level = "error" if status == "failed" else "info"
    _append_log(video, log_message or f"Status changed to {status}", level)

    if status in TERMINAL_STATUSES:
        session_service.remove_active_video(db, video.user_id, video.id)

    db.commit()
    db.refresh(video)
    return video


def add_log(db: Session, video_id: str, message: str, level: str = "info") -> None:
    """Append a processing log entry without changing status."""
    video = get_owned_video(db, video_id)
    _append_log(video, message, level)
    db.commit()


def update_with_storage(
    db: Session,
    video_id: str,
    storage_id: str,
    metadata: Optional[Dict[str, Any]] = None,
    credits_used: Optional[int] = None,
) -> Video:
    """Mark a video completed with its stored file. The caller commits."""
    video = get_owned_video(db, video_id)

    video.storage_id = storage_id
    video.status = "completed"
    if video.completed_at is None:
        video.completed_at = utcnow()
    video.video_metadata = metadata
    if credits_used is not None:
        video.credits_used = credits_used
    video.queue_position = None
    _append_log(video, "Video generation completed")

    session_service.remove_active_video(db, video.user_id, video.id)
    return video


def retry(db: Session, user_id: str, video_id: str) -> Video:
    """
    Reset a failed video to ``generating``.

    Does not call the generation API; the caller re-submits the work.
    """
    video = get_owned_video(db, video_id, user_id)

    if video.status != "failed":
        raise InvalidState("Only failed videos can be retried")

    if (video.retry_count or 0) >= settings.max_retries:
        raise RetryLimitExceeded(
            f"Maximum retry attempts ({settings.max_retries}) reached"
        )

    video.retry_count = (video.retry_count or 0) + 1
    video.status = "generating"
    video.error = None
    video.fal_status = None
    video.queue_position = None
    _append_log(video, f"Retry attempt {video.retry_count} of {settings.max_retries}")

    session_service.add_active_video(db, user_id, video.id)
    db.commit()
    db.refresh(video)

    logger.info(f"[VIDEO:{video.id}] Retry {video.retry_count} requested")
    return video


def list_user_videos(
    db: Session, user_id: str, limit: int = 50, status: Optional[str] = None
) -> List[Video]:
    """Newest videos first, optionally filtered by status."""
    query = db.query(Video).filter(Video.user_id == user_id)
    if status is not None:
        if status not in STATUSES:
            raise ValidationError(f"Invalid status: {status}")
        query = query.filter(Video.status == status)
    return query.order_by(Video.created_at.desc()).limit(limit).all()


def get_video_stats(db: Session, user_id: str) -> Dict[str, int]:
    videos = db.query(Video.status).filter(Video.user_id == user_id).all()
    statuses = [row.status for row in videos]
    return {
        "total": len(statuses),
        "generating": statuses.count("generating"),
        "completed": statuses.count("completed"),
        "failed": statuses.count("failed"),
    }


def get_generating_videos_status(db: Session, user_id: str) -> List[Dict[str, Any]]:
    """Progress snapshot of every in-flight video, for polling clients."""
    videos = (
        db.query(Video)
        .filter(Video.user_id == user_id, Video.status == "generating")
        .order_by(Video.created_at.desc())
        .all()
    )
    return [
        {
            "id": video.id,
            "title": video.title,
            "status": video.status,
            "fal_status": video.fal_status,
            "queue_position": video.queue_position,
            "created_at": video.created_at,
            "latest_log": (video.processing_logs or [None])[-1],
        }
        for video in videos
    ]
