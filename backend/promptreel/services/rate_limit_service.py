"""Per-user generation limits over a rolling 24-hour window."""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from ..config import settings
from ..exceptions import RateLimitExceeded, DailyLimitExceeded
from ..models import Video
from ..utils.helpers import utcnow

logger = logging.getLogger(__name__)

WINDOW = timedelta(hours=24)


def _recent_videos(db: Session, user_id: str, now: datetime) -> List[Video]:
    return (
        db.query(Video)
        .filter(Video.user_id == user_id, Video.created_at >= now - WINDOW)
        .order_by(Video.created_at.asc())
        .all()
    )


def _window_counts(videos: List[Video]) -> Dict[str, int]:
    return {
        "generating_count": sum(1 for v in videos if v.status == "generating"),
        "daily_count": len(videos),
    }


def check_rate_limit(
    db: Session, user_id: str, now: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Report whether a user may start another generation.

    Fails closed: if the scan itself errors, ``can_create_video`` is False.
    """
    now = now or utcnow()
    max_generating = settings.max_generating_videos
    max_daily = settings.max_daily_videos

    try:
        videos = _recent_videos(db, user_id, now)
    except SQLAlchemyError as e:
        logger.error(f"Rate limit check failed for user {user_id}: {e}", exc_info=True)
        db.rollback()
        return {
            "can_create_video": False,
            "generating_count": 0,
            "max_generating": max_generating,
            "daily_count": 0,
            "max_daily": max_daily,
            "time_until_reset": 0,
            "recent_videos": [],
            "error": "Unable to verify rate limit, please try again later",
        }

    counts = _window_counts(videos)

    # Seconds until the oldest in-window video ages out
    time_until_reset = 0
    if videos:
        remaining = videos[0].created_at + WINDOW - now
        time_until_reset = max(0, int(remaining.total_seconds()))

    return {
        "can_create_video": counts["generating_count"] < max_generating
        and counts["daily_count"] < max_daily,
        "generating_count": counts["generating_count"],
        "max_generating": max_generating,
        "daily_count": counts["daily_count"],
        "max_daily": max_daily,
        "time_until_reset": time_until_reset,
        "recent_videos": [
            {"id": v.id, "status": v.status, "created_at": v.created_at}
            for v in videos
        ],
    }


def enforce_rate_limit(db: Session, user_id: str, now: Optional[datetime] = None) -> None:
    """
    Re-validate the window inside the caller's insert transaction.

    Raises:
        RateLimitExceeded: too many videos generating at once
        DailyLimitExceeded: too many videos in the last 24 hours
    """
    counts = _window_counts(_recent_videos(db, user_id, now or utcnow()))

    if counts["generating_count"] >= settings.max_generating_videos:
        raise RateLimitExceeded(
            f"Rate limit exceeded: You can only have {settings.max_generating_videos} videos generating at once"
        )

    if counts["daily_count"] >= settings.max_daily_videos:
        raise DailyLimitExceeded(
            f"Daily limit exceeded: You can only create {settings.max_daily_videos} videos per day"
        )
