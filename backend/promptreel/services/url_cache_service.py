"""Cache of signed playback URLs for completed videos.

The cache is an optimization only: a URL can always be re-derived from the
video's ``storage_id``. Reads never write; rows are created when a video
completes or on an explicit refresh, and expired rows are invalidated by
``sweep_expired``.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict
from sqlalchemy.orm import Session
import logging

from ..config import settings
from ..models import CachedVideoUrl, Video
from ..utils.helpers import utcnow
from .storage_service import StorageService

logger = logging.getLogger(__name__)


def _ttl() -> timedelta:
    return timedelta(hours=settings.url_cache_ttl_hours)


def get_cached_url(
    db: Session, video_id: str, now: Optional[datetime] = None
) -> Optional[CachedVideoUrl]:
    """Newest valid, unexpired cache row for a video."""
    now = now or utcnow()
    return (
        db.query(CachedVideoUrl)
        .filter(
            CachedVideoUrl.video_id == video_id,
            CachedVideoUrl.is_valid.is_(True),
            CachedVideoUrl.expires_at > now,
        )
        .order_by(CachedVideoUrl.generated_at.desc())
        .first()
    )


def get_url(
    db: Session, video: Video, storage: StorageService, now: Optional[datetime] = None
) -> Dict[str, Optional[object]]:
    """
    Resolve a playback URL without side effects.

    Returns:
        ``{"url": str | None, "cached": bool}``
    """
    cached = get_cached_url(db, video.id, now)
    if cached is not None:
        return {"url": cached.url, "cached": True}

    if not video.storage_id:
        return {"url": None, "cached": False}

    return {"url": storage.get_url(video.storage_id, expires_in=int(_ttl().total_seconds())), "cached": False}


def cache_url(
    db: Session, video: Video, storage: StorageService, now: Optional[datetime] = None
) -> Optional[str]:
    """Derive a fresh URL, replace any previous cache rows with it. The caller commits."""
    if not video.storage_id:
        return None

    now = now or utcnow()
    url = storage.get_url(video.storage_id, expires_in=int(_ttl().total_seconds()))
    if url is None:
        logger.warning(f"[VIDEO:{video.id}] Storage returned no URL for {video.storage_id}")
        return None

    db.query(CachedVideoUrl).filter(
        CachedVideoUrl.video_id == video.id, CachedVideoUrl.is_valid.is_(True)
    ).update({CachedVideoUrl.is_valid: False}, synchronize_session=False)

    db.add(
        CachedVideoUrl(
            video_id=video.id,
            url=url,
            generated_at=now,
            expires_at=now + _ttl(),
            is_valid=True,
        )
    )
    return url


def refresh(db: Session, video: Video, storage: StorageService) -> Optional[str]:
    """Always derive a new URL and cache it."""
    url = cache_url(db, video, storage)
    db.commit()
    logger.info(f"[VIDEO:{video.id}] URL refreshed")
    return url


def needs_refresh(video: Video, now: Optional[datetime] = None) -> bool:
    """True once a completed video's URL is close to its hard expiry."""
    if video.status != "completed" or video.completed_at is None:
        return False
    now = now or utcnow()
    return now - video.completed_at > timedelta(hours=settings.url_refresh_after_hours)


def sweep_expired(db: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """Mark every expired cache row invalid."""
    now = now or utcnow()
    cleaned = (
        db.query(CachedVideoUrl)
        .filter(CachedVideoUrl.is_valid.is_(True), CachedVideoUrl.expires_at < now)
        .update({CachedVideoUrl.is_valid: False}, synchronize_session=False)
    )
    db.commit()

    logger.info(f"Invalidated {cleaned} expired video URLs")
    return {"cleaned": cleaned}
