"""User session tracking: in-flight videos and UI preferences."""

from typing import Dict, Any, Optional
from sqlalchemy.orm import Session
import logging

from ..exceptions import ValidationError
from ..models import UserSession
from ..utils.helpers import utcnow

logger = logging.getLogger(__name__)

DEFAULT_PREFERENCES = {
    "auto_refresh_interval": 30,
    "notifications_enabled": True,
    "default_aspect_ratio": "16:9",
    "default_duration": 5,
}


def _get(db: Session, user_id: str) -> Optional[UserSession]:
    return db.query(UserSession).filter(UserSession.user_id == user_id).first()


def _get_or_create(db: Session, user_id: str) -> UserSession:
    session = _get(db, user_id)
    if session is None:
        session = UserSession(
            user_id=user_id,
            last_activity=utcnow(),
            active_videos=[],
            preferences=dict(DEFAULT_PREFERENCES),
        )
        db.add(session)
    return session


def get_session(db: Session, user_id: str) -> Dict[str, Any]:
    """Return the user's session, or unsaved defaults if none exists yet."""
    session = _get(db, user_id)
    if session is None:
        return {
            "user_id": user_id,
            "last_activity": None,
            "active_videos": [],
            "preferences": dict(DEFAULT_PREFERENCES),
        }
    return {
        "user_id": session.user_id,
        "last_activity": session.last_activity,
        "active_videos": list(session.active_videos or []),
        "preferences": {**DEFAULT_PREFERENCES, **(session.preferences or {})},
    }


def update_preferences(db: Session, user_id: str, preferences: Dict[str, Any]) -> Dict[str, Any]:
    """Merge new preference values into the stored ones."""
    unknown = set(preferences) - set(DEFAULT_PREFERENCES)
    if unknown:
        raise ValidationError(f"Unknown preferences: {', '.join(sorted(unknown))}")

    session = _get_or_create(db, user_id)
    session.preferences = {**(session.preferences or {}), **preferences}
    session.last_activity = utcnow()
    db.commit()

    logger.info(f"Updated preferences for user {user_id}")
    return get_session(db, user_id)


def add_active_video(db: Session, user_id: str, video_id: str) -> None:
    """Track a video as in flight. The caller commits."""
    session = _get_or_create(db, user_id)
    active = list(session.active_videos or [])
    if video_id not in active:
        active.append(video_id)
    session.active_videos = active
    session.last_activity = utcnow()


def remove_active_video(db: Session, user_id: str, video_id: str) -> None:
    """Stop tracking a video. The caller commits."""
    session = _get(db, user_id)
    if session is None:
        return
    session.active_videos = [v for v in (session.active_videos or []) if v != video_id]
