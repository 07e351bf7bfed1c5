"""
Tests for user sessions and preferences.
"""

import pytest

from promptreel.exceptions import ValidationError
from promptreel.models import UserSession
from promptreel.services import session_service


def test_missing_session_returns_defaults(db):
    result = session_service.get_session(db, "user-1")

    assert result["active_videos"] == []
    assert result["preferences"] == session_service.DEFAULT_PREFERENCES
    assert db.query(UserSession).count() == 0


def test_update_preferences_merges(db):
    session_service.update_preferences(db, "user-1", {"auto_refresh_interval": 60})
    result = session_service.update_preferences(db, "user-1", {"default_duration": 10})

    assert result["preferences"]["auto_refresh_interval"] == 60
    assert result["preferences"]["default_duration"] == 10
    assert result["preferences"]["notifications_enabled"] is True
    assert result["last_activity"] is not None
    assert db.query(UserSession).count() == 1


def test_unknown_preference_is_rejected(db):
    with pytest.raises(ValidationError):
        session_service.update_preferences(db, "user-1", {"theme": "dark"})


def test_active_videos_tracking(db):
    session_service.add_active_video(db, "user-1", "video-1")
    session_service.add_active_video(db, "user-1", "video-1")
    session_service.add_active_video(db, "user-1", "video-2")
    db.commit()

    assert session_service.get_session(db, "user-1")["active_videos"] == ["video-1", "video-2"]

    session_service.remove_active_video(db, "user-1", "video-1")
    db.commit()

    assert session_service.get_session(db, "user-1")["active_videos"] == ["video-2"]
