"""
Tests for per-user generation limits.
"""

import pytest
from datetime import timedelta
from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError

from promptreel.exceptions import DailyLimitExceeded, RateLimitExceeded
from promptreel.services import rate_limit_service
from promptreel.utils.helpers import utcnow


def test_empty_history_allows_creation(db):
    result = rate_limit_service.check_rate_limit(db, "user-1")

    assert result["can_create_video"] is True
    assert result["generating_count"] == 0
    assert result["daily_count"] == 0
    assert result["max_generating"] == 5
    assert result["max_daily"] == 20
    assert result["time_until_reset"] == 0
    assert result["recent_videos"] == []


def test_five_generating_blocks_creation(db, make_video):
    for _ in range(5):
        make_video(status="generating")

    result = rate_limit_service.check_rate_limit(db, "user-1")

    assert result["can_create_video"] is False
    assert result["generating_count"] == 5

    with pytest.raises(RateLimitExceeded):
        rate_limit_service.enforce_rate_limit(db, "user-1")


def test_daily_limit_counts_every_status(db, make_video):
    for _ in range(20):
        make_video(status="completed")

    result = rate_limit_service.check_rate_limit(db, "user-1")

    assert result["can_create_video"] is False
    assert result["generating_count"] == 0
    assert result["daily_count"] == 20

    with pytest.raises(DailyLimitExceeded):
        rate_limit_service.enforce_rate_limit(db, "user-1")


def test_videos_outside_window_are_ignored(db, make_video):
    now = utcnow()
    for _ in range(20):
        make_video(status="failed", created_at=now - timedelta(hours=25))

    result = rate_limit_service.check_rate_limit(db, "user-1", now=now)

    assert result["can_create_video"] is True
    assert result["daily_count"] == 0


def test_other_users_do_not_count(db, make_video):
    for _ in range(5):
        make_video(user_id="someone-else", status="generating")

    assert rate_limit_service.check_rate_limit(db, "user-1")["can_create_video"] is True


def test_time_until_reset_tracks_oldest_video(db, make_video):
    now = utcnow()
    make_video(created_at=now - timedelta(hours=20))
    make_video(created_at=now - timedelta(hours=1))

    result = rate_limit_service.check_rate_limit(db, "user-1", now=now)

    assert result["time_until_reset"] == 4 * 3600
    assert len(result["recent_videos"]) == 2


def test_database_error_fails_closed():
    db = MagicMock()
    db.query.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

    result = rate_limit_service.check_rate_limit(db, "user-1")

    assert result["can_create_video"] is False
    assert "error" in result
    db.rollback.assert_called_once()
