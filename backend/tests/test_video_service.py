"""
Tests for the video lifecycle.
"""

import pytest

from promptreel.exceptions import (
    InvalidState,
    RateLimitExceeded,
    RetryLimitExceeded,
    Unauthorized,
    ValidationError,
    VideoNotFound,
)
from promptreel.models import Video
from promptreel.services import session_service, video_service


class TestCreateVideoRecord:
    def test_creates_generating_video(self, db):
        video = video_service.create_video_record(
            db, "user-1", "Surf", "A cat surfing a wave at sunset", aspect_ratio="9:16"
        )

        assert video.status == "generating"
        assert video.retry_count == 0
        assert video.aspect_ratio == "9:16"
        assert video.processing_logs[0]["message"] == "Video generation requested"
        assert video.id in session_service.get_session(db, "user-1")["active_videos"]

    def test_rechecks_rate_limit(self, db, make_video):
        for _ in range(5):
            make_video()

        with pytest.raises(RateLimitExceeded):
            video_service.create_video_record(db, "user-1", "Sixth", "One video too many here")

        assert db.query(Video).count() == 5


class TestUpdateStatus:
    def test_failed_sets_completed_at_and_error(self, db, make_video):
        video = make_video()

        updated = video_service.update_status(db, video.id, "failed", error="Boom")

        assert updated.status == "failed"
        assert updated.error == "Boom"
        assert updated.completed_at is not None
        assert updated.processing_logs[-1]["level"] == "error"

    def test_completed_requires_storage_id(self, db, make_video):
        video = make_video()

        with pytest.raises(InvalidState):
            video_service.update_status(db, video.id, "completed")

    def test_queue_updates_are_logged(self, db, make_video):
        video = make_video()

        updated = video_service.update_status(
            db, video.id, "generating", fal_status="IN_QUEUE", queue_position=3,
            log_message="Queue status: IN_QUEUE (position: 3)",
        )

        assert updated.fal_status == "IN_QUEUE"
        assert updated.queue_position == 3
        assert updated.completed_at is None
        assert updated.processing_logs[-1]["message"] == "Queue status: IN_QUEUE (position: 3)"

    def test_invalid_status(self, db, make_video):
        video = make_video()

        with pytest.raises(ValidationError):
            video_service.update_status(db, video.id, "paused")

    def test_ownership_is_enforced(self, db, make_video):
        video = make_video(user_id="owner")

        with pytest.raises(Unauthorized):
            video_service.update_status(db, video.id, "failed", user_id="intruder")

    def test_missing_video(self, db):
        with pytest.raises(VideoNotFound):
            video_service.update_status(db, "nope", "failed")


class TestUpdateWithStorage:
    def test_completes_video(self, db, make_video):
        video = make_video()

        updated = video_service.update_with_storage(
            db, video.id, "abc.mp4", metadata={"file_size": 10}, credits_used=1
        )
        db.commit()

        assert updated.status == "completed"
        assert updated.storage_id == "abc.mp4"
        assert updated.completed_at is not None
        assert updated.video_metadata == {"file_size": 10}
        assert updated.credits_used == 1


class TestRetry:
    def test_retry_resets_failed_video(self, db, make_video):
        video = make_video(status="failed", error="Boom", fal_status="FAILED", retry_count=1)

        retried = video_service.retry(db, "user-1", video.id)

        assert retried.status == "generating"
        assert retried.retry_count == 2
        assert retried.error is None
        assert retried.fal_status is None
        assert retried.processing_logs[-1]["message"] == "Retry attempt 2 of 3"

    def test_retry_limit(self, db, make_video):
        video = make_video(status="failed", retry_count=3)

        with pytest.raises(RetryLimitExceeded):
            video_service.retry(db, "user-1", video.id)

        db.expire_all()
        assert db.get(Video, video.id).retry_count == 3

    def test_only_failed_videos_retry(self, db, make_video):
        video = make_video(status="generating")

        with pytest.raises(InvalidState):
            video_service.retry(db, "user-1", video.id)

    def test_retry_other_users_video(self, db, make_video):
        video = make_video(user_id="owner", status="failed")

        with pytest.raises(Unauthorized):
            video_service.retry(db, "intruder", video.id)


class TestTransitions:
    def test_completed_at_is_set_once_across_retry(self, db, make_video):
        video = make_video()
        first_completed_at = video_service.update_status(db, video.id, "failed", error="Boom").completed_at

        video_service.retry(db, "user-1", video.id)
        video_service.update_with_storage(db, video.id, "abc.mp4")
        db.commit()

        db.expire_all()
        completed = db.get(Video, video.id)
        assert completed.status == "completed"
        assert completed.completed_at == first_completed_at

    def test_completed_video_cannot_go_back_to_generating(self, db, make_video):
        video = make_video(status="completed", storage_id="abc.mp4")

        with pytest.raises(InvalidState):
            video_service.update_status(db, video.id, "generating")

        db.expire_all()
        assert db.get(Video, video.id).status == "completed"

    def test_failed_video_only_returns_through_retry(self, db, make_video):
        video = make_video(status="failed", retry_count=3)

        with pytest.raises(InvalidState):
            video_service.update_status(db, video.id, "generating")

        db.expire_all()
        assert db.get(Video, video.id).status == "failed"

    def test_terminal_status_is_final(self, db, make_video):
        video = make_video(status="failed")

        with pytest.raises(InvalidState):
            video_service.update_status(db, video.id, "failed", error="Again")


class TestQueries:
    def test_list_filters_by_status(self, db, make_video):
        make_video(status="completed", storage_id="a.mp4")
        make_video(status="failed")
        make_video(user_id="someone-else", status="failed")

        failed = video_service.list_user_videos(db, "user-1", status="failed")
        everything = video_service.list_user_videos(db, "user-1")

        assert len(failed) == 1
        assert len(everything) == 2

    def test_stats(self, db, make_video):
        make_video(status="generating")
        make_video(status="completed", storage_id="a.mp4")
        make_video(status="failed")
        make_video(status="failed")

        assert video_service.get_video_stats(db, "user-1") == {
            "total": 4,
            "generating": 1,
            "completed": 1,
            "failed": 2,
        }

    def test_generating_status_includes_latest_log(self, db, make_video):
        video = make_video()
        video_service.add_log(db, video.id, "First")
        video_service.add_log(db, video.id, "Second")
        make_video(status="failed")

        statuses = video_service.get_generating_videos_status(db, "user-1")

        assert len(statuses) == 1
        assert statuses[0]["id"] == video.id
        assert statuses[0]["latest_log"]["message"] == "Second"
