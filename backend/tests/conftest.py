"""Test configuration and fixtures."""

import os
import tempfile

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/1"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["STORAGE_PATH"] = tempfile.mkdtemp(prefix="promptreel-test-")
os.environ["JWT_SECRET"] = "test-secret"
os.environ["ADMIN_API_KEY"] = "test-admin-key"
os.environ["FAL_KEY"] = "test-fal-key"
os.environ["DEBUG"] = "true"

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from promptreel.database import Base, get_db
from promptreel import models
from promptreel.services.auth_service import create_access_token
from promptreel.services.storage_service import StorageService, get_storage_service


# Test database
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def storage(tmp_path):
    """Local-disk storage in a temporary directory."""
    return StorageService(
        local_path=str(tmp_path / "videos"),
        local_url_base="http://testserver/api/videos/files",
    )


@pytest.fixture
def make_user(db):
    """Create a ledger row with a given balance, without transactions."""

    def _make_user(user_id="user-1", credits=1, **fields):
        values = {"plan_name": "Free Trial"}
        values.update(fields)
        record = models.UserCredit(
            user_id=user_id,
            credits=credits,
            total_credits_ever=credits,
            **values,
        )
        db.add(record)
        db.commit()
        return record

    return _make_user


@pytest.fixture
def make_video(db):
    """Insert a video row directly."""

    def _make_video(user_id="user-1", **fields):
        values = {
            "title": "A test video",
            "prompt": "A cat surfing a wave at sunset",
            "status": "generating",
            "processing_logs": [],
            "aspect_ratio": "16:9",
            "duration": 5,
            "cfg_scale": 0.5,
            "retry_count": 0,
        }
        values.update(fields)
        video = models.Video(user_id=user_id, **values)
        db.add(video)
        db.commit()
        return video

    return _make_video


def auth_headers(user_id="user-1"):
    """Bearer header for a user."""
    token = create_access_token({"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db, storage, monkeypatch):
    """Test client with the test database, local storage and no task queue."""
    from promptreel.main import app
    from promptreel.api import videos

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    task = MagicMock()
    task.delay.return_value = MagicMock(id="task-123")
    monkeypatch.setattr(videos, "generate_video_task", task)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_service] = lambda: storage

    test_client = TestClient(app)
    test_client.generate_task = task
    yield test_client

    app.dependency_overrides.clear()
