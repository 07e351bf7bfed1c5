"""SQLAlchemy database models."""

from sqlalchemy import (
    Boolean,
    Column,
    String,
    Integer,
    Float,
    DateTime,
    ForeignKey,
    JSON,
    Text,
    Index,
)
from sqlalchemy.orm import relationship
import uuid

from .database import Base
from .utils.helpers import utcnow


class UserCredit(Base):
    """Per-user credit balance and subscription plan."""

    __tablename__ = "user_credits"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, unique=True, nullable=False, index=True)
    credits = Column(Integer, nullable=False, default=0)
    total_credits_ever = Column(Integer, nullable=False, default=0)
    plan_id = Column(String, nullable=True)
    plan_name = Column(String, nullable=True)
    subscription_status = Column(String, nullable=True)  # active, inactive, cancelled, past_due
    stripe_customer_id = Column(String, nullable=True)
    stripe_subscription_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_updated = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class CreditTransaction(Base):
    """Append-only credit ledger entry."""

    __tablename__ = "credit_transactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False)  # purchase, consumption, refund, bonus
    amount = Column(Integer, nullable=False)  # negative for consumption
    description = Column(Text, nullable=False)
    related_video_id = Column(String, nullable=True)
    related_plan_id = Column(String, nullable=True)
    balance_after = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class Video(Base):
    """A single text-to-video generation request."""

    __tablename__ = "videos"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    prompt = Column(Text, nullable=False)
    status = Column(String, nullable=False, default="generating")  # generating, completed, failed
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    completed_at = Column(DateTime, nullable=True)
    storage_id = Column(String, nullable=True)
    error = Column(Text, nullable=True)
    fal_request_id = Column(String, nullable=True)
    fal_status = Column(String, nullable=True)
    queue_position = Column(Integer, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    processing_logs = Column(JSON, nullable=False, default=list)
    video_metadata = Column("metadata", JSON, nullable=True)

    # Generation parameters
    aspect_ratio = Column(String, nullable=False, default="16:9")
    duration = Column(Integer, nullable=False, default=5)
    negative_prompt = Column(Text, nullable=True)
    cfg_scale = Column(Float, nullable=False, default=0.5)
    credits_used = Column(Integer, nullable=True)

    # Relationships
    cached_urls = relationship(
        "CachedVideoUrl", back_populates="video", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_videos_user_id_status", "user_id", "status"),
        Index("ix_videos_user_id_created_at", "user_id", "created_at"),
    )


class CachedVideoUrl(Base):
    """Short-lived signed URL for a completed video."""

    __tablename__ = "cached_video_urls"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    video_id = Column(
        String, ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url = Column(Text, nullable=False)
    generated_at = Column(DateTime, default=utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    is_valid = Column(Boolean, nullable=False, default=True)

    video = relationship("Video", back_populates="cached_urls")


class UserSession(Base):
    """Per-user activity tracking and UI preferences."""

    __tablename__ = "user_sessions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, unique=True, nullable=False, index=True)
    last_activity = Column(DateTime, default=utcnow, nullable=False)
    active_videos = Column(JSON, nullable=False, default=list)
    preferences = Column(JSON, nullable=True)
