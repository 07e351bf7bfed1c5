"""Pydantic schemas for request/response validation."""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime


# =====================
# Authentication Schemas
# =====================


class TokenData(BaseModel):
    """Token payload data."""

    user_id: str


# =====================
# Video Schemas
# =====================


class GenerateVideoRequest(BaseModel):
    """Request schema for starting a generation.

    Values are checked by the generation service so that invalid input comes
    back as an unsuccessful result rather than a 422.
    """

    title: Optional[str] = Field(default=None, max_length=200)
    prompt: str
    aspect_ratio: Optional[str] = None
    duration: Optional[int] = None
    negative_prompt: Optional[str] = Field(default=None, max_length=1000)
    cfg_scale: Optional[float] = None


class GenerateVideoResponse(BaseModel):
    """Response schema for a generation request."""

    success: bool
    video_id: Optional[str] = None
    error: Optional[str] = None
    request_id: Optional[str] = None
    job_id: Optional[str] = None


class ProcessingLog(BaseModel):
    timestamp: datetime
    message: str
    level: Literal["info", "warning", "error"]


class VideoMetadata(BaseModel):
    file_size: Optional[int] = None
    duration: Optional[int] = None
    resolution: Optional[str] = None
    model: Optional[str] = None
    aspect_ratio: Optional[str] = None


class VideoResponse(BaseModel):
    """Response schema for a video, with its playback URL when completed."""

    id: str
    title: str
    prompt: str
    status: str
    created_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    fal_request_id: Optional[str] = None
    fal_status: Optional[str] = None
    queue_position: Optional[int] = None
    retry_count: int = 0
    processing_logs: List[ProcessingLog] = []
    metadata: Optional[VideoMetadata] = None
    aspect_ratio: str
    duration: int
    credits_used: Optional[int] = None
    url: Optional[str] = None
    url_cached: bool = False
    needs_refresh: bool = False
    refreshed_at: Optional[datetime] = None


class VideoStatusUpdate(BaseModel):
    """Request schema for a manual status update."""

    status: Literal["generating", "completed", "failed"]
    error: Optional[str] = None
    fal_status: Optional[str] = None
    queue_position: Optional[int] = None
    log_message: Optional[str] = None


class VideoStatsResponse(BaseModel):
    total: int
    generating: int
    completed: int
    failed: int


class GeneratingVideoStatus(BaseModel):
    id: str
    title: str
    status: str
    fal_status: Optional[str] = None
    queue_position: Optional[int] = None
    created_at: datetime
    latest_log: Optional[ProcessingLog] = None


class RecentVideo(BaseModel):
    id: str
    status: str
    created_at: datetime


class RateLimitResponse(BaseModel):
    """Response schema for the rate limit check."""

    can_create_video: bool
    generating_count: int
    max_generating: int
    daily_count: int
    max_daily: int
    time_until_reset: int
    recent_videos: List[RecentVideo] = []
    error: Optional[str] = None


# =====================
# Session Schemas
# =====================


class UserPreferences(BaseModel):
    auto_refresh_interval: Optional[int] = Field(default=None, ge=5, le=3600)
    notifications_enabled: Optional[bool] = None
    default_aspect_ratio: Optional[Literal["16:9", "9:16", "1:1"]] = None
    default_duration: Optional[Literal[5, 10]] = None


class UserSessionResponse(BaseModel):
    user_id: str
    last_activity: Optional[datetime] = None
    active_videos: List[str]
    preferences: UserPreferences


# =====================
# Credit Schemas
# =====================


class CreditBalanceResponse(BaseModel):
    user_id: str
    credits: int
    total_credits_ever: int
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    subscription_status: Optional[str] = None
    last_updated: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CreditCheckResponse(BaseModel):
    has_enough_credits: bool
    current_credits: int
    credits_needed: int
    shortfall: int


class ConsumeCreditsRequest(BaseModel):
    amount: int = Field(gt=0)
    description: str = Field(min_length=1, max_length=500)
    related_video_id: Optional[str] = None


class ConsumeCreditsResponse(BaseModel):
    new_balance: int
    consumed: int


class AddCreditsRequest(BaseModel):
    user_id: str
    amount: int = Field(gt=0)
    description: str = Field(min_length=1, max_length=500)
    type: Literal["purchase", "bonus", "refund"]
    related_plan_id: Optional[str] = None


class AddCreditsResponse(BaseModel):
    new_balance: int
    added: int
    total_ever: int


class UpdatePlanRequest(BaseModel):
    user_id: str
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    subscription_status: Optional[Literal["active", "inactive", "cancelled", "past_due"]] = None


class CreditTransactionResponse(BaseModel):
    id: str
    type: str
    amount: int
    description: str
    related_video_id: Optional[str] = None
    related_plan_id: Optional[str] = None
    balance_after: int
    created_at: datetime

    class Config:
        from_attributes = True


# =====================
# Billing Schemas
# =====================


class PlanResponse(BaseModel):
    id: str
    name: str
    credits: int
    monthly_price: int
    description: str


class DashboardAccessResponse(BaseModel):
    has_access: bool
    is_active_subscriber: bool
    has_credits: bool
    credits: int
    plan_name: str
    reason: str


class CancelSubscriptionResponse(BaseModel):
    success: bool
    message: str


class CreateCheckoutRequest(BaseModel):
    """Request body for creating a checkout session."""

    product: Literal["pro", "credit_pack"] = "pro"
    success_url: str
    cancel_url: str


class CheckoutSessionResponse(BaseModel):
    """Response containing the Stripe checkout session URL."""

    url: str
    session_id: str


class ErrorResponse(BaseModel):
    """Response schema for errors."""

    error: str
    detail: Optional[str] = None
