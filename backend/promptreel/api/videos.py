"""Video API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session
from typing import Optional, List
import os
import logging

from ..database import get_db
from ..models import Video
from ..schemas import (
    GenerateVideoRequest,
    GenerateVideoResponse,
    VideoResponse,
    VideoStatusUpdate,
    VideoStatsResponse,
    GeneratingVideoStatus,
    RateLimitResponse,
)
from ..exceptions import StorageError
from ..services import rate_limit_service, url_cache_service, video_service
from ..services.auth_service import get_current_user_id
from ..services.generation_service import prepare_generation
from ..services.storage_service import StorageService, get_storage_service
from ..tasks.celery_tasks import generate_video_task
from ..utils.helpers import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


def build_video_response(db: Session, video: Video, storage: StorageService) -> dict:
    """Video fields plus a playback URL (cached or freshly derived) when completed."""
    url_info = {"url": None, "cached": False}
    if video.status == "completed":
        url_info = url_cache_service.get_url(db, video, storage)

    return {
        "id": video.id,
        "title": video.title,
        "prompt": video.prompt,
        "status": video.status,
        "created_at": video.created_at,
        "completed_at": video.completed_at,
        "error": video.error,
        "fal_request_id": video.fal_request_id,
        "fal_status": video.fal_status,
        "queue_position": video.queue_position,
        "retry_count": video.retry_count or 0,
        "processing_logs": video.processing_logs or [],
        "metadata": video.video_metadata,
        "aspect_ratio": video.aspect_ratio,
        "duration": video.duration,
        "credits_used": video.credits_used,
        "url": url_info["url"],
        "url_cached": url_info["cached"],
        "needs_refresh": url_cache_service.needs_refresh(video),
    }


def enqueue_generation(video_id: str) -> str:
    task = generate_video_task.delay(video_id)
    logger.info(f"[VIDEO:{video_id}] Generation queued with task ID: {task.id}")
    return task.id


@router.post("/generate", response_model=GenerateVideoResponse)
async def generate_video(
    request: GenerateVideoRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Start generating a video from a text prompt.

    Validation, credit and rate-limit failures come back as
    ``{"success": false, "error": ...}``; on success the video exists in the
    ``generating`` state and a worker drives it to completion.
    """
    result = prepare_generation(
        db,
        user_id=user_id,
        title=request.title,
        prompt=request.prompt,
        aspect_ratio=request.aspect_ratio,
        duration=request.duration,
        negative_prompt=request.negative_prompt,
        cfg_scale=request.cfg_scale,
    )
    if not result.success:
        return GenerateVideoResponse(**result.to_dict())

    job_id = enqueue_generation(result.video_id)
    return GenerateVideoResponse(**result.to_dict(), job_id=job_id)


@router.get("/rate-limit", response_model=RateLimitResponse)
async def check_rate_limit(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Check whether the user may start another generation."""
    return rate_limit_service.check_rate_limit(db, user_id)


@router.get("", response_model=List[VideoResponse])
async def list_videos(
    limit: int = Query(50, ge=1, le=200),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    storage: StorageService = Depends(get_storage_service),
):
    """List the user's videos, newest first."""
    videos = video_service.list_user_videos(db, user_id, limit=limit, status=status)
    return [build_video_response(db, video, storage) for video in videos]


@router.get("/stats", response_model=VideoStatsResponse)
async def get_video_stats(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Count the user's videos by status."""
    return video_service.get_video_stats(db, user_id)


@router.get("/generating", response_model=List[GeneratingVideoStatus])
async def get_generating_videos(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Progress of the user's in-flight videos, for polling."""
    return video_service.get_generating_videos_status(db, user_id)


@router.get("/files/{storage_id}")
async def get_video_file(
    storage_id: str,
    storage: StorageService = Depends(get_storage_service),
):
    """Serve a locally stored video (local storage mode only)."""
    if storage.use_r2:
        raise HTTPException(status_code=404, detail="File not found")

    try:
        file_path = storage.local_file_path(storage_id)
    except StorageError:
        raise HTTPException(status_code=404, detail="File not found")

    if not os.path.exists(file_path):
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(file_path, filename=storage_id)


@router.get("/{video_id}", response_model=VideoResponse)
async def get_video(
    video_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    storage: StorageService = Depends(get_storage_service),
):
    """Get one of the user's videos."""
    video = video_service.get_owned_video(db, video_id, user_id)
    return build_video_response(db, video, storage)


@router.patch("/{video_id}/status", response_model=VideoResponse)
async def update_video_status(
    video_id: str,
    update: VideoStatusUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    storage: StorageService = Depends(get_storage_service),
):
    """Manually update a video's status."""
    video = video_service.update_status(
        db,
        video_id,
        update.status,
        error=update.error,
        fal_status=update.fal_status,
        queue_position=update.queue_position,
        log_message=update.log_message,
        user_id=user_id,
    )
    return build_video_response(db, video, storage)


@router.post("/{video_id}/refresh-url", response_model=VideoResponse)
async def refresh_video_url(
    video_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    storage: StorageService = Depends(get_storage_service),
):
    """Issue a new playback URL for a completed video."""
    video = video_service.get_owned_video(db, video_id, user_id)
    if not video.storage_id:
        raise HTTPException(status_code=400, detail="Video has no stored file yet")

    url = url_cache_service.refresh(db, video, storage)
    response = build_video_response(db, video, storage)
    response["url"] = url
    response["url_cached"] = False
    response["refreshed_at"] = utcnow()
    return response


@router.post("/{video_id}/retry", response_model=GenerateVideoResponse)
async def retry_video(
    video_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Reset a failed video to ``generating`` and queue it again."""
    video = video_service.retry(db, user_id, video_id)
    job_id = enqueue_generation(video.id)
    return GenerateVideoResponse(success=True, video_id=video.id, job_id=job_id)
