"""Text-to-video generation pipeline.

``prepare_generation`` validates the request, checks credits and creates the
video row; ``VideoGenerator.run`` drives the external model, stores the result
and bills the user. The API prepares inline and hands ``run`` to a Celery
worker; ``start_generation`` does both in-process.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import httpx
import logging

from ..config import settings
from ..exceptions import (
    PromptReelError,
    ExternalApiError,
    StorageError,
    RateLimitExceeded,
)
from ..models import Video
from ..utils.helpers import default_title, format_file_size, resolution_for_aspect_ratio
from . import credit_service, url_cache_service, video_service
from .fal_service import FalVideoClient, KlingInput, QueueUpdate
from .storage_service import StorageService

logger = logging.getLogger(__name__)

ASPECT_RATIOS = ("16:9", "9:16", "1:1")
DURATIONS = (5, 10)
DEFAULT_NEGATIVE_PROMPT = "blur, distort, and low quality"
MODEL_TAG = "kling-v2-master"


@dataclass
class GenerationResult:
    """Outcome of a generation request, returned instead of raising."""

    success: bool
    video_id: Optional[str] = None
    error: Optional[str] = None
    request_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "video_id": self.video_id,
            "error": self.error,
            "request_id": self.request_id,
        }


def validate_request(
    prompt: str,
    aspect_ratio: Optional[str] = None,
    duration: Optional[int] = None,
    cfg_scale: Optional[float] = None,
) -> Optional[str]:
    """Return an error message for invalid generation parameters, else None."""
    stripped = (prompt or "").strip()
    if not stripped:
        return "Prompt cannot be empty"
    if len(stripped) < settings.min_prompt_length:
        return f"Prompt must be at least {settings.min_prompt_length} characters long"
    if len(prompt) > settings.max_prompt_length:
        return f"Prompt too long. Maximum {settings.max_prompt_length} characters."

    cfg = 0.5 if cfg_scale is None else cfg_scale
    if cfg < 0 or cfg > 2:
        return "CFG scale must be between 0 and 2"

    if aspect_ratio is not None and aspect_ratio not in ASPECT_RATIOS:
        return f"Invalid aspect ratio. Allowed: {', '.join(ASPECT_RATIOS)}"

    if duration is not None and duration not in DURATIONS:
        return "Invalid duration. Allowed: 5 or 10 seconds"

    return None


def prepare_generation(
    db: Session,
    user_id: str,
    title: Optional[str],
    prompt: str,
    aspect_ratio: Optional[str] = None,
    duration: Optional[int] = None,
    negative_prompt: Optional[str] = None,
    cfg_scale: Optional[float] = None,
) -> GenerationResult:
    """Validate, check credits and create the ``generating`` video row."""
    error = validate_request(prompt, aspect_ratio, duration, cfg_scale)
    if error:
        logger.info(f"Rejected generation request for user {user_id}: {error}")
        return GenerationResult(success=False, error=error)

    availability = credit_service.check_available(
        db, user_id, settings.generation_credit_cost
    )
    if not availability["has_enough_credits"]:
        return GenerationResult(
            success=False,
            error=(
                f"Insufficient credits. Required: {availability['credits_needed']}, "
                f"available: {availability['current_credits']}"
            ),
        )

    try:
        video = video_service.create_video_record(
            db,
            user_id=user_id,
            title=(title or "").strip() or default_title(prompt),
            prompt=prompt,
            aspect_ratio=aspect_ratio or "16:9",
            duration=duration or 5,
            negative_prompt=negative_prompt or DEFAULT_NEGATIVE_PROMPT,
            cfg_scale=0.5 if cfg_scale is None else cfg_scale,
        )
    except RateLimitExceeded as e:
        return GenerationResult(success=False, error=e.message)

    return GenerationResult(success=True, video_id=video.id)


class VideoGenerator:
    """Runs the generation lifecycle against the fal model and blob storage."""

    def __init__(
        self,
        fal_client: FalVideoClient,
        storage: StorageService,
        http_client: Optional[httpx.Client] = None,
    ):
        """
        Initialize the generator.

        Args:
            fal_client: Client for the text-to-video model
            storage: Blob storage for finished videos
            http_client: Client used to download generated files
        """
        self.fal_client = fal_client
        self.storage = storage
        self.http_client = http_client or httpx.Client(
            timeout=settings.download_timeout, follow_redirects=True
        )

    def start_generation(
        self,
        db: Session,
        user_id: str,
        title: Optional[str],
        prompt: str,
        aspect_ratio: Optional[str] = None,
        duration: Optional[int] = None,
        negative_prompt: Optional[str] = None,
        cfg_scale: Optional[float] = None,
    ) -> GenerationResult:
        """Generate a video end to end in the calling process."""
        prepared = prepare_generation(
            db, user_id, title, prompt, aspect_ratio, duration, negative_prompt, cfg_scale
        )
        if not prepared.success:
            return prepared
        return self.run(db, prepared.video_id)

    def run(self, db: Session, video_id: str) -> GenerationResult:
        """
        Generate, download, store and bill one ``generating`` video.

        Every failure after this point is recorded on the video and returned
        as an unsuccessful result; nothing is raised to the caller.
        """
        video = video_service.get_owned_video(db, video_id)
        if video.status != "generating":
            logger.warning(f"[VIDEO:{video_id}] Skipping run, status is {video.status}")
            return GenerationResult(
                success=False, video_id=video_id, error=f"Video is {video.status}, not generating"
            )

        request_id: Optional[str] = None

        try:
            input = KlingInput(
                prompt=video.prompt,
                duration=str(video.duration),
                aspect_ratio=video.aspect_ratio,
                negative_prompt=video.negative_prompt or DEFAULT_NEGATIVE_PROMPT,
                cfg_scale=video.cfg_scale,
            )
            logger.info(
                f"[VIDEO:{video_id}] Starting generation: prompt_length={len(input.prompt)}, "
                f"duration={input.duration}, aspect_ratio={input.aspect_ratio}, cfg_scale={input.cfg_scale}"
            )

            try:
                fal_result = self.fal_client.subscribe(
                    input, on_queue_update=lambda update: self._on_queue_update(db, video_id, update)
                )
            except ExternalApiError as e:
                return self._fail(db, video_id, e.message, request_id=e.request_id)

            request_id = fal_result.request_id
            video_service.update_status(
                db,
                video_id,
                "generating",
                fal_status="COMPLETED",
                fal_request_id=request_id,
                log_message=f"Generation completed. Request ID: {request_id}",
            )

            video_file = fal_result.data.video
            logger.info(f"[VIDEO:{video_id}] Downloading video from: {video_file.url}")
            video_service.add_log(db, video_id, "Downloading generated video")

            try:
                data, content_type = self._download(video_file.url)
            except StorageError as e:
                return self._fail(db, video_id, e.message, request_id=request_id)

            video_service.add_log(db, video_id, f"Downloaded video: {format_file_size(len(data))}")

            storage_id = self.storage.store(data, content_type)
            logger.info(f"[VIDEO:{video_id}] Stored with ID: {storage_id}")

            credits_used = self._charge(db, video)

            video = video_service.update_with_storage(
                db,
                video_id,
                storage_id=storage_id,
                metadata={
                    "file_size": len(data),
                    "duration": video.duration,
                    "resolution": resolution_for_aspect_ratio(video.aspect_ratio),
                    "model": MODEL_TAG,
                    "aspect_ratio": video.aspect_ratio,
                },
                credits_used=credits_used,
            )
            # Completion and debit land in the same commit
            db.commit()
            self._cache_url(db, video)

            logger.info(f"[VIDEO:{video_id}] Successfully completed generation")
            return GenerationResult(success=True, video_id=video_id, request_id=request_id)

        except Exception as e:
            logger.error(f"[VIDEO:{video_id}] Error during generation: {e}", exc_info=True)
            db.rollback()
            message = e.message if isinstance(e, PromptReelError) else str(e) or type(e).__name__
            return self._fail(db, video_id, message, request_id=request_id)

    def _on_queue_update(self, db: Session, video_id: str, update: QueueUpdate) -> None:
        """Record queue progress; a failed write never interrupts generation."""
        try:
            message = f"Queue status: {update.status}"
            if update.queue_position is not None:
                message += f" (position: {update.queue_position})"
            video_service.update_status(
                db,
                video_id,
                "generating",
                fal_status=update.status,
                queue_position=update.queue_position,
                log_message=message,
            )
            if update.status == "IN_PROGRESS" and update.logs:
                for log in update.logs:
                    video_service.add_log(db, video_id, log.message)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(f"[VIDEO:{video_id}] Could not record queue update: {e}")

    def _download(self, url: str):
        """Fetch generated bytes. Raises StorageError on any HTTP failure."""
        try:
            response = self.http_client.get(url)
        except httpx.HTTPError as e:
            raise StorageError(f"Failed to download video: {e}")

        if not response.is_success:
            raise StorageError(
                f"Failed to download video: {response.status_code} {response.reason_phrase}"
            )

        content_type = response.headers.get("content-type") or "video/mp4"
        return response.content, content_type

    def _cache_url(self, db: Session, video: Video) -> None:
        """Warm the URL cache for a completed video. The video stays completed on failure."""
        try:
            url_cache_service.cache_url(db, video, self.storage)
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning(f"[VIDEO:{video.id}] Could not cache playback URL: {e}")

    def _charge(self, db: Session, video: Video) -> int:
        """
        Debit the generation once its file is stored. Billing errors never fail the video.

        The debit is left uncommitted; ``run`` commits it with the completion.
        """
        cost = settings.generation_credit_cost
        try:
            credit_service.consume(
                db,
                video.user_id,
                cost,
                description=f"Video generation: {video.title}",
                related_video_id=video.id,
                commit=False,
            )
            return cost
        except (PromptReelError, SQLAlchemyError) as e:
            db.rollback()
            logger.error(f"[VIDEO:{video.id}] Credit consumption failed: {e}")
            video_service.add_log(db, video.id, f"Credit consumption failed: {e}", "warning")
            return 0

    def _fail(
        self, db: Session, video_id: str, error: str, request_id: Optional[str] = None
    ) -> GenerationResult:
        logger.error(f"[VIDEO:{video_id}] {error}")
        video_service.update_status(
            db,
            video_id,
            "failed",
            error=error,
            fal_request_id=request_id,
            log_message=f"Generation failed: {error}",
        )
        return GenerationResult(
            success=False, video_id=video_id, error=error, request_id=request_id
        )


def get_video_generator() -> VideoGenerator:
    """Build a generator from application settings."""
    from .storage_service import get_storage_service

    return VideoGenerator(
        fal_client=FalVideoClient(
            api_key=settings.fal_key,
            model=settings.fal_model,
            queue_url=settings.fal_queue_url,
            poll_interval=settings.fal_poll_interval,
            request_timeout=settings.fal_request_timeout,
            max_wait_seconds=settings.fal_max_wait_seconds,
        ),
        storage=get_storage_service(),
    )
