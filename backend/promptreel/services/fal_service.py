"""Fal.ai client for Kling V2 Master text-to-video, over the fal queue REST API."""

import logging
import time
from typing import Callable, List, Literal, Optional
import httpx
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from ..exceptions import ExternalApiError

logger = logging.getLogger(__name__)


class KlingInput(BaseModel):
    """Request body accepted by the Kling V2 Master endpoint."""

    prompt: str
    duration: Literal["5", "10"] = "5"
    aspect_ratio: Literal["16:9", "9:16", "1:1"] = "16:9"
    negative_prompt: str = "blur, distort, and low quality"
    cfg_scale: float = 0.5


class QueueLog(BaseModel):
    message: str
    timestamp: Optional[str] = None


class QueueUpdate(BaseModel):
    """One status poll of a queued request."""

    status: str  # IN_QUEUE, IN_PROGRESS, COMPLETED
    queue_position: Optional[int] = None
    logs: Optional[List[QueueLog]] = None


class FalVideoFile(BaseModel):
    url: str = Field(min_length=1)
    content_type: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None


class KlingOutput(BaseModel):
    video: FalVideoFile


class FalResult(BaseModel):
    request_id: str
    data: KlingOutput


class FalVideoClient:
    """Submits generations to the fal queue and waits for their result."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "fal-ai/kling-video/v2/master/text-to-video",
        queue_url: str = "https://queue.fal.run",
        poll_interval: float = 2.0,
        request_timeout: float = 60.0,
        max_wait_seconds: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the fal client.

        Args:
            api_key: Fal API key (FAL_KEY)
            model: Model endpoint id
            queue_url: Base URL of the fal queue API
            poll_interval: Seconds between status polls
            request_timeout: Timeout of each individual HTTP call
            max_wait_seconds: Give up after this long; None waits indefinitely
            http_client: Preconfigured httpx client (tests)
            sleep: Sleep function used between polls (tests)
        """
        if not api_key:
            raise ValueError("FAL_KEY environment variable or api_key parameter required")

        self.model = model
        self.queue_url = queue_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_wait_seconds = max_wait_seconds
        self._sleep = sleep
        self.client = http_client or httpx.Client(timeout=request_timeout)
        self.client.headers["Authorization"] = f"Key {api_key}"

        logger.info(f"Initialized fal client with model: {model}")

    def subscribe(
        self,
        input: KlingInput,
        on_queue_update: Optional[Callable[[QueueUpdate], None]] = None,
    ) -> FalResult:
        """
        Submit a request and block until it completes.

        Args:
            input: Validated model input
            on_queue_update: Called with every status poll

        Returns:
            Result with request id and validated output

        Raises:
            ExternalApiError: the request failed, timed out, or returned an
                output without a video URL
        """
        try:
            response = self.client.post(
                f"{self.queue_url}/{self.model}", json=input.model_dump()
            )
            response.raise_for_status()
            submitted = response.json()
        except httpx.HTTPError as e:
            raise ExternalApiError(f"Fal.ai submission failed: {e}")

        request_id = submitted.get("request_id")
        status_url = submitted.get("status_url")
        response_url = submitted.get("response_url")
        if not request_id or not status_url or not response_url:
            raise ExternalApiError("Fal.ai submission returned no request id")

        logger.info(f"Fal request submitted: {request_id}")
        started = time.monotonic()

        while True:
            try:
                poll = self.client.get(status_url, params={"logs": 1})
                poll.raise_for_status()
                update = QueueUpdate.model_validate(poll.json())
            except httpx.HTTPError as e:
                raise ExternalApiError(f"Fal.ai status check failed: {e}", request_id)
            except PydanticValidationError as e:
                raise ExternalApiError(f"Unexpected Fal.ai status response: {e}", request_id)

            if on_queue_update is not None:
                on_queue_update(update)

            if update.status == "COMPLETED":
                break
            if update.status not in ("IN_QUEUE", "IN_PROGRESS"):
                raise ExternalApiError(f"Fal.ai request ended with status {update.status}", request_id)

            if self.max_wait_seconds is not None and time.monotonic() - started > self.max_wait_seconds:
                raise ExternalApiError(
                    f"Fal.ai request did not finish within {self.max_wait_seconds:.0f}s", request_id
                )
            self._sleep(self.poll_interval)

        try:
            result = self.client.get(response_url)
            result.raise_for_status()
            payload = result.json()
        except httpx.HTTPError as e:
            raise ExternalApiError(f"Fal.ai result fetch failed: {e}", request_id)

        return parse_result(request_id, payload)


def parse_result(request_id: str, payload: dict) -> FalResult:
    """Validate a model output; anything without a video URL is rejected."""
    try:
        return FalResult(request_id=request_id, data=KlingOutput.model_validate(payload))
    except PydanticValidationError:
        logger.error(f"No video URL in Fal response {request_id}: {payload}")
        raise ExternalApiError("No video URL returned from Fal.ai", request_id)
