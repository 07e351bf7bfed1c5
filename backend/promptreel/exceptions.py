"""Domain errors raised by the credit, rate-limit and video services.

Each error carries the HTTP status the API answers with; the exception handler
registered in ``main.py`` turns them into ``{"error": code, "detail": message}``.
"""


class PromptReelError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(PromptReelError):
    status_code = 400
    code = "validation_error"


class Unauthorized(PromptReelError):
    status_code = 403
    code = "unauthorized"


class RecordNotFound(PromptReelError):
    status_code = 404
    code = "record_not_found"


class VideoNotFound(RecordNotFound):
    code = "video_not_found"


class InsufficientCredits(PromptReelError):
    status_code = 402
    code = "insufficient_credits"


class RateLimitExceeded(PromptReelError):
    status_code = 429
    code = "rate_limit_exceeded"


class DailyLimitExceeded(RateLimitExceeded):
    code = "daily_limit_exceeded"


class InvalidState(PromptReelError):
    status_code = 409
    code = "invalid_state"


class RetryLimitExceeded(PromptReelError):
    status_code = 409
    code = "retry_limit_exceeded"


class ExternalApiError(PromptReelError):
    """The generation API failed or returned an unusable response."""

    status_code = 502
    code = "external_api_error"

    def __init__(self, message: str, request_id: str = None):
        super().__init__(message)
        self.request_id = request_id


class StorageError(PromptReelError):
    """Fetching or storing video bytes failed."""

    status_code = 502
    code = "storage_error"
