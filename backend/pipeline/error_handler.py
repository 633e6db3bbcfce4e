"""
Structured error handling for the video generation workflow.

Provides:
- Categorized error codes for all failure scenarios
- Retry logic determination (transient vs terminal)
- Exponential backoff for queue redelivery
- Detailed error context for debugging
"""

import json
from enum import Enum
from typing import Optional, Dict, Any


class ErrorCode(Enum):
    """
    Enumeration of all possible error codes in the workflow.

    Organized by category:
    - API Errors: Client-side input errors
    - Generation Errors: The upstream operation itself failed or misbehaved
    - External API Errors: Upstream service unreachable or erroring
    - System Errors: Infrastructure and storage issues
    """

    # API Errors (4xx - client errors)
    INVALID_INPUT = "INVALID_INPUT"
    VIDEO_NOT_FOUND = "VIDEO_NOT_FOUND"

    # Generation Errors
    VIDEO_GENERATION_FAILED = "VIDEO_GENERATION_FAILED"
    VIDEO_GENERATION_TIMEOUT = "VIDEO_GENERATION_TIMEOUT"
    RESULT_URL_MISSING = "RESULT_URL_MISSING"
    ASSET_DOWNLOAD_FAILED = "ASSET_DOWNLOAD_FAILED"

    # External API Errors (retryable)
    GEMINI_API_ERROR = "GEMINI_API_ERROR"
    OPERATION_POLL_FAILED = "OPERATION_POLL_FAILED"
    API_TIMEOUT = "API_TIMEOUT"

    # System Errors
    REDIS_CONNECTION_ERROR = "REDIS_CONNECTION_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    STORAGE_ERROR = "STORAGE_ERROR"
    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


class PipelineError(Exception):
    """
    Base exception for workflow errors.

    Provides structured error information including:
    - Error code for categorization
    - Detailed message for logging
    - Context dictionary for debugging

    Example:
        >>> raise PipelineError(
        ...     ErrorCode.RESULT_URL_MISSING,
        ...     "Video generation completed but no URL was returned",
        ...     {"operation_name": "models/veo/operations/abc"}
        ... )
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize pipeline error.

        Args:
            code: Error code from ErrorCode enum
            message: Detailed error message for logging
            details: Additional context (operation names, status codes, etc.)
        """
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class OperationPollError(PipelineError):
    """
    The status check itself did not succeed (non-2xx, transport failure, bad body).

    Always transient: the operation may be perfectly healthy upstream.
    """

    def __init__(self, operation_name: str, message: str, status_code: Optional[int] = None):
        details = {"operation_name": operation_name}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(ErrorCode.OPERATION_POLL_FAILED, message, details)
        self.operation_name = operation_name
        self.status_code = status_code


class VeoApiError(PipelineError):
    """Starting a generation operation failed at the HTTP level."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Dict] = None):
        error_details = details or {}
        if status_code is not None:
            error_details["status_code"] = status_code
        super().__init__(ErrorCode.GEMINI_API_ERROR, message, error_details)
        self.status_code = status_code


class VideoGenerationFailedError(PipelineError):
    """
    The operation reported done=true with an error payload.

    Terminal: the structured payload is kept verbatim in details.
    """

    def __init__(self, operation_name: str, operation_error: Any):
        super().__init__(
            ErrorCode.VIDEO_GENERATION_FAILED,
            f"Video generation failed: {serialize_operation_error(operation_error)}",
            {"operation_name": operation_name, "operation_error": operation_error},
        )
        self.operation_error = operation_error


class VideoGenerationTimeoutError(PipelineError):
    """Bounded synchronous polling ran out of attempts."""

    def __init__(self, operation_name: str, attempts: int, delay_seconds: float):
        super().__init__(
            ErrorCode.VIDEO_GENERATION_TIMEOUT,
            f"Video generation timed out after {attempts} polling attempts "
            f"({attempts * delay_seconds:.0f} seconds)",
            {"operation_name": operation_name, "attempts": attempts},
        )
        self.attempts = attempts


class ResultUrlMissingError(PipelineError):
    """The operation succeeded but none of the known result shapes held a URL."""

    def __init__(self, operation_name: str):
        super().__init__(
            ErrorCode.RESULT_URL_MISSING,
            "Video generation completed but no result URL was returned",
            {"operation_name": operation_name},
        )


class StorageCopyError(PipelineError):
    """Copying upstream bytes into durable storage failed."""

    def __init__(self, video_id: str, message: str, code: ErrorCode = ErrorCode.ASSET_DOWNLOAD_FAILED):
        super().__init__(code, message, {"video_id": video_id})


class VideoNotFoundError(PipelineError):
    """No video record with the requested id."""

    def __init__(self, video_id: str):
        super().__init__(ErrorCode.VIDEO_NOT_FOUND, f"Video not found: {video_id}", {"video_id": video_id})


def serialize_operation_error(operation_error: Any) -> str:
    """Render an upstream error payload for storage in the record's error column."""
    if isinstance(operation_error, str):
        return operation_error
    try:
        return json.dumps(operation_error, sort_keys=True)
    except (TypeError, ValueError):
        return str(operation_error)


def should_retry(error: Exception) -> bool:
    """
    Determines if an error is transient and should be retried.

    Transient errors include:
    - Upstream API failures (start or status check)
    - Network timeouts
    - Temporary infrastructure issues

    Args:
        error: Exception to check

    Returns:
        True if error is transient and should be retried, False otherwise

    Example:
        >>> should_retry(OperationPollError("operations/abc", "Failed to poll operation: 503"))
        True
        >>> should_retry(ResultUrlMissingError("operations/abc"))
        False
    """
    transient_error_codes = [
        # External API errors (service might be temporarily down)
        ErrorCode.GEMINI_API_ERROR,
        ErrorCode.OPERATION_POLL_FAILED,
        ErrorCode.API_TIMEOUT,

        # Infrastructure errors (might resolve)
        ErrorCode.REDIS_CONNECTION_ERROR,
        ErrorCode.DATABASE_ERROR,
        ErrorCode.STORAGE_ERROR,

        # Asset download failures (network issues)
        ErrorCode.ASSET_DOWNLOAD_FAILED,
    ]

    if isinstance(error, PipelineError):
        return error.code in transient_error_codes

    # Also retry on common Python exceptions
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True

    return False


def get_retry_delay(attempt: int, base_delay: float = 2.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay for retry attempts.

    Uses formula: min(base_delay * (2 ** attempt), max_delay)

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds (default: 2.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds for this attempt

    Example:
        >>> get_retry_delay(0)  # First retry
        2.0
        >>> get_retry_delay(1)  # Second retry
        4.0
        >>> get_retry_delay(10)  # Caps at max_delay
        60.0
    """
    delay = base_delay * (2 ** attempt)
    return min(delay, max_delay)


def categorize_error(error: Exception) -> ErrorCode:
    """
    Categorize an exception into an ErrorCode.

    Args:
        error: Exception to categorize

    Returns:
        Appropriate ErrorCode for the exception

    Example:
        >>> categorize_error(TimeoutError())
        ErrorCode.API_TIMEOUT
    """
    if isinstance(error, PipelineError):
        return error.code

    error_type = type(error).__name__

    # Map common exceptions to error codes
    mapping = {
        "TimeoutError": ErrorCode.API_TIMEOUT,
        "ConnectionError": ErrorCode.REDIS_CONNECTION_ERROR,
        "OperationalError": ErrorCode.DATABASE_ERROR,
        "IntegrityError": ErrorCode.DATABASE_ERROR,
        "ClientError": ErrorCode.STORAGE_ERROR,
        "OSError": ErrorCode.STORAGE_ERROR,
    }

    return mapping.get(error_type, ErrorCode.UNEXPECTED_ERROR)
