"""
Tests for the workflow error hierarchy and retry helpers.
"""

import pytest

from pipeline.error_handler import (
    ErrorCode,
    OperationPollError,
    PipelineError,
    ResultUrlMissingError,
    StorageCopyError,
    VeoApiError,
    VideoGenerationFailedError,
    VideoGenerationTimeoutError,
    VideoNotFoundError,
    categorize_error,
    get_retry_delay,
    serialize_operation_error,
    should_retry,
)


class TestShouldRetry:

    @pytest.mark.parametrize("error", [
        OperationPollError("operations/a", "Failed to poll operation: 503", 503),
        VeoApiError("API error: 500", 500),
        StorageCopyError("v1", "Failed to download video: 502"),
        TimeoutError(),
        ConnectionError(),
    ])
    def test_transient(self, error):
        assert should_retry(error) is True

    @pytest.mark.parametrize("error", [
        VideoGenerationFailedError("operations/a", {"code": 3}),
        ResultUrlMissingError("operations/a"),
        VideoGenerationTimeoutError("operations/a", 60, 5.0),
        VideoNotFoundError("v1"),
        ValueError("bad"),
    ])
    def test_terminal(self, error):
        assert should_retry(error) is False


class TestGetRetryDelay:

    def test_doubles(self):
        assert get_retry_delay(0) == 2.0
        assert get_retry_delay(1) == 4.0
        assert get_retry_delay(3, base_delay=10.0, max_delay=300.0) == 80.0

    def test_capped(self):
        assert get_retry_delay(10) == 60.0
        assert get_retry_delay(10, base_delay=10.0, max_delay=300.0) == 300.0


class TestErrors:

    def test_generation_failed_keeps_payload(self):
        error = VideoGenerationFailedError("operations/a", {"message": "blocked", "code": 3})

        assert error.code == ErrorCode.VIDEO_GENERATION_FAILED
        assert str(error) == 'Video generation failed: {"code": 3, "message": "blocked"}'
        assert error.details["operation_error"] == {"message": "blocked", "code": 3}

    def test_timeout_message(self):
        error = VideoGenerationTimeoutError("operations/a", 60, 5.0)
        assert "60 polling attempts" in str(error)
        assert "300 seconds" in str(error)

    def test_serialize_operation_error(self):
        assert serialize_operation_error("plain") == "plain"
        assert serialize_operation_error({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'


class TestCategorizeError:

    def test_pipeline_error_keeps_code(self):
        assert categorize_error(PipelineError(ErrorCode.STORAGE_ERROR, "x")) == ErrorCode.STORAGE_ERROR

    def test_builtin_mapping(self):
        assert categorize_error(TimeoutError()) == ErrorCode.API_TIMEOUT
        assert categorize_error(OSError()) == ErrorCode.STORAGE_ERROR

    def test_unknown(self):
        assert categorize_error(RuntimeError("x")) == ErrorCode.UNEXPECTED_ERROR
