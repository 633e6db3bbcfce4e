"""
Mock video generation for running without consuming API credits.

When MOCK_VID_GENS is enabled, the request path, the queue worker and the sweep
use these instead of the Veo classes. Operations finish on the first poll and
point at MOCK_VIDEO_URL.
"""

import uuid
from typing import Optional

import structlog

from config import settings
from services.operation_poller import OperationStatus
from services.video_generator import VideoGenerationResult

logger = structlog.get_logger()

MOCK_OPERATION_PREFIX = "models/veo-3.0-generate-001/operations/mock-"


class MockOperationPoller:
    """Reports every mock operation as finished with the mock video URL."""

    def __init__(self, video_url: Optional[str] = None):
        self.video_url = video_url or settings.MOCK_VIDEO_URL

    async def poll_operation(self, operation_name: str) -> OperationStatus:
        if not operation_name or not operation_name.strip():
            raise ValueError("operation_name must be a non-empty string")

        logger.info("mock_operation_polled", operation_name=operation_name)
        return OperationStatus(
            name=operation_name,
            done=True,
            result={"generateVideoResponse": {"generatedSamples": [{"video": {"uri": self.video_url}}]}},
        )


class MockVideoGenerator:
    """Same interface as VeoVideoGenerator, no network calls."""

    def __init__(self, video_url: Optional[str] = None, should_fail: bool = False, fail_message: str = ""):
        self.video_url = video_url or settings.MOCK_VIDEO_URL
        self.should_fail = should_fail
        self.fail_message = fail_message

    async def start_generation(self, prompt: str) -> str:
        if not prompt or not prompt.strip():
            raise ValueError("prompt must be a non-empty string")
        if self.should_fail:
            raise RuntimeError(self.fail_message or "Mock video generation failed")

        # Unique per call: operation names are never reused across records
        operation_name = f"{MOCK_OPERATION_PREFIX}{uuid.uuid4().hex}"
        logger.info("mock_generation_started", prompt=prompt, operation_name=operation_name)
        return operation_name

    async def generate_video(self, prompt: str) -> VideoGenerationResult:
        operation_name = await self.start_generation(prompt)
        return await self.wait_for_result(operation_name)

    async def wait_for_result(self, operation_name: str) -> VideoGenerationResult:
        return VideoGenerationResult(video_url=self.video_url, operation_name=operation_name)
