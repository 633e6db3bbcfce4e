"""
Veo video generator.

Starts a Veo long-running operation for a prompt. Two ways to use it:

- start_generation(): fire-and-forget, returns the operation handle so the
  caller can track it asynchronously (the request path uses this).
- generate_video(): starts and then polls with a fixed delay up to a fixed
  number of attempts, returning the result URL or raising a timeout.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from config import settings
from pipeline.error_handler import (
    ResultUrlMissingError,
    VeoApiError,
    VideoGenerationFailedError,
    VideoGenerationTimeoutError,
)
from services.operation_poller import GeminiOperationPoller
from services.video_result import extract_video_uri

logger = structlog.get_logger()

STYLE_DIRECTIVE = "A cute video of {prompt}. Nature documentary style, high quality, adorable moments."


@dataclass
class VideoGenerationResult:
    """Result of a finished generation."""

    video_url: str
    operation_name: str


def build_generation_prompt(prompt: str) -> str:
    """Wrap the raw prompt in the fixed style directive."""
    return STYLE_DIRECTIVE.format(prompt=prompt.strip())


class VeoVideoGenerator:
    """
    Generate videos with Veo through the Gemini REST API.

    Usage:
        generator = VeoVideoGenerator(http_client, poller, api_key)
        operation_name = await generator.start_generation("a puffin chick")
        # or, blocking until done:
        result = await generator.generate_video("a puffin chick")
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        operation_poller: GeminiOperationPoller,
        api_key: str,
        model: Optional[str] = None,
        api_base: Optional[str] = None,
        max_polling_attempts: Optional[int] = None,
        polling_delay: Optional[float] = None,
        skip_polling_delay: Optional[bool] = None,
    ):
        self.http_client = http_client
        self.operation_poller = operation_poller
        self.api_key = api_key
        self.model = model or settings.VEO_MODEL
        self.api_base = (api_base or settings.GEMINI_API_BASE).rstrip("/")
        self.max_polling_attempts = max_polling_attempts or settings.VEO_MAX_POLLING_ATTEMPTS
        self.polling_delay = settings.VEO_POLLING_DELAY_SECONDS if polling_delay is None else polling_delay

        self.skip_polling_delay = settings.skip_polling_delay if skip_polling_delay is None else skip_polling_delay

    async def start_generation(self, prompt: str) -> str:
        """
        Start a generation operation and return its handle immediately.

        Args:
            prompt: Raw prompt text

        Returns:
            Operation name to poll

        Raises:
            ValueError: If the prompt is empty
            VeoApiError: If the upstream call fails
        """
        if not prompt or not prompt.strip():
            raise ValueError("prompt must be a non-empty string")

        logger.info("veo_generation_starting", model=self.model, prompt=prompt)

        try:
            response = await self._submit(build_generation_prompt(prompt))
        except httpx.HTTPError as e:
            raise VeoApiError(f"Failed to start video generation: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(
                "veo_api_error",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise VeoApiError(f"API error: {response.status_code}", status_code=response.status_code)

        try:
            operation_name = response.json().get("name")
        except (ValueError, AttributeError) as e:
            raise VeoApiError("API returned an unreadable operation") from e

        if not operation_name:
            raise VeoApiError("API response did not include an operation name")

        logger.info("veo_operation_started", operation_name=operation_name)
        return operation_name

    @retry(
        stop=stop_after_attempt(settings.VEO_START_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        # The start call is not idempotent: retry only when nothing was sent
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        before_sleep=before_sleep_log(logging.getLogger(__name__), logging.INFO),
        reraise=True,
    )
    async def _submit(self, full_prompt: str) -> httpx.Response:
        return await self.http_client.post(
            f"{self.api_base}/models/{self.model}:predictLongRunning",
            headers={
                "x-goog-api-key": self.api_key,
                "Content-Type": "application/json",
            },
            json={"instances": [{"prompt": full_prompt}]},
        )

    async def generate_video(self, prompt: str) -> VideoGenerationResult:
        """
        Start a generation and poll it to completion.

        Raises:
            VeoApiError: If the operation could not be started
            VideoGenerationFailedError: If the operation reported an error
            ResultUrlMissingError: If it finished without a usable URL
            VideoGenerationTimeoutError: After max_polling_attempts polls
        """
        operation_name = await self.start_generation(prompt)
        return await self.wait_for_result(operation_name)

    async def wait_for_result(self, operation_name: str) -> VideoGenerationResult:
        """Poll an already-started operation until it finishes or attempts run out."""
        for attempt in range(self.max_polling_attempts):
            if attempt > 0 and not self.skip_polling_delay:
                await asyncio.sleep(self.polling_delay)

            status = await self.operation_poller.poll_operation(operation_name)
            logger.debug(
                "veo_operation_status",
                operation_name=operation_name,
                attempt=attempt + 1,
                done=status.done,
            )

            if not status.done:
                continue

            if status.error is not None:
                raise VideoGenerationFailedError(operation_name, status.error)

            video_url = extract_video_uri(status.result)
            if not video_url:
                logger.error(
                    "veo_result_url_missing",
                    operation_name=operation_name,
                    response=status.result,
                )
                raise ResultUrlMissingError(operation_name)

            logger.info("veo_video_generated", operation_name=operation_name, video_url=video_url)
            return VideoGenerationResult(video_url=video_url, operation_name=operation_name)

        raise VideoGenerationTimeoutError(operation_name, self.max_polling_attempts, self.polling_delay)
