"""
Status checks for Gemini long-running operations.

A poll is a single read-only GET against the operation handle. Failures of the
call itself raise OperationPollError; an operation that finished with an error
is a successful poll with done=True and error set.
"""

from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from config import settings
from pipeline.error_handler import OperationPollError

logger = structlog.get_logger()


class OperationStatus(BaseModel):
    """Raw state of a long-running operation as reported upstream."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: Optional[str] = None
    done: bool = False
    error: Optional[Any] = None
    # Upstream calls the payload "response"
    result: Optional[Dict[str, Any]] = Field(None, alias="response")

    @property
    def failed(self) -> bool:
        return self.done and self.error is not None


class GeminiOperationPoller:
    """
    Poll Gemini long-running operations.

    Usage:
        poller = GeminiOperationPoller(http_client, api_key)
        status = await poller.poll_operation("models/veo-3.0-generate-001/operations/abc")
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        api_key: str,
        api_base: Optional[str] = None,
    ):
        """
        Args:
            http_client: Shared async HTTP client
            api_key: Gemini API key sent as x-goog-api-key
            api_base: API base URL (default from settings)
        """
        self.http_client = http_client
        self.api_key = api_key
        self.api_base = (api_base or settings.GEMINI_API_BASE).rstrip("/")

    async def poll_operation(self, operation_name: str) -> OperationStatus:
        """
        Fetch the current status of an operation.

        Args:
            operation_name: Handle returned when the operation was started

        Returns:
            OperationStatus with done/error/result

        Raises:
            ValueError: If operation_name is empty
            OperationPollError: If the status call did not succeed
        """
        if not operation_name or not operation_name.strip():
            raise ValueError("operation_name must be a non-empty string")

        url = f"{self.api_base}/{operation_name.strip().lstrip('/')}"

        try:
            response = await self.http_client.get(
                url,
                headers={"x-goog-api-key": self.api_key},
            )
        except httpx.HTTPError as e:
            logger.warning("operation_poll_transport_error", operation_name=operation_name, error=str(e))
            raise OperationPollError(operation_name, f"Failed to poll operation: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            logger.error(
                "operation_poll_failed",
                operation_name=operation_name,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise OperationPollError(
                operation_name,
                f"Failed to poll operation: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise OperationPollError(operation_name, "Failed to poll operation: invalid JSON body") from e

        if not isinstance(payload, dict):
            raise OperationPollError(operation_name, "Failed to poll operation: unexpected body shape")

        return OperationStatus.model_validate(payload)
