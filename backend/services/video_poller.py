"""
Reconciliation engine for video records.

Advances in-flight records by polling their operations, copies finished videos
into durable storage, and re-attempts copies for records stuck at completed
after a crash. Used by the scheduled sweep, the manual sweep endpoint and the
queue consumer.
"""

import asyncio
import tempfile
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

import httpx
import structlog

from config import settings
from models import VideoRecord, VideoStatus, now_ms
from pipeline.error_handler import (
    ResultUrlMissingError,
    StorageCopyError,
    VideoGenerationFailedError,
    VideoNotFoundError,
    categorize_error,
    should_retry,
)
from services.operation_poller import OperationStatus
from services.r2_storage import R2StorageService, VIDEO_CONTENT_TYPE, generate_video_key
from services.video_repository import VideoRepository
from services.video_result import extract_video_uri

logger = structlog.get_logger()


def requires_api_key(url: str) -> bool:
    """Only Google API hosts get the API key; pre-signed URLs are fetched bare."""
    host = (urlparse(url).hostname or "").lower()
    return host == "googleapis.com" or host.endswith(".googleapis.com")


class VideoPollerService:
    """
    Drives video records from an operation handle to a durable copy.

    Every write goes through the repository's precondition-checked
    transitions, so any number of sweeps and queue deliveries may overlap.
    """

    def __init__(
        self,
        repository: VideoRepository,
        operation_poller,
        storage: R2StorageService,
        http_client: httpx.AsyncClient,
        api_key: str,
        poll_batch_size: Optional[int] = None,
        download_batch_size: Optional[int] = None,
        extraction_max_attempts: Optional[int] = None,
    ):
        """
        Args:
            repository: Video metadata store
            operation_poller: Anything with an async poll_operation(name)
            storage: Durable object storage
            http_client: Shared async HTTP client used to fetch result bytes
            api_key: Gemini API key, sent only to Google API hosts
        """
        self.repository = repository
        self.operation_poller = operation_poller
        self.storage = storage
        self.http_client = http_client
        self.api_key = api_key
        self.poll_batch_size = poll_batch_size or settings.POLL_BATCH_SIZE
        self.download_batch_size = download_batch_size or settings.DOWNLOAD_BATCH_SIZE
        self.extraction_max_attempts = (
            settings.RESULT_EXTRACTION_MAX_ATTEMPTS
            if extraction_max_attempts is None
            else extraction_max_attempts
        )

    # ===== Sweep =====

    async def poll_pending_videos(self) -> int:
        """
        Run one sweep.

        Polls up to poll_batch_size in-flight records, then runs the
        crash-recovery pass over completed records without a durable key.
        Never raises.

        Returns:
            Number of records whose operation was observed as done
        """
        processed = 0

        try:
            videos = await self.repository.list_in_flight(self.poll_batch_size)
            logger.info("sweep_started", in_flight=len(videos))

            for video in videos:
                try:
                    status = await self.operation_poller.poll_operation(video.operation_name)
                    if status.done:
                        await self._handle_done(video, status)
                        processed += 1
                except Exception as e:
                    await self._handle_record_exception(video, e)

            await self.download_completed_videos()
        except Exception as e:
            logger.error("sweep_failed", error=str(e), exc_info=True)

        logger.info("sweep_completed", processed=processed)
        return processed

    async def download_completed_videos(self) -> int:
        """
        Crash-recovery pass: retry the durable copy for completed records with no key.

        Returns:
            Number of records copied
        """
        videos = await self.repository.list_awaiting_copy(self.download_batch_size)
        if not videos:
            return 0

        logger.info("recovery_pass_started", awaiting_copy=len(videos))
        copied = 0
        for video in videos:
            try:
                if await self.download_to_storage(video.id, video.google_url):
                    copied += 1
            except Exception as e:
                logger.error("recovery_copy_failed", video_id=video.id, error=str(e))
        return copied

    async def _handle_record_exception(self, video: VideoRecord, error: Exception) -> None:
        if should_retry(error):
            # Transient; the record is left for the next sweep
            logger.warning(
                "sweep_record_retry",
                video_id=video.id,
                operation_name=video.operation_name,
                error=str(error),
            )
            return

        logger.error(
            "sweep_record_failed",
            video_id=video.id,
            error_code=categorize_error(error).value,
            error=str(error),
            exc_info=True,
        )
        try:
            await self.repository.mark_failed(video.id, str(error))
        except Exception as e:
            logger.error("sweep_mark_failed_error", video_id=video.id, error=str(e))

    # ===== Single record =====

    async def poll_specific_video(self, video_id: str, operation_name: Optional[str] = None) -> bool:
        """
        Advance one record as far as it will go right now.

        Args:
            video_id: Record id
            operation_name: Operation handle from the queue message, attached
                if the record does not have one yet

        Returns:
            True when the record needs no further work (downloaded or failed),
            False when it should be looked at again later

        Raises:
            VideoNotFoundError: Unknown record
            OperationPollError: The status call failed
        """
        video = await self.repository.get(video_id)
        if video is None:
            raise VideoNotFoundError(video_id)

        if video.is_terminal:
            logger.info("video_already_terminal", video_id=video_id, status=video.status)
            return True

        if video.status == VideoStatus.COMPLETED:
            if not video.google_url:
                logger.warning("completed_video_without_url", video_id=video_id)
                return False
            return await self.download_to_storage(video_id, video.google_url) is not None

        if not video.operation_name:
            if not operation_name:
                logger.warning("video_has_no_operation", video_id=video_id)
                return False
            await self.repository.attach_operation(video_id, operation_name)
            video = await self.repository.get(video_id)
            if video is None or video.is_terminal:
                return True
            if not video.operation_name:
                return False

        status = await self.operation_poller.poll_operation(video.operation_name)
        if not status.done:
            logger.info("video_still_processing", video_id=video_id, operation_name=video.operation_name)
            return False

        return await self._handle_done(video, status)

    async def _handle_done(self, video: VideoRecord, status: OperationStatus) -> bool:
        """
        Apply a finished operation to its record.

        Returns:
            True when the record reached a terminal status
        """
        if status.error is not None:
            error = VideoGenerationFailedError(video.operation_name, status.error)
            logger.warning(
                "video_generation_failed",
                video_id=video.id,
                operation_name=video.operation_name,
                error=status.error,
            )
            await self.repository.mark_failed(video.id, error.message)
            return True

        google_url = extract_video_uri(status.result)
        if not google_url:
            return await self._handle_missing_result(video, status)

        if not await self.repository.mark_completed(video.id, google_url):
            # Another invocation moved it; whoever completed it owns the copy
            current = await self.repository.get(video.id)
            return current is not None and current.is_terminal

        return await self.download_to_storage(video.id, google_url) is not None

    async def _handle_missing_result(self, video: VideoRecord, status: OperationStatus) -> bool:
        attempts = await self.repository.increment_extraction_attempts(video.id)
        logger.error(
            "video_result_url_missing",
            video_id=video.id,
            operation_name=video.operation_name,
            attempts=attempts,
            response=status.result,
        )

        if self.extraction_max_attempts and attempts >= self.extraction_max_attempts:
            error = ResultUrlMissingError(video.operation_name)
            await self.repository.mark_failed(video.id, error.message)
            return True
        return False

    # ===== Durable copy =====

    async def download_to_storage(self, video_id: str, google_url: str) -> Optional[str]:
        """
        Copy the upstream result into durable storage and mark the record downloaded.

        The body is streamed into a spooled temporary file (memory up to
        DOWNLOAD_SPOOL_MAX_BYTES, disk beyond) and uploaded from there. Any
        failure is logged and leaves the record at completed for the next pass.

        Returns:
            The new object key, or None if the copy did not complete
        """
        r2_key = generate_video_key(video_id, now_ms())
        headers = {"x-goog-api-key": self.api_key} if requires_api_key(google_url) else {}

        loop = asyncio.get_running_loop()
        try:
            with tempfile.SpooledTemporaryFile(max_size=settings.DOWNLOAD_SPOOL_MAX_BYTES) as spool:
                async with self.http_client.stream(
                    "GET", google_url, headers=headers, follow_redirects=True
                ) as response:
                    if response.status_code < 200 or response.status_code >= 300:
                        raise StorageCopyError(
                            video_id,
                            f"Failed to download video: {response.status_code}",
                        )
                    async for chunk in response.aiter_bytes():
                        # Past the spool limit this is a disk write
                        await loop.run_in_executor(None, spool.write, chunk)

                size = spool.tell()
                spool.seek(0)
                await self.storage.upload_fileobj_async(
                    spool,
                    r2_key,
                    content_type=VIDEO_CONTENT_TYPE,
                    metadata={
                        "videoId": video_id,
                        "downloadedFrom": google_url,
                        "downloadedAt": datetime.now(timezone.utc).isoformat(),
                    },
                )
        except Exception as e:
            logger.error(
                "video_copy_failed",
                video_id=video_id,
                error_code=categorize_error(e).value,
                error=str(e),
            )
            return None

        try:
            applied = await self.repository.mark_downloaded(video_id, r2_key)
        except Exception as e:
            logger.error("video_copy_commit_failed", video_id=video_id, r2_key=r2_key, error=str(e))
            return None

        if not applied:
            # Lost the race to a concurrent copy; the object stays unreferenced
            logger.warning("video_copy_orphaned", video_id=video_id, r2_key=r2_key)
            current = await self.repository.get(video_id)
            return current.r2_key if current is not None else None

        logger.info("video_downloaded", video_id=video_id, r2_key=r2_key, size=size)
        return r2_key
