"""
Metadata store operations on video records.

Every status transition is a single conditional UPDATE whose WHERE clause is
the transition's precondition, so overlapping sweeps and queue deliveries can
run the same step twice without moving a record backwards. Methods return
whether the write applied.

The SQLAlchemy calls are blocking; the public coroutines run them in the
default executor.
"""

import asyncio
from functools import partial
from typing import Dict, List, Optional

import structlog
from sqlalchemy import func

from database import SessionLocal, get_db_context
from models import Prompt, VideoRecord, VideoStatus, now_ms, stream_path
from services.r2_storage import validate_s3_key

logger = structlog.get_logger()


class VideoRepository:
    """
    Reads and precondition-checked writes on the videos table.

    Usage:
        repository = VideoRepository()
        video = await repository.get("video-id")
        applied = await repository.mark_completed("video-id", "https://...")
    """

    def __init__(self, session_factory=None):
        """
        Args:
            session_factory: sessionmaker to open sessions with (default SessionLocal)
        """
        self.session_factory = session_factory or SessionLocal

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, *args))

    # ===== Reads =====

    async def get(self, video_id: str) -> Optional[VideoRecord]:
        return await self._run(self._get, video_id)

    def _get(self, video_id: str) -> Optional[VideoRecord]:
        with get_db_context(self.session_factory) as db:
            return db.query(VideoRecord).filter(VideoRecord.id == video_id).first()

    async def list_in_flight(self, limit: int) -> List[VideoRecord]:
        """Pending/processing records that have an operation to poll, oldest first."""
        return await self._run(self._list_in_flight, limit)

    def _list_in_flight(self, limit: int) -> List[VideoRecord]:
        with get_db_context(self.session_factory) as db:
            return (
                db.query(VideoRecord)
                .filter(
                    VideoRecord.status.in_(VideoStatus.IN_FLIGHT),
                    VideoRecord.operation_name.isnot(None),
                )
                .order_by(VideoRecord.created_at, VideoRecord.id)
                .limit(limit)
                .all()
            )

    async def list_awaiting_copy(self, limit: int) -> List[VideoRecord]:
        """Completed records whose bytes never made it into durable storage."""
        return await self._run(self._list_awaiting_copy, limit)

    def _list_awaiting_copy(self, limit: int) -> List[VideoRecord]:
        with get_db_context(self.session_factory) as db:
            return (
                db.query(VideoRecord)
                .filter(
                    VideoRecord.status == VideoStatus.COMPLETED,
                    VideoRecord.google_url.isnot(None),
                    VideoRecord.r2_key.is_(None),
                )
                .order_by(VideoRecord.created_at, VideoRecord.id)
                .limit(limit)
                .all()
            )

    async def list_recent(self, limit: int = 100) -> List[VideoRecord]:
        return await self._run(self._list_recent, limit)

    def _list_recent(self, limit: int) -> List[VideoRecord]:
        with get_db_context(self.session_factory) as db:
            return (
                db.query(VideoRecord)
                .order_by(VideoRecord.created_at.desc())
                .limit(limit)
                .all()
            )

    async def count_by_status(self) -> Dict[str, int]:
        return await self._run(self._count_by_status)

    def _count_by_status(self) -> Dict[str, int]:
        with get_db_context(self.session_factory) as db:
            rows = (
                db.query(VideoRecord.status, func.count(VideoRecord.id))
                .group_by(VideoRecord.status)
                .all()
            )
            return {status: count for status, count in rows}

    # ===== Writes =====

    async def create_video(
        self,
        video_id: str,
        prompt: str,
        prompt_id: Optional[str] = None,
        duration: int = 15,
        operation_name: Optional[str] = None,
    ) -> VideoRecord:
        """
        Insert a new record.

        Starts as processing when the operation is already known, pending otherwise.
        Bumps the prompt's usage count when prompt_id refers to a stored prompt.
        """
        return await self._run(self._create_video, video_id, prompt, prompt_id, duration, operation_name)

    def _create_video(
        self,
        video_id: str,
        prompt: str,
        prompt_id: Optional[str],
        duration: int,
        operation_name: Optional[str],
    ) -> VideoRecord:
        with get_db_context(self.session_factory) as db:
            video = VideoRecord(
                id=video_id,
                prompt=prompt,
                duration=duration,
                operation_name=operation_name,
                status=VideoStatus.PROCESSING if operation_name else VideoStatus.PENDING,
                created_at=now_ms(),
            )

            if prompt_id:
                updated = (
                    db.query(Prompt)
                    .filter(Prompt.id == prompt_id)
                    .update({Prompt.usage_count: Prompt.usage_count + 1}, synchronize_session=False)
                )
                if updated:
                    video.prompt_id = prompt_id
                else:
                    logger.warning("video_prompt_not_found", video_id=video_id, prompt_id=prompt_id)

            db.add(video)
            db.commit()
            logger.info("video_record_created", video_id=video_id, status=video.status)
            return video

    async def attach_operation(self, video_id: str, operation_name: str) -> bool:
        """Record the operation handle once; pending -> processing."""
        return await self._run(self._attach_operation, video_id, operation_name)

    def _attach_operation(self, video_id: str, operation_name: str) -> bool:
        return self._conditional_update(
            video_id,
            [
                VideoRecord.status == VideoStatus.PENDING,
                VideoRecord.operation_name.is_(None),
            ],
            {
                VideoRecord.operation_name: operation_name,
                VideoRecord.status: VideoStatus.PROCESSING,
            },
            "video_operation_attached",
        )

    async def mark_completed(self, video_id: str, google_url: str) -> bool:
        """pending/processing -> completed with the upstream result URL."""
        return await self._run(self._mark_completed, video_id, google_url)

    def _mark_completed(self, video_id: str, google_url: str) -> bool:
        return self._conditional_update(
            video_id,
            [VideoRecord.status.in_(VideoStatus.IN_FLIGHT)],
            {
                VideoRecord.status: VideoStatus.COMPLETED,
                VideoRecord.google_url: google_url,
            },
            "video_marked_completed",
        )

    async def mark_downloaded(self, video_id: str, r2_key: str, downloaded_at: Optional[int] = None) -> bool:
        """completed (no key yet) -> downloaded with the durable key and stream path."""
        return await self._run(self._mark_downloaded, video_id, r2_key, downloaded_at or now_ms())

    def _mark_downloaded(self, video_id: str, r2_key: str, downloaded_at: int) -> bool:
        r2_key = validate_s3_key(r2_key, "r2_key")
        if not r2_key:
            raise ValueError("r2_key must be a non-empty object key")

        return self._conditional_update(
            video_id,
            [
                VideoRecord.status == VideoStatus.COMPLETED,
                VideoRecord.r2_key.is_(None),
            ],
            {
                VideoRecord.status: VideoStatus.DOWNLOADED,
                VideoRecord.r2_key: r2_key,
                VideoRecord.video_url: stream_path(video_id),
                VideoRecord.downloaded_at: downloaded_at,
            },
            "video_marked_downloaded",
        )

    async def mark_failed(self, video_id: str, error: str) -> bool:
        """Any non-terminal status -> failed with the error text."""
        return await self._run(self._mark_failed, video_id, error)

    def _mark_failed(self, video_id: str, error: str) -> bool:
        return self._conditional_update(
            video_id,
            [VideoRecord.status.notin_(VideoStatus.TERMINAL)],
            {
                VideoRecord.status: VideoStatus.FAILED,
                VideoRecord.error: error or "Unknown error",
            },
            "video_marked_failed",
        )

    async def increment_extraction_attempts(self, video_id: str) -> int:
        """Count one more finished-without-URL observation; returns the new count."""
        return await self._run(self._increment_extraction_attempts, video_id)

    def _increment_extraction_attempts(self, video_id: str) -> int:
        with get_db_context(self.session_factory) as db:
            (
                db.query(VideoRecord)
                .filter(VideoRecord.id == video_id)
                .update(
                    {VideoRecord.extraction_attempts: VideoRecord.extraction_attempts + 1},
                    synchronize_session=False,
                )
            )
            db.commit()
            attempts = (
                db.query(VideoRecord.extraction_attempts)
                .filter(VideoRecord.id == video_id)
                .scalar()
            )
            return attempts or 0

    def _conditional_update(self, video_id: str, preconditions: list, values: dict, event: str) -> bool:
        with get_db_context(self.session_factory) as db:
            updated = (
                db.query(VideoRecord)
                .filter(VideoRecord.id == video_id, *preconditions)
                .update(values, synchronize_session=False)
            )
            db.commit()

        if updated:
            logger.info(event, video_id=video_id)
        else:
            logger.info("video_transition_skipped", video_id=video_id, transition=event)
        return bool(updated)
