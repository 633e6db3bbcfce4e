"""
Video endpoints router

Handles:
- POST /generate-video: create a record, start generation, enqueue tracking
- GET /videos, GET /videos/{video_id}: metadata
- GET /videos/{video_id}/stream: byte-range streaming from durable storage
- GET /videos/{video_id}/download: attachment download from durable storage
- GET /video-status: per-status summary, optionally after a sweep
- GET /poll-videos: manual sweep trigger (non-production only)
"""

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse

from auth import verify_bearer_token
from config import settings
from dependencies import (
    get_poller_service,
    get_queue,
    get_repository,
    get_storage,
    get_video_generator,
)
from models import VideoStatus, now_ms, stream_path
from redis_client import VideoQueue
from schemas import (
    ErrorResponse,
    GenerateVideoRequest,
    GenerateVideoResponse,
    PollVideosResponse,
    VideoResponse,
)
from services.byte_range import RangeNotSatisfiableError, parse_range_header
from services.r2_storage import R2StorageService, VIDEO_CONTENT_TYPE
from services.video_poller import VideoPollerService
from services.video_repository import VideoRepository

logger = structlog.get_logger()

router = APIRouter(tags=["Videos"])


def _iter_body(body, chunk_size: int):
    """Yield a storage body in chunks and close it when the client is done."""
    try:
        for chunk in body.iter_chunks(chunk_size):
            yield chunk
    finally:
        body.close()


def _iso(epoch_ms: Optional[int]) -> Optional[str]:
    if epoch_ms is None:
        return None
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()


@router.post(
    "/generate-video",
    response_model=GenerateVideoResponse,
    response_model_by_alias=True,
    status_code=202,
    responses={
        202: {"description": "Video generation started and queued for tracking"},
        422: {"description": "Invalid request body"},
        502: {"model": ErrorResponse, "description": "Generation could not be started"},
    },
    summary="Generate Video",
)
async def generate_video(
    request: GenerateVideoRequest,
    repository: VideoRepository = Depends(get_repository),
    generator=Depends(get_video_generator),
    queue: VideoQueue = Depends(get_queue),
):
    """
    Start generating a video for a prompt.

    The record is created first so a failed start is still visible, then the
    operation handle is attached and a tracking message is queued. If the
    queue is down the scheduled sweep still picks the record up.
    """
    video_id = str(uuid.uuid4())
    logger.info("generate_video_request", video_id=video_id, prompt_id=request.prompt_id)

    await repository.create_video(
        video_id,
        request.prompt,
        prompt_id=request.prompt_id,
        duration=request.duration,
    )

    try:
        operation_name = await generator.start_generation(request.prompt)
    except Exception as e:
        logger.error("generation_start_failed", video_id=video_id, error=str(e))
        await repository.mark_failed(video_id, str(e) or "Failed to start video generation")
        return JSONResponse(
            status_code=502,
            content={"success": False, "error": str(e) or "Failed to start video generation"},
        )

    await repository.attach_operation(video_id, operation_name)

    message = {
        "id": video_id,
        "promptId": request.prompt_id,
        "prompt": request.prompt,
        "operationName": operation_name,
        "timestamp": now_ms(),
    }
    try:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, queue.send, message)
    except Exception as e:
        logger.error("video_enqueue_failed", video_id=video_id, error=str(e))

    return GenerateVideoResponse(video_id=video_id)


@router.get("/videos", summary="List Videos")
async def list_videos(repository: VideoRepository = Depends(get_repository)):
    """Latest 100 videos, newest first, with stream/download paths once durably stored."""
    videos = await repository.list_recent(100)

    formatted = []
    for video in videos:
        stored = bool(video.r2_key)
        formatted.append({
            "id": video.id,
            "prompt": video.prompt,
            "status": video.status,
            "error": video.error,
            "duration": f"{video.duration}s",
            "urls": {
                "stream": stream_path(video.id) if stored else None,
                "download": f"/videos/{video.id}/download" if stored else None,
                "fallback": None if stored else video.video_url,
            },
            "timestamps": {
                "created": _iso(video.created_at),
                "downloaded": _iso(video.downloaded_at),
            },
        })

    return {"totalVideos": len(formatted), "videos": formatted}


@router.get(
    "/videos/{video_id}",
    responses={
        200: {"model": VideoResponse, "description": "Video record"},
        404: {"description": "Video not found"},
        424: {"model": VideoResponse, "description": "Video generation failed"},
    },
    summary="Get Video",
)
async def get_video(
    video_id: str = Path(..., description="Video identifier (UUID)"),
    repository: VideoRepository = Depends(get_repository),
):
    """Video metadata; a failed generation answers 424 with the stored error."""
    video = await repository.get(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail="Video not found")

    status_code = 424 if video.status == VideoStatus.FAILED else 200
    return JSONResponse(status_code=status_code, content=video.to_dict())


@router.get(
    "/videos/{video_id}/stream",
    responses={
        200: {"description": "Full video"},
        206: {"description": "Requested byte range"},
        404: {"description": "Unknown video or no durable copy yet"},
        416: {"description": "Range not satisfiable"},
    },
    summary="Stream Video",
)
async def stream_video(
    request: Request,
    video_id: str = Path(..., description="Video identifier (UUID)"),
    repository: VideoRepository = Depends(get_repository),
    storage: R2StorageService = Depends(get_storage),
    _token: Optional[str] = Depends(verify_bearer_token),
):
    """
    Stream a video from durable storage.

    Never falls back to the upstream URL: until the copy exists the answer is 404.
    """
    video = await repository.get(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail="Video not found")
    if not video.r2_key:
        raise HTTPException(status_code=404, detail="Video not available for streaming")

    total_size = await storage.head_object_async(video.r2_key)
    if total_size is None:
        logger.error("stream_object_missing", video_id=video_id, r2_key=video.r2_key)
        raise HTTPException(status_code=404, detail="Video file not found")

    try:
        byte_range = parse_range_header(request.headers.get("range"), total_size)
    except RangeNotSatisfiableError:
        return Response(
            status_code=416,
            headers={"Content-Range": f"bytes */{total_size}", "Accept-Ranges": "bytes"},
        )

    stored = await storage.get_object_async(video.r2_key, byte_range)
    if stored is None:
        raise HTTPException(status_code=404, detail="Video file not found")

    headers = {
        "Accept-Ranges": "bytes",
        "Cache-Control": "private, max-age=3600",
    }
    if byte_range is not None:
        start, end = byte_range
        headers["Content-Range"] = f"bytes {start}-{end}/{stored.total_size}"
        headers["Content-Length"] = str(end - start + 1)
        status_code = 206
    else:
        headers["Content-Length"] = str(stored.size)
        status_code = 200

    logger.info("video_stream", video_id=video_id, range=byte_range, status_code=status_code)
    return StreamingResponse(
        _iter_body(stored.body, settings.STREAM_CHUNK_SIZE),
        status_code=status_code,
        media_type=VIDEO_CONTENT_TYPE,
        headers=headers,
    )


@router.get(
    "/videos/{video_id}/download",
    responses={
        200: {"description": "Video file as an attachment"},
        302: {"description": "Legacy record without a durable copy"},
        404: {"description": "Video not available"},
    },
    summary="Download Video",
)
async def download_video(
    video_id: str = Path(..., description="Video identifier (UUID)"),
    repository: VideoRepository = Depends(get_repository),
    storage: R2StorageService = Depends(get_storage),
    _token: Optional[str] = Depends(verify_bearer_token),
):
    """Download from durable storage; redirect to videoUrl only when no durable key exists."""
    video = await repository.get(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail="Video not found")

    if video.r2_key:
        stored = await storage.get_object_async(video.r2_key)
        if stored is None:
            raise HTTPException(status_code=404, detail="Video file not found")

        return StreamingResponse(
            _iter_body(stored.body, settings.STREAM_CHUNK_SIZE),
            media_type=VIDEO_CONTENT_TYPE,
            headers={
                "Content-Disposition": f'attachment; filename="bird-{video_id}.mp4"',
                "Content-Length": str(stored.size),
                "Cache-Control": "private, max-age=3600",
            },
        )

    if video.video_url:
        return RedirectResponse(video.video_url, status_code=302)

    raise HTTPException(status_code=404, detail="Video not available")


@router.get("/video-status", summary="Video Status Summary")
async def video_status(
    update: bool = Query(False, description="Run a sweep before summarizing"),
    repository: VideoRepository = Depends(get_repository),
    poller_service: VideoPollerService = Depends(get_poller_service),
):
    """Counts per status plus the latest 100 videos; update=true sweeps first."""
    processed = None
    if update:
        processed = await poller_service.poll_pending_videos()

    counts = await repository.count_by_status()
    videos = await repository.list_recent(100)
    now = now_ms()

    return {
        "summary": {
            "total": sum(counts.values()),
            "byStatus": counts,
            "lastUpdated": now,
            "updatePerformed": update,
            "processed": processed,
        },
        "videos": [
            {
                "id": video.id,
                "status": video.status,
                "error": video.error,
                "hasUrl": bool(video.r2_key),
                "createdAt": video.created_at,
                "ageSeconds": (now - video.created_at) // 1000,
            }
            for video in videos
        ],
    }


@router.get(
    "/poll-videos",
    response_model=PollVideosResponse,
    responses={
        403: {"description": "Not available in production"},
        500: {"model": ErrorResponse, "description": "Sweep failed"},
    },
    summary="Run Sweep",
)
async def poll_videos(poller_service: VideoPollerService = Depends(get_poller_service)):
    """Run one reconciliation sweep now (development helper)."""
    if settings.is_production:
        raise HTTPException(status_code=403, detail="Not available in production")

    try:
        processed = await poller_service.poll_pending_videos()
    except Exception as e:
        logger.error("manual_sweep_failed", error=str(e), exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e) or "Unknown error"})

    return PollVideosResponse(processed=processed, message=f"Processed {processed} videos")
