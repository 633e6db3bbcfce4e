"""
Handler for video generation queue messages.

Brings one record as far toward downloaded as it can go right now and tells
the queue whether to drop the message or deliver it again later. Redelivery
timing and final abandonment belong to the queue.
"""

import structlog
from enum import Enum
from typing import Any, Dict

from pydantic import ValidationError

from pipeline.error_handler import VideoNotFoundError, categorize_error, should_retry
from schemas import VideoQueueMessage
from services.video_poller import VideoPollerService
from services.video_repository import VideoRepository

logger = structlog.get_logger()


class QueueAction(str, Enum):
    ACK = "ack"
    RETRY = "retry"


async def handle_video_message(
    body: Dict[str, Any],
    poller_service: VideoPollerService,
    repository: VideoRepository,
) -> QueueAction:
    """
    Process one queue message.

    Duplicate deliveries are safe: a record that already reached downloaded or
    failed is acked without polling or copying.

    Args:
        body: Decoded message body {id, promptId?, prompt, operationName}
        poller_service: Service that advances the record
        repository: Store used to record failures

    Returns:
        QueueAction.ACK when the record needs no more work, QueueAction.RETRY otherwise
    """
    try:
        message = VideoQueueMessage.model_validate(body)
    except ValidationError as e:
        logger.error("queue_message_invalid", body=body, error=str(e))
        return QueueAction.ACK

    log = logger.bind(video_id=message.id, operation_name=message.operation_name)

    try:
        log.info("queue_video_processing")
        finished = await poller_service.poll_specific_video(message.id, message.operation_name)
    except Exception as e:
        if isinstance(e, VideoNotFoundError) or should_retry(e):
            log.warning("queue_video_retry", error_code=categorize_error(e).value, error=str(e))
            return QueueAction.RETRY

        log.error(
            "queue_video_failed",
            error_code=categorize_error(e).value,
            error=str(e),
            exc_info=True,
        )
        try:
            await repository.mark_failed(message.id, str(e) or "Unknown error")
        except Exception as db_error:
            log.error("queue_mark_failed_error", error=str(db_error))
        return QueueAction.RETRY

    if finished:
        log.info("queue_video_done")
        return QueueAction.ACK

    log.info("queue_video_not_ready")
    return QueueAction.RETRY
