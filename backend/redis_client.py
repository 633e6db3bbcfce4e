"""
Redis-backed message queue for video generation requests

Delivery is at-least-once: a received message sits in an in-flight list until
it is acked or retried, and a worker that dies mid-message leaves it there for
requeue_inflight() to hand back out. Retries are delayed through a sorted set
with exponential backoff; messages that run out of attempts land in a
dead-letter list.
"""

import json
import time
import uuid
import structlog
from dataclasses import dataclass
from typing import Optional, Dict, Any
from redis import Redis, ConnectionPool
from redis.exceptions import RedisError, ConnectionError
from config import settings
from pipeline.error_handler import get_retry_delay

logger = structlog.get_logger()


@dataclass
class QueueMessage:
    """A delivered message and the exact payload it was delivered as"""
    message_id: str
    body: Dict[str, Any]
    attempts: int
    enqueued_at: float
    raw: str


def _encode(message_id: str, body: Dict[str, Any], attempts: int, enqueued_at: float) -> str:
    return json.dumps({
        "messageId": message_id,
        "body": body,
        "attempts": attempts,
        "enqueuedAt": enqueued_at,
    })


class VideoQueue:
    """Redis queue with in-flight tracking, delayed retry and dead-lettering"""

    def __init__(self, client: Optional[Redis] = None, queue_name: Optional[str] = None):
        """
        Args:
            client: Optional preconfigured Redis client (connects lazily otherwise)
            queue_name: Base key for the queue (default VIDEO_QUEUE_NAME)
        """
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = client
        self.queue_name = queue_name or settings.VIDEO_QUEUE_NAME
        self.inflight_key = f"{self.queue_name}:inflight"
        self.delayed_key = f"{self.queue_name}:delayed"
        self.dead_letter_key = f"{self.queue_name}:dead"
        self.max_retries = settings.QUEUE_MAX_RETRIES

    def _connect(self):
        """Establish Redis connection with connection pool"""
        try:
            self._pool = ConnectionPool.from_url(
                settings.REDIS_URL,
                max_connections=settings.REDIS_MAX_CONNECTIONS,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=settings.REDIS_SOCKET_CONNECT_TIMEOUT,
                retry_on_timeout=settings.REDIS_RETRY_ON_TIMEOUT,
                health_check_interval=settings.REDIS_HEALTH_CHECK_INTERVAL,
                decode_responses=True
            )
            self._client = Redis(connection_pool=self._pool)

            # Test connection
            self._client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)

        except ConnectionError as e:
            logger.error("redis_connection_failed", error=str(e))
            raise

    def get_client(self) -> Redis:
        """Get Redis client instance"""
        if self._client is None:
            self._connect()
        return self._client

    def ping(self) -> bool:
        """Check if Redis is connected"""
        try:
            return bool(self.get_client().ping())
        except RedisError as e:
            logger.error("redis_ping_failed", error=str(e))
            return False

    def close(self):
        """Close Redis connection"""
        if self._client:
            self._client.close()
            logger.info("redis_connection_closed")

    # ===== Producer =====

    def send(self, body: Dict[str, Any]) -> str:
        """
        Enqueue a message

        Args:
            body: JSON-serializable message body

        Returns:
            str: Message id

        Raises:
            RedisError: If the push failed
        """
        message_id = uuid.uuid4().hex
        self.get_client().rpush(self.queue_name, _encode(message_id, body, 0, time.time()))
        logger.info("queue_message_sent", message_id=message_id, video_id=body.get("id"))
        return message_id

    # ===== Consumer =====

    def receive(self, timeout: Optional[int] = None) -> Optional[QueueMessage]:
        """
        Take the next message, moving it to the in-flight list

        Args:
            timeout: Seconds to block waiting (default QUEUE_RECEIVE_TIMEOUT)

        Returns:
            Optional[QueueMessage]: Message or None if the queue stayed empty
        """
        client = self.get_client()
        self._promote_due_retries()

        raw = client.blmove(
            self.queue_name,
            self.inflight_key,
            settings.QUEUE_RECEIVE_TIMEOUT if timeout is None else timeout,
            "LEFT",
            "RIGHT",
        )
        if raw is None:
            return None

        try:
            envelope = json.loads(raw)
            return QueueMessage(
                message_id=envelope["messageId"],
                body=envelope["body"],
                attempts=int(envelope.get("attempts", 0)),
                enqueued_at=float(envelope.get("enqueuedAt", 0)),
                raw=raw,
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.error("queue_message_unreadable", error=str(e), raw=raw[:200])
            client.lrem(self.inflight_key, 1, raw)
            client.rpush(self.dead_letter_key, raw)
            return None

    def ack(self, message: QueueMessage) -> None:
        """Mark a message as done"""
        self.get_client().lrem(self.inflight_key, 1, message.raw)
        logger.info("queue_message_acked", message_id=message.message_id)

    def retry(self, message: QueueMessage) -> bool:
        """
        Schedule a message for redelivery with exponential backoff

        Returns:
            bool: False if the message was dead-lettered instead
        """
        client = self.get_client()
        attempts = message.attempts + 1
        payload = _encode(message.message_id, message.body, attempts, message.enqueued_at)

        client.lrem(self.inflight_key, 1, message.raw)

        if attempts >= self.max_retries:
            client.rpush(self.dead_letter_key, payload)
            logger.error(
                "queue_message_dead_lettered",
                message_id=message.message_id,
                video_id=message.body.get("id"),
                attempts=attempts
            )
            return False

        delay = get_retry_delay(
            message.attempts,
            base_delay=settings.QUEUE_RETRY_BASE_DELAY,
            max_delay=settings.QUEUE_RETRY_MAX_DELAY
        )
        client.zadd(self.delayed_key, {payload: time.time() + delay})
        logger.info(
            "queue_message_retry_scheduled",
            message_id=message.message_id,
            attempts=attempts,
            delay_seconds=delay
        )
        return True

    def _promote_due_retries(self) -> int:
        """Move delayed messages whose backoff has elapsed back onto the queue"""
        client = self.get_client()
        promoted = 0
        for payload in client.zrangebyscore(self.delayed_key, 0, time.time()):
            # ZREM decides which worker promotes it
            if client.zrem(self.delayed_key, payload):
                client.rpush(self.queue_name, payload)
                promoted += 1
        return promoted

    def requeue_inflight(self) -> int:
        """
        Return every in-flight message to the queue

        Called when a worker starts, before it receives anything; messages
        left behind by a crashed worker are delivered again.

        Returns:
            int: Number of messages requeued
        """
        client = self.get_client()
        count = 0
        while client.lmove(self.inflight_key, self.queue_name, "RIGHT", "LEFT") is not None:
            count += 1
        if count:
            logger.warning("queue_inflight_requeued", count=count)
        return count

    def depth(self) -> Dict[str, int]:
        """Message counts per list, for health reporting"""
        client = self.get_client()
        return {
            "queued": client.llen(self.queue_name),
            "inflight": client.llen(self.inflight_key),
            "delayed": client.zcard(self.delayed_key),
            "dead": client.llen(self.dead_letter_key),
        }


_video_queue: Optional[VideoQueue] = None


def get_video_queue() -> VideoQueue:
    """Get the process-wide queue (connects on first use)"""
    global _video_queue
    if _video_queue is None:
        _video_queue = VideoQueue()
    return _video_queue
