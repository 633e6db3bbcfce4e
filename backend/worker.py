"""
Queue Worker for Video Generation Tracking

This worker:
- Receives video messages from the Redis queue (BLMOVE into an in-flight list)
- Polls each message's operation and copies finished videos to durable storage
- Acks finished messages, hands the rest back for delayed redelivery
- Requeues messages a crashed worker left in flight when it starts
- Supports graceful shutdown (SIGTERM, SIGINT)
- Designed for horizontal scaling (multiple workers)
"""

import asyncio
import signal
import sys
import time
import traceback
import structlog
import httpx
from typing import Optional, Dict, Any
from datetime import datetime, timezone

from sqlalchemy import text

from config import settings
from database import get_db_context, init_db
from dependencies import build_poller_service
from redis_client import VideoQueue, get_video_queue
from services.r2_storage import get_r2_storage_service
from services.video_repository import VideoRepository
from workers.video_queue_worker import QueueAction, handle_video_message

logger = structlog.get_logger()


class WorkerState:
    """Worker state management for graceful shutdown"""

    def __init__(self):
        self.running = True
        self.current_message_id: Optional[str] = None
        self.shutdown_requested = False

    def request_shutdown(self):
        """Request graceful shutdown"""
        self.shutdown_requested = True
        logger.info("shutdown_requested")

    def is_running(self) -> bool:
        """Check if worker should continue running"""
        return self.running and not self.shutdown_requested

    def stop(self):
        """Stop the worker"""
        self.running = False
        logger.info("worker_stopped")


class VideoQueueWorker:
    """
    Worker for processing video tracking messages from the Redis queue

    Features:
    - Blocking receive with timeout
    - Queue-owned exponential backoff between deliveries
    - Graceful shutdown handling
    - Health check support
    """

    def __init__(self, worker_id: Optional[str] = None, queue: Optional[VideoQueue] = None):
        """
        Initialize worker

        Args:
            worker_id: Optional worker identifier for multi-worker setups
            queue: Queue to consume (default process-wide queue)
        """
        self.worker_id = worker_id or f"worker-{id(self)}"
        self.state = WorkerState()
        self.queue = queue or get_video_queue()
        self.health_check_interval = 30  # seconds
        self.last_health_check = time.time()

        # Setup signal handlers for graceful shutdown
        signal.signal(signal.SIGTERM, self._handle_shutdown_signal)
        signal.signal(signal.SIGINT, self._handle_shutdown_signal)

        logger.info(
            "worker_initialized",
            worker_id=self.worker_id,
            queue=self.queue.queue_name,
            max_retries=self.queue.max_retries
        )

    def _handle_shutdown_signal(self, signum, frame):
        """Handle shutdown signals (SIGTERM, SIGINT)"""
        signal_name = "SIGTERM" if signum == signal.SIGTERM else "SIGINT"
        logger.info(
            "shutdown_signal_received",
            signal=signal_name,
            current_message=self.state.current_message_id
        )
        self.state.request_shutdown()

    async def run(self):
        """
        Main worker loop

        Continuously receives queue messages and processes them one at a time.
        Exits gracefully on shutdown signal; a message being processed is
        finished first.
        """
        logger.info("worker_started", worker_id=self.worker_id)
        loop = asyncio.get_running_loop()

        # Initialize database
        try:
            init_db()
        except Exception as e:
            logger.error("database_init_failed", error=str(e))
            return

        await loop.run_in_executor(None, self.queue.requeue_inflight)

        repository = VideoRepository()
        async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as http_client:
            poller_service = build_poller_service(http_client, repository, get_r2_storage_service())

            while self.state.is_running():
                try:
                    # Periodic health check
                    self._perform_health_check()

                    # Receive from Redis (blocking with timeout)
                    message = await loop.run_in_executor(None, self.queue.receive)
                    if message is None:
                        continue

                    self.state.current_message_id = message.message_id
                    action = await handle_video_message(message.body, poller_service, repository)

                    if action == QueueAction.ACK:
                        await loop.run_in_executor(None, self.queue.ack, message)
                    else:
                        await loop.run_in_executor(None, self.queue.retry, message)
                    self.state.current_message_id = None

                except Exception as e:
                    logger.error(
                        "worker_loop_error",
                        error=str(e),
                        traceback=traceback.format_exc()
                    )
                    # Continue processing despite errors
                    await asyncio.sleep(1)

        self.queue.close()
        self.state.stop()
        logger.info("worker_shutdown_complete", worker_id=self.worker_id)

    def _perform_health_check(self):
        """
        Perform periodic health check

        Verifies:
        - Redis connection is alive
        - Database connection is alive
        """
        current_time = time.time()
        if current_time - self.last_health_check < self.health_check_interval:
            return

        self.last_health_check = current_time

        # Check Redis
        if not self.queue.ping():
            logger.error("health_check_redis_failed", worker_id=self.worker_id)

        # Check Database
        try:
            with get_db_context() as db:
                db.execute(text("SELECT 1"))
            logger.info("health_check_passed", worker_id=self.worker_id, **self.queue.depth())
        except Exception as e:
            logger.error(
                "health_check_database_error",
                worker_id=self.worker_id,
                error=str(e)
            )

    def get_health_status(self) -> Dict[str, Any]:
        """
        Get current health status

        Returns:
            Dictionary with health status information
        """
        redis_healthy = self.queue.ping()
        db_healthy = False

        try:
            with get_db_context() as db:
                db.execute(text("SELECT 1"))
            db_healthy = True
        except Exception as e:
            logger.warning("health_status_database_error", error=str(e))

        return {
            "worker_id": self.worker_id,
            "running": self.state.is_running(),
            "current_message": self.state.current_message_id,
            "redis_healthy": redis_healthy,
            "database_healthy": db_healthy,
            "healthy": redis_healthy and db_healthy and self.state.is_running(),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }


def main():
    """
    Main entry point for worker

    Usage:
        python worker.py [worker_id]

    Example:
        python worker.py worker-1
    """
    worker_id = sys.argv[1] if len(sys.argv) > 1 else None

    worker = VideoQueueWorker(worker_id=worker_id)

    try:
        asyncio.run(worker.run())
    except Exception as e:
        logger.error(
            "worker_fatal_error",
            error=str(e),
            traceback=traceback.format_exc()
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
