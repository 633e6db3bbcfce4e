"""
Scheduled reconciliation sweep

Runs VideoPollerService.poll_pending_videos() every SWEEP_INTERVAL_SECONDS.
Several schedulers may run at once; the sweep is safe to overlap with itself
and with the queue worker.

Usage:
    python scheduler.py          # loop forever
    python scheduler.py --once   # single sweep, e.g. from cron
"""

import asyncio
import signal
import sys
import time
import structlog
import httpx

from config import settings
from database import init_db
from dependencies import build_poller_service
from services.r2_storage import get_r2_storage_service
from services.video_repository import VideoRepository

logger = structlog.get_logger()


async def run_sweep(poller_service) -> int:
    """One sweep; errors are logged, never raised."""
    started = time.time()
    try:
        processed = await poller_service.poll_pending_videos()
    except Exception as e:
        logger.error("scheduled_sweep_failed", error=str(e), exc_info=True)
        return 0

    logger.info(
        "scheduled_sweep_completed",
        processed=processed,
        duration=f"{time.time() - started:.3f}s"
    )
    return processed


async def run_scheduler(once: bool = False, stop_event: asyncio.Event = None):
    """
    Sweep on a fixed interval until stopped

    Args:
        once: Run a single sweep and return
        stop_event: Set to stop the loop (installed on SIGTERM/SIGINT when omitted)
    """
    init_db()
    stop_event = stop_event or asyncio.Event()

    if not once:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except (NotImplementedError, RuntimeError):
                logger.warning("signal_handler_unavailable", signal=sig.name)

    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as http_client:
        poller_service = build_poller_service(http_client, VideoRepository(), get_r2_storage_service())

        logger.info("scheduler_started", interval_seconds=settings.SWEEP_INTERVAL_SECONDS, once=once)
        while True:
            await run_sweep(poller_service)
            if once:
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=settings.SWEEP_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                continue

    logger.info("scheduler_stopped")


def main():
    asyncio.run(run_scheduler(once="--once" in sys.argv[1:]))


if __name__ == "__main__":
    main()
