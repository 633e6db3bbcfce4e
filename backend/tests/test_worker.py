"""
Tests for the queue worker loop

The queue, the sweep service and the message handler are mocked; the tests
check that the worker acks or retries according to the handler's verdict.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from redis_client import QueueMessage
from workers.video_queue_worker import QueueAction


def make_message(message_id="m1"):
    body = {"id": "v1", "operationName": "operations/op-1"}
    return QueueMessage(message_id=message_id, body=body, attempts=0, enqueued_at=0.0, raw="{}")


@pytest.fixture
def queue():
    q = MagicMock()
    q.queue_name = "videos"
    q.max_retries = 20
    q.requeue_inflight.return_value = 0
    return q


@pytest.fixture
def worker(queue):
    with patch("worker.signal.signal"):
        from worker import VideoQueueWorker
        yield VideoQueueWorker(worker_id="test-worker", queue=queue)


def deliver(worker, queue, *messages):
    """Hand out the given messages, then request shutdown on the next receive."""
    pending = list(messages)

    def receive():
        if pending:
            return pending.pop(0)
        worker.state.request_shutdown()
        return None

    queue.receive.side_effect = receive


@pytest.fixture
def patched_run():
    with patch("worker.init_db"), \
         patch("worker.get_r2_storage_service"), \
         patch("worker.build_poller_service") as build, \
         patch("worker.handle_video_message", new_callable=AsyncMock) as handler:
        yield build, handler


@pytest.mark.asyncio
async def test_acks_finished_message(worker, queue, patched_run):
    _, handler = patched_run
    handler.return_value = QueueAction.ACK
    message = make_message()
    deliver(worker, queue, message)

    await worker.run()

    handler.assert_awaited_once()
    assert handler.call_args[0][0] == message.body
    queue.ack.assert_called_once_with(message)
    queue.retry.assert_not_called()
    queue.close.assert_called_once()
    assert worker.state.is_running() is False


@pytest.mark.asyncio
async def test_retries_unfinished_message(worker, queue, patched_run):
    _, handler = patched_run
    handler.return_value = QueueAction.RETRY
    message = make_message()
    deliver(worker, queue, message)

    await worker.run()

    queue.retry.assert_called_once_with(message)
    queue.ack.assert_not_called()


@pytest.mark.asyncio
async def test_requeues_inflight_on_start(worker, queue, patched_run):
    deliver(worker, queue)

    await worker.run()

    queue.requeue_inflight.assert_called_once()


@pytest.mark.asyncio
async def test_loop_survives_queue_errors(worker, queue, patched_run):
    _, handler = patched_run
    handler.return_value = QueueAction.ACK
    message = make_message()
    calls = []

    def receive():
        calls.append(1)
        if len(calls) == 1:
            raise ConnectionError("redis went away")
        if len(calls) == 2:
            return message
        worker.state.request_shutdown()
        return None

    queue.receive.side_effect = receive

    with patch("worker.asyncio.sleep", new_callable=AsyncMock):
        await worker.run()

    queue.ack.assert_called_once_with(message)


def test_health_status(worker, queue):
    queue.ping.return_value = True

    health = worker.get_health_status()

    assert health["worker_id"] == "test-worker"
    assert health["redis_healthy"] is True
    assert health["database_healthy"] is True
    assert health["healthy"] is True


def test_shutdown_signal_stops_loop(worker):
    import signal

    worker._handle_shutdown_signal(signal.SIGTERM, None)

    assert worker.state.is_running() is False
