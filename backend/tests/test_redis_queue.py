"""
Tests for the Redis-backed video queue.

The Redis client is a MagicMock; the tests check which commands the queue
issues and how it encodes messages.
"""

import json
import pytest
from unittest.mock import MagicMock, patch

from redis_client import QueueMessage, VideoQueue, _encode


@pytest.fixture
def redis_mock():
    client = MagicMock()
    client.zrangebyscore.return_value = []
    return client


@pytest.fixture
def queue(redis_mock):
    q = VideoQueue(client=redis_mock, queue_name="videos")
    q.max_retries = 3
    return q


def delivered(attempts=0, body=None):
    body = body or {"id": "v1", "operationName": "operations/op-1"}
    raw = _encode("m1", body, attempts, 1000.0)
    return QueueMessage(message_id="m1", body=body, attempts=attempts, enqueued_at=1000.0, raw=raw)


class TestSend:

    def test_pushes_envelope(self, queue, redis_mock):
        message_id = queue.send({"id": "v1"})

        key, payload = redis_mock.rpush.call_args[0]
        envelope = json.loads(payload)
        assert key == "videos"
        assert envelope["messageId"] == message_id
        assert envelope["body"] == {"id": "v1"}
        assert envelope["attempts"] == 0


class TestReceive:

    def test_moves_into_inflight(self, queue, redis_mock):
        raw = _encode("m1", {"id": "v1"}, 2, 1000.0)
        redis_mock.blmove.return_value = raw

        message = queue.receive(timeout=1)

        redis_mock.blmove.assert_called_once_with("videos", "videos:inflight", 1, "LEFT", "RIGHT")
        assert message.message_id == "m1"
        assert message.body == {"id": "v1"}
        assert message.attempts == 2
        assert message.raw == raw

    def test_empty_queue(self, queue, redis_mock):
        redis_mock.blmove.return_value = None
        assert queue.receive(timeout=1) is None

    def test_unreadable_payload_is_dead_lettered(self, queue, redis_mock):
        redis_mock.blmove.return_value = "not json"

        assert queue.receive(timeout=1) is None
        redis_mock.lrem.assert_called_once_with("videos:inflight", 1, "not json")
        redis_mock.rpush.assert_called_once_with("videos:dead", "not json")

    def test_due_retries_are_promoted_first(self, queue, redis_mock):
        redis_mock.zrangebyscore.return_value = ["a", "b"]
        redis_mock.zrem.side_effect = [1, 0]  # another worker already took "b"
        redis_mock.blmove.return_value = None

        queue.receive(timeout=1)

        redis_mock.rpush.assert_called_once_with("videos", "a")


class TestAckRetry:

    def test_ack_removes_from_inflight(self, queue, redis_mock):
        message = delivered()
        queue.ack(message)
        redis_mock.lrem.assert_called_once_with("videos:inflight", 1, message.raw)

    def test_retry_schedules_with_backoff(self, queue, redis_mock):
        message = delivered(attempts=1)

        with patch("redis_client.time.time", return_value=5000.0):
            assert queue.retry(message) is True

        redis_mock.lrem.assert_called_once_with("videos:inflight", 1, message.raw)
        key, mapping = redis_mock.zadd.call_args[0]
        assert key == "videos:delayed"
        (payload, due), = mapping.items()
        assert json.loads(payload)["attempts"] == 2
        # base 10s doubled once
        assert due == 5020.0

    def test_retry_dead_letters_at_max(self, queue, redis_mock):
        message = delivered(attempts=2)

        assert queue.retry(message) is False

        redis_mock.zadd.assert_not_called()
        key, payload = redis_mock.rpush.call_args[0]
        assert key == "videos:dead"
        assert json.loads(payload)["attempts"] == 3


def test_requeue_inflight(queue, redis_mock):
    redis_mock.lmove.side_effect = ["a", "b", None]

    assert queue.requeue_inflight() == 2
    redis_mock.lmove.assert_called_with("videos:inflight", "videos", "RIGHT", "LEFT")
