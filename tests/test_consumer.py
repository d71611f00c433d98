"""Tests for transcription_orchestrator.queue.consumer module."""

import json
from unittest.mock import AsyncMock

import httpx

from conftest import JOB_BODY, OPERATION_NAME
from transcription_orchestrator.orchestrator import JobOutcome
from transcription_orchestrator.queue.consumer import QueueConsumer, QueueMessage

QUEUE_API_URL = "https://api.cloudflare.com/client/v4/accounts/123"


def _make_consumer(**overrides) -> QueueConsumer:
    """Create a QueueConsumer with test configuration."""
    config = dict(
        queue_api_url=QUEUE_API_URL,
        queue_id="jobs-queue-id",
        api_token="test-token",
        poll_interval=0.1,
        recheck_delay=60,
    )
    config.update(overrides)
    return QueueConsumer(**config)


def _stub_queue_calls(consumer: QueueConsumer, published: bool = True) -> None:
    consumer._ack_message = AsyncMock()
    consumer._retry_message = AsyncMock()
    consumer._publish_recheck = AsyncMock(return_value=published)


def _pending(operation_name=OPERATION_NAME) -> JobOutcome:
    return JobOutcome(status="pending", job_id="job123", operation_name=operation_name)


class TestConfig:
    """Environment configuration."""

    def test_reads_env(self, monkeypatch):
        monkeypatch.setenv("QUEUE_API_URL", QUEUE_API_URL + "/")
        monkeypatch.setenv("QUEUE_ID", "env-queue")
        monkeypatch.setenv("QUEUE_API_TOKEN", "env-token")
        monkeypatch.setenv("QUEUE_POLL_INTERVAL", "2.5")
        monkeypatch.setenv("RECHECK_DELAY_SECONDS", "30")
        consumer = QueueConsumer()
        assert consumer._url("/pull") == (
            f"{QUEUE_API_URL}/queues/env-queue/messages/pull"
        )
        assert consumer.poll_interval == 2.5
        assert consumer.recheck_delay == 30

    def test_default_recheck_delay(self, monkeypatch):
        monkeypatch.delenv("RECHECK_DELAY_SECONDS", raising=False)
        assert QueueConsumer(queue_id="q").recheck_delay == 120


class TestQueueConsumerPollOnce:
    """Tests for QueueConsumer.poll_once() message handling."""

    async def test_valid_message_dispatched_and_acked(self):
        """A completed job is dispatched once and acked."""
        consumer = _make_consumer()
        msg = QueueMessage(message_id="msg-1", lease_id="lease-1", body=JOB_BODY)
        consumer._pull_messages = AsyncMock(return_value=[msg])
        _stub_queue_calls(consumer)
        dispatch = AsyncMock(
            return_value=JobOutcome(status="completed", job_id="job123")
        )

        count = await consumer.poll_once(dispatch)

        assert count == 1
        dispatch.assert_awaited_once()
        job_message = dispatch.await_args.args[0]
        assert job_message.job.job_id == "job123"
        consumer._ack_message.assert_awaited_once()
        consumer._publish_recheck.assert_not_awaited()

    async def test_invalid_message_acked_without_dispatch(self):
        """A message missing required fields is dropped, not redelivered."""
        consumer = _make_consumer()
        msg = QueueMessage(
            message_id="msg-bad", lease_id="lease-bad", body={"jobId": "job123"}
        )
        consumer._pull_messages = AsyncMock(return_value=[msg])
        _stub_queue_calls(consumer)
        dispatch = AsyncMock()

        count = await consumer.poll_once(dispatch)

        assert count == 1
        dispatch.assert_not_awaited()
        consumer._ack_message.assert_awaited_once()
        consumer._retry_message.assert_not_awaited()

    async def test_scheduler_tick_acked(self):
        consumer = _make_consumer()
        msg = QueueMessage(message_id="tick", lease_id="lease-t", body={"action": "poll"})
        consumer._pull_messages = AsyncMock(return_value=[msg])
        _stub_queue_calls(consumer)
        dispatch = AsyncMock()

        await consumer.poll_once(dispatch)

        dispatch.assert_not_awaited()
        consumer._ack_message.assert_awaited_once()

    async def test_dispatch_exception_acks_message(self):
        """When dispatch raises, the message is still acked."""
        consumer = _make_consumer()
        msg = QueueMessage(message_id="msg-err", lease_id="lease-err", body=JOB_BODY)
        consumer._pull_messages = AsyncMock(return_value=[msg])
        _stub_queue_calls(consumer)
        dispatch = AsyncMock(side_effect=RuntimeError("boom"))

        count = await consumer.poll_once(dispatch)

        assert count == 1
        consumer._ack_message.assert_awaited_once()
        consumer._retry_message.assert_not_awaited()

    async def test_pending_schedules_recheck(self):
        """A still-running job gets a delayed follow-up carrying the operation."""
        consumer = _make_consumer()
        msg = QueueMessage(message_id="msg-1", lease_id="lease-1", body=JOB_BODY)
        consumer._pull_messages = AsyncMock(return_value=[msg])
        _stub_queue_calls(consumer)
        dispatch = AsyncMock(return_value=_pending())

        await consumer.poll_once(dispatch)

        consumer._publish_recheck.assert_awaited_once()
        follow_up = consumer._publish_recheck.await_args.args[0]
        assert follow_up.operation_name == OPERATION_NAME
        assert follow_up.poll_count == 1
        consumer._ack_message.assert_awaited_once()

    async def test_failed_recheck_publish_redelivers_recheck(self):
        consumer = _make_consumer()
        body = dict(JOB_BODY, operationName=OPERATION_NAME, pollCount=2)
        msg = QueueMessage(message_id="msg-2", lease_id="lease-2", body=body)
        consumer._pull_messages = AsyncMock(return_value=[msg])
        _stub_queue_calls(consumer, published=False)

        await consumer.poll_once(AsyncMock(return_value=_pending()))

        consumer._retry_message.assert_awaited_once()
        consumer._ack_message.assert_not_awaited()

    async def test_failed_publish_never_redelivers_submission(self):
        consumer = _make_consumer()
        msg = QueueMessage(message_id="msg-1", lease_id="lease-1", body=JOB_BODY)
        consumer._pull_messages = AsyncMock(return_value=[msg])
        _stub_queue_calls(consumer, published=False)

        await consumer.poll_once(AsyncMock(return_value=_pending()))

        consumer._retry_message.assert_not_awaited()
        consumer._ack_message.assert_awaited_once()

    async def test_pending_without_operation_not_rescheduled(self):
        consumer = _make_consumer()
        msg = QueueMessage(message_id="msg-1", lease_id="lease-1", body=JOB_BODY)
        consumer._pull_messages = AsyncMock(return_value=[msg])
        _stub_queue_calls(consumer)

        await consumer.poll_once(AsyncMock(return_value=_pending(operation_name=None)))

        consumer._publish_recheck.assert_not_awaited()
        consumer._ack_message.assert_awaited_once()


class TestQueueConsumerHttp:
    """Wire format of pull, ack, retry and publish requests."""

    def _make_client(self, captured, response_body=None) -> httpx.AsyncClient:
        """Build an AsyncClient backed by a MockTransport that records requests."""

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json=response_body or {}, request=request)

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    async def test_body_as_json_string_is_parsed_to_dict(self):
        """The queue API returns bodies as JSON strings."""
        response = {
            "result": {
                "messages": [
                    {"id": "msg-1", "lease_id": "lease-1", "body": json.dumps(JOB_BODY)}
                ]
            }
        }
        captured: list[httpx.Request] = []
        consumer = _make_consumer()
        async with self._make_client(captured, response) as client:
            messages = await consumer._pull_messages(client)

        assert len(messages) == 1
        assert messages[0].body == JOB_BODY
        assert str(captured[0].url) == (
            f"{QUEUE_API_URL}/queues/jobs-queue-id/messages/pull"
        )
        assert captured[0].headers["Authorization"] == "Bearer test-token"
        assert json.loads(captured[0].content) == {"batch_size": 10}

    async def test_body_already_dict_is_passed_through(self):
        response = {
            "result": {"messages": [{"id": "m", "lease_id": "l", "body": JOB_BODY}]}
        }
        consumer = _make_consumer()
        async with self._make_client([], response) as client:
            messages = await consumer._pull_messages(client)
        assert messages[0].body == JOB_BODY

    async def test_malformed_message_skipped(self):
        response = {
            "result": {
                "messages": [
                    {"id": "m1", "body": "{}"},
                    {"id": "m2", "lease_id": "l2", "body": "{not json"},
                    {"id": "m3", "lease_id": "l3", "body": JOB_BODY},
                ]
            }
        }
        consumer = _make_consumer()
        async with self._make_client([], response) as client:
            messages = await consumer._pull_messages(client)
        assert [m.message_id for m in messages] == ["m3"]

    async def test_empty_queue_returns_empty_list(self):
        consumer = _make_consumer()
        async with self._make_client([], {"result": {"messages": []}}) as client:
            assert await consumer._pull_messages(client) == []

    async def test_pull_http_error_returns_empty_list(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, request=request)

        consumer = _make_consumer()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            assert await consumer._pull_messages(client) == []

    async def test_publish_recheck_request(self):
        from transcription_orchestrator.jobs import JobMessage

        captured: list[httpx.Request] = []
        consumer = _make_consumer(recheck_delay=45)
        follow_up = JobMessage.from_message_body(JOB_BODY).next_check(OPERATION_NAME)

        async with self._make_client(captured) as client:
            assert await consumer._publish_recheck(follow_up, client) is True

        assert str(captured[0].url) == f"{QUEUE_API_URL}/queues/jobs-queue-id/messages"
        sent = json.loads(captured[0].content)
        assert sent["delay_seconds"] == 45
        assert sent["body"]["operationName"] == OPERATION_NAME
        assert sent["body"]["pollCount"] == 1

    async def test_enqueue_publishes_without_delay(self, httpx_mock):
        from transcription_orchestrator.jobs import JobMessage

        url = f"{QUEUE_API_URL}/queues/jobs-queue-id/messages"
        httpx_mock.add_response(url=url, method="POST", status_code=200)
        consumer = _make_consumer()

        assert await consumer.enqueue(JobMessage.from_message_body(JOB_BODY)) is True

        sent = json.loads(httpx_mock.get_request().content)
        assert "delay_seconds" not in sent
        assert sent["body"]["jobId"] == "job123"
        assert "operationName" not in sent["body"]

    async def test_enqueue_failure_returns_false(self, httpx_mock):
        from transcription_orchestrator.jobs import JobMessage

        httpx_mock.add_response(status_code=503)
        consumer = _make_consumer()

        assert await consumer.enqueue(JobMessage.from_message_body(JOB_BODY)) is False

    async def test_ack_and_retry_requests(self):
        captured: list[httpx.Request] = []
        consumer = _make_consumer()
        async with self._make_client(captured) as client:
            await consumer._ack_message("lease-a", client)
            await consumer._retry_message("lease-r", client)

        assert json.loads(captured[0].content) == {"acks": [{"lease_id": "lease-a"}]}
        assert json.loads(captured[1].content) == {"retries": [{"lease_id": "lease-r"}]}
        assert all(str(r.url).endswith("/messages/ack") for r in captured)


class TestRunLoop:
    """run() and stop()."""

    async def test_stop_ends_loop(self):
        consumer = _make_consumer(poll_interval=0.01)

        async def fake_poll_once(dispatch_fn):
            consumer.stop()
            return 0

        consumer.poll_once = fake_poll_once
        await consumer.run(AsyncMock())
        assert consumer._running is False
