"""Queue consumer that drives transcription jobs.

Pulls messages from an HTTP pull queue, hands each job to the
orchestrator and acks it. When a job is still running, a follow-up
message carrying the operation name is published with a delivery delay:
that delayed message is the scheduled re-invocation that resumes
polling. Delivery is at-least-once, so every stage tolerates running
twice for the same job.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from transcription_orchestrator.jobs import JobMessage
from transcription_orchestrator.orchestrator import JobOutcome
from transcription_orchestrator.utils.errors import InvalidRequest

logger = logging.getLogger(__name__)

DEFAULT_RECHECK_DELAY_SECONDS = 120
QUEUE_REQUEST_TIMEOUT_SECONDS = 30.0

DispatchFn = Callable[[JobMessage], Awaitable[JobOutcome]]


@dataclass
class QueueMessage:
    """A message leased from the queue."""

    message_id: str
    lease_id: str
    body: Any


class QueueConsumer:
    """HTTP pull consumer for transcription job messages.

    Configuration from environment variables:
        QUEUE_API_URL, QUEUE_ID, QUEUE_API_TOKEN, QUEUE_POLL_INTERVAL,
        RECHECK_DELAY_SECONDS
    """

    def __init__(
        self,
        queue_api_url: str | None = None,
        queue_id: str | None = None,
        api_token: str | None = None,
        poll_interval: float | None = None,
        recheck_delay: int | None = None,
        batch_size: int = 10,
    ) -> None:
        self.queue_api_url = (
            queue_api_url or os.environ.get("QUEUE_API_URL", "")
        ).rstrip("/")
        self.queue_id = queue_id or os.environ.get("QUEUE_ID", "")
        self.api_token = api_token or os.environ.get("QUEUE_API_TOKEN", "")
        self.poll_interval = (
            poll_interval
            if poll_interval is not None
            else float(os.environ.get("QUEUE_POLL_INTERVAL", "5"))
        )
        self.recheck_delay = (
            recheck_delay
            if recheck_delay is not None
            else int(
                os.environ.get(
                    "RECHECK_DELAY_SECONDS", str(DEFAULT_RECHECK_DELAY_SECONDS)
                )
            )
        )
        self.batch_size = batch_size
        self._running = False

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }

    def _url(self, suffix: str) -> str:
        return f"{self.queue_api_url}/queues/{self.queue_id}/messages{suffix}"

    async def _pull_messages(self, client: httpx.AsyncClient) -> list[QueueMessage]:
        """Lease a batch of messages.

        Returns:
            List of QueueMessage objects. Empty list on error or no messages.
        """
        try:
            response = await client.post(
                self._url("/pull"),
                headers=self._headers(),
                json={"batch_size": self.batch_size},
                timeout=QUEUE_REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error("Queue pull failed for %s: %s", self.queue_id, exc)
            return []

        data = response.json()
        messages_data = (data.get("result") or {}).get("messages", [])

        messages: list[QueueMessage] = []
        for msg in messages_data:
            try:
                body = msg["body"]
                # the HTTP API returns JSON message bodies as strings
                if isinstance(body, str):
                    body = json.loads(body) if body.strip() else None
                messages.append(
                    QueueMessage(
                        message_id=msg["id"],
                        lease_id=msg["lease_id"],
                        body=body,
                    )
                )
            except (KeyError, TypeError, json.JSONDecodeError) as exc:
                logger.warning("Malformed queue message structure: %s", exc)

        return messages

    async def _ack_message(self, lease_id: str, client: httpx.AsyncClient) -> None:
        try:
            response = await client.post(
                self._url("/ack"),
                headers=self._headers(),
                json={"acks": [{"lease_id": lease_id}]},
                timeout=QUEUE_REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error("Ack failed for lease %s: %s", lease_id, exc)

    async def _retry_message(
        self, lease_id: str, client: httpx.AsyncClient
    ) -> None:
        """Return a message to the queue for redelivery."""
        try:
            response = await client.post(
                self._url("/ack"),
                headers=self._headers(),
                json={"retries": [{"lease_id": lease_id}]},
                timeout=QUEUE_REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error("Retry failed for lease %s: %s", lease_id, exc)

    async def _publish(
        self,
        message: JobMessage,
        client: httpx.AsyncClient,
        delay_seconds: int = 0,
    ) -> bool:
        """Send one job message to the queue.

        Returns:
            True if the queue accepted the message.
        """
        payload: dict[str, Any] = {"body": message.to_message_body()}
        if delay_seconds:
            payload["delay_seconds"] = delay_seconds
        try:
            response = await client.post(
                self._url(""),
                headers=self._headers(),
                json=payload,
                timeout=QUEUE_REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            logger.error(
                "Queue publish failed: %s",
                exc,
                extra={
                    "job_id": message.job.job_id,
                    "operation_name": message.operation_name,
                },
            )
            return False
        return True

    async def _publish_recheck(
        self, message: JobMessage, client: httpx.AsyncClient
    ) -> bool:
        """Enqueue a delayed follow-up message for the next status check."""
        return await self._publish(message, client, self.recheck_delay)

    async def enqueue(self, message: JobMessage) -> bool:
        """Publish a new job for immediate delivery."""
        async with httpx.AsyncClient() as client:
            return await self._publish(message, client)

    async def _process_message(
        self,
        message: QueueMessage,
        dispatch_fn: DispatchFn,
        client: httpx.AsyncClient,
    ) -> None:
        """Validate, dispatch, reschedule if pending, and ack a message."""
        try:
            job_message = JobMessage.from_message_body(message.body)
        except InvalidRequest as exc:
            logger.warning("Invalid message %s: %s", message.message_id, exc)
            await self._ack_message(message.lease_id, client)
            return

        if job_message is None:
            logger.debug("Scheduler tick %s carries no job", message.message_id)
            await self._ack_message(message.lease_id, client)
            return

        logger.info(
            "Processing job (check #%d)",
            job_message.poll_count + 1,
            extra={
                "job_id": job_message.job.job_id,
                "operation_name": job_message.operation_name,
            },
        )

        try:
            outcome = await dispatch_fn(job_message)
        except Exception:
            logger.error(
                "Dispatch failed for message %s",
                message.message_id,
                exc_info=True,
                extra={"job_id": job_message.job.job_id},
            )
            await self._ack_message(message.lease_id, client)
            return

        if outcome.status == "pending" and outcome.operation_name:
            follow_up = job_message.next_check(outcome.operation_name)
            published = await self._publish_recheck(follow_up, client)
            if not published and job_message.operation_name:
                # A re-check message can simply be redelivered.
                await self._retry_message(message.lease_id, client)
                return
            if not published:
                # Redelivering a submission would start a second operation.
                logger.error(
                    "Re-check not scheduled; resume from the processing callback",
                    extra={
                        "job_id": job_message.job.job_id,
                        "operation_name": outcome.operation_name,
                    },
                )

        await self._ack_message(message.lease_id, client)

    async def poll_once(self, dispatch_fn: DispatchFn) -> int:
        """Execute a single pull cycle.

        Returns:
            Number of messages processed.
        """
        processed = 0
        async with httpx.AsyncClient() as client:
            messages = await self._pull_messages(client)
            for msg in messages:
                await self._process_message(msg, dispatch_fn, client)
                processed += 1
        return processed

    async def run(self, dispatch_fn: DispatchFn) -> None:
        """Start the polling loop. Runs until stopped."""
        self._running = True
        logger.info("Queue consumer starting poll loop")

        while self._running:
            try:
                count = await self.poll_once(dispatch_fn)
                if count > 0:
                    logger.info("Processed %d messages this cycle", count)
            except Exception:
                logger.error("Unexpected error in poll cycle", exc_info=True)

            await asyncio.sleep(self.poll_interval)

    def stop(self) -> None:
        """Signal the polling loop to stop."""
        self._running = False
        logger.info("Queue consumer stopping")
