"""Stateless orchestration of one transcription job invocation.

Each trigger runs handle_job() once:
submit (first delivery only) -> check status -> classify ->
collect result -> notify. A not-done operation ends the invocation
quietly; the next trigger resumes it. Every terminal classification
sends exactly one callback.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Literal

from transcription_orchestrator.jobs import CallbackPayload, JobMessage, JobRequest
from transcription_orchestrator.notify.webhook import WebhookNotifier
from transcription_orchestrator.observability.metrics import (
    InvocationMetrics,
    StageTimer,
    log_invocation_metrics,
)
from transcription_orchestrator.poller import OperationPoller, PollAction
from transcription_orchestrator.recognition.interface import RecognitionClient
from transcription_orchestrator.recognition.registry import get_recognition_client
from transcription_orchestrator.results.collector import ResultCollector
from transcription_orchestrator.storage.object_store import ObjectStoreClient
from transcription_orchestrator.submitter import JobSubmitter
from transcription_orchestrator.utils.errors import (
    OperationFailure,
    RecognitionError,
    RecognitionStartFailure,
    ResultParseError,
    ResultTimeout,
    StorageError,
)

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["invalid", "pending", "completed", "failed"]


@dataclass
class OrchestratorClients:
    """Long-lived external clients, built once per process and shared."""

    recognition: RecognitionClient
    store: ObjectStoreClient
    notifier: WebhookNotifier

    @classmethod
    def from_env(cls, provider: str = "google") -> OrchestratorClients:
        return cls(
            recognition=get_recognition_client(provider),
            store=ObjectStoreClient(),
            notifier=WebhookNotifier(),
        )

    async def close(self) -> None:
        await self.recognition.close()
        await self.notifier.close()


@dataclass
class JobOutcome:
    """Result of a single invocation."""

    status: OutcomeStatus
    job_id: str
    operation_name: str | None = None
    callback_delivered: bool = False
    error: str | None = None
    metrics: InvocationMetrics | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


@dataclass
class _Invocation:
    """Mutable bookkeeping for one handle_job() call."""

    job: JobRequest
    clients: OrchestratorClients
    metrics: InvocationMetrics
    wall_start: float = field(default_factory=time.monotonic)

    async def notify(self, payload: CallbackPayload) -> bool:
        with StageTimer("notify") as timer:
            delivered = await self.clients.notifier.notify(
                self.job.callback_url, payload.to_dict()
            )
        self.metrics.notify_duration_seconds += timer.duration_seconds
        if payload.is_terminal:
            self.metrics.callback_delivered = delivered
        return delivered

    def finish(
        self,
        status: OutcomeStatus,
        operation_name: str | None = None,
        error: str | None = None,
        error_stage: str | None = None,
    ) -> JobOutcome:
        self.metrics.outcome = status
        self.metrics.operation_name = operation_name or ""
        self.metrics.wall_time_seconds = time.monotonic() - self.wall_start
        self.metrics.error_stage = error_stage
        self.metrics.error_message = error
        log_invocation_metrics(self.metrics)
        return JobOutcome(
            status=status,
            job_id=self.job.job_id,
            operation_name=operation_name,
            callback_delivered=self.metrics.callback_delivered,
            error=error,
            metrics=self.metrics,
        )


async def handle_job(
    message: JobMessage,
    clients: OrchestratorClients,
    collector: ResultCollector | None = None,
    poller: OperationPoller | None = None,
) -> JobOutcome:
    """Run one stateless invocation for a job.

    Args:
        message: Validated queue delivery. Without an operation name the
            job is submitted first.
        clients: Shared recognition, store and notifier clients.
        collector: Optional ResultCollector (built over clients.store with
            default timing if not provided).
        poller: Optional OperationPoller (built over clients.recognition with
            the env check limit if not provided).

    Returns:
        JobOutcome: ``pending`` when the next trigger must re-check,
        ``completed``/``failed`` once the terminal callback was attempted.
    """
    job = message.job
    run = _Invocation(
        job=job, clients=clients, metrics=InvocationMetrics(job_id=job.job_id)
    )
    if collector is None:
        collector = ResultCollector(clients.store)

    operation_name = message.operation_name

    # Stage 1: submit (first delivery only)
    if not operation_name:
        submitter = JobSubmitter(clients.recognition, clients.notifier)
        try:
            with StageTimer("submit") as timer:
                operation_name = await submitter.submit(job)
        except RecognitionStartFailure as exc:
            run.metrics.submit_duration_seconds = timer.duration_seconds
            run.metrics.callback_delivered = exc.callback_delivered
            return run.finish("failed", error=exc.args[0], error_stage="submit")
        run.metrics.submit_duration_seconds = timer.duration_seconds

        await run.notify(CallbackPayload.processing(job, operation_name))

    # Stage 2: status check
    if poller is None:
        poller = OperationPoller(clients.recognition)
    try:
        with StageTimer("poll") as timer:
            _snapshot, decision = await poller.poll(
                operation_name, message.poll_count, job.job_id
            )
            decision.raise_for_failure(operation_name, job.job_id)
    except RecognitionError as exc:
        run.metrics.status_check_duration_seconds = timer.duration_seconds
        logger.warning(
            "Status check failed, will re-check on next trigger: %s",
            exc,
            extra={"job_id": job.job_id, "operation_name": operation_name},
        )
        return run.finish("pending", operation_name=operation_name)
    except OperationFailure as exc:
        run.metrics.status_check_duration_seconds = timer.duration_seconds
        message_text = f"Speech-to-Text processing error: {exc.args[0]}"
        logger.error(
            "Operation finished with error: %s",
            exc,
            extra={
                "job_id": job.job_id,
                "operation_name": operation_name,
                "stage": "poll",
            },
        )
        await run.notify(CallbackPayload.failed(job, message_text))
        return run.finish(
            "failed",
            operation_name=operation_name,
            error=message_text,
            error_stage="operation",
        )
    run.metrics.status_check_duration_seconds = timer.duration_seconds

    if decision.action is PollAction.WAIT:
        logger.info(
            "Operation still running",
            extra={"job_id": job.job_id, "operation_name": operation_name},
        )
        return run.finish("pending", operation_name=operation_name)

    # Stage 3: collect
    try:
        with StageTimer("collect") as timer:
            collected = await collector.collect(job.output_uri, job.job_id)
    except (ResultTimeout, ResultParseError, StorageError) as exc:
        run.metrics.collect_duration_seconds = timer.duration_seconds
        if isinstance(exc, ResultTimeout):
            run.metrics.store_read_attempts = exc.attempts
        message_text = f"Result retrieval error: {exc.args[0]}"
        logger.error(
            "Result collection failed: %s",
            exc,
            extra={
                "job_id": job.job_id,
                "operation_name": operation_name,
                "stage": "collect",
            },
        )
        await run.notify(CallbackPayload.failed(job, message_text))
        return run.finish(
            "failed",
            operation_name=operation_name,
            error=message_text,
            error_stage="collect",
        )
    run.metrics.collect_duration_seconds = timer.duration_seconds
    run.metrics.store_read_attempts = collected.attempts

    # Stage 4: terminal notification
    await run.notify(CallbackPayload.completed(job, collected.result))
    logger.info(
        "Job completed",
        extra={
            "job_id": job.job_id,
            "operation_name": operation_name,
            "status": "completed",
        },
    )
    return run.finish("completed", operation_name=operation_name)
