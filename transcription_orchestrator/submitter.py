"""Job submission: start batch recognition for a validated job."""

from __future__ import annotations

import logging

from transcription_orchestrator.jobs import CallbackPayload, JobRequest
from transcription_orchestrator.notify.webhook import WebhookNotifier
from transcription_orchestrator.recognition.interface import RecognitionClient
from transcription_orchestrator.utils.errors import (
    RecognitionError,
    RecognitionStartFailure,
)

logger = logging.getLogger(__name__)


class JobSubmitter:
    """Starts the recognition operation for a job.

    Submission is not retried here. A redelivered submission message starts
    another operation, so callers must ensure at most one submission per
    jobId upstream.
    """

    def __init__(
        self, recognition: RecognitionClient, notifier: WebhookNotifier
    ) -> None:
        self._recognition = recognition
        self._notifier = notifier

    async def submit(self, job: JobRequest) -> str:
        """Start recognition and return the operation name.

        On provider failure exactly one error callback is sent.

        Raises:
            RecognitionStartFailure: If the provider rejected the request.
                ``callback_delivered`` tells whether the error callback
                reached the receiver.
        """
        try:
            operation_name = await self._recognition.start_batch(
                job.audio_uri, job.output_uri
            )
        except RecognitionError as exc:
            message = f"Speech-to-Text start failed: {exc}"
            logger.error(
                "Recognition start failed: %s",
                exc,
                extra={"job_id": job.job_id, "stage": "submit"},
            )
            delivered = await self._notifier.notify(
                job.callback_url, CallbackPayload.failed(job, message).to_dict()
            )
            raise RecognitionStartFailure(
                message, job_id=job.job_id, callback_delivered=delivered
            ) from exc

        logger.info(
            "Submitted job for recognition",
            extra={"job_id": job.job_id, "operation_name": operation_name},
        )
        return operation_name
