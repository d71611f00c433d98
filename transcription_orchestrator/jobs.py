"""Job requests, queue messages and callback payloads.

A job is never persisted by the orchestrator: it is rebuilt from every
inbound message. Re-check deliveries carry the operation name so that the
job can resume polling without a second submission.
"""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from transcription_orchestrator.results.parser import TranscriptionResult
from transcription_orchestrator.utils.errors import InvalidRequest

# (attribute, wire key) in wire order
_JOB_FIELDS: tuple[tuple[str, str], ...] = (
    ("audio_uri", "audioUri"),
    ("job_id", "jobId"),
    ("meeting_id", "meetingId"),
    ("nest_id", "nestId"),
    ("output_uri", "outputUri"),
    ("callback_url", "callbackUrl"),
)

CallbackStatus = Literal["processing", "completed", "error"]


@dataclass(frozen=True)
class JobRequest:
    """One transcription request, as supplied by the calling application."""

    audio_uri: str
    job_id: str
    meeting_id: str
    nest_id: str
    output_uri: str
    callback_url: str

    @classmethod
    def from_dict(cls, body: Mapping[str, Any]) -> JobRequest:
        """Validate and build a JobRequest from its camelCase wire form.

        Raises:
            InvalidRequest: If any required field is missing or empty.
        """
        missing = [
            wire_key
            for _attr, wire_key in _JOB_FIELDS
            if not isinstance(body.get(wire_key), str) or not body[wire_key].strip()
        ]
        if missing:
            job_id = body.get("jobId") if isinstance(body.get("jobId"), str) else None
            raise InvalidRequest(
                f"Missing required fields: {', '.join(missing)}",
                job_id=job_id or None,
                missing_fields=missing,
            )
        return cls(**{attr: body[wire_key] for attr, wire_key in _JOB_FIELDS})

    def to_dict(self) -> dict[str, str]:
        return {wire_key: getattr(self, attr) for attr, wire_key in _JOB_FIELDS}


def _decode_data(data: Any) -> Any:
    if not isinstance(data, str):
        raise InvalidRequest("Message 'data' must be a base64 string")
    try:
        return json.loads(base64.b64decode(data, validate=True))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidRequest(f"Undecodable message data: {exc}") from exc


def _unwrap_body(body: Any) -> Any:
    """Strip push envelopes: {"message": {"data": ...}} or {"data": ...}."""
    if isinstance(body, Mapping):
        message = body.get("message")
        if isinstance(message, Mapping) and "data" in message:
            return _decode_data(message["data"])
        if "data" in body and "jobId" not in body:
            return _decode_data(body["data"])
    return body


@dataclass(frozen=True)
class JobMessage:
    """A queue delivery: the job plus polling progress."""

    job: JobRequest
    operation_name: str | None = None
    poll_count: int = 0

    @classmethod
    def from_message_body(cls, body: Any) -> JobMessage | None:
        """Deserialize a queue message body.

        Args:
            body: Plain JSON object or a base64 push envelope.

        Returns:
            JobMessage, or None for a scheduler tick (empty body or
            ``{"action": "poll"}``) that carries no job.

        Raises:
            InvalidRequest: If the body is undecodable or incomplete.
        """
        body = _unwrap_body(body)
        if body is None or (isinstance(body, Mapping) and not body):
            return None
        if not isinstance(body, Mapping):
            raise InvalidRequest(
                f"Message body must be an object, got {type(body).__name__}"
            )
        if body.get("action") == "poll" and "jobId" not in body:
            return None

        job = JobRequest.from_dict(body)

        operation_name = body.get("operationName") or None
        if operation_name is not None and not isinstance(operation_name, str):
            raise InvalidRequest(
                "'operationName' must be a string", job_id=job.job_id
            )
        try:
            poll_count = int(body.get("pollCount", 0) or 0)
        except (TypeError, ValueError) as exc:
            raise InvalidRequest(
                "'pollCount' must be an integer", job_id=job.job_id
            ) from exc

        return cls(job=job, operation_name=operation_name, poll_count=poll_count)

    def to_message_body(self) -> dict[str, Any]:
        body: dict[str, Any] = self.job.to_dict()
        if self.operation_name:
            body["operationName"] = self.operation_name
        body["pollCount"] = self.poll_count
        return body

    def next_check(self, operation_name: str) -> JobMessage:
        """Build the follow-up message for the next status check."""
        return JobMessage(
            job=self.job,
            operation_name=operation_name,
            poll_count=self.poll_count + 1,
        )


@dataclass(frozen=True)
class CallbackPayload:
    """Status update delivered to the job's callback URL."""

    job: JobRequest
    status: CallbackStatus
    operation_name: str | None = None
    result: TranscriptionResult | None = None
    error: str | None = None

    @classmethod
    def processing(cls, job: JobRequest, operation_name: str) -> CallbackPayload:
        return cls(job=job, status="processing", operation_name=operation_name)

    @classmethod
    def completed(cls, job: JobRequest, result: TranscriptionResult) -> CallbackPayload:
        return cls(job=job, status="completed", result=result)

    @classmethod
    def failed(cls, job: JobRequest, message: str) -> CallbackPayload:
        return cls(job=job, status="error", error=message)

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "error")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "jobId": self.job.job_id,
            "meetingId": self.job.meeting_id,
            "nestId": self.job.nest_id,
            "status": self.status,
        }
        if self.status == "processing" and self.operation_name:
            payload["operationName"] = self.operation_name
        elif self.status == "completed" and self.result is not None:
            payload.update(self.result.to_dict())
        elif self.status == "error":
            payload["error"] = self.error or "unknown error"
        return payload
