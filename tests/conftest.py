"""Shared fixtures: an in-memory recognition provider and job bodies."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from transcription_orchestrator.jobs import JobMessage
from transcription_orchestrator.recognition.interface import (
    OperationSnapshot,
    RecognitionClient,
)
from transcription_orchestrator.utils.errors import RecognitionError

OPERATION_NAME = "projects/proj-1/locations/global/operations/op-1"

JOB_BODY = {
    "audioUri": "store://audio/meeting-1.m4a",
    "jobId": "job123",
    "meetingId": "meeting-1",
    "nestId": "nest-1",
    "outputUri": "store://bucket/job123/",
    "callbackUrl": "https://app.example.com/hooks/transcription",
}


class FakeRecognitionClient(RecognitionClient):
    """Recognition client that replays scripted operation payloads."""

    def __init__(self, operations=None, start_error=None, status_error=None):
        self.operations = list(operations or [])
        self.start_error = start_error
        self.status_error = status_error
        self.start_calls: list[tuple[str, str]] = []
        self.status_calls: list[str] = []
        self.closed = False

    async def start_batch(self, audio_uri: str, output_uri: str) -> str:
        self.start_calls.append((audio_uri, output_uri))
        if self.start_error:
            raise self.start_error
        return OPERATION_NAME

    async def get_operation(self, operation_name: str) -> OperationSnapshot:
        self.status_calls.append(operation_name)
        if self.status_error:
            raise self.status_error
        if not self.operations:
            raise RecognitionError("no scripted operation", provider="fake")
        payload = self.operations.pop(0)
        return OperationSnapshot.from_api(dict(payload, name=operation_name))

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def job_message() -> JobMessage:
    return JobMessage.from_message_body(JOB_BODY)


@pytest.fixture
def recheck_message(job_message) -> JobMessage:
    return job_message.next_check(OPERATION_NAME)


@pytest.fixture
def notifier() -> MagicMock:
    mock = MagicMock()
    mock.notify = AsyncMock(return_value=True)
    mock.close = AsyncMock()
    return mock
