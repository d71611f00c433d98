"""Tests for project scaffold: imports, logger, and custom exceptions."""

import json
import logging

import pytest

from transcription_orchestrator.observability.logger import (
    StructuredJsonFormatter,
    setup_logging,
)
from transcription_orchestrator.utils.errors import (
    CallbackDeliveryFailure,
    InvalidRequest,
    OperationFailure,
    OrchestratorError,
    RecognitionError,
    RecognitionStartFailure,
    ResultNotFound,
    ResultParseError,
    ResultTimeout,
    StorageError,
)


class TestModuleImports:
    """Verify all package modules are importable."""

    def test_top_level_import(self) -> None:
        import transcription_orchestrator

        assert transcription_orchestrator.__version__

    def test_subpackage_imports(self) -> None:
        import transcription_orchestrator.notify
        import transcription_orchestrator.observability
        import transcription_orchestrator.queue
        import transcription_orchestrator.recognition
        import transcription_orchestrator.results
        import transcription_orchestrator.storage
        import transcription_orchestrator.utils

        assert transcription_orchestrator.recognition.get_recognition_client


class TestCustomExceptions:
    """Verify custom exception hierarchy and string representations."""

    def test_all_exceptions_inherit_from_orchestrator_error(self) -> None:
        exception_classes = [
            InvalidRequest,
            RecognitionError,
            RecognitionStartFailure,
            OperationFailure,
            ResultNotFound,
            ResultTimeout,
            ResultParseError,
            StorageError,
            CallbackDeliveryFailure,
        ]
        for cls in exception_classes:
            assert issubclass(cls, OrchestratorError), (
                f"{cls.__name__} must inherit from OrchestratorError"
            )

    def test_str_includes_job_id(self) -> None:
        err = ResultTimeout("result file creation timed out", job_id="job-1")
        assert str(err) == "[job=job-1] result file creation timed out"

    def test_str_without_job_id(self) -> None:
        assert str(StorageError("boom")) == "boom"

    def test_context_attributes(self) -> None:
        assert InvalidRequest("x", missing_fields=["jobId"]).missing_fields == ["jobId"]
        assert RecognitionError("x", provider="google", status_code=503).status_code == 503
        assert ResultTimeout("x", attempts=30).attempts == 30
        assert CallbackDeliveryFailure("x", status_code=500).status_code == 500
        assert RecognitionStartFailure("x", callback_delivered=True).callback_delivered

    def test_can_be_raised_and_caught_as_base(self) -> None:
        with pytest.raises(OrchestratorError):
            raise OperationFailure("failed", operation_name="op-1")


class TestStructuredJsonFormatter:
    """Verify JSON log output."""

    def _record(self, **extra) -> logging.LogRecord:
        record = logging.LogRecord(
            name="transcription_orchestrator.test",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="hello %s",
            args=("world",),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_formats_basic_fields(self) -> None:
        entry = json.loads(StructuredJsonFormatter().format(self._record()))
        assert entry["severity"] == "WARNING"
        assert entry["message"] == "hello world"
        assert entry["logger"] == "transcription_orchestrator.test"
        assert entry["timestamp"].endswith("Z")

    def test_includes_correlation_fields(self) -> None:
        record = self._record(job_id="job-9", operation_name="op-9", stage="poll")
        entry = json.loads(StructuredJsonFormatter().format(record))
        assert entry["job_id"] == "job-9"
        assert entry["operation_name"] == "op-9"
        assert entry["stage"] == "poll"
        assert "status" not in entry

    def test_includes_exception_text(self) -> None:
        try:
            raise ValueError("bad value")
        except ValueError:
            import sys

            record = self._record()
            record.exc_info = sys.exc_info()
        entry = json.loads(StructuredJsonFormatter().format(record))
        assert entry["exception"] == "bad value"

    def test_setup_logging_is_idempotent(self) -> None:
        root = logging.getLogger()
        before = list(root.handlers)
        try:
            setup_logging()
            setup_logging()
            json_handlers = [
                h
                for h in root.handlers
                if isinstance(h.formatter, StructuredJsonFormatter)
            ]
            assert len(json_handlers) == 1
        finally:
            root.handlers = before
