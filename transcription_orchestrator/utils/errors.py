"""Exception hierarchy for the transcription orchestrator.

All exceptions inherit from OrchestratorError so stage boundaries can
catch domain failures while letting programming errors propagate.
"""


class OrchestratorError(Exception):
    """Base exception for all orchestrator errors."""

    def __init__(self, message: str, job_id: str | None = None) -> None:
        self.job_id = job_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.job_id:
            return f"[job={self.job_id}] {super().__str__()}"
        return super().__str__()


class InvalidRequest(OrchestratorError):
    """Raised when an inbound job payload is malformed or incomplete."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        missing_fields: list[str] | None = None,
    ) -> None:
        self.missing_fields = missing_fields or []
        super().__init__(message, job_id)


class RecognitionError(OrchestratorError):
    """Raised when a call to the speech-recognition provider fails."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message, job_id)

    @property
    def is_permanent(self) -> bool:
        """True for client errors that will not change on retry (4xx except 429)."""
        return (
            self.status_code is not None
            and 400 <= self.status_code < 500
            and self.status_code != 429
        )


class RecognitionStartFailure(OrchestratorError):
    """Raised when the provider rejects or fails to start a batch operation."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        callback_delivered: bool = False,
    ) -> None:
        self.callback_delivered = callback_delivered
        super().__init__(message, job_id)


class OperationFailure(OrchestratorError):
    """Raised when a finished operation reports an error."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        operation_name: str | None = None,
    ) -> None:
        self.operation_name = operation_name
        super().__init__(message, job_id)


class ResultNotFound(OrchestratorError):
    """Raised when the result object is not visible in the store yet."""

    def __init__(
        self, message: str, job_id: str | None = None, prefix: str | None = None
    ) -> None:
        self.prefix = prefix
        super().__init__(message, job_id)


class ResultTimeout(OrchestratorError):
    """Raised when the result object never appeared within the wait budget."""

    def __init__(
        self, message: str, job_id: str | None = None, attempts: int = 0
    ) -> None:
        self.attempts = attempts
        super().__init__(message, job_id)


class ResultParseError(OrchestratorError):
    """Raised when a result document cannot be decoded."""

    def __init__(
        self, message: str, job_id: str | None = None, key: str | None = None
    ) -> None:
        self.key = key
        super().__init__(message, job_id)


class StorageError(OrchestratorError):
    """Raised when an object store operation fails."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.operation = operation
        super().__init__(message, job_id)


class CallbackDeliveryFailure(OrchestratorError):
    """Raised when a webhook POST fails."""

    def __init__(
        self,
        message: str,
        job_id: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, job_id)
