"""Recognition client interface and long-running operation snapshots.

OperationSnapshot.from_api() is the only place that knows about the
provider's loosely shaped operation JSON (list vs object wrapping, error
at the operation level vs nested per input file). Everything downstream
works with the normalized dataclasses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from transcription_orchestrator.utils.errors import RecognitionError


def _error_message(error: Any) -> str | None:
    """Extract a message from a provider error descriptor, if one is set."""
    if not error:
        return None
    if isinstance(error, Mapping):
        message = error.get("message")
        if message:
            return str(message)
        code = error.get("code")
        if code:
            return f"provider error code {code}"
        return "unknown provider error"
    return str(error)


def unwrap_operation(payload: Any) -> Mapping[str, Any]:
    """Return the operation object from an object or one-element array."""
    if isinstance(payload, (list, tuple)):
        if not payload:
            raise RecognitionError(
                "Empty operation array in provider response", provider="google"
            )
        payload = payload[0]
    if not isinstance(payload, Mapping):
        raise RecognitionError(
            f"Unexpected operation payload type: {type(payload).__name__}",
            provider="google",
        )
    return payload


@dataclass(frozen=True)
class FileResult:
    """Per-input-file outcome reported inside a finished operation."""

    uri: str
    error: str | None = None


@dataclass(frozen=True)
class OperationSnapshot:
    """Point-in-time view of a long-running recognition operation."""

    name: str
    done: bool
    error: str | None = None
    file_results: dict[str, FileResult] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: Any) -> OperationSnapshot:
        """Normalize a raw operation payload.

        Args:
            payload: Operation JSON, or a one-element list containing it.

        Returns:
            OperationSnapshot with file results in provider order.

        Raises:
            RecognitionError: If the payload carries no operation name.
        """
        operation = unwrap_operation(payload)
        name = operation.get("name")
        if not name:
            raise RecognitionError(
                "Operation payload has no 'name'", provider="google"
            )

        file_results: dict[str, FileResult] = {}
        response = operation.get("response") or {}
        results = response.get("results") if isinstance(response, Mapping) else None
        if isinstance(results, Mapping):
            for uri, result in results.items():
                result = result if isinstance(result, Mapping) else {}
                file_results[uri] = FileResult(
                    uri=uri, error=_error_message(result.get("error"))
                )

        return cls(
            name=name,
            done=bool(operation.get("done", False)),
            error=_error_message(operation.get("error")),
            file_results=file_results,
        )


class RecognitionClient(ABC):
    """Abstract batch speech-recognition client.

    Implementations start long-running operations and report their status;
    they never wait for completion themselves.
    """

    @abstractmethod
    async def start_batch(self, audio_uri: str, output_uri: str) -> str:
        """Start batch recognition and return the operation name.

        Raises:
            RecognitionError: If the provider rejects the request.
        """

    @abstractmethod
    async def get_operation(self, operation_name: str) -> OperationSnapshot:
        """Fetch the current state of an operation.

        Raises:
            RecognitionError: If the status cannot be read.
        """

    async def close(self) -> None:
        """Release any pooled connections."""
