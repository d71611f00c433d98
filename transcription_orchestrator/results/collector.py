"""Result collection with bounded waiting for eventual consistency.

The recognition service writes its output some time after the operation
reports done. A missing result object is therefore retried on a fixed
interval until a wait budget runs out; any other store or parse failure
is fatal. Reading is side-effect free, so collecting the same output
twice (e.g. after a redelivered trigger) is safe.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from transcription_orchestrator.recognition.google_speech import DEFAULT_LANGUAGE
from transcription_orchestrator.results.parser import (
    TranscriptionResult,
    parse_transcription,
)
from transcription_orchestrator.storage.object_store import (
    ObjectStoreClient,
    parse_store_uri,
)
from transcription_orchestrator.utils.errors import (
    ResultNotFound,
    ResultParseError,
    ResultTimeout,
)

logger = logging.getLogger(__name__)

RESULT_EXTENSION = ".json"
POLL_INTERVAL_SECONDS = 10.0
WAIT_BUDGET_SECONDS = 300.0


@dataclass
class CollectedResult:
    """A parsed result and where it was found."""

    result: TranscriptionResult
    key: str
    attempts: int


class ResultCollector:
    """Locates, downloads and parses the recognition result for a job.

    Args:
        store: Object store client.
        interval_seconds: Delay between locate attempts.
        wait_budget_seconds: Total time allowed for the object to appear.
        language_code: Language reported when the document carries none.
    """

    def __init__(
        self,
        store: ObjectStoreClient,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        wait_budget_seconds: float = WAIT_BUDGET_SECONDS,
        language_code: str = DEFAULT_LANGUAGE,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._store = store
        self.interval_seconds = interval_seconds
        self.wait_budget_seconds = wait_budget_seconds
        self.language_code = language_code

    @property
    def max_attempts(self) -> int:
        """Number of locate attempts the wait budget allows (at least one)."""
        return max(1, int(self.wait_budget_seconds // self.interval_seconds))

    def _locate(self, bucket: str, key: str, job_id: str) -> tuple[str, bytes]:
        """Find the result object by exact key, then by prefix listing.

        Raises:
            ResultNotFound: If no result object is visible yet.
        """
        if key and not key.endswith("/"):
            data = self._store.get_object(bucket, key)
            if data is not None:
                return key, data

        for candidate in self._store.list_keys(bucket, key):
            if candidate.endswith(RESULT_EXTENSION):
                data = self._store.get_object(bucket, candidate)
                if data is not None:
                    return candidate, data

        raise ResultNotFound(
            f"Result file not found under '{bucket}/{key}'",
            job_id=job_id,
            prefix=key,
        )

    async def collect(self, output_uri: str, job_id: str) -> CollectedResult:
        """Wait for the result under output_uri and parse it.

        Args:
            output_uri: Object store URI (exact key or prefix).
            job_id: Job identifier for logs and errors.

        Returns:
            CollectedResult with the parsed transcription.

        Raises:
            ResultTimeout: If nothing appeared within the wait budget.
            ResultParseError: If the document cannot be parsed.
            StorageError: On any other store failure.
        """
        bucket, key = parse_store_uri(output_uri)

        for attempt in range(1, self.max_attempts + 1):
            try:
                found_key, data = self._locate(bucket, key, job_id)
            except ResultNotFound:
                logger.info(
                    "Result not visible yet (attempt %d/%d)",
                    attempt,
                    self.max_attempts,
                    extra={"job_id": job_id, "stage": "collect"},
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.interval_seconds)
                continue

            try:
                result = parse_transcription(data, self.language_code)
            except ResultParseError as exc:
                exc.job_id = job_id
                exc.key = found_key
                raise

            logger.info(
                "Collected result %s after %d attempt(s)",
                found_key,
                attempt,
                extra={"job_id": job_id, "stage": "collect"},
            )
            return CollectedResult(result=result, key=found_key, attempts=attempt)

        raise ResultTimeout(
            "result file creation timed out",
            job_id=job_id,
            attempts=self.max_attempts,
        )
