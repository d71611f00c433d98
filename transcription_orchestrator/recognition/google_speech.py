"""Google Cloud Speech-to-Text v2 batch recognition client.

Starts ``batchRecognize`` operations over the REST API and reads their
status. Results are written by the service to the configured output
location in object storage; this client never downloads them.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from transcription_orchestrator.recognition.interface import (
    OperationSnapshot,
    RecognitionClient,
    unwrap_operation,
)
from transcription_orchestrator.utils.auth import AccessTokenProvider
from transcription_orchestrator.utils.errors import RecognitionError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://speech.googleapis.com/v2"
DEFAULT_LOCATION = "global"
DEFAULT_MODEL = "long"
DEFAULT_LANGUAGE = "ja-JP"
DEFAULT_SPEAKER_COUNT = 2
REQUEST_TIMEOUT_SECONDS = 30.0


class GoogleSpeechClient(RecognitionClient):
    """Speech-to-Text v2 client with diarization and word timing enabled.

    Args:
        project: GCP project ID. Falls back to GOOGLE_CLOUD_PROJECT.
        location: Recognizer location. Falls back to SPEECH_LOCATION.
        base_url: REST base URL. Falls back to SPEECH_API_BASE_URL.
        token_provider: Source of bearer tokens.
        model: Recognition model name.
        language_code: BCP-47 language code.
        speaker_count: Expected number of speakers for diarization.
        client: Optional pre-built httpx.AsyncClient.
    """

    provider = "google"

    def __init__(
        self,
        project: str | None = None,
        location: str | None = None,
        base_url: str | None = None,
        token_provider: AccessTokenProvider | None = None,
        model: str = DEFAULT_MODEL,
        language_code: str = DEFAULT_LANGUAGE,
        speaker_count: int = DEFAULT_SPEAKER_COUNT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.project = project or os.environ.get("GOOGLE_CLOUD_PROJECT", "")
        if not self.project:
            raise RecognitionError(
                "GOOGLE_CLOUD_PROJECT is required", provider=self.provider
            )
        self.location = location or os.environ.get(
            "SPEECH_LOCATION", DEFAULT_LOCATION
        )
        self.base_url = (
            base_url or os.environ.get("SPEECH_API_BASE_URL", DEFAULT_BASE_URL)
        ).rstrip("/")
        self.model = model
        self.language_code = language_code
        self.speaker_count = speaker_count
        self._tokens = token_provider or AccessTokenProvider()
        self._client = client or httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT_SECONDS
        )

    @property
    def recognizer(self) -> str:
        """Fully qualified name of the default recognizer."""
        return (
            f"projects/{self.project}/locations/{self.location}/recognizers/_"
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._tokens.token()}",
            "Content-Type": "application/json",
        }

    def build_request(self, audio_uri: str, output_uri: str) -> dict[str, Any]:
        """Build the batchRecognize request body."""
        return {
            "config": {
                "autoDecodingConfig": {},
                "model": self.model,
                "languageCodes": [self.language_code],
                "features": {
                    "enableWordConfidence": True,
                    "enableWordTimeOffsets": True,
                    "enableAutomaticPunctuation": True,
                    "diarizationConfig": {
                        "minSpeakerCount": self.speaker_count,
                        "maxSpeakerCount": self.speaker_count,
                    },
                },
            },
            "files": [{"uri": audio_uri}],
            "recognitionOutputConfig": {
                "gcsOutputConfig": {"uri": output_uri},
            },
        }

    async def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(
                method, url, headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as exc:
            raise RecognitionError(
                f"{method} {url} failed: {exc}", provider=self.provider
            ) from exc

        if response.status_code >= 400:
            raise RecognitionError(
                f"{method} {url} returned {response.status_code}: "
                f"{response.text[:500]}",
                provider=self.provider,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise RecognitionError(
                f"Non-JSON response from {url}", provider=self.provider
            ) from exc

    async def start_batch(self, audio_uri: str, output_uri: str) -> str:
        """Start a batchRecognize operation.

        Args:
            audio_uri: Object storage locator of the input audio.
            output_uri: Object storage prefix for the result files.

        Returns:
            The operation name.

        Raises:
            RecognitionError: If the request fails or no name is returned.
        """
        url = f"{self.base_url}/{self.recognizer}:batchRecognize"
        body = await self._send(
            "POST", url, json=self.build_request(audio_uri, output_uri)
        )

        operation = unwrap_operation(body)
        operation_name = operation.get("name")
        if not operation_name:
            raise RecognitionError(
                "batchRecognize response has no operation name",
                provider=self.provider,
            )

        logger.info(
            "Started batch recognition for %s",
            audio_uri,
            extra={"operation_name": operation_name},
        )
        return operation_name

    async def get_operation(self, operation_name: str) -> OperationSnapshot:
        """Read the current state of an operation by name."""
        url = f"{self.base_url}/{operation_name}"
        body = await self._send("GET", url)
        return OperationSnapshot.from_api(body)

    async def close(self) -> None:
        await self._client.aclose()
