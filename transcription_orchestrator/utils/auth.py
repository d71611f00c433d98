"""OAuth access tokens for Google Cloud REST calls.

Uses a static token from GOOGLE_ACCESS_TOKEN when set (local runs, tests),
otherwise Application Default Credentials through google-auth, refreshed
whenever the cached token is missing or expired.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from transcription_orchestrator.utils.errors import RecognitionError

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class AccessTokenProvider:
    """Supplies bearer tokens for Google APIs.

    Args:
        static_token: Fixed token to return. Falls back to GOOGLE_ACCESS_TOKEN.
        credentials: Optional pre-built google-auth credentials object.
    """

    def __init__(
        self,
        static_token: str | None = None,
        credentials: Any = None,
    ) -> None:
        self._static_token = static_token or os.environ.get(
            "GOOGLE_ACCESS_TOKEN", ""
        )
        self._credentials = credentials

    def _load_credentials(self) -> Any:
        import google.auth
        from google.auth.exceptions import GoogleAuthError

        try:
            credentials, _project = google.auth.default(
                scopes=[CLOUD_PLATFORM_SCOPE]
            )
        except GoogleAuthError as exc:
            raise RecognitionError(
                f"No Google credentials available: {exc}", provider="google"
            ) from exc
        return credentials

    def token(self) -> str:
        """Return a valid access token, refreshing credentials if needed.

        Raises:
            RecognitionError: If credentials cannot be loaded or refreshed.
        """
        if self._static_token:
            return self._static_token

        if self._credentials is None:
            self._credentials = self._load_credentials()

        if not self._credentials.valid:
            from google.auth.exceptions import GoogleAuthError
            from google.auth.transport.requests import Request

            try:
                self._credentials.refresh(Request())
            except GoogleAuthError as exc:
                raise RecognitionError(
                    f"Failed to refresh Google credentials: {exc}",
                    provider="google",
                ) from exc
            logger.debug("Refreshed Google access token")

        return self._credentials.token
