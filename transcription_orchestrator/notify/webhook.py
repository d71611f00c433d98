"""Webhook notifier for job status callbacks.

Posts CallbackPayload bodies to the caller-supplied URL. Delivery failures
are logged and reported as False; they never raise into the orchestrator.
The receiver must treat repeated terminal payloads for the same jobId as
idempotent updates, since redelivered triggers re-run the whole flow.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from transcription_orchestrator.utils.errors import CallbackDeliveryFailure
from transcription_orchestrator.utils.retry import retry_with_backoff

logger = logging.getLogger(__name__)

CALLBACK_TIMEOUT_SECONDS = 30.0
RETRY_BASE_DELAY_SECONDS = 2.0
RETRY_MAX_DELAY_SECONDS = 30.0


class WebhookNotifier:
    """Delivers JSON status payloads with bearer-token auth.

    Reads configuration from environment variables:
        CALLBACK_AUTH_TOKEN, CALLBACK_MAX_RETRIES

    Args:
        auth_token: Bearer token for the callback receiver.
        max_retries: Retries after the first POST. 0 means a single attempt.
        timeout: Per-request timeout in seconds.
        client: Optional pre-built httpx.AsyncClient.
    """

    def __init__(
        self,
        auth_token: str | None = None,
        max_retries: int | None = None,
        timeout: float = CALLBACK_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.auth_token = auth_token or os.environ.get("CALLBACK_AUTH_TOKEN", "")
        if max_retries is None:
            max_retries = int(os.environ.get("CALLBACK_MAX_RETRIES", "0"))
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
            headers["apikey"] = self.auth_token
        return headers

    async def _post(self, callback_url: str, payload: dict[str, Any]) -> None:
        job_id = payload.get("jobId")
        try:
            response = await self._client.post(
                callback_url,
                headers=self._headers(),
                json=payload,
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise CallbackDeliveryFailure(
                f"Callback to {callback_url} failed: {exc!r}", job_id=job_id
            ) from exc

        if not response.is_success:
            raise CallbackDeliveryFailure(
                f"Callback to {callback_url} returned {response.status_code}: "
                f"{response.text[:500]!r}",
                job_id=job_id,
                status_code=response.status_code,
            )

    async def notify(self, callback_url: str, payload: dict[str, Any]) -> bool:
        """POST a status payload to callback_url.

        Args:
            callback_url: Caller-owned webhook endpoint.
            payload: JSON-serializable CallbackPayload dict.

        Returns:
            True if the receiver answered 2xx, False otherwise.
        """
        job_id = payload.get("jobId")
        status = payload.get("status")
        post = retry_with_backoff(
            max_retries=self.max_retries,
            base_delay=RETRY_BASE_DELAY_SECONDS,
            max_delay=RETRY_MAX_DELAY_SECONDS,
            retryable_exceptions=(CallbackDeliveryFailure,),
        )(self._post)

        try:
            await post(callback_url, payload)
        except CallbackDeliveryFailure as exc:
            logger.error(
                "Callback delivery failed (status code %s): %s",
                exc.status_code,
                exc,
                extra={"job_id": job_id, "status": status, "stage": "notify"},
            )
            return False

        logger.info(
            "Callback delivered to %s",
            callback_url,
            extra={"job_id": job_id, "status": status, "stage": "notify"},
        )
        return True

    async def close(self) -> None:
        """Close the shared HTTP client and release the connection pool."""
        await self._client.aclose()
