"""HTTP surface: job submission and health.

``POST /batch-transcribe`` validates a job and publishes it to the queue;
the consumer does the rest. Nothing here talks to the recognition
provider, the object store or the callback URL.
"""

from __future__ import annotations

import hmac
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader

from transcription_orchestrator import __version__
from transcription_orchestrator.jobs import JobMessage, JobRequest
from transcription_orchestrator.utils.errors import InvalidRequest

logger = logging.getLogger(__name__)

PublishFn = Callable[[JobMessage], Awaitable[bool]]

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _error(status_code: int, error: str, message: str, **extra: Any) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": error, "message": message, **extra},
    )


async def _error_response(request: Request, exc: HTTPException) -> JSONResponse:
    # flat {"error", "message"} bodies instead of FastAPI's {"detail": ...}
    if isinstance(exc.detail, dict):
        body = exc.detail
    else:
        body = {"error": "HTTP_ERROR", "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=body)


def create_app(publish: PublishFn, api_key: str | None = None) -> FastAPI:
    """Build the submission app.

    Args:
        publish: Coroutine that enqueues a job message, True on success.
        api_key: Expected ``X-API-Key`` value (env ``API_KEY``). When unset
            every submission is rejected.
    """
    expected_key = api_key if api_key is not None else os.environ.get("API_KEY", "")

    def require_api_key(key: str | None = Depends(api_key_header)) -> None:
        if not expected_key or not key or not hmac.compare_digest(
            key.encode(), expected_key.encode()
        ):
            raise _error(401, "UNAUTHORIZED", "Invalid API key")

    app = FastAPI(title="transcription-orchestrator", version=__version__)
    app.add_exception_handler(HTTPException, _error_response)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
        }

    @app.post(
        "/batch-transcribe",
        status_code=202,
        dependencies=[Depends(require_api_key)],
    )
    async def batch_transcribe(request: Request) -> dict[str, Any]:
        try:
            body = await request.json()
        except ValueError:
            raise _error(400, "INVALID_JSON", "Request body must be JSON") from None
        if not isinstance(body, dict):
            raise _error(400, "INVALID_JSON", "Request body must be a JSON object")

        try:
            job = JobRequest.from_dict(body)
        except InvalidRequest as exc:
            logger.warning("Rejected submission: %s", exc)
            raise _error(
                400,
                "MISSING_PARAMETERS",
                exc.args[0],
                missing_fields=exc.missing_fields,
            ) from None

        if not await publish(JobMessage(job=job)):
            raise _error(503, "QUEUE_UNAVAILABLE", "Job could not be queued")

        logger.info("Job queued", extra={"job_id": job.job_id, "status": "queued"})
        return {"success": True, "jobId": job.job_id, "message": "job queued"}

    return app
