"""Process entry point for the transcription orchestrator.

Builds the external clients once, then runs the queue consumer alongside
the HTTP app (submission route and health check) on ``PORT``.
Handles SIGTERM for graceful shutdown.
"""

import asyncio
import logging
import os
import signal

import uvicorn

from transcription_orchestrator.api import create_app
from transcription_orchestrator.jobs import JobMessage
from transcription_orchestrator.observability.logger import setup_logging
from transcription_orchestrator.orchestrator import (
    JobOutcome,
    OrchestratorClients,
    handle_job,
)
from transcription_orchestrator.queue.consumer import QueueConsumer

logger = logging.getLogger(__name__)

# Cloud Run sends SIGKILL 30s after SIGTERM
SHUTDOWN_TIMEOUT_SECONDS = 25


def _build_server(consumer: QueueConsumer) -> uvicorn.Server:
    port = int(os.environ.get("PORT", "8080"))
    config = uvicorn.Config(
        create_app(consumer.enqueue),
        host="0.0.0.0",
        port=port,
        log_config=None,
    )
    return uvicorn.Server(config)


async def _run(consumer: QueueConsumer, clients: OrchestratorClients) -> None:
    """Run the HTTP server and queue consumer until a shutdown signal."""
    server = _build_server(consumer)
    server_task = asyncio.create_task(server.serve())

    async def _dispatch(message: JobMessage) -> JobOutcome:
        return await handle_job(message, clients)

    consumer_task = asyncio.create_task(consumer.run(_dispatch))

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _shutdown() -> None:
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _shutdown)

    # uvicorn may take the signal itself and just return from serve()
    stop_task = asyncio.create_task(stop_event.wait())
    await asyncio.wait({stop_task, server_task}, return_when=asyncio.FIRST_COMPLETED)
    if server_task.done() and not stop_event.is_set():
        logger.info("HTTP server stopped, shutting down")
    stop_task.cancel()

    consumer.stop()
    server.should_exit = True
    try:
        await asyncio.wait_for(consumer_task, timeout=SHUTDOWN_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.warning(
            "Consumer did not stop within %ss, cancelling",
            SHUTDOWN_TIMEOUT_SECONDS,
        )
    finally:
        await server_task
        await clients.close()


def main() -> None:
    """Start the HTTP app and queue consumer and process incoming jobs."""
    setup_logging()
    logger.info("Transcription orchestrator starting")

    clients = OrchestratorClients.from_env()
    consumer = QueueConsumer()

    asyncio.run(_run(consumer, clients))


if __name__ == "__main__":
    main()
