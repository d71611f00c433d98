"""Operation status polling as a stateless state machine.

There is no in-process timer. Each trigger performs one status read and
classify_operation() maps the snapshot to the next action:

    SUBMITTED -> POLLING -> COMPLETED | FAILED

A not-done operation leaves the job in POLLING until the next trigger,
up to a per-job limit on status checks.
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass

from transcription_orchestrator.recognition.interface import (
    OperationSnapshot,
    RecognitionClient,
)
from transcription_orchestrator.utils.errors import OperationFailure, RecognitionError

logger = logging.getLogger(__name__)

DEFAULT_MAX_POLL_COUNT = 180


class PollAction(enum.Enum):
    WAIT = "wait"
    FAIL = "fail"
    COLLECT = "collect"


@dataclass(frozen=True)
class PollDecision:
    """What to do with an operation after one status read."""

    action: PollAction
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.action is not PollAction.WAIT

    def raise_for_failure(
        self, operation_name: str, job_id: str | None = None
    ) -> None:
        """Raise OperationFailure if the operation finished with an error."""
        if self.action is PollAction.FAIL:
            raise OperationFailure(
                self.error or "unknown provider error",
                job_id=job_id,
                operation_name=operation_name,
            )


def classify_operation(snapshot: OperationSnapshot) -> PollDecision:
    """Classify an operation snapshot.

    Failures can surface on the operation itself or on an individual
    input file, so both levels are checked. Among file results the first
    error in provider order wins.
    """
    if not snapshot.done:
        return PollDecision(PollAction.WAIT)
    if snapshot.error:
        return PollDecision(PollAction.FAIL, error=snapshot.error)
    for file_result in snapshot.file_results.values():
        if file_result.error:
            return PollDecision(PollAction.FAIL, error=file_result.error)
    return PollDecision(PollAction.COLLECT)


class OperationPoller:
    """Reads operation status from the recognition provider.

    Args:
        recognition: Provider client used for status reads.
        max_poll_count: Status checks allowed per job before it is failed
            (env ``MAX_POLL_COUNT``, default 180).
    """

    def __init__(
        self, recognition: RecognitionClient, max_poll_count: int | None = None
    ) -> None:
        self._recognition = recognition
        if max_poll_count is None:
            max_poll_count = int(
                os.environ.get("MAX_POLL_COUNT", DEFAULT_MAX_POLL_COUNT)
            )
        self.max_poll_count = max_poll_count

    async def check_status(self, operation_name: str) -> OperationSnapshot:
        """Fetch the operation once. Read-only against provider state.

        Raises:
            RecognitionError: If the status cannot be read.
        """
        snapshot = await self._recognition.get_operation(operation_name)
        logger.info(
            "Operation status: done=%s",
            snapshot.done,
            extra={"operation_name": operation_name, "stage": "poll"},
        )
        return snapshot

    async def poll(
        self,
        operation_name: str,
        poll_count: int = 0,
        job_id: str | None = None,
    ) -> tuple[OperationSnapshot | None, PollDecision]:
        """Fetch and classify an operation in one step.

        ``poll_count`` is the number of checks already done for the job.
        A permanent status error, or the last allowed check finding the
        operation still running, becomes a FAIL decision.

        Raises:
            RecognitionError: On a transient status error while checks remain.
        """
        last_check = poll_count + 1 >= self.max_poll_count
        try:
            snapshot = await self.check_status(operation_name)
        except RecognitionError as exc:
            if exc.is_permanent or last_check:
                logger.error(
                    "Giving up on operation status: %s",
                    exc,
                    extra={
                        "job_id": job_id,
                        "operation_name": operation_name,
                        "poll_count": poll_count,
                    },
                )
                return None, PollDecision(
                    PollAction.FAIL,
                    error=f"operation status unavailable: {exc.args[0]}",
                )
            raise

        decision = classify_operation(snapshot)
        if decision.action is PollAction.WAIT and last_check:
            return snapshot, PollDecision(
                PollAction.FAIL,
                error=(
                    f"operation still running after {poll_count + 1} status checks"
                ),
            )
        return snapshot, decision
