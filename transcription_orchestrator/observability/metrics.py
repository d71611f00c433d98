"""Per-invocation metrics for the transcription orchestrator.

Provides InvocationMetrics for structured observability data, StageTimer
for measuring stage durations, and log_invocation_metrics() for emitting
one JSON line per invocation to stdout, where Cloud Logging picks it up.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime


@dataclass
class InvocationMetrics:
    """Everything measured during a single orchestrator invocation."""

    job_id: str
    operation_name: str = ""
    outcome: str = ""
    wall_time_seconds: float = 0.0
    submit_duration_seconds: float = 0.0
    status_check_duration_seconds: float = 0.0
    collect_duration_seconds: float = 0.0
    notify_duration_seconds: float = 0.0
    store_read_attempts: int = 0
    callback_delivered: bool = False
    error_stage: str | None = None
    error_message: str | None = None


class StageTimer:
    """Context manager that records the wall-clock duration of a stage.

    Usage:
        with StageTimer("collect") as timer:
            do_work()
        print(timer.duration_seconds)
    """

    def __init__(self, stage_name: str) -> None:
        self.stage_name = stage_name
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None
        self.duration_seconds: float = 0.0
        self.failed = False
        self._mono_start: float = 0.0

    def __enter__(self) -> StageTimer:
        self.start_time = datetime.now(UTC)
        self._mono_start = time.monotonic()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.duration_seconds = time.monotonic() - self._mono_start
        self.end_time = datetime.now(UTC)
        self.failed = exc_type is not None


def log_invocation_metrics(metrics: InvocationMetrics) -> None:
    """Emit invocation metrics as a single structured JSON line to stdout.

    Args:
        metrics: Populated InvocationMetrics dataclass.
    """
    entry = {
        "timestamp": datetime.now(UTC).isoformat(),
        "severity": "INFO",
        "metric_type": "transcription_invocation",
        **asdict(metrics),
    }
    print(json.dumps(entry, ensure_ascii=False))
