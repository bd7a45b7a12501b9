"""
Observability for brickflow pipelines.

Structured logging and metrics for pipeline execution. The per-run
JSONLogger is what bricks receive as `options.logger`; child loggers
scoped to a brick are derived with `with_context()`.

Design:
- Structured logging (JSON-formatted) on top of stdlib logging
- Metrics kept in-process, exportable via get_stats()
- Minimal overhead when log level filters the records out
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


# =============================================================================
# Log Levels
# =============================================================================


class LogLevel(Enum):
    """Standard log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


# =============================================================================
# Structured Logger Protocol
# =============================================================================


class StructuredLogger(Protocol):
    """
    Protocol for the logger passed to bricks.

    Structured loggers emit key-value pairs rather than plain strings.
    """

    def debug(self, message: str, **context: Any) -> None: ...

    def info(self, message: str, **context: Any) -> None: ...

    def warning(self, message: str, **context: Any) -> None: ...

    def error(self, message: str, **context: Any) -> None: ...

    def with_context(self, **extra: Any) -> StructuredLogger: ...


# =============================================================================
# JSON Logger Implementation
# =============================================================================


@dataclass
class JSONLogger:
    """
    Structured logger that outputs JSON-formatted records.

    Each record includes timestamp, level, message, the bound context
    fields and the run_id when set.

    Example output:
        {"timestamp": "2026-01-02T10:30:00+00:00", "level": "info",
         "message": "Step completed", "run_id": "0c5e...",
         "brick_id": "@pixiebrix/identity", "duration_ms": 1.2}
    """

    name: str = "brickflow"
    run_id: str | None = None
    extra_context: dict[str, Any] = field(default_factory=dict)
    _python_logger: logging.Logger | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._python_logger = logging.getLogger(self.name)

    def _log(self, level: LogLevel, message: str, context: dict[str, Any]) -> None:
        assert self._python_logger is not None
        if not self._python_logger.isEnabledFor(getattr(logging, level.name)):
            return

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "message": message,
            **self.extra_context,
            **context,
        }
        if self.run_id:
            record["run_id"] = self.run_id

        getattr(self._python_logger, level.value)(json.dumps(record, default=str))

    def debug(self, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._log(LogLevel.ERROR, message, context)

    def with_context(self, **extra: Any) -> JSONLogger:
        """Create a child logger with additional context."""
        return JSONLogger(
            name=self.name,
            run_id=self.run_id,
            extra_context={**self.extra_context, **extra},
        )


# =============================================================================
# Pipeline Logger
# =============================================================================


@dataclass
class PipelineLogger:
    """
    Logger for pipeline execution events.

    Example:
        events = PipelineLogger(inner=JSONLogger(run_id="abc-123"))
        events.pipeline_started(brick_ids=["@pixiebrix/identity"], branches=[])
        events.step_started(brick_id="@pixiebrix/identity", instance_id="...")
        events.step_completed(brick_id="@pixiebrix/identity", duration_ms=1.5)
    """

    inner: StructuredLogger = field(default_factory=JSONLogger)

    # Pipeline lifecycle
    def pipeline_started(self, brick_ids: list[str], branches: list[dict[str, Any]]) -> None:
        self.inner.debug(
            "Pipeline started",
            brick_ids=brick_ids,
            step_count=len(brick_ids),
            branches=branches,
        )

    def pipeline_completed(self, steps_run: int, duration_ms: float) -> None:
        self.inner.debug(
            "Pipeline completed",
            steps_run=steps_run,
            duration_ms=round(duration_ms, 2),
        )

    # Step lifecycle
    def step_started(self, brick_id: str, instance_id: str, args: Any = None) -> None:
        context: dict[str, Any] = {"brick_id": brick_id, "instance_id": instance_id}
        if args is not None:
            context["args"] = args
        self.inner.debug("Step started", **context)

    def step_completed(self, brick_id: str, duration_ms: float, output: Any = None) -> None:
        context: dict[str, Any] = {"brick_id": brick_id, "duration_ms": round(duration_ms, 2)}
        if output is not None:
            context["output"] = output
        self.inner.debug("Step completed", **context)

    def step_skipped(self, brick_id: str, instance_id: str) -> None:
        self.inner.debug("Step skipped", brick_id=brick_id, instance_id=instance_id)

    def step_error(self, brick_id: str, error: str, error_type: str) -> None:
        self.inner.error(
            "Step error",
            brick_id=brick_id,
            error=error,
            error_type=error_type,
        )

    # Control flow
    def retry_attempt(
        self,
        attempt: int,
        max_attempts: int,
        error: str,
        delay_ms: float | None,
    ) -> None:
        self.inner.warning(
            "Retry attempt",
            attempt=attempt,
            max_attempts=max_attempts,
            error=error,
            delay_ms=round(delay_ms, 2) if delay_ms is not None else None,
        )

    def detached_error(self, error: str, error_type: str) -> None:
        self.inner.error(
            "Detached run failed",
            error=error,
            error_type=error_type,
        )


# =============================================================================
# Metrics
# =============================================================================


@dataclass
class PipelineMetrics:
    """
    Pipeline execution metrics.

    Tracks pipeline runs, step outcomes and per-brick duration samples.
    """

    # Counters
    runs_total: int = 0
    runs_failed: int = 0
    steps_total: int = 0
    steps_failed: int = 0
    steps_skipped: int = 0
    retries_total: int = 0

    # Histograms (simplified as lists)
    brick_durations_ms: dict[str, list[float]] = field(default_factory=dict)

    max_histogram_entries: int = 1000

    def record_run(self, success: bool) -> None:
        self.runs_total += 1
        if not success:
            self.runs_failed += 1

    def record_step(self, brick_id: str, duration_ms: float, success: bool = True) -> None:
        self.steps_total += 1
        if not success:
            self.steps_failed += 1

        samples = self.brick_durations_ms.setdefault(brick_id, [])
        samples.append(duration_ms)
        if len(samples) > self.max_histogram_entries:
            del samples[: len(samples) - self.max_histogram_entries]

    def record_skip(self) -> None:
        self.steps_skipped += 1

    def record_retry(self) -> None:
        self.retries_total += 1

    def get_stats(self) -> dict[str, Any]:
        """Get summary statistics."""

        def mean(data: list[float]) -> float | None:
            return sum(data) / len(data) if data else None

        return {
            "runs": {"total": self.runs_total, "failed": self.runs_failed},
            "steps": {
                "total": self.steps_total,
                "failed": self.steps_failed,
                "skipped": self.steps_skipped,
            },
            "retries_total": self.retries_total,
            "brick_duration_ms": {
                brick_id: {"count": len(samples), "mean": mean(samples)}
                for brick_id, samples in self.brick_durations_ms.items()
            },
        }

    def reset(self) -> None:
        self.runs_total = 0
        self.runs_failed = 0
        self.steps_total = 0
        self.steps_failed = 0
        self.steps_skipped = 0
        self.retries_total = 0
        self.brick_durations_ms.clear()


_global_metrics = PipelineMetrics()


def get_metrics() -> PipelineMetrics:
    """Get the global metrics instance."""
    return _global_metrics


def reset_metrics() -> None:
    """Reset global metrics (useful for testing)."""
    _global_metrics.reset()


__all__ = [
    "LogLevel",
    "StructuredLogger",
    "JSONLogger",
    "PipelineLogger",
    "PipelineMetrics",
    "get_metrics",
    "reset_metrics",
]
