"""
Trace recording for pipeline runs.

The engine reports each step to a TraceRecorder: an `enter` record once
the step's arguments are rendered, and an `exit` record with the output
or the error. Debugging UIs read the records to show what each step saw.

Recorders are observers. They must copy what they keep; the engine hands
over live values. A failing recorder never aborts a run: the engine calls
them through safe_enter()/safe_exit(), which log and continue.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from brickflow.config import get_settings

from .context import Branch

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TraceEntry:
    """Record emitted before a brick runs."""

    run_id: UUID | None
    mod_component_id: UUID | None
    brick_id: str
    instance_id: UUID
    branches: list[Branch] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_utcnow)
    rendered_args: dict[str, Any] | None = None
    render_error: dict[str, Any] | None = None
    template_context: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id) if self.run_id else None,
            "mod_component_id": str(self.mod_component_id) if self.mod_component_id else None,
            "brick_id": self.brick_id,
            "instance_id": str(self.instance_id),
            "branches": [b.to_dict() for b in self.branches],
            "timestamp": self.timestamp.isoformat(),
            "rendered_args": self.rendered_args,
            "render_error": self.render_error,
            "template_context": self.template_context,
        }


@dataclass
class TraceExit:
    """Record emitted after a brick finishes, fails, or is skipped."""

    run_id: UUID | None
    mod_component_id: UUID | None
    brick_id: str
    instance_id: UUID
    branches: list[Branch] = field(default_factory=list)
    timestamp: datetime = field(default_factory=_utcnow)
    output: Any = None
    error: dict[str, Any] | None = None
    skipped_run: bool = False
    output_key: str | None = None
    duration_ms: float | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id) if self.run_id else None,
            "mod_component_id": str(self.mod_component_id) if self.mod_component_id else None,
            "brick_id": self.brick_id,
            "instance_id": str(self.instance_id),
            "branches": [b.to_dict() for b in self.branches],
            "timestamp": self.timestamp.isoformat(),
            "output": self.output,
            "error": self.error,
            "skipped_run": self.skipped_run,
            "output_key": self.output_key,
            "duration_ms": self.duration_ms,
        }


class TraceRecorder(ABC):
    """Observer for step enter/exit events. Both calls are synchronous."""

    @abstractmethod
    def enter(self, entry: TraceEntry) -> None:
        """Record that a step is about to run."""
        pass

    @abstractmethod
    def exit(self, record: TraceExit) -> None:
        """Record that a step finished, failed, or was skipped."""
        pass


class InMemoryTraceRecorder(TraceRecorder):
    """
    Keeps trace records in memory.

    Every record is deep-copied on receipt, so later changes to the values
    a brick returned are not reflected in the trace.

    Example:
        recorder = InMemoryTraceRecorder()
        await reduce_pipeline(pipeline, {"input": {}}, trace=recorder)
        for record in recorder.exits:
            print(record.brick_id, record.output)
    """

    def __init__(self, max_records: int | None = None):
        self.max_records = max_records or get_settings().max_trace_records
        self.entries: list[TraceEntry] = []
        self.exits: list[TraceExit] = []

    def enter(self, entry: TraceEntry) -> None:
        self.entries.append(copy.deepcopy(entry))
        self._trim(self.entries)

    def exit(self, record: TraceExit) -> None:
        self.exits.append(copy.deepcopy(record))
        self._trim(self.exits)

    def _trim(self, records: list[Any]) -> None:
        if len(records) > self.max_records:
            del records[: len(records) - self.max_records]

    def entries_for(self, instance_id: UUID) -> list[TraceEntry]:
        return [e for e in self.entries if e.instance_id == instance_id]

    def exits_for(self, instance_id: UUID) -> list[TraceExit]:
        return [e for e in self.exits if e.instance_id == instance_id]

    def clear(self) -> None:
        self.entries.clear()
        self.exits.clear()


def safe_enter(recorder: TraceRecorder | None, entry: TraceEntry) -> None:
    """Call recorder.enter, logging instead of raising on failure."""
    if recorder is None:
        return
    try:
        recorder.enter(entry)
    except Exception as e:
        logger.error(f"Trace recorder failed on enter for {entry.brick_id}: {e}", exc_info=True)


def safe_exit(recorder: TraceRecorder | None, record: TraceExit) -> None:
    """Call recorder.exit, logging instead of raising on failure."""
    if recorder is None:
        return
    try:
        recorder.exit(record)
    except Exception as e:
        logger.error(f"Trace recorder failed on exit for {record.brick_id}: {e}", exc_info=True)
