"""
Tests for trace records and recorders.
"""
import logging
from uuid import uuid4

import pytest

from brickflow.pipeline.context import Branch
from brickflow.pipeline.trace import (
    InMemoryTraceRecorder,
    TraceEntry,
    TraceExit,
    TraceRecorder,
    safe_enter,
    safe_exit,
)


def make_entry(**overrides):
    values = {
        "run_id": uuid4(),
        "mod_component_id": None,
        "brick_id": "@pixiebrix/identity",
        "instance_id": uuid4(),
    }
    values.update(overrides)
    return TraceEntry(**values)


def make_exit(**overrides):
    values = {
        "run_id": uuid4(),
        "mod_component_id": None,
        "brick_id": "@pixiebrix/identity",
        "instance_id": uuid4(),
    }
    values.update(overrides)
    return TraceExit(**values)


class FailingRecorder(TraceRecorder):
    def enter(self, entry):
        raise RuntimeError("recorder down")

    def exit(self, record):
        raise RuntimeError("recorder down")


class TestTraceRecords:
    """Tests for TraceEntry and TraceExit."""

    def test_entry_to_dict(self):
        run_id = uuid4()
        entry = make_entry(
            run_id=run_id,
            branches=[Branch("branch", 0)],
            rendered_args={"a": 1},
        )

        data = entry.to_dict()

        assert data["run_id"] == str(run_id)
        assert data["mod_component_id"] is None
        assert data["branches"] == [{"key": "branch", "counter": 0}]
        assert data["rendered_args"] == {"a": 1}
        assert data["timestamp"].endswith("+00:00")

    def test_exit_error_flag(self):
        assert make_exit(error={"name": "BusinessError", "message": "x"}).is_error
        assert not make_exit(output={"a": 1}).is_error

    def test_exit_to_dict(self):
        data = make_exit(skipped_run=True, duration_ms=1.5).to_dict()

        assert data["skipped_run"] is True
        assert data["duration_ms"] == 1.5
        assert data["output"] is None


class TestInMemoryTraceRecorder:
    """Tests for InMemoryTraceRecorder."""

    def test_records_are_copied(self):
        recorder = InMemoryTraceRecorder()
        output = {"items": [1]}

        recorder.exit(make_exit(output=output))
        output["items"].append(2)

        assert recorder.exits[0].output == {"items": [1]}

    def test_trims_to_max_records(self):
        recorder = InMemoryTraceRecorder(max_records=2)
        ids = [uuid4() for _ in range(3)]

        for instance_id in ids:
            recorder.enter(make_entry(instance_id=instance_id))

        assert [e.instance_id for e in recorder.entries] == ids[1:]

    def test_lookup_by_instance(self):
        recorder = InMemoryTraceRecorder()
        target = uuid4()
        recorder.enter(make_entry(instance_id=target))
        recorder.enter(make_entry())
        recorder.exit(make_exit(instance_id=target))

        assert len(recorder.entries_for(target)) == 1
        assert len(recorder.exits_for(target)) == 1

    def test_clear(self):
        recorder = InMemoryTraceRecorder()
        recorder.enter(make_entry())
        recorder.exit(make_exit())

        recorder.clear()

        assert recorder.entries == []
        assert recorder.exits == []


class TestSafeCalls:
    """Recorder failures are logged and never raised."""

    def test_none_recorder(self):
        safe_enter(None, make_entry())
        safe_exit(None, make_exit())

    def test_failing_recorder_is_logged(self, caplog):
        with caplog.at_level(logging.ERROR, logger="brickflow.pipeline.trace"):
            safe_enter(FailingRecorder(), make_entry())
            safe_exit(FailingRecorder(), make_exit())

        messages = [r.getMessage() for r in caplog.records]
        assert any("failed on enter" in m for m in messages)
        assert any("failed on exit" in m for m in messages)


@pytest.mark.asyncio
async def test_failing_recorder_does_not_abort_run(engine):
    from brickflow.pipeline import Context, RunOptions

    output = await engine.run(
        [{"id": "@pixiebrix/identity", "config": {"a": 1}}],
        Context.initial(),
        RunOptions(trace=FailingRecorder()),
    )

    assert output == {"a": 1}


def test_default_cap_from_settings(monkeypatch):
    from brickflow.config import reset_settings

    monkeypatch.setenv("BRICKFLOW_MAX_TRACE_RECORDS", "5")
    reset_settings()

    assert InMemoryTraceRecorder().max_records == 5
