"""
Tests for brickflow observability module.
"""
import json
import logging

import pytest

from brickflow.pipeline.observability import (
    JSONLogger,
    PipelineLogger,
    PipelineMetrics,
    get_metrics,
    reset_metrics,
)

# =============================================================================
# JSONLogger Tests
# =============================================================================


def records_for(caplog, name):
    return [json.loads(r.getMessage()) for r in caplog.records if r.name == name]


class TestJSONLogger:
    """Tests for JSONLogger."""

    def test_logs_valid_json(self, caplog):
        logger = JSONLogger(name="test.json")

        with caplog.at_level(logging.INFO, logger="test.json"):
            logger.info("Test message", brick_id="@pixiebrix/identity")

        [record] = records_for(caplog, "test.json")
        assert record["message"] == "Test message"
        assert record["level"] == "info"
        assert record["brick_id"] == "@pixiebrix/identity"
        assert "timestamp" in record

    def test_includes_run_id(self, caplog):
        logger = JSONLogger(name="test.json", run_id="run-123")

        with caplog.at_level(logging.INFO, logger="test.json"):
            logger.warning("Careful")

        [record] = records_for(caplog, "test.json")
        assert record["run_id"] == "run-123"
        assert record["level"] == "warning"

    def test_skips_disabled_levels(self, caplog):
        logger = JSONLogger(name="test.json")

        with caplog.at_level(logging.INFO, logger="test.json"):
            logger.debug("Hidden")

        assert records_for(caplog, "test.json") == []

    def test_non_json_values_are_stringified(self, caplog):
        logger = JSONLogger(name="test.json")

        with caplog.at_level(logging.INFO, logger="test.json"):
            logger.info("Odd value", value=object())

        [record] = records_for(caplog, "test.json")
        assert isinstance(record["value"], str)

    def test_with_context_creates_new_logger(self, caplog):
        logger = JSONLogger(name="test.json", run_id="run-123")
        child = logger.with_context(brick_id="@pixiebrix/log")

        assert child is not logger
        assert child.run_id == "run-123"
        assert child.extra_context == {"brick_id": "@pixiebrix/log"}
        assert logger.extra_context == {}

        with caplog.at_level(logging.INFO, logger="test.json"):
            child.with_context(label="Say hi").error("Failed")

        [record] = records_for(caplog, "test.json")
        assert record["brick_id"] == "@pixiebrix/log"
        assert record["label"] == "Say hi"


# =============================================================================
# PipelineLogger Tests
# =============================================================================


class RecordingLogger:
    def __init__(self):
        self.calls = []

    def _record(self, level, message, context):
        self.calls.append((level, message, context))

    def debug(self, message, **context):
        self._record("debug", message, context)

    def info(self, message, **context):
        self._record("info", message, context)

    def warning(self, message, **context):
        self._record("warning", message, context)

    def error(self, message, **context):
        self._record("error", message, context)

    def with_context(self, **extra):
        return self


class TestPipelineLogger:
    """Tests for PipelineLogger."""

    def test_pipeline_lifecycle(self):
        inner = RecordingLogger()
        events = PipelineLogger(inner=inner)

        events.pipeline_started(brick_ids=["@a/one", "@a/two"], branches=[])
        events.pipeline_completed(steps_run=2, duration_ms=1.23456)

        assert inner.calls[0][2]["step_count"] == 2
        assert inner.calls[1][2]["duration_ms"] == 1.23

    def test_step_values_only_when_given(self):
        inner = RecordingLogger()
        events = PipelineLogger(inner=inner)

        events.step_started(brick_id="@a/one", instance_id="abc")
        events.step_started(brick_id="@a/one", instance_id="abc", args={"x": 1})

        assert "args" not in inner.calls[0][2]
        assert inner.calls[1][2]["args"] == {"x": 1}

    def test_error_levels(self):
        inner = RecordingLogger()
        events = PipelineLogger(inner=inner)

        events.step_error(brick_id="@a/one", error="boom", error_type="BusinessError")
        events.retry_attempt(attempt=1, max_attempts=3, error="boom", delay_ms=None)
        events.detached_error(error="boom", error_type="BusinessError")

        assert [c[0] for c in inner.calls] == ["error", "warning", "error"]
        assert inner.calls[1][2]["delay_ms"] is None


# =============================================================================
# Metrics Tests
# =============================================================================


class TestPipelineMetrics:
    """Tests for PipelineMetrics."""

    def test_record_run(self):
        metrics = PipelineMetrics()

        metrics.record_run(success=True)
        metrics.record_run(success=False)

        assert metrics.runs_total == 2
        assert metrics.runs_failed == 1

    def test_record_step(self):
        metrics = PipelineMetrics()

        metrics.record_step("@a/one", 10.0)
        metrics.record_step("@a/one", 20.0, success=False)
        metrics.record_skip()
        metrics.record_retry()

        stats = metrics.get_stats()
        assert stats["steps"] == {"total": 2, "failed": 1, "skipped": 1}
        assert stats["retries_total"] == 1
        assert stats["brick_duration_ms"]["@a/one"] == {"count": 2, "mean": 15.0}

    def test_histogram_is_capped(self):
        metrics = PipelineMetrics(max_histogram_entries=3)

        for i in range(5):
            metrics.record_step("@a/one", float(i))

        assert metrics.brick_durations_ms["@a/one"] == [2.0, 3.0, 4.0]

    def test_reset(self):
        metrics = PipelineMetrics()
        metrics.record_run(success=False)
        metrics.record_step("@a/one", 1.0)

        metrics.reset()

        assert metrics.get_stats()["runs"] == {"total": 0, "failed": 0}
        assert metrics.brick_durations_ms == {}


class TestGlobalMetrics:
    def test_engine_records_runs(self):
        reset_metrics()
        get_metrics().record_run(success=True)

        assert get_metrics().runs_total == 1

        reset_metrics()

        assert get_metrics().runs_total == 0

    @pytest.mark.asyncio
    async def test_engine_updates_metrics(self, engine):
        from brickflow.pipeline import Context

        await engine.run(
            [
                {"id": "@pixiebrix/identity", "config": {"a": 1}},
                {"id": "@pixiebrix/identity", "if": False},
            ],
            Context.initial(),
        )

        stats = get_metrics().get_stats()
        assert stats["runs"]["total"] == 1
        assert stats["steps"]["total"] == 1
        assert stats["steps"]["skipped"] == 1
