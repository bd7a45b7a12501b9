"""
Control-flow bricks.

Control-flow bricks take one or more nested pipelines as arguments and run
them through `options.run_pipeline`, each under its own branch so trace
records can be placed in the tree of nested runs.

They report themselves as impure and root-aware: they cannot know what
their bodies do.

Bricks:
- Run (@pixiebrix/run): run a body once, optionally detached
- Retry (@pixiebrix/retry): run a body until it succeeds
- TryExcept (@pixiebrix/try-catch): run a fallback when a body fails
- IfElse (@pixiebrix/if-else): pick a branch on a condition
- ForEach (@pixiebrix/for-each): run a body per element
- Identity (@pixiebrix/identity): return the arguments unchanged
- Log (@pixiebrix/log): write a message to the run logger
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from brickflow.errors import BusinessError, serialize_error
from brickflow.pipeline.context import Branch
from brickflow.pipeline.observability import PipelineLogger, get_metrics
from brickflow.pipeline.renderer import boolean
from brickflow.pipeline.validation import pipeline_property, properties_to_schema

from .base import BrickOptions, Effect, Transformer
from .registry import BrickRegistry

logger = logging.getLogger(__name__)

# Number.MAX_SAFE_INTEGER: retry until success
DEFAULT_MAX_RETRIES = 2**53 - 1

# Detached runs, held so they are not garbage collected mid-flight
_background_tasks: set[asyncio.Task[Any]] = set()


class ControlFlowBrick(Transformer):
    """Base class for bricks that run nested pipelines."""

    async def is_pure(self) -> bool:
        return False

    async def is_root_aware(self) -> bool:
        return True


# =============================================================================
# Run
# =============================================================================


class Run(ControlFlowBrick):
    """
    Run a pipeline once.

    With `async: true` the body is started as a detached task and the brick
    returns {} without waiting. A detached body is not cancelled when the
    calling pipeline finishes; its errors go to the run's error reporter.
    """

    id = "@pixiebrix/run"
    name = "Run"
    description = "Run a pipeline, optionally without waiting for it to finish"
    input_schema = properties_to_schema(
        {
            "body": pipeline_property("Body", "The bricks to run"),
            "async": {
                "type": "boolean",
                "default": False,
                "description": "Return immediately without waiting for the body",
            },
        },
        required=["body"],
    )

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        branch = Branch("branch", 0)

        if not args.get("async"):
            return await options.run_nested(args["body"], branch)

        schedule_detached(options.run_nested(args["body"], branch), options)
        return {}


def schedule_detached(coro: Coroutine[Any, Any, Any], options: BrickOptions) -> asyncio.Task[Any]:
    """
    Start a coroutine as a detached task.

    Failures are routed to `options.report_error` and never left as an
    unobserved task exception.
    """

    async def guarded() -> None:
        try:
            await coro
        except Exception as e:
            if options.report_error is not None:
                options.report_error(e, options.meta)
            else:
                logger.error(f"Detached run failed: {e}", exc_info=True)

    task = asyncio.create_task(guarded())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


def pending_detached_tasks() -> set[asyncio.Task[Any]]:
    """Detached runs that have not finished yet."""
    return {task for task in _background_tasks if not task.done()}


# =============================================================================
# Retry
# =============================================================================


class Retry(ControlFlowBrick):
    """
    Run a pipeline until it succeeds.

    Makes up to `maxRetries + 1` attempts, waiting `intervalMillis` before
    every attempt after the first. Returns the output of the first
    successful attempt; re-raises the last error when all attempts fail.
    Errors marked `retryable = False` are re-raised without another attempt.
    """

    id = "@pixiebrix/retry"
    name = "Retry"
    description = "Retry a pipeline until it succeeds"
    input_schema = properties_to_schema(
        {
            "body": pipeline_property("Body", "The bricks to retry"),
            "maxRetries": {
                "type": "integer",
                "description": "Retries after the first attempt",
            },
            "intervalMillis": {
                "type": "integer",
                "minimum": 0,
                "description": "Milliseconds to wait between attempts",
            },
        },
        required=["body"],
    )

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        max_retries = args.get("maxRetries")
        if max_retries is None:
            max_retries = DEFAULT_MAX_RETRIES
        interval_millis = args.get("intervalMillis")

        events = PipelineLogger(inner=options.logger)
        metrics = get_metrics()
        last_error: Exception | None = None

        for attempt in range(max_retries + 1):
            if attempt > 0:
                metrics.record_retry()
                if interval_millis:
                    await asyncio.sleep(interval_millis / 1000)

            try:
                return await options.run_nested(args["body"], Branch("branch", attempt))
            except Exception as e:
                if not getattr(e, "retryable", True):
                    raise
                last_error = e
                events.retry_attempt(
                    attempt=attempt + 1,
                    max_attempts=max_retries + 1,
                    error=str(e),
                    delay_ms=interval_millis,
                )

        if last_error is not None:
            raise last_error

        raise BusinessError("Maximum retries exceeded")


# =============================================================================
# Try / Except
# =============================================================================


class TryExcept(ControlFlowBrick):
    """
    Run `try`; if it fails, run `except` with the error bound as
    `@<errorKey>`. Without an `except` pipeline the error is re-raised.
    """

    id = "@pixiebrix/try-catch"
    name = "Try-Except"
    description = "Run a fallback pipeline when a pipeline fails"
    input_schema = properties_to_schema(
        {
            "try": pipeline_property("Try", "The bricks to run"),
            "except": pipeline_property("Except", "The bricks to run if the try bricks fail"),
            "errorKey": {
                "type": "string",
                "default": "error",
                "description": "Context key for the error in the except bricks",
            },
        },
        required=["try"],
    )

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        try:
            return await options.run_nested(args["try"], Branch("try", 0))
        except Exception as e:
            if not args.get("except"):
                raise
            options.logger.info(f"Running except branch: {e}")
            error_key = args.get("errorKey") or "error"
            return await options.run_nested(
                args["except"],
                Branch("except", 0),
                extra_context={error_key: serialize_error(e)},
            )


# =============================================================================
# If / Else
# =============================================================================


class IfElse(ControlFlowBrick):
    """Run `if` when the condition holds, `else` otherwise."""

    id = "@pixiebrix/if-else"
    name = "If-Else"
    description = "Run one of two pipelines based on a condition"
    input_schema = properties_to_schema(
        {
            "condition": {"description": "The condition to check"},
            "if": pipeline_property("If", "The bricks to run if the condition is true"),
            "else": pipeline_property("Else", "The bricks to run if the condition is false"),
        },
        required=["if"],
    )

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        if boolean(args.get("condition")):
            return await options.run_nested(args["if"], Branch("if", 0))
        if args.get("else"):
            return await options.run_nested(args["else"], Branch("else", 0))
        return None


# =============================================================================
# For Each
# =============================================================================


class ForEach(ControlFlowBrick):
    """
    Run the body once per element, binding the element as
    `@<elementKey>`. Returns the output of the last iteration.
    """

    id = "@pixiebrix/for-each"
    name = "For-Each Loop"
    description = "Loop over elements, running the body for each"
    input_schema = properties_to_schema(
        {
            "elements": {"type": "array", "description": "The elements to loop over"},
            "elementKey": {
                "type": "string",
                "default": "element",
                "description": "Context key for the current element",
            },
            "body": pipeline_property("Body", "The bricks to run for each element"),
        },
        required=["elements", "body"],
    )

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        element_key = args.get("elementKey") or "element"
        output: Any = None

        for index, element in enumerate(args["elements"]):
            output = await options.run_nested(
                args["body"],
                Branch("body", index),
                extra_context={element_key: element},
            )

        return output


# =============================================================================
# Simple bricks
# =============================================================================


class Identity(Transformer):
    """Return the arguments unchanged."""

    id = "@pixiebrix/identity"
    name = "Identity"
    description = "Return the input unchanged"
    input_schema = {"type": "object", "additionalProperties": True}

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return dict(args)


class Log(Effect):
    id = "@pixiebrix/log"
    name = "Log To Console"
    description = "Log a message"
    input_schema = properties_to_schema(
        {
            "message": {"type": "string", "description": "The message to log"},
            "level": {
                "type": "string",
                "enum": ["debug", "info", "warning", "error"],
                "default": "info",
            },
            "data": {"description": "Data to include with the message"},
        },
        required=["message"],
    )

    async def effect(self, args: dict[str, Any], options: BrickOptions) -> None:
        level = args.get("level") or "info"
        context = {"data": args["data"]} if args.get("data") is not None else {}
        getattr(options.logger, level)(args["message"], **context)


BUILTIN_BRICKS = (Run, Retry, TryExcept, IfElse, ForEach, Identity, Log)


def register_builtin_bricks(registry: BrickRegistry) -> None:
    """Register the built-in bricks."""
    registry.register([brick_class() for brick_class in BUILTIN_BRICKS])
