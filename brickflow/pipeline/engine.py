"""
Pipeline Engine for brickflow.

Executes a pipeline step by step, threading the Context, root and branch
path from one step to the next. Control-flow bricks re-enter the engine
through the scoped `run_pipeline` callback they receive in BrickOptions.

Execution model, per step:
    1. Render the `if` condition; a falsy result skips the step
    2. Resolve the step's root from its root mode
    3. Render the config into arguments
    4. Trace enter
    5. Look up the brick
    6. Apply defaults and validate the arguments
    7. Run the brick
    8. Trace exit, then bind the output under `@<outputKey>`

The engine never retries and never catches: a failing step is traced and
its error propagates unchanged to the caller of run().

Example:
    engine = PipelineEngine(registry)
    output = await engine.run(
        pipeline,
        Context.initial(input={"name": "Ada"}),
        RunOptions(trace=InMemoryTraceRecorder()),
    )
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from brickflow.bricks.base import Brick, BrickKind, BrickOptions, ErrorReporter, RunPipeline
from brickflow.bricks.registry import BrickRegistry, get_brick_registry
from brickflow.config import RuntimeSettings, get_settings
from brickflow.errors import BrickNotFoundError, serialize_error

from .context import Branch, Context, RunMetadata
from .expressions import PipelineExpression
from .observability import JSONLogger, PipelineLogger, StructuredLogger, get_metrics
from .renderer import ExpressionRenderer, MissingVariableError, boolean
from .roots import select_brick_root
from .schemas import BrickConfig, Pipeline
from .trace import TraceEntry, TraceExit, TraceRecorder, safe_enter, safe_exit
from .validation import apply_defaults, required_fields, validate_input

if TYPE_CHECKING:
    from .templates import TemplateEngineRegistry

logger = logging.getLogger(__name__)


# =============================================================================
# Run Options
# =============================================================================


@dataclass(frozen=True)
class RunOptions:
    """
    Options for one engine run.

    Fields left as None are filled from RuntimeSettings (or generated)
    when the run starts. Nested runs inherit the resolved options of the
    step that started them.

    Attributes:
        root: Root handle for the pipeline's steps
        document: Document-level root for rootMode "document"
        branches: Branch path of this run within the parent runs
        trace: Trace recorder; tracing is off when None
        logger: Run logger passed to bricks
        run_id: Correlates all trace records of one top-level run
        mod_component_id: Id of the mod component being run
        validate_input: Validate arguments against brick input schemas
        autoescape: Autoescape template output
        implicit_engine: Dialect for bare strings, None to leave them as-is
        log_values: Log rendered arguments and outputs
        error_reporter: Receives errors from detached runs
    """

    root: Any = None
    document: Any = None
    branches: tuple[Branch, ...] = ()
    trace: TraceRecorder | None = None
    logger: StructuredLogger | None = None
    run_id: UUID | None = None
    mod_component_id: UUID | None = None
    validate_input: bool | None = None
    autoescape: bool | None = None
    implicit_engine: str | None = None
    log_values: bool | None = None
    error_reporter: ErrorReporter | None = None

    @property
    def meta(self) -> RunMetadata:
        return RunMetadata(
            run_id=self.run_id,
            mod_component_id=self.mod_component_id,
            branches=self.branches,
        )


def log_error_reporter(run_logger: StructuredLogger) -> ErrorReporter:
    """Default error reporter: log detached failures at error level."""
    events = PipelineLogger(inner=run_logger)

    def report(error: BaseException, meta: RunMetadata) -> None:
        events.detached_error(error=str(error), error_type=type(error).__name__)
        logger.debug(f"Detached run error at branches {meta.to_dict()['branches']}: {error!r}")

    return report


@dataclass
class StepResult:
    """Outcome of one step."""

    context: Context
    output: Any = None
    skipped: bool = False


# =============================================================================
# Engine
# =============================================================================


class PipelineEngine:
    """
    Sequential pipeline executor.

    The engine holds no per-run state; one instance can serve any number of
    concurrent runs.
    """

    def __init__(
        self,
        registry: BrickRegistry | None = None,
        settings: RuntimeSettings | None = None,
        templates: TemplateEngineRegistry | None = None,
    ):
        """
        Args:
            registry: Brick registry (global registry by default)
            settings: Runtime settings (environment settings by default)
            templates: Template engine registry (global registry by default)
        """
        self.registry = registry if registry is not None else get_brick_registry()
        self.settings = settings or get_settings()
        self.templates = templates
        self.metrics = get_metrics()

    def resolve_options(self, options: RunOptions | None = None) -> RunOptions:
        """Fill unset options from settings."""
        options = options or RunOptions()
        run_id = options.run_id or uuid4()
        run_logger = options.logger or JSONLogger(name=self.settings.logger_name, run_id=str(run_id))

        implicit_engine = options.implicit_engine
        if implicit_engine is None and self.settings.implicit_templates:
            implicit_engine = self.settings.default_template_engine

        return replace(
            options,
            run_id=run_id,
            logger=run_logger,
            validate_input=(
                self.settings.validate_input if options.validate_input is None else options.validate_input
            ),
            autoescape=self.settings.autoescape if options.autoescape is None else options.autoescape,
            implicit_engine=implicit_engine,
            log_values=self.settings.log_values if options.log_values is None else options.log_values,
            error_reporter=options.error_reporter or log_error_reporter(run_logger),
        )

    async def run(
        self,
        pipeline: Pipeline | PipelineExpression | list[Any],
        context: Context | Mapping[str, Any],
        options: RunOptions | None = None,
    ) -> Any:
        """
        Run a pipeline against a context.

        Args:
            pipeline: The steps to run
            context: Initial context
            options: Run options

        Returns:
            Output of the last executed step, or {} if no step ran

        Raises:
            Exception: The first step failure, unchanged
        """
        if isinstance(pipeline, PipelineExpression):
            pipeline = pipeline.pipeline
        pipeline = Pipeline.from_value(pipeline)
        context = Context.from_value(context)
        options = self.resolve_options(options)
        run_logger = options.logger or JSONLogger(name=self.settings.logger_name, run_id=str(options.run_id))

        events = PipelineLogger(inner=run_logger)
        events.pipeline_started(
            brick_ids=pipeline.brick_ids,
            branches=[b.to_dict() for b in options.branches],
        )

        start_time = time.perf_counter()
        output: Any = {}
        steps_run = 0

        try:
            for config in pipeline:
                result = await self._run_step(config, context, options, events)
                if result.skipped:
                    continue
                steps_run += 1
                output = result.output
                context = result.context
        except Exception:
            self.metrics.record_run(success=False)
            raise

        self.metrics.record_run(success=True)
        events.pipeline_completed(
            steps_run=steps_run,
            duration_ms=(time.perf_counter() - start_time) * 1000,
        )
        return output

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _run_step(
        self,
        config: BrickConfig,
        context: Context,
        options: RunOptions,
        events: PipelineLogger,
    ) -> StepResult:
        brick = self.registry.find(config.id)
        renderer = ExpressionRenderer(
            autoescape=bool(options.autoescape),
            implicit_engine=self._implicit_engine(config, options),
            templates=self.templates,
        )

        try:
            if config.has_condition and not boolean(renderer.render(config.condition, context, "if")):
                return self._skip(config, context, options, events)
        except Exception as e:
            self._record_render_error(config, context, options, e)
            self._record_failure(config, options, events, e, duration_ms=None)
            raise

        try:
            step_root = select_brick_root(config, options.root, options.document)
        except Exception as e:
            self._record_failure(config, options, events, e, duration_ms=None)
            raise

        try:
            args = self._render_args(config, brick, context, renderer)
        except Exception as e:
            self._record_render_error(config, context, options, e)
            self._record_failure(config, options, events, e, duration_ms=None)
            raise

        if options.trace is not None:
            safe_enter(
                options.trace,
                TraceEntry(
                    run_id=options.run_id,
                    mod_component_id=options.mod_component_id,
                    brick_id=config.id,
                    instance_id=config.instance_id,
                    branches=list(options.branches),
                    rendered_args=args,
                    template_context=context.to_dict(),
                ),
            )

        step_logger = events.inner.with_context(
            brick_id=config.id,
            label=config.label,
            instance_id=str(config.instance_id),
        )
        events.step_started(
            brick_id=config.id,
            instance_id=str(config.instance_id),
            args=args if options.log_values else None,
        )

        start_time = time.perf_counter()
        try:
            if brick is None:
                raise BrickNotFoundError(config.id)

            args = apply_defaults(brick.input_schema, args)
            if options.validate_input:
                validate_input(brick, args)

            brick_options = BrickOptions(
                context=context,
                root=step_root,
                logger=step_logger,
                run_pipeline=self._scoped_run_pipeline(context, step_root, options),
                meta=options.meta,
                report_error=options.error_reporter,
            )
            output = await brick.run(args, brick_options)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self._record_failure(config, options, events, e, duration_ms=duration_ms)
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        self.metrics.record_step(config.id, duration_ms)
        events.step_completed(
            brick_id=config.id,
            duration_ms=duration_ms,
            output=output if options.log_values else None,
        )

        if options.trace is not None:
            safe_exit(
                options.trace,
                TraceExit(
                    run_id=options.run_id,
                    mod_component_id=options.mod_component_id,
                    brick_id=config.id,
                    instance_id=config.instance_id,
                    branches=list(options.branches),
                    output=output,
                    output_key=config.output_key,
                    duration_ms=duration_ms,
                ),
            )

        if brick.kind == BrickKind.EFFECT:
            if config.output_key:
                step_logger.warning(f"Ignoring output key for effect {config.id}")
            if output is not None:
                step_logger.warning(f"Ignoring output produced by effect {config.id}")
            return StepResult(context=context, output=None)

        if config.output_key:
            context = context.extend(config.output_key, output)
        return StepResult(context=context, output=output)

    def _implicit_engine(self, config: BrickConfig, options: RunOptions) -> str | None:
        if options.implicit_engine is None:
            return None
        return config.template_engine or options.implicit_engine

    def _render_args(
        self,
        config: BrickConfig,
        brick: Brick | None,
        context: Context,
        renderer: ExpressionRenderer,
    ) -> dict[str, Any]:
        """
        Render the step's config into brick arguments.

        A missing variable in a field the brick does not require omits the
        field. Unknown bricks have every field treated as required.
        """
        required = required_fields(brick.input_schema) if brick is not None else None
        args: dict[str, Any] = {}

        for key, value in config.config.items():
            try:
                args[key] = renderer.render(value, context, key)
            except MissingVariableError as e:
                if required is None or key in required:
                    raise
                logger.debug(f"Omitting optional field {key} of {config.id}: {e}")

        return args

    def _scoped_run_pipeline(
        self,
        context: Context,
        step_root: Any,
        options: RunOptions,
    ) -> RunPipeline:
        """Bind a nested-run callback to the calling step."""

        async def run_pipeline(
            pipeline: Pipeline | PipelineExpression,
            branch: Branch,
            extra_context: Mapping[str, Any] | None = None,
            root: Any = None,
        ) -> Any:
            nested_options = replace(
                options,
                root=step_root if root is None else root,
                branches=(*options.branches, branch),
            )
            return await self.run(pipeline, context.merge(extra_context), nested_options)

        return run_pipeline

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def _skip(
        self,
        config: BrickConfig,
        context: Context,
        options: RunOptions,
        events: PipelineLogger,
    ) -> StepResult:
        events.step_skipped(brick_id=config.id, instance_id=str(config.instance_id))
        self.metrics.record_skip()

        if options.trace is not None:
            safe_exit(
                options.trace,
                TraceExit(
                    run_id=options.run_id,
                    mod_component_id=options.mod_component_id,
                    brick_id=config.id,
                    instance_id=config.instance_id,
                    branches=list(options.branches),
                    skipped_run=True,
                    output_key=config.output_key,
                ),
            )

        return StepResult(context=context, skipped=True)

    def _record_render_error(
        self,
        config: BrickConfig,
        context: Context,
        options: RunOptions,
        error: Exception,
    ) -> None:
        if options.trace is None:
            return
        safe_enter(
            options.trace,
            TraceEntry(
                run_id=options.run_id,
                mod_component_id=options.mod_component_id,
                brick_id=config.id,
                instance_id=config.instance_id,
                branches=list(options.branches),
                render_error=serialize_error(error),
                template_context=context.to_dict(),
            ),
        )

    def _record_failure(
        self,
        config: BrickConfig,
        options: RunOptions,
        events: PipelineLogger,
        error: Exception,
        duration_ms: float | None,
    ) -> None:
        events.step_error(brick_id=config.id, error=str(error), error_type=type(error).__name__)
        self.metrics.record_step(config.id, duration_ms or 0.0, success=False)

        if options.trace is not None:
            safe_exit(
                options.trace,
                TraceExit(
                    run_id=options.run_id,
                    mod_component_id=options.mod_component_id,
                    brick_id=config.id,
                    instance_id=config.instance_id,
                    branches=list(options.branches),
                    error=serialize_error(error),
                    output_key=config.output_key,
                    duration_ms=duration_ms,
                ),
            )


# =============================================================================
# Convenience
# =============================================================================


async def reduce_pipeline(
    pipeline: Pipeline | PipelineExpression | list[Any],
    initial_values: Mapping[str, Any] | None = None,
    *,
    engine: PipelineEngine | None = None,
    **options: Any,
) -> Any:
    """
    Run a pipeline from initial values.

    Args:
        pipeline: The steps to run
        initial_values: `input`, `options` and `integrations` for the
            initial context, plus an optional `root`
        engine: Engine to use (a default engine otherwise)
        **options: RunOptions fields

    Example:
        output = await reduce_pipeline(
            [{"id": "@pixiebrix/identity", "config": {"name": "Ada"}}],
            {"input": {}},
            trace=recorder,
        )
    """
    values = dict(initial_values or {})
    context = Context.initial(
        input=values.get("input"),
        options=values.get("options"),
        integrations=values.get("integrations"),
    )
    if values.get("root") is not None:
        options.setdefault("root", values["root"])

    engine = engine or PipelineEngine()
    return await engine.run(pipeline, context, RunOptions(**options))
