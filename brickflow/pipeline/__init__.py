"""
brickflow Pipeline Runtime

Executes declarative brick pipelines against a context.

Core Components:
- Expressions: tagged values in brick config (var, templates, pipeline, defer)
- Context: immutable overlay mapping of @-prefixed roots
- Renderer: resolves expressions into brick arguments
- Engine: sequential step executor with nested runs for control flow
- Trace: enter/exit observers for debugging UIs

Usage:
    from brickflow.pipeline import reduce_pipeline, InMemoryTraceRecorder

    recorder = InMemoryTraceRecorder()
    output = await reduce_pipeline(
        [{"id": "@pixiebrix/identity", "config": {"greeting": "hi"}}],
        {"input": {}},
        trace=recorder,
    )
"""

from .context import Branch, Context, RunMetadata
from .engine import PipelineEngine, RunOptions, reduce_pipeline
from .expressions import (
    DeferExpression,
    Expression,
    LiteralExpression,
    PipelineExpression,
    TemplateExpression,
    VarExpression,
    is_expression,
    parse_expressions,
    to_expression,
)
from .observability import (
    JSONLogger,
    PipelineLogger,
    PipelineMetrics,
    StructuredLogger,
    get_metrics,
    reset_metrics,
)
from .renderer import ExpressionRenderer, MissingVariableError, boolean, render
from .roots import SelectorRoot, select_brick_root
from .schemas import BrickConfig, Pipeline
from .templates import (
    Jinja2TemplateEngine,
    MustacheTemplateEngine,
    TemplateEngine,
    TemplateEngineRegistry,
    get_template_registry,
    register_template_engine,
    reset_template_registry,
)
from .trace import InMemoryTraceRecorder, TraceEntry, TraceExit, TraceRecorder

__all__ = [
    # Context
    "Branch",
    "Context",
    "RunMetadata",
    # Engine
    "PipelineEngine",
    "RunOptions",
    "reduce_pipeline",
    # Expressions
    "DeferExpression",
    "Expression",
    "LiteralExpression",
    "PipelineExpression",
    "TemplateExpression",
    "VarExpression",
    "is_expression",
    "parse_expressions",
    "to_expression",
    # Observability
    "JSONLogger",
    "PipelineLogger",
    "PipelineMetrics",
    "StructuredLogger",
    "get_metrics",
    "reset_metrics",
    # Rendering
    "ExpressionRenderer",
    "MissingVariableError",
    "boolean",
    "render",
    "Jinja2TemplateEngine",
    "MustacheTemplateEngine",
    "TemplateEngine",
    "TemplateEngineRegistry",
    "get_template_registry",
    "register_template_engine",
    "reset_template_registry",
    # Roots
    "SelectorRoot",
    "select_brick_root",
    # Schemas
    "BrickConfig",
    "Pipeline",
    # Tracing
    "InMemoryTraceRecorder",
    "TraceEntry",
    "TraceExit",
    "TraceRecorder",
]
