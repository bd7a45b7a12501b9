"""
brickflow - an execution engine for declarative brick pipelines.

A mod is an automation built from reusable units called bricks, wired into
pipelines. brickflow runs those pipelines:

- **Expressions**: variables, templates, nested pipelines and deferred sections
- **Context threading**: each step's output is visible to later steps only
- **Control flow**: Run, Retry, Try-Except, If-Else and For-Each bricks
  that run nested pipelines
- **Tracing**: enter/exit records for every step, for debugging UIs

Quick Start:
    >>> from brickflow import get_brick_registry, reduce_pipeline
    >>> from brickflow.bricks.control_flow import register_builtin_bricks
    >>>
    >>> register_builtin_bricks(get_brick_registry())
    >>> await reduce_pipeline(
    ...     [{"id": "@pixiebrix/identity", "config": {"message": "Hello, world!"}}],
    ...     {"input": {}},
    ... )
    {'message': 'Hello, world!'}
"""

__version__ = "0.1.0"

from brickflow.bricks import Brick, BrickOptions, get_brick_registry
from brickflow.errors import (
    BrickflowError,
    BrickNotFoundError,
    BusinessError,
    InputRenderError,
    InvalidInputError,
)
from brickflow.pipeline import Context, Pipeline, PipelineEngine, RunOptions, reduce_pipeline

__all__ = [
    "__version__",
    "Brick",
    "BrickOptions",
    "get_brick_registry",
    "BrickflowError",
    "BrickNotFoundError",
    "BusinessError",
    "InputRenderError",
    "InvalidInputError",
    "Context",
    "Pipeline",
    "PipelineEngine",
    "RunOptions",
    "reduce_pipeline",
]
