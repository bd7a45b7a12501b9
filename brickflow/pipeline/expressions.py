"""
Expression model for brick configuration.

An Expression is a tagged value inside a BrickConfig's `config` mapping.
Serialized form (as stored in mod definitions):

    {"__type__": "var", "__value__": "@input.name"}
    {"__type__": "nunjucks", "__value__": "Hello {{ @input.name }}"}
    {"__type__": "pipeline", "__value__": [{"id": "...", "config": {...}}]}

Tags form a closed set:

- literal:  value used as-is
- var:      dotted/bracketed path resolved against the Context
- template: string rendered by a template dialect (nunjucks, mustache, ...)
- pipeline: nested pipeline, executed only by the owning brick
- defer:    section rendered later by the owning brick
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .schemas import Pipeline

TYPE_KEY = "__type__"
VALUE_KEY = "__value__"

TEMPLATE_DIALECTS = ("nunjucks", "mustache", "handlebars")

EXPRESSION_TYPES = ("literal", "var", "pipeline", "defer", *TEMPLATE_DIALECTS)


@dataclass(frozen=True)
class Expression:
    """Base class for all expressions."""

    value: Any

    @property
    def expression_type(self) -> str:
        raise NotImplementedError

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the `__type__`/`__value__` form."""
        return {TYPE_KEY: self.expression_type, VALUE_KEY: _serialize(self.value)}


@dataclass(frozen=True)
class LiteralExpression(Expression):
    """A value passed through without resolution."""

    @property
    def expression_type(self) -> str:
        return "literal"


@dataclass(frozen=True)
class VarExpression(Expression):
    """
    A variable reference, e.g. `@input.items[0].name`.

    A `?` suffix on a segment (`@input.user?.name`) makes the remainder of
    the path optional.
    """

    value: str

    @property
    def expression_type(self) -> str:
        return "var"


@dataclass(frozen=True)
class TemplateExpression(Expression):
    """A template string rendered against the whole Context."""

    value: str
    engine: str = "nunjucks"

    @property
    def expression_type(self) -> str:
        return self.engine


@dataclass(frozen=True)
class PipelineExpression(Expression):
    """A nested pipeline. Opaque to the renderer."""

    value: Pipeline

    @property
    def expression_type(self) -> str:
        return "pipeline"

    @property
    def pipeline(self) -> Pipeline:
        return self.value


@dataclass(frozen=True)
class DeferExpression(Expression):
    """A section whose nested expressions are rendered by the owning brick."""

    @property
    def expression_type(self) -> str:
        return "defer"


OPAQUE_TYPES = (PipelineExpression, DeferExpression)


def _serialize(value: Any) -> Any:
    if isinstance(value, Expression):
        return value.to_dict()
    if hasattr(value, "to_list"):
        return value.to_list()
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    return value


def is_serialized_expression(value: Any) -> bool:
    """Check if value is the `{"__type__", "__value__"}` dict form."""
    return (
        isinstance(value, dict)
        and TYPE_KEY in value
        and VALUE_KEY in value
        and value[TYPE_KEY] in EXPRESSION_TYPES
    )


def is_expression(value: Any) -> bool:
    """Check if value is an Expression, parsed or serialized."""
    return isinstance(value, Expression) or is_serialized_expression(value)


def to_expression(expression_type: str, value: Any) -> Expression:
    """
    Create an expression from its tag and payload.

    Raises:
        ValueError: If the tag is unknown
    """
    if expression_type == "literal":
        return LiteralExpression(value)
    if expression_type == "var":
        if not isinstance(value, str):
            raise ValueError(f"var expression requires a string path, got {type(value).__name__}")
        return VarExpression(value)
    if expression_type in TEMPLATE_DIALECTS:
        if not isinstance(value, str):
            raise ValueError(
                f"{expression_type} expression requires a template string, got {type(value).__name__}"
            )
        return TemplateExpression(value, engine=expression_type)
    if expression_type == "pipeline":
        from .schemas import Pipeline

        return PipelineExpression(Pipeline.from_value(value or []))
    if expression_type == "defer":
        return DeferExpression(parse_expressions(value))

    raise ValueError(f"Unknown expression type: {expression_type}")


def parse_expressions(value: Any) -> Any:
    """
    Recursively convert serialized expressions into Expression objects.

    Plain values are returned unchanged (new containers are built for
    dicts/lists, the input is not mutated).
    """
    if isinstance(value, Expression):
        return value
    if is_serialized_expression(value):
        return to_expression(value[TYPE_KEY], value[VALUE_KEY])
    if isinstance(value, dict):
        return {k: parse_expressions(v) for k, v in value.items()}
    if isinstance(value, list):
        return [parse_expressions(v) for v in value]
    return value
