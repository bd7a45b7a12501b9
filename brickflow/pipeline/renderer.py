"""
Expression Renderer for brickflow.

Resolves expressions in a brick's config against a Context, producing the
plain values passed to the brick. Rendering has no side effects and is
idempotent for a given expression and context.

Rules:
- Plain values pass through; dicts and lists are walked so expressions at
  any depth are resolved.
- var: the path is resolved against the context. `?` after a segment
  makes that segment optional (missing -> None).
- templates: rendered by the dialect's engine with the whole context.
- pipeline/defer: returned unchanged for the owning brick to handle.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from brickflow.errors import InputRenderError

from .context import Context
from .expressions import (
    OPAQUE_TYPES,
    DeferExpression,
    Expression,
    LiteralExpression,
    TemplateExpression,
    VarExpression,
)
from .templates import TemplateEngineRegistry, get_template_registry

logger = logging.getLogger(__name__)

FALSY_STRINGS = frozenset({"", "false", "f", "0", "no", "n", "off"})

_MISSING = object()

_ROOT = re.compile(r"^\s*(@?[^.\[\]?\s]+)(\?)?")
_SEGMENT = re.compile(
    r"""\.([^.\[\]?]+)(\?)?|\[(-?\d+)\](\?)?|\[(["'])(.*?)\5\](\?)?"""
)


class MissingVariableError(InputRenderError):
    """A non-optional variable path is missing from the context."""

    def __init__(self, path: str, missing: str, *, field: str = ""):
        super().__init__(f"{path} undefined (missing {missing})", field=field, template=path)
        self.path = path
        self.missing = missing


@dataclass(frozen=True)
class PathSegment:
    """One step of a variable path."""

    key: str | int
    optional: bool = False
    display: str = ""


def parse_var_path(path: str) -> list[PathSegment]:
    """
    Split a variable path into segments.

    Supports `a.b`, `a[0]`, `a["key.with.dots"]`, and a `?` suffix on any
    segment: `@input.user?.name`.

    Raises:
        InputRenderError: If the path is malformed
    """
    match = _ROOT.match(path)
    if match is None:
        raise InputRenderError(f"Invalid variable path: {path!r}", template=path)

    segments = [PathSegment(match.group(1), bool(match.group(2)), match.group(1))]
    position = match.end()
    remainder = path.rstrip()

    while position < len(remainder):
        match = _SEGMENT.match(remainder, position)
        if match is None:
            raise InputRenderError(f"Invalid variable path: {path!r}", template=path)

        name, name_opt, index, index_opt, _, quoted, quoted_opt = match.groups()
        if name is not None:
            segments.append(PathSegment(name, bool(name_opt), remainder[: match.end()].rstrip("?")))
        elif index is not None:
            segments.append(PathSegment(int(index), bool(index_opt), remainder[: match.end()].rstrip("?")))
        else:
            segments.append(PathSegment(quoted, bool(quoted_opt), remainder[: match.end()].rstrip("?")))
        position = match.end()

    return segments


def _get_member(value: Any, key: str | int) -> Any:
    if isinstance(value, Mapping):
        if key in value:
            return value[key]
        if isinstance(key, int) and str(key) in value:
            return value[str(key)]
        return _MISSING

    if isinstance(value, (list, tuple)):
        if isinstance(key, str):
            if not key.lstrip("-").isdigit():
                return _MISSING
            key = int(key)
        try:
            return value[key]
        except IndexError:
            return _MISSING

    return _MISSING


def resolve_var(path: str, context: Mapping[str, Any], *, field: str = "") -> Any:
    """
    Resolve a variable path against the context.

    Returns None when a missing segment is marked optional with `?`.

    Raises:
        MissingVariableError: If a non-optional segment is missing
    """
    segments = parse_var_path(path)
    current: Any = context

    for segment in segments:
        value = _get_member(current, segment.key)
        if value is _MISSING or value is None:
            if segment.optional:
                return None
            if value is None and segment is segments[-1]:
                return None
            raise MissingVariableError(path.strip(), segment.display, field=field)
        current = value

    return current


class ExpressionRenderer:
    """
    Renders brick configuration against a Context.

    Example:
        renderer = ExpressionRenderer(autoescape=True)
        args = renderer.render(
            {"greeting": TemplateExpression("Hi {{ @input.name }}")},
            Context.initial(input={"name": "Ada"}),
        )
        # {"greeting": "Hi Ada"}
    """

    def __init__(
        self,
        *,
        autoescape: bool = True,
        implicit_engine: str | None = None,
        templates: TemplateEngineRegistry | None = None,
    ):
        """
        Args:
            autoescape: Escape HTML in template output
            implicit_engine: Treat bare strings as templates in this dialect
            templates: Template engine registry (global registry by default)
        """
        self.autoescape = autoescape
        self.implicit_engine = implicit_engine
        self._templates = templates

    @property
    def templates(self) -> TemplateEngineRegistry:
        return self._templates or get_template_registry()

    def render(self, value: Any, context: Context | Mapping[str, Any], field: str = "") -> Any:
        """Render a value (expression or plain JSON) against the context."""
        return self._render(value, Context.from_value(context), field)

    def render_deferred(self, value: Any, context: Context | Mapping[str, Any], field: str = "") -> Any:
        """
        Render a deferred section.

        Called by the brick that owns a defer expression, once it has the
        context it wants to render with.
        """
        if isinstance(value, DeferExpression):
            value = value.value
        return self.render(value, context, field)

    def _render(self, value: Any, context: Context, field: str) -> Any:
        if isinstance(value, Expression):
            return self._render_expression(value, context, field)

        if isinstance(value, dict):
            return {
                key: self._render(item, context, f"{field}.{key}" if field else str(key))
                for key, item in value.items()
            }

        if isinstance(value, list):
            return [
                self._render(item, context, f"{field}[{index}]")
                for index, item in enumerate(value)
            ]

        if isinstance(value, str) and self.implicit_engine:
            return self._render_template(self.implicit_engine, value, context, field)

        return value

    def _render_expression(self, expression: Expression, context: Context, field: str) -> Any:
        if isinstance(expression, OPAQUE_TYPES):
            return expression

        if isinstance(expression, LiteralExpression):
            return expression.value

        if isinstance(expression, VarExpression):
            return resolve_var(expression.value, context, field=field)

        if isinstance(expression, TemplateExpression):
            return self._render_template(expression.engine, expression.value, context, field)

        raise InputRenderError(
            f"Unsupported expression type: {expression.expression_type}",
            field=field,
        )

    def _render_template(self, dialect: str, template: str, context: Context, field: str) -> Any:
        return self.templates.render(
            dialect,
            template,
            context.to_dict(),
            autoescape=self.autoescape,
            field=field,
        )


def render(
    value: Any,
    context: Context | Mapping[str, Any],
    *,
    autoescape: bool = True,
    implicit_engine: str | None = None,
    field: str = "",
) -> Any:
    """Render a value with a one-off ExpressionRenderer."""
    renderer = ExpressionRenderer(autoescape=autoescape, implicit_engine=implicit_engine)
    return renderer.render(value, context, field)


def boolean(value: Any) -> bool:
    """
    Coerce a rendered condition to a bool.

    Falsy: False, None, 0, and the strings "", "false", "f", "0", "no",
    "n", "off" (case-insensitive). Everything else, including empty
    containers, is truthy.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() not in FALSY_STRINGS
    return True
