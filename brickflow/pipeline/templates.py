"""
Template engines for template expressions.

Engines are pluggable and selected by the expression's dialect tag.
The Jinja2 engine serves the `nunjucks` dialect (Nunjucks is a Jinja port);
pystache serves `mustache`.

Context roots are named with an `@` prefix (`@input`, `@options`), which is
not a valid Jinja identifier. Inside `{{ }}` and `{% %}` blocks, `@name` is
rewritten to an addressable identifier and the data is re-keyed to match.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Protocol

import pystache
from jinja2 import ChainableUndefined, Environment

from brickflow.errors import InputRenderError

logger = logging.getLogger(__name__)

AT_PREFIX = "_at_"

_BLOCK_PATTERN = re.compile(r"(\{\{.*?\}\}|\{%.*?%\})", re.DOTALL)
_ROOT_REFERENCE = re.compile(r"(?<![\w\"'@])@([A-Za-z_]\w*)")


class TemplateEngine(Protocol):
    """Protocol for template dialect implementations."""

    def render(self, template: str, data: Mapping[str, Any], autoescape: bool) -> Any:
        """
        Render template against data.

        Raises:
            Exception: Syntax/runtime errors of the engine. Missing
                variables must not raise.
        """
        ...


def _rewrite_roots(template: str) -> str:
    def rewrite_block(match: re.Match[str]) -> str:
        return _ROOT_REFERENCE.sub(rf"{AT_PREFIX}\1", match.group(0))

    return _BLOCK_PATTERN.sub(rewrite_block, template)


def _template_data(data: Mapping[str, Any]) -> dict[str, Any]:
    return {
        (f"{AT_PREFIX}{key[1:]}" if key.startswith("@") else key): value
        for key, value in data.items()
    }


class Jinja2TemplateEngine:
    """
    Jinja2-backed template engine.

    Missing variables (including attribute chains on them) render as empty
    strings via jinja2.ChainableUndefined, so they are distinguishable from
    the TemplateSyntaxError raised for malformed templates.
    """

    def __init__(self) -> None:
        self._environments = {
            True: Environment(autoescape=True, undefined=ChainableUndefined),
            False: Environment(autoescape=False, undefined=ChainableUndefined),
        }

    def render(self, template: str, data: Mapping[str, Any], autoescape: bool) -> str:
        env = self._environments[bool(autoescape)]
        compiled = env.from_string(_rewrite_roots(template))
        return compiled.render(**_template_data(data))


class MustacheTemplateEngine:
    """
    pystache-backed engine for the `mustache` dialect.

    Supports sections, inverted sections and triple-brace (unescaped)
    tags. Missing tags render as empty strings.
    """

    def __init__(self) -> None:
        self._renderers = {
            True: pystache.Renderer(missing_tags="ignore"),
            False: pystache.Renderer(missing_tags="ignore", escape=lambda value: value),
        }

    def render(self, template: str, data: Mapping[str, Any], autoescape: bool) -> str:
        renderer = self._renderers[bool(autoescape)]
        return renderer.render(_rewrite_roots(template), _template_data(data))


class TemplateEngineRegistry:
    """
    Registry of template engines by dialect tag.

    Example:
        registry = TemplateEngineRegistry()
        registry.register("handlebars", MyHandlebarsEngine())
        registry.render("handlebars", "{{name}}", {"name": "Ada"})
    """

    def __init__(self) -> None:
        self._engines: dict[str, TemplateEngine] = {}

    def register(self, dialect: str, engine: TemplateEngine) -> None:
        if dialect in self._engines:
            logger.warning(f"Replacing existing template engine: {dialect}")
        self._engines[dialect] = engine
        logger.debug(f"Registered template engine: {dialect}")

    def has(self, dialect: str) -> bool:
        return dialect in self._engines

    @property
    def dialects(self) -> list[str]:
        return list(self._engines.keys())

    def get(self, dialect: str) -> TemplateEngine:
        """
        Get the engine for a dialect.

        Raises:
            InputRenderError: If no engine is registered for the dialect
        """
        engine = self._engines.get(dialect)
        if engine is None:
            available = ", ".join(self._engines.keys()) or "(none)"
            raise InputRenderError(
                f"Template engine not available: {dialect}. Available: {available}",
                template=None,
            )
        return engine

    def render(
        self,
        dialect: str,
        template: str,
        data: Mapping[str, Any],
        *,
        autoescape: bool = True,
        field: str = "",
    ) -> Any:
        """
        Render a template, wrapping engine errors in InputRenderError.
        """
        engine = self.get(dialect)
        try:
            return engine.render(template, data, autoescape)
        except InputRenderError:
            raise
        except Exception as e:
            raise InputRenderError(
                f"Error rendering {dialect} template for {field or 'value'}: {e}",
                field=field,
                template=template,
                cause=e,
            ) from e


def _default_registry() -> TemplateEngineRegistry:
    registry = TemplateEngineRegistry()
    registry.register("nunjucks", Jinja2TemplateEngine())
    registry.register("mustache", MustacheTemplateEngine())
    return registry


_registry: TemplateEngineRegistry | None = None


def get_template_registry() -> TemplateEngineRegistry:
    """
    Get the global template engine registry.

    Created on first access with the default engines installed.
    """
    global _registry
    if _registry is None:
        _registry = _default_registry()
    return _registry


def register_template_engine(dialect: str, engine: TemplateEngine) -> None:
    """Register a template engine in the global registry."""
    get_template_registry().register(dialect, engine)


def reset_template_registry() -> None:
    """Reset the global registry to the defaults (for testing)."""
    global _registry
    _registry = None
