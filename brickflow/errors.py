"""
Error taxonomy for the brickflow runtime.

Errors fall into two attribution classes:

- Authoring errors (InputRenderError, InvalidInputError): the pipeline
  definition is wrong. Reported back with the offending field path.
- Runtime errors (BusinessError, BrickNotFoundError, anything a brick raises):
  propagated unchanged. Recovery is opt-in via control-flow bricks.

The engine never swallows an error from a step.
"""

from __future__ import annotations

import traceback
from typing import Any


class BrickflowError(Exception):
    """Base class for all brickflow errors."""

    retryable: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for traces and logs."""
        return {
            "name": type(self).__name__,
            "message": str(self),
        }


class InputRenderError(BrickflowError):
    """
    An expression failed to resolve against the context.

    Raised for malformed templates, unknown template dialects, and
    non-optional variables that are missing from the context.

    Attributes:
        field: Dotted path of the config field being rendered
        template: The template or variable path that failed
    """

    def __init__(
        self,
        message: str,
        *,
        field: str = "",
        template: str | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.template = template
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "field": self.field,
            "template": self.template,
        }


class BusinessError(BrickflowError):
    """
    An expected, domain-level failure raised intentionally by a brick.

    The message is meant to be shown to the end user as-is.
    """


class InvalidInputError(BusinessError):
    """Rendered arguments failed the brick's input schema validation."""

    def __init__(
        self,
        message: str,
        *,
        schema: dict[str, Any],
        input: Any,
        errors: list[dict[str, Any]],
    ):
        super().__init__(message)
        self.schema = schema
        self.input = input
        self.errors = errors

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "errors": self.errors,
        }


class BrickNotFoundError(BrickflowError):
    """
    Raised when a pipeline references a brick id that is not registered.

    This is a configuration error and is never retried.
    """

    retryable = False

    def __init__(self, brick_id: str):
        super().__init__(f"Brick not found: {brick_id}")
        self.brick_id = brick_id

    def to_dict(self) -> dict[str, Any]:
        return {
            **super().to_dict(),
            "brick_id": self.brick_id,
        }


class RegistryError(BrickflowError):
    """Invalid brick registration."""

    retryable = False


def serialize_error(exc: BaseException, include_stack: bool = False) -> dict[str, Any]:
    """
    Convert any exception to a JSON-friendly dict.

    Brickflow errors contribute their own fields via to_dict(). The cause
    chain is serialized recursively.
    """
    if isinstance(exc, BrickflowError):
        data = exc.to_dict()
    else:
        data = {"name": type(exc).__name__, "message": str(exc)}

    if exc.__cause__ is not None and exc.__cause__ is not exc:
        data["cause"] = serialize_error(exc.__cause__)

    if include_stack:
        data["stack"] = "".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        )

    return data
