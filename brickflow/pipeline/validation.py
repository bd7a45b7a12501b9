"""
Input validation for bricks.

Rendered arguments are validated against the brick's input schema
(JSON Schema, Draft 2020-12) before the brick runs.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any

import jsonschema

from brickflow.errors import InvalidInputError

from .expressions import OPAQUE_TYPES, Expression

if TYPE_CHECKING:
    from brickflow.bricks.base import Brick

logger = logging.getLogger(__name__)

PIPELINE_SCHEMA_REF = "https://app.pixiebrix.com/schemas/pipeline#"

# Stands in for the remote pipeline schema during validation
_PIPELINE_PROPERTY_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["__type__", "__value__"],
    "properties": {"__type__": {"enum": ["pipeline", "defer"]}},
}


def pipeline_property(title: str = "", description: str = "") -> dict[str, Any]:
    """Schema for a property holding a nested pipeline."""
    schema: dict[str, Any] = {"$ref": PIPELINE_SCHEMA_REF}
    if title:
        schema["title"] = title
    if description:
        schema["description"] = description
    return schema


def cast_schema(schema_or_properties: dict[str, Any]) -> dict[str, Any]:
    """
    Normalize an input schema.

    Bricks may declare a bare properties map; it becomes an object schema.
    """
    if schema_or_properties.get("type") == "object" or "properties" in schema_or_properties:
        return schema_or_properties
    return {"type": "object", "properties": schema_or_properties}


def properties_to_schema(
    properties: dict[str, Any],
    required: list[str] | None = None,
) -> dict[str, Any]:
    """Build an object schema from a properties map."""
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "properties": properties,
        "required": list(required or []),
    }


def required_fields(schema: dict[str, Any]) -> set[str]:
    return set(cast_schema(schema).get("required", []))


def apply_defaults(schema: dict[str, Any], args: dict[str, Any]) -> dict[str, Any]:
    """
    Fill in top-level `default` values for absent properties.

    Returns a new dict; args is not mutated.
    """
    properties = cast_schema(schema).get("properties", {})
    result = dict(args)
    for name, prop in properties.items():
        if isinstance(prop, dict) and "default" in prop and result.get(name) is None:
            result[name] = copy.deepcopy(prop["default"])
    return result


def exclude_undefined(value: Any) -> Any:
    """Drop None-valued keys from dicts, recursively."""
    if isinstance(value, dict):
        return {k: exclude_undefined(v) for k, v in value.items() if v is not None}
    return value


def _for_validation(value: Any) -> Any:
    if isinstance(value, OPAQUE_TYPES):
        return {"__type__": value.expression_type, "__value__": None}
    if isinstance(value, Expression):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: _for_validation(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_for_validation(v) for v in value]
    return value


def _resolve_pipeline_refs(schema: Any) -> Any:
    if isinstance(schema, dict):
        if schema.get("$ref") == PIPELINE_SCHEMA_REF or schema.get("format") == "pipeline":
            return {
                **{k: v for k, v in schema.items() if k not in ("$ref", "format")},
                **_PIPELINE_PROPERTY_SCHEMA,
            }
        return {k: _resolve_pipeline_refs(v) for k, v in schema.items()}
    if isinstance(schema, list):
        return [_resolve_pipeline_refs(v) for v in schema]
    return schema


def collect_errors(schema: dict[str, Any], instance: Any) -> list[dict[str, Any]]:
    """Validate instance, returning `{path, message}` for each error."""
    resolved = _resolve_pipeline_refs(cast_schema(schema))
    validator = jsonschema.Draft202012Validator(resolved)
    errors = []
    for error in sorted(validator.iter_errors(instance), key=str):
        location = "/".join(str(x) for x in error.path)
        errors.append({"path": location, "message": error.message})
    return errors


def validate_input(brick: Brick, args: dict[str, Any]) -> None:
    """
    Validate rendered args against the brick's input schema.

    Raises:
        InvalidInputError: If validation fails
    """
    instance = _for_validation(exclude_undefined(args))
    errors = collect_errors(brick.input_schema, instance)
    if errors:
        logger.debug(
            f"Invalid inputs for brick {brick.id}: "
            + "; ".join(f"{e['path'] or '(root)'}: {e['message']}" for e in errors)
        )
        raise InvalidInputError(
            f"Invalid inputs for brick {brick.id}: {errors[0]['message']}",
            schema=brick.input_schema,
            input=args,
            errors=errors,
        )
