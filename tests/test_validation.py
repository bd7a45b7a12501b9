"""
Tests for brick input validation.
"""
import pytest

from brickflow.bricks.control_flow import ForEach, Run
from brickflow.errors import InvalidInputError
from brickflow.pipeline.expressions import parse_expressions
from brickflow.pipeline.validation import (
    apply_defaults,
    cast_schema,
    collect_errors,
    exclude_undefined,
    properties_to_schema,
    required_fields,
    validate_input,
)

from conftest import EchoBrick


def pipeline_arg(steps):
    return parse_expressions({"__type__": "pipeline", "__value__": steps})


class TestSchemaHelpers:
    """Tests for schema construction helpers."""

    def test_properties_to_schema(self):
        schema = properties_to_schema({"a": {"type": "string"}}, required=["a"])

        assert schema["type"] == "object"
        assert schema["properties"] == {"a": {"type": "string"}}
        assert schema["required"] == ["a"]

    def test_cast_bare_properties(self):
        schema = cast_schema({"a": {"type": "string"}})

        assert schema == {"type": "object", "properties": {"a": {"type": "string"}}}

    def test_cast_keeps_object_schema(self):
        schema = {"type": "object", "properties": {}}

        assert cast_schema(schema) is schema

    def test_required_fields(self):
        assert required_fields(EchoBrick.input_schema) == {"message"}
        assert required_fields({"a": {}}) == set()

    def test_apply_defaults(self):
        args = {"message": "hi", "greeting": None}

        result = apply_defaults(EchoBrick.input_schema, args)

        assert result == {"message": "hi", "greeting": "hello"}
        assert args == {"message": "hi", "greeting": None}

    def test_apply_defaults_keeps_given_values(self):
        result = apply_defaults(EchoBrick.input_schema, {"message": "hi", "greeting": "hey"})

        assert result["greeting"] == "hey"

    def test_exclude_undefined(self):
        value = {"a": None, "b": {"c": None, "d": 1}, "e": [None]}

        assert exclude_undefined(value) == {"b": {"d": 1}, "e": [None]}


class TestValidateInput:
    """Tests for validate_input."""

    def test_valid(self):
        validate_input(EchoBrick(), {"message": "hi"})

    def test_missing_required(self):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_input(EchoBrick(), {"greeting": "hey"})

        error = exc_info.value
        assert str(error) == "Invalid inputs for brick @test/echo: 'message' is a required property"
        assert error.errors == [{"path": "", "message": "'message' is a required property"}]
        assert error.input == {"greeting": "hey"}
        assert error.schema is EchoBrick.input_schema

    def test_wrong_type_reports_path(self):
        with pytest.raises(InvalidInputError) as exc_info:
            validate_input(EchoBrick(), {"message": 42})

        assert exc_info.value.errors[0]["path"] == "message"

    def test_none_counts_as_absent(self):
        with pytest.raises(InvalidInputError):
            validate_input(EchoBrick(), {"message": None})

    def test_nested_pipeline_accepted(self):
        validate_input(Run(), {"body": pipeline_arg([{"id": "@pixiebrix/identity"}])})

    def test_non_pipeline_body_rejected(self):
        with pytest.raises(InvalidInputError):
            validate_input(Run(), {"body": "not a pipeline"})

    def test_array_type(self):
        with pytest.raises(InvalidInputError):
            validate_input(ForEach(), {"elements": "abc", "body": pipeline_arg([])})

    def test_errors_are_sorted_and_complete(self):
        errors = collect_errors(
            properties_to_schema(
                {"a": {"type": "string"}, "b": {"type": "integer"}},
                required=["a", "b"],
            ),
            {"a": 1, "b": "x"},
        )

        assert len(errors) == 2
        assert {e["path"] for e in errors} == {"a", "b"}
