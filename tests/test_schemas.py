"""
Tests for BrickConfig and Pipeline models.
"""
from uuid import UUID

import pytest
from pydantic import ValidationError

from brickflow.pipeline.expressions import PipelineExpression, VarExpression
from brickflow.pipeline.schemas import BrickConfig, Pipeline, validate_output_key


class TestBrickConfig:
    """Tests for a single pipeline step."""

    def test_aliases(self):
        config = BrickConfig.model_validate(
            {
                "id": "@pixiebrix/identity",
                "instanceId": "7b0b5c0e-7a49-4dc6-9a0e-3c2b7e5cf111",
                "outputKey": "result",
                "if": {"__type__": "var", "__value__": "@input.enabled"},
                "rootMode": "document",
                "templateEngine": "mustache",
            }
        )

        assert config.instance_id == UUID("7b0b5c0e-7a49-4dc6-9a0e-3c2b7e5cf111")
        assert config.output_key == "result"
        assert config.condition == VarExpression("@input.enabled")
        assert config.root_mode == "document"
        assert config.template_engine == "mustache"

    def test_defaults(self):
        config = BrickConfig(id="@pixiebrix/identity")

        assert isinstance(config.instance_id, UUID)
        assert config.config == {}
        assert config.root_mode == "inherit"
        assert config.has_condition is False

    def test_instance_ids_are_unique(self):
        first = BrickConfig(id="@pixiebrix/identity")
        second = BrickConfig(id="@pixiebrix/identity")

        assert first.instance_id != second.instance_id

    def test_config_expressions_are_parsed(self):
        config = BrickConfig.model_validate(
            {
                "id": "@pixiebrix/run",
                "config": {"body": {"__type__": "pipeline", "__value__": [{"id": "@pixiebrix/identity"}]}},
            }
        )

        assert isinstance(config.config["body"], PipelineExpression)

    def test_null_config(self):
        assert BrickConfig.model_validate({"id": "@pixiebrix/identity", "config": None}).config == {}

    def test_output_key_at_prefix_is_stripped(self):
        assert BrickConfig(id="@x/y", outputKey="@result").output_key == "result"

    @pytest.mark.parametrize("key", ["1abc", "has space", "dash-ed", "a.b", ""])
    def test_invalid_output_key(self, key):
        with pytest.raises(ValidationError):
            BrickConfig(id="@x/y", outputKey=key)

    def test_has_condition_for_falsy_literal(self):
        config = BrickConfig.model_validate({"id": "@x/y", "if": False})

        assert config.has_condition is True
        assert config.condition is False

    @pytest.mark.parametrize("dialect", ["nunjucks", "mustache", "handlebars"])
    def test_known_template_engines(self, dialect):
        assert BrickConfig(id="@x/y", templateEngine=dialect).template_engine == dialect

    def test_unknown_template_engine(self):
        with pytest.raises(ValidationError, match="Unknown template engine: 'jinja'"):
            BrickConfig.model_validate({"id": "@x/y", "templateEngine": "jinja"})

    def test_invalid_root_mode(self):
        with pytest.raises(ValidationError):
            BrickConfig.model_validate({"id": "@x/y", "rootMode": "window"})

    def test_to_dict_uses_persisted_names(self):
        config = BrickConfig.model_validate(
            {
                "id": "@x/y",
                "instanceId": "7b0b5c0e-7a49-4dc6-9a0e-3c2b7e5cf111",
                "outputKey": "out",
                "if": True,
                "root": "img",
            }
        )

        assert config.to_dict() == {
            "id": "@x/y",
            "instanceId": "7b0b5c0e-7a49-4dc6-9a0e-3c2b7e5cf111",
            "config": {},
            "outputKey": "out",
            "if": True,
            "root": "img",
        }


class TestPipeline:
    """Tests for the Pipeline model."""

    def test_from_single_step(self):
        pipeline = Pipeline.from_value({"id": "@pixiebrix/identity"})

        assert pipeline.brick_ids == ["@pixiebrix/identity"]

    def test_from_list(self):
        pipeline = Pipeline.from_value([{"id": "@a/one"}, BrickConfig(id="@a/two")])

        assert len(pipeline) == 2
        assert [step.id for step in pipeline] == ["@a/one", "@a/two"]
        assert pipeline[1].id == "@a/two"

    def test_from_pipeline_is_identity(self):
        pipeline = Pipeline.from_value([])

        assert Pipeline.from_value(pipeline) is pipeline

    def test_missing_id(self):
        with pytest.raises(ValidationError):
            Pipeline.from_value([{"config": {}}])


def test_validate_output_key():
    assert validate_output_key("@foo_1") == "foo_1"
    with pytest.raises(ValueError):
        validate_output_key("@")
