"""
Pipeline Definition Schema.

JSON-serializable models for a pipeline: an ordered list of BrickConfig
steps. These are the shapes found in persisted mod definitions; loading
and storing them is the caller's responsibility.

Usage:
    pipeline = Pipeline.from_value([
        {
            "id": "@pixiebrix/identity",
            "instanceId": "6b1c...",
            "config": {"name": {"__type__": "var", "__value__": "@input.name"}},
            "outputKey": "person",
        },
        {
            "id": "@pixiebrix/log",
            "config": {"message": {"__type__": "nunjucks", "__value__": "Hi {{ @person.name }}"}},
        },
    ])
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, RootModel, field_validator

from .expressions import TEMPLATE_DIALECTS, _serialize, parse_expressions

OUTPUT_KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

RootMode = Literal["inherit", "element", "document"]


def validate_output_key(key: str) -> str:
    """
    Validate an output key, stripping an optional `@` prefix.

    Raises:
        ValueError: If the key is not a valid identifier
    """
    normalized = key[1:] if key.startswith("@") else key
    if not OUTPUT_KEY_PATTERN.match(normalized):
        raise ValueError(f"Invalid output key: {key!r}")
    return normalized


class BrickConfig(BaseModel):
    """
    One step of a pipeline.

    Attributes:
        id: Registry id of the brick to run
        instance_id: Stable id of the authored step, used to correlate traces
        config: Brick arguments; values may be expressions
        output_key: Bind the output as `@<output_key>` for later steps
        condition: Skip the step when this renders falsy
        root_mode: How the step's root element is chosen
        root: Selector for the step's root element
        label: Human-readable step name for logs
        template_engine: Dialect for bare strings when implicit templates are on
    """

    id: str = Field(..., min_length=1, description="Brick registry id")
    instance_id: UUID = Field(default_factory=uuid4, alias="instanceId")
    config: dict[str, Any] = Field(default_factory=dict)
    output_key: str | None = Field(None, alias="outputKey")
    condition: Any = Field(None, alias="if")
    root_mode: RootMode = Field("inherit", alias="rootMode")
    root: str | None = None
    label: str | None = None
    template_engine: str | None = Field(None, alias="templateEngine")

    class Config:
        populate_by_name = True

    @field_validator("output_key")
    @classmethod
    def _check_output_key(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return validate_output_key(value)

    @field_validator("template_engine")
    @classmethod
    def _check_template_engine(cls, value: str | None) -> str | None:
        if value is not None and value not in TEMPLATE_DIALECTS:
            raise ValueError(
                f"Unknown template engine: {value!r}. Expected one of: {', '.join(TEMPLATE_DIALECTS)}"
            )
        return value

    @field_validator("config", mode="before")
    @classmethod
    def _parse_config(cls, value: Any) -> Any:
        # YAML short-hand: `config:` omitted for bricks without parameters
        if value is None:
            return {}
        return parse_expressions(value)

    @field_validator("condition", mode="before")
    @classmethod
    def _parse_condition(cls, value: Any) -> Any:
        return parse_expressions(value)

    @property
    def has_condition(self) -> bool:
        return "condition" in self.model_fields_set

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the persisted (camelCase) form."""
        data: dict[str, Any] = {
            "id": self.id,
            "instanceId": str(self.instance_id),
            "config": _serialize(self.config),
        }
        if self.output_key:
            data["outputKey"] = self.output_key
        if self.has_condition:
            data["if"] = _serialize(self.condition)
        if self.root_mode != "inherit":
            data["rootMode"] = self.root_mode
        if self.root:
            data["root"] = self.root
        if self.label:
            data["label"] = self.label
        if self.template_engine:
            data["templateEngine"] = self.template_engine
        return data


class Pipeline(RootModel[list[BrickConfig]]):
    """An ordered sequence of BrickConfig steps."""

    root: list[BrickConfig] = Field(default_factory=list)

    @classmethod
    def from_value(cls, value: Any) -> Pipeline:
        """Accept a Pipeline, a single step, or a list of steps/dicts."""
        if isinstance(value, Pipeline):
            return value
        if isinstance(value, (BrickConfig, dict)):
            value = [value]
        return cls.model_validate(list(value))

    def __iter__(self) -> Iterator[BrickConfig]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> BrickConfig:
        return self.root[index]

    @property
    def brick_ids(self) -> list[str]:
        return [step.id for step in self.root]

    def to_list(self) -> list[dict[str, Any]]:
        return [step.to_dict() for step in self.root]
