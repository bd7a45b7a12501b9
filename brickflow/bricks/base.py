"""
Brick contract for brickflow.

A brick is a registered unit of executable behavior. The engine renders a
step's config into plain arguments, validates them against the brick's
input schema, and calls `run(args, options)`.

Three capability kinds:
- Transformer: computes an output from its arguments
- Effect: performs a side effect; its output is discarded
- Reader: reads data from the root it is given; takes no arguments

Bricks are registered once and never mutated afterwards. They must treat
their arguments as already validated and must not mutate `options`.

Usage:
    class Greet(Transformer):
        id = "@acme/greet"
        name = "Greet"
        input_schema = {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
        }

        async def transform(self, args, options):
            return {"message": f"Hello, {args['name']}!"}
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from brickflow.pipeline.context import Branch, Context, RunMetadata
    from brickflow.pipeline.observability import StructuredLogger
    from brickflow.pipeline.schemas import Pipeline

# run_pipeline(pipeline, branch, extra_context=None, root=None) -> output
RunPipeline = Callable[..., Awaitable[Any]]

ErrorReporter = Callable[[BaseException, "RunMetadata"], None]


class BrickKind(str, Enum):
    """Capability kind of a brick."""

    EFFECT = "effect"
    TRANSFORM = "transform"
    READER = "reader"


@dataclass(frozen=True)
class BrickOptions:
    """
    Everything a brick receives besides its arguments.

    Attributes:
        context: The context the step's arguments were rendered against
        root: The step's root handle (None when running without one)
        logger: Logger scoped to this step
        run_pipeline: Runs a nested pipeline with this step's context,
            root, and branch path
        meta: Run metadata (run id, branch path)
        report_error: Side channel for errors that cannot propagate to the
            caller, e.g. from detached runs
    """

    context: Context
    root: Any
    logger: StructuredLogger
    run_pipeline: RunPipeline
    meta: RunMetadata
    report_error: ErrorReporter | None = None

    async def run_nested(
        self,
        pipeline: Pipeline,
        branch: Branch,
        extra_context: Mapping[str, Any] | None = None,
        root: Any = None,
    ) -> Any:
        """Shorthand for `run_pipeline` with keyword arguments spelled out."""
        return await self.run_pipeline(
            pipeline, branch, extra_context=extra_context, root=root
        )


class Brick(ABC):
    """
    Base class for all bricks.

    Subclasses set `id` (namespaced, e.g. "@pixiebrix/retry") and
    `input_schema`, and implement `run()`. Most bricks should extend
    Transformer, Effect or Reader instead.
    """

    id: str = ""
    name: str = ""
    description: str = ""
    input_schema: dict[str, Any] = {"type": "object", "properties": {}}
    kind: BrickKind = BrickKind.TRANSFORM

    # Suggested output key shown to mod authors
    default_output_key: str | None = None

    async def is_pure(self) -> bool:
        """True if the brick has no side effects."""
        return False

    async def is_root_aware(self) -> bool:
        """True if the brick needs the step's root."""
        return False

    @abstractmethod
    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        """
        Run the brick.

        Args:
            args: Rendered and validated arguments
            options: Context, root, logger and the nested-run callback

        Returns:
            JSON-like output; bound under the step's output key
        """
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id='{self.id}')"


class Transformer(Brick):
    """A brick that computes an output from its arguments."""

    kind = BrickKind.TRANSFORM

    async def is_pure(self) -> bool:
        return True

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return await self.transform(args, options)

    @abstractmethod
    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any: ...


class Effect(Brick):
    """A brick run for its side effect. Always outputs None."""

    kind = BrickKind.EFFECT

    async def run(self, args: dict[str, Any], options: BrickOptions) -> None:
        await self.effect(args, options)
        return None

    @abstractmethod
    async def effect(self, args: dict[str, Any], options: BrickOptions) -> None: ...


class Reader(Brick):
    """A brick that reads data from its root."""

    kind = BrickKind.READER

    async def is_pure(self) -> bool:
        return True

    async def is_root_aware(self) -> bool:
        return True

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return await self.read(options.root)

    @abstractmethod
    async def read(self, root: Any) -> Any: ...
