"""
Pytest configuration and fixtures for brickflow tests.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any

import pytest

# Add the repository root to path for imports
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from brickflow.bricks.base import Brick, BrickKind, BrickOptions, Transformer
from brickflow.bricks.control_flow import register_builtin_bricks
from brickflow.bricks.registry import BrickRegistry, reset_brick_registry
from brickflow.config import RuntimeSettings, reset_settings
from brickflow.errors import BusinessError
from brickflow.pipeline.engine import PipelineEngine
from brickflow.pipeline.observability import reset_metrics
from brickflow.pipeline.templates import reset_template_registry
from brickflow.pipeline.trace import InMemoryTraceRecorder
from brickflow.pipeline.validation import properties_to_schema


# =============================================================================
# Test Bricks
# =============================================================================


class EchoBrick(Transformer):
    """Returns its arguments. `message` is required."""

    id = "@test/echo"
    name = "Echo"
    input_schema = properties_to_schema(
        {
            "message": {"type": "string"},
            "greeting": {"type": "string", "default": "hello"},
            "extra": {},
        },
        required=["message"],
    )

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return dict(args)


class FlakyBrick(Transformer):
    """Fails for the first `failures` calls, then returns the attempt number."""

    id = "@test/flaky"
    name = "Flaky"

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.calls = 0

    async def is_pure(self) -> bool:
        return False

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        self.calls += 1
        if self.calls <= self.failures:
            raise BusinessError(f"attempt {self.calls} failed")
        return {"attempt": self.calls}


class ThrowBrick(Transformer):
    """Always raises."""

    id = "@test/throw"
    name = "Throw"

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        raise BusinessError(args.get("message") or "boom")


class HangBrick(Transformer):
    """Never finishes."""

    id = "@test/hang"
    name = "Hang"

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        self.started.set()
        await asyncio.Event().wait()


class ContextBrick(Transformer):
    """Reports what the brick was given besides its arguments."""

    id = "@test/context"
    name = "Context"

    async def transform(self, args: dict[str, Any], options: BrickOptions) -> Any:
        return {
            "keys": sorted(options.context.keys()),
            "branches": [b.to_dict() for b in options.meta.branches],
            "root": options.root,
        }


class ChattyEffect(Brick):
    """An effect that (incorrectly) returns a value."""

    id = "@test/chatty-effect"
    name = "Chatty Effect"
    kind = BrickKind.EFFECT

    def __init__(self) -> None:
        self.calls: list[dict[str, Any]] = []

    async def run(self, args: dict[str, Any], options: BrickOptions) -> Any:
        self.calls.append(args)
        return {"ignored": True}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset global registries, settings and metrics between tests."""
    yield
    reset_metrics()
    reset_settings()
    reset_template_registry()
    reset_brick_registry()


@pytest.fixture
def flaky_brick():
    return FlakyBrick(failures=2)


@pytest.fixture
def hang_brick():
    return HangBrick()


@pytest.fixture
def chatty_effect():
    return ChattyEffect()


@pytest.fixture
def registry(flaky_brick, hang_brick, chatty_effect):
    """A fresh registry with the built-in and test bricks."""
    registry = BrickRegistry()
    register_builtin_bricks(registry)
    registry.register(
        [
            EchoBrick(),
            ThrowBrick(),
            ContextBrick(),
            flaky_brick,
            hang_brick,
            chatty_effect,
        ]
    )
    return registry


@pytest.fixture
def settings():
    return RuntimeSettings()


@pytest.fixture
def engine(registry, settings):
    return PipelineEngine(registry, settings)


@pytest.fixture
def recorder():
    return InMemoryTraceRecorder()


@pytest.fixture
def sample_input():
    return {"name": "Ada", "items": [{"title": "first"}, {"title": "second"}]}
