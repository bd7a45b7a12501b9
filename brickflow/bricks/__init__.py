"""
Bricks for brickflow.

The Brick contract, the registry the engine looks bricks up in, and the
built-in control-flow bricks (importable from brickflow.bricks.control_flow).
"""

from .base import Brick, BrickKind, BrickOptions, Effect, Reader, Transformer
from .registry import (
    BrickRegistry,
    get_brick_registry,
    register_bricks,
    reset_brick_registry,
)

__all__ = [
    "Brick",
    "BrickKind",
    "BrickOptions",
    "Effect",
    "Reader",
    "Transformer",
    "BrickRegistry",
    "get_brick_registry",
    "register_bricks",
    "reset_brick_registry",
]
