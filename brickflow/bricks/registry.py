"""
Brick Registry for brickflow.

Maps brick ids to Brick instances. Bricks are registered at startup and
looked up by the engine once per step.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from brickflow.errors import BrickNotFoundError, RegistryError

from .base import Brick

logger = logging.getLogger(__name__)

BRICK_ID_PATTERN = re.compile(r"^(@[a-z0-9][a-z0-9._-]*/)?[a-z0-9][a-z0-9._/-]*$", re.IGNORECASE)


def validate_brick_id(brick_id: str) -> str:
    """
    Check a brick id is a (optionally scoped) registry identifier.

    Raises:
        RegistryError: If the id is malformed
    """
    if not brick_id or not BRICK_ID_PATTERN.match(brick_id):
        raise RegistryError(f"Invalid brick id: {brick_id!r}")
    return brick_id


class BrickRegistry:
    """
    Registry of bricks by id.

    Read-mostly: registration happens during initialization, lookups at
    any time afterwards.

    Example:
        registry = get_brick_registry()
        registry.register([Identity(), Log()])

        brick = registry.lookup("@pixiebrix/identity")
    """

    def __init__(self) -> None:
        self._bricks: dict[str, Brick] = {}

    def register(self, bricks: Brick | Iterable[Brick]) -> None:
        """
        Register one or more bricks.

        A brick whose id is already registered replaces the existing one.

        Raises:
            RegistryError: If a brick id is malformed
        """
        if isinstance(bricks, Brick):
            bricks = [bricks]

        for brick in bricks:
            brick_id = validate_brick_id(brick.id)
            if brick_id in self._bricks:
                logger.warning(f"Replacing existing brick: {brick_id}")
            self._bricks[brick_id] = brick
            logger.debug(f"Registered brick: {brick_id}")

    def lookup(self, brick_id: str) -> Brick:
        """
        Get a brick by id.

        Raises:
            BrickNotFoundError: If no brick is registered with the id
        """
        brick = self._bricks.get(brick_id)
        if brick is None:
            raise BrickNotFoundError(brick_id)
        return brick

    def find(self, brick_id: str) -> Brick | None:
        """Get a brick by id, or None."""
        return self._bricks.get(brick_id)

    def exists(self, brick_id: str) -> bool:
        return brick_id in self._bricks

    @property
    def ids(self) -> list[str]:
        return list(self._bricks.keys())

    def __len__(self) -> int:
        return len(self._bricks)

    def clear(self) -> None:
        """Clear all registered bricks (for testing)."""
        self._bricks.clear()
        logger.debug("Cleared all bricks")


_registry: BrickRegistry | None = None


def get_brick_registry() -> BrickRegistry:
    """
    Get the global brick registry.

    Creates the registry on first access (lazy initialization).
    """
    global _registry
    if _registry is None:
        _registry = BrickRegistry()
    return _registry


def register_bricks(bricks: Brick | Iterable[Brick]) -> None:
    """Register bricks in the global registry."""
    get_brick_registry().register(bricks)


def reset_brick_registry() -> None:
    """Reset the global brick registry (for testing)."""
    global _registry
    if _registry is not None:
        _registry.clear()
    _registry = None
