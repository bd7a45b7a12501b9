"""
Root selection for pipeline steps.

A root is the anchor a root-aware brick operates on (in the browser, a DOM
element). The engine treats roots as opaque handles; the only capability
it needs is selecting descendants by selector.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from brickflow.errors import BusinessError

from .schemas import BrickConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class SelectorRoot(Protocol):
    """A root that can select descendants."""

    def select(self, selector: str) -> list[Any]: ...


def select_single(root: Any, selector: str) -> Any:
    """
    Select exactly one descendant of root.

    Raises:
        BusinessError: If zero or several descendants match, or the root
            does not support selection
    """
    if not isinstance(root, SelectorRoot):
        raise BusinessError(f"Root does not support selecting {selector}")

    matches = root.select(selector)
    if len(matches) > 1:
        raise BusinessError(f"Multiple roots found for {selector}")
    if not matches:
        raise BusinessError(f"No roots found for {selector}")
    return matches[0]


def select_brick_root(config: BrickConfig, root: Any, document: Any = None) -> Any:
    """
    Resolve the root for a step from its root mode.

    - inherit: the pipeline's root, narrowed by `config.root` if set
    - element: the element matched by `config.root` under the pipeline's root
    - document: the document root, narrowed by `config.root` if set
    """
    if config.root_mode == "document":
        base = document if document is not None else root
        return select_single(base, config.root) if config.root else base

    if config.root_mode == "element":
        if not config.root:
            raise BusinessError(f"Root selector required for rootMode element ({config.id})")
        return select_single(root, config.root)

    if config.root:
        return select_single(root, config.root)
    return root
