"""
Pipeline Context for brickflow.

The Context is the variable environment a pipeline's expressions are
resolved against: `@input`, `@options`, integration bindings, and the
`@<outputKey>` bindings accumulated by earlier steps.

Contexts are immutable. Each new binding produces a new Context that
shares its parent (a linked chain of overlay frames), so a step can never
retroactively change what an earlier or sibling branch observed.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID


def normalize_key(key: str) -> str:
    """Add the `@` prefix to a root name if missing."""
    return key if key.startswith("@") else f"@{key}"


class Context(Mapping[str, Any]):
    """
    Immutable, progressively-extended mapping of context roots.

    Lookups walk the overlay frames newest-first, so a later binding
    shadows an earlier one with the same key.

    Example:
        ctx = Context.initial(input={"name": "Ada"}, options={})
        ctx2 = ctx.extend("greeting", {"message": "hi"})

        ctx2["@greeting"]  # {"message": "hi"}
        "@greeting" in ctx  # False, ctx is unchanged
    """

    __slots__ = ("_bindings", "_parent", "_size")

    def __init__(
        self,
        bindings: Mapping[str, Any] | None = None,
        parent: Context | None = None,
    ):
        self._bindings: dict[str, Any] = dict(bindings or {})
        self._parent = parent
        self._size: int | None = None

    @classmethod
    def initial(
        cls,
        input: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
        integrations: Mapping[str, Any] | None = None,
    ) -> Context:
        """
        Build the root context for a mod component run.

        Integration bindings go first so they cannot override `@input`
        or `@options`.
        """
        bindings: dict[str, Any] = {}
        for key, value in (integrations or {}).items():
            bindings[normalize_key(key)] = value
        bindings["@input"] = dict(input or {})
        bindings["@options"] = dict(options or {})
        return cls(bindings)

    @classmethod
    def from_value(cls, value: Context | Mapping[str, Any] | None) -> Context:
        if isinstance(value, Context):
            return value
        return cls(value or {})

    def extend(self, key: str, value: Any) -> Context:
        """Return a new context with one additional binding."""
        return Context({normalize_key(key): value}, parent=self)

    def merge(self, extra: Mapping[str, Any] | None) -> Context:
        """Return a new context with several additional bindings."""
        if not extra:
            return self
        return Context({normalize_key(k): v for k, v in extra.items()}, parent=self)

    def _frames(self) -> Iterator[Context]:
        node: Context | None = self
        while node is not None:
            yield node
            node = node._parent

    def __getitem__(self, key: str) -> Any:
        for frame in self._frames():
            if key in frame._bindings:
                return frame._bindings[key]
        raise KeyError(key)

    def __contains__(self, key: object) -> bool:
        return any(key in frame._bindings for frame in self._frames())

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_dict())

    def __len__(self) -> int:
        if self._size is None:
            self._size = len(self.to_dict())
        return self._size

    @property
    def depth(self) -> int:
        """Number of overlay frames in the chain."""
        return sum(1 for _ in self._frames())

    def to_dict(self) -> dict[str, Any]:
        """Flatten to a plain dict snapshot, oldest bindings first."""
        result: dict[str, Any] = {}
        for frame in reversed(list(self._frames())):
            result.update(frame._bindings)
        return result

    def __repr__(self) -> str:
        return f"Context(keys={list(self.to_dict().keys())})"


@dataclass(frozen=True)
class Branch:
    """
    One level of nested control flow.

    Attributes:
        key: Static identifier of the branch, e.g. "body", "try", "except"
        counter: Monotonically increasing run counter for the key
    """

    key: str
    counter: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "counter": self.counter}


@dataclass(frozen=True)
class RunMetadata:
    """
    Metadata for the current run, used to correlate trace records.
    """

    run_id: UUID | None = None
    mod_component_id: UUID | None = None
    branches: tuple[Branch, ...] = field(default_factory=tuple)

    def with_branch(self, branch: Branch) -> RunMetadata:
        return RunMetadata(
            run_id=self.run_id,
            mod_component_id=self.mod_component_id,
            branches=(*self.branches, branch),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id) if self.run_id else None,
            "mod_component_id": str(self.mod_component_id) if self.mod_component_id else None,
            "branches": [b.to_dict() for b in self.branches],
        }
