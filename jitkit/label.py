"""Branch targets."""

from __future__ import annotations

from typing import Any

from . import constants
from .errors import LabelPlacementError, ScopeViolationError


class Label:
    """An opaque branch target, placed exactly once.

    A label may be created on its own and attached to a function the first
    time it is branched to or placed; ``Function.new_label`` attaches it
    immediately.  Branching to a label before placing it is a forward
    reference.
    """

    def __init__(self, prefix: str = constants.DEFAULT_LABEL_PREFIX):
        self._prefix = prefix
        self._function: Any = None
        self._name: str | None = None
        self._placed = False

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def function(self) -> Any:
        return self._function

    @property
    def is_placed(self) -> bool:
        return self._placed

    def bind(self, function: Any, name: str) -> None:
        if self._function is not None and self._function is not function:
            raise ScopeViolationError(
                f"Label '{self._name}' belongs to {self._function!r}, "
                f"not {function!r}"
            )
        self._function = function
        self._name = name

    def mark_placed(self) -> None:
        if self._placed:
            raise LabelPlacementError(f"Label '{self._name}' is already placed")
        self._placed = True

    def __repr__(self) -> str:
        state = "placed" if self._placed else "unplaced"
        return f"<Label {self._name or self._prefix} {state}>"
