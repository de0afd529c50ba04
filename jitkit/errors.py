"""Error taxonomy for function construction and execution."""

from __future__ import annotations


class JitError(Exception):
    """Base class for every error raised by jitkit."""


class JitTypeError(JitError, TypeError):
    """Ambiguous coercion, mismatched operand types or a bad literal."""


class ConstructionError(JitError):
    """Misuse of the function-construction API."""


class DuplicateMemberError(ConstructionError):
    """A struct was defined with the same member name twice."""


class UnknownMemberError(ConstructionError, KeyError):
    """A struct member lookup named a member the struct does not have."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class UnplacedLabelError(ConstructionError):
    """A function was sealed while one or more labels were never placed."""

    def __init__(self, function_name: str, label_names: list[str]):
        self.function_name = function_name
        self.label_names = label_names
        super().__init__(
            f"Cannot compile '{function_name}': label(s) never placed: "
            f"{', '.join(label_names)}"
        )


class ScopeViolationError(ConstructionError):
    """A value or label was used outside the function that owns it,
    or after that function was sealed."""


class LabelPlacementError(ConstructionError):
    """A label was placed more than once."""


class EngineError(JitError):
    """A failure raised by the engine while executing a compiled function."""
