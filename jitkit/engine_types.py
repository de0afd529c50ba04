"""Engine data types (pure data, no business logic)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from . import constants
from .cfg import CFG
from .jit_types import JitType


@dataclass(frozen=True)
class EngineConfig:
    """Groups engine execution configuration."""

    max_steps: int = constants.DEFAULT_MAX_STEPS
    max_call_depth: int = constants.DEFAULT_MAX_CALL_DEPTH


@dataclass(frozen=True)
class CompiledFunction:
    """Everything the engine needs to run a sealed function."""

    name: str
    cfg: CFG
    return_type: JitType
    param_regs: tuple[str, ...]
    value_types: dict[str, JitType]
    constants: dict[str, Any]
    addressable: tuple[str, ...]


@dataclass
class Frame:
    function_name: str
    registers: dict[str, Any] = field(default_factory=dict)
    addresses: dict[str, int] = field(default_factory=dict)


@dataclass
class ExecutionStats:
    """Execution metrics of the most recent ``apply``."""

    steps: int = 0
    calls: int = 0
    max_depth: int = 0


@dataclass
class StepOutcome:
    """Result of executing one instruction."""

    next_label: str | None = None
    returned: bool = False
    return_value: Any = None

    @classmethod
    def advance(cls) -> StepOutcome:
        return cls()

    @classmethod
    def jump(cls, label: str) -> StepOutcome:
        return cls(next_label=label)

    @classmethod
    def ret(cls, value: Any) -> StepOutcome:
        return cls(returned=True, return_value=value)
