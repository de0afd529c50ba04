"""IR Design — flat three-address instructions over numbered registers."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel

from .jit_types import TypeKind


class Opcode(str, Enum):
    # Value producers
    BINOP = "BINOP"
    UNOP = "UNOP"
    CONVERT = "CONVERT"
    LOAD_RELATIVE = "LOAD_RELATIVE"
    ADDRESS_OF = "ADDRESS_OF"
    CALL = "CALL"
    CALL_NATIVE = "CALL_NATIVE"
    # Value consumers / control flow
    STORE = "STORE"
    STORE_RELATIVE = "STORE_RELATIVE"
    BRANCH = "BRANCH"
    BRANCH_IF = "BRANCH_IF"
    BRANCH_IF_NOT = "BRANCH_IF_NOT"
    RETURN = "RETURN"
    # Labels (pseudo-instruction)
    LABEL = "LABEL"


BRANCH_OPCODES: frozenset[Opcode] = frozenset(
    {Opcode.BRANCH, Opcode.BRANCH_IF, Opcode.BRANCH_IF_NOT}
)
TERMINATOR_OPCODES: frozenset[Opcode] = BRANCH_OPCODES | {Opcode.RETURN}


class IRInstruction(BaseModel):
    opcode: Opcode
    result_reg: str | None = None
    operands: list[Any] = []
    label: str | None = None  # for LABEL / branch targets
    kind: TypeKind | None = None  # type the operation is performed in

    def __str__(self) -> str:
        if self.label and self.opcode == Opcode.LABEL:
            return f"{self.label}:"
        parts: list[str] = []
        if self.result_reg:
            parts.append(f"{self.result_reg} =")
        parts.append(self.opcode.value.lower())
        for op in self.operands:
            parts.append(_format_operand(op))
        if self.label:
            parts.append(self.label)
        if self.kind is not None:
            parts.append(f":{self.kind.value.lower()}")
        return " ".join(parts)


def _format_operand(op: Any) -> str:
    if isinstance(op, str):
        return op
    name = getattr(op, "name", None)
    if isinstance(name, str):
        return name
    if callable(op) and hasattr(op, "__name__"):
        return op.__name__
    return str(op)
