"""Values — typed constants, variables and instruction results.

Every operator emits exactly one instruction into the owning function and
returns the temporary holding its result.  A bare Python literal on either
side is promoted to a constant of the other operand's type.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from .errors import JitTypeError
from .jit_types import JitType


class ValueKind(str, Enum):
    CONSTANT = "constant"
    LOCAL = "local"
    PARAMETER = "parameter"
    TEMPORARY = "temporary"


class Value:
    """A typed register belonging to exactly one ``Function``."""

    def __init__(
        self,
        function: Any,
        jit_type: JitType,
        name: str,
        kind: ValueKind,
        literal: Any = None,
    ):
        self._function = function
        self._type = jit_type
        self._name = name
        self._kind = kind
        self._literal = literal
        self._addressable = False

    # ── introspection ────────────────────────────────────────────

    @property
    def function(self) -> Any:
        return self._function

    @property
    def type(self) -> JitType:
        return self._type

    @property
    def name(self) -> str:
        return self._name

    @property
    def kind(self) -> ValueKind:
        return self._kind

    @property
    def literal(self) -> Any:
        if self._kind != ValueKind.CONSTANT:
            raise JitTypeError(f"{self!r} is not a constant")
        return self._literal

    @property
    def is_constant(self) -> bool:
        return self._kind == ValueKind.CONSTANT

    @property
    def is_local(self) -> bool:
        return self._kind == ValueKind.LOCAL

    @property
    def is_parameter(self) -> bool:
        return self._kind == ValueKind.PARAMETER

    @property
    def is_temporary(self) -> bool:
        return self._kind == ValueKind.TEMPORARY

    @property
    def is_addressable(self) -> bool:
        return self._addressable

    def mark_addressable(self) -> None:
        self._addressable = True

    # ── assignment ───────────────────────────────────────────────

    def store(self, value: Any) -> None:
        """Assign *value* to this variable."""
        self._function.insn_store(self, value)

    def address(self) -> Value:
        """Return a VOID_PTR value holding the address of this variable."""
        return self._function.insn_address_of(self)

    def convert(self, jit_type: Any) -> Value:
        return self._function.insn_convert(self, jit_type)

    # ── named operations ─────────────────────────────────────────

    def add(self, rhs: Any) -> Value:
        return self._function.insn_add(self, rhs)

    def sub(self, rhs: Any) -> Value:
        return self._function.insn_sub(self, rhs)

    def mul(self, rhs: Any) -> Value:
        return self._function.insn_mul(self, rhs)

    def div(self, rhs: Any) -> Value:
        return self._function.insn_div(self, rhs)

    def rem(self, rhs: Any) -> Value:
        return self._function.insn_rem(self, rhs)

    def bit_and(self, rhs: Any) -> Value:
        return self._function.insn_and(self, rhs)

    def bit_or(self, rhs: Any) -> Value:
        return self._function.insn_or(self, rhs)

    def bit_xor(self, rhs: Any) -> Value:
        return self._function.insn_xor(self, rhs)

    def shl(self, rhs: Any) -> Value:
        return self._function.insn_shl(self, rhs)

    def shr(self, rhs: Any) -> Value:
        return self._function.insn_shr(self, rhs)

    def lt(self, rhs: Any) -> Value:
        return self._function.insn_lt(self, rhs)

    def gt(self, rhs: Any) -> Value:
        return self._function.insn_gt(self, rhs)

    def eq(self, rhs: Any) -> Value:
        return self._function.insn_eq(self, rhs)

    def ne(self, rhs: Any) -> Value:
        return self._function.insn_ne(self, rhs)

    def le(self, rhs: Any) -> Value:
        return self._function.insn_le(self, rhs)

    def ge(self, rhs: Any) -> Value:
        return self._function.insn_ge(self, rhs)

    def neg(self) -> Value:
        return self._function.insn_neg(self)

    def bit_not(self) -> Value:
        return self._function.insn_not(self)

    # ── operator sugar ───────────────────────────────────────────

    __add__ = add
    __sub__ = sub
    __mul__ = mul
    __truediv__ = div
    __mod__ = rem
    __and__ = bit_and
    __or__ = bit_or
    __xor__ = bit_xor
    __lshift__ = shl
    __rshift__ = shr
    __lt__ = lt
    __gt__ = gt
    __le__ = le
    __ge__ = ge
    __neg__ = neg
    __invert__ = bit_not

    def __eq__(self, rhs: Any) -> Value:  # type: ignore[override]
        return self.eq(rhs)

    def __ne__(self, rhs: Any) -> Value:  # type: ignore[override]
        return self.ne(rhs)

    def __radd__(self, lhs: Any) -> Value:
        return self._function.insn_add(lhs, self)

    def __rsub__(self, lhs: Any) -> Value:
        return self._function.insn_sub(lhs, self)

    def __rmul__(self, lhs: Any) -> Value:
        return self._function.insn_mul(lhs, self)

    def __rtruediv__(self, lhs: Any) -> Value:
        return self._function.insn_div(lhs, self)

    def __rmod__(self, lhs: Any) -> Value:
        return self._function.insn_rem(lhs, self)

    def __rand__(self, lhs: Any) -> Value:
        return self._function.insn_and(lhs, self)

    def __ror__(self, lhs: Any) -> Value:
        return self._function.insn_or(lhs, self)

    def __rxor__(self, lhs: Any) -> Value:
        return self._function.insn_xor(lhs, self)

    def __rlshift__(self, lhs: Any) -> Value:
        return self._function.insn_shl(lhs, self)

    def __rrshift__(self, lhs: Any) -> Value:
        return self._function.insn_shr(lhs, self)

    __hash__ = object.__hash__

    def __bool__(self) -> bool:
        raise JitTypeError(
            f"{self!r} has no compile-time truth value; "
            "use Function.if_ or a branch instruction"
        )

    def __repr__(self) -> str:
        return f"<Value {self._name} {self._type} {self._kind.value}>"
