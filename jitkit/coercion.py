"""Coercion rules — literal promotion, operand type promotion, normalisation.

Literal promotion table (``coerce_literal``):

    integer kinds   int, bool           wrapped to the type's width
    float kinds     int, float, bool    converted to float (FLOAT32 rounded)
    pointer kinds   int                 wrapped to an unsigned address
    OBJECT          anything            passed through unchanged
    VOID / struct   nothing

Operand promotion table (``binary_types``):

    int    x int     -> wider of the two (sub-INT kinds become INT,
                        unsigned wins at equal width)
    float  x number  -> widest float
    ptr    +/- int   -> the pointer type (byte arithmetic)
    ptr    other op  -> treated as NUINT
    OBJECT == / !=   -> compared by identity
    anything else    -> JitTypeError
"""

from __future__ import annotations

import math
import struct
from typing import Any

from .errors import JitTypeError
from .jit_types import (
    FLOAT32,
    FLOAT64,
    INT,
    NFLOAT,
    NUINT,
    JitType,
    TypeKind,
    UINT,
    NINT,
    LONG,
    ULONG,
)

ARITHMETIC_OPS: frozenset[str] = frozenset({"+", "-", "*", "/", "%"})
BITWISE_OPS: frozenset[str] = frozenset({"&", "|", "^"})
SHIFT_OPS: frozenset[str] = frozenset({"<<", ">>"})
COMPARISON_OPS: frozenset[str] = frozenset({"<", ">", "==", "!=", "<=", ">="})
BINARY_OPS: frozenset[str] = ARITHMETIC_OPS | BITWISE_OPS | SHIFT_OPS | COMPARISON_OPS
UNARY_OPS: frozenset[str] = frozenset({"-", "~"})

_FLOAT_RANK: dict[TypeKind, int] = {
    TypeKind.FLOAT32: 0,
    TypeKind.FLOAT64: 1,
    TypeKind.NFLOAT: 2,
}
_UNSIGNED_OF: dict[TypeKind, TypeKind] = {
    TypeKind.INT: TypeKind.UINT,
    TypeKind.UINT: TypeKind.UINT,
    TypeKind.NINT: TypeKind.NUINT,
    TypeKind.NUINT: TypeKind.NUINT,
    TypeKind.LONG: TypeKind.ULONG,
    TypeKind.ULONG: TypeKind.ULONG,
}
_TYPE_OF_KIND: dict[TypeKind, JitType] = {
    TypeKind.INT: INT,
    TypeKind.UINT: UINT,
    TypeKind.NINT: NINT,
    TypeKind.NUINT: NUINT,
    TypeKind.LONG: LONG,
    TypeKind.ULONG: ULONG,
    TypeKind.FLOAT32: FLOAT32,
    TypeKind.FLOAT64: FLOAT64,
    TypeKind.NFLOAT: NFLOAT,
}


# ── normalisation ────────────────────────────────────────────────


def normalize(jit_type: JitType, value: Any) -> Any:
    """Convert *value* to the representation the engine keeps for *jit_type*.

    Integers wrap to the type's width, floats are rounded to FLOAT32 where
    needed and float-to-integer conversion truncates toward zero.
    """
    if jit_type.is_integer or jit_type.is_pointer:
        return _wrap_integer(jit_type, value)
    if jit_type.kind == TypeKind.FLOAT32:
        return _round_float32(float(value))
    if jit_type.is_float:
        return float(value)
    return value


def _wrap_integer(jit_type: JitType, value: Any) -> int:
    if isinstance(value, float):
        value = int(value) if math.isfinite(value) else 0
    bits = jit_type.size * 8
    value = int(value) & ((1 << bits) - 1)
    if not jit_type.is_pointer and not jit_type.is_unsigned and value >> (bits - 1):
        value -= 1 << bits
    return value


def _round_float32(value: float) -> float:
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def zero_of(jit_type: JitType) -> Any:
    if jit_type.is_float:
        return 0.0
    if jit_type.is_integer or jit_type.is_pointer:
        return 0
    return None


# ── literals ─────────────────────────────────────────────────────


def coerce_literal(jit_type: JitType, literal: Any) -> Any:
    """Validate *literal* against the promotion table and normalise it."""
    if jit_type.kind == TypeKind.OBJECT:
        return literal
    if jit_type.is_integer or jit_type.is_pointer:
        if isinstance(literal, int):
            return normalize(jit_type, literal)
        raise JitTypeError(f"Cannot use {literal!r} as a {jit_type} constant")
    if jit_type.is_float:
        if isinstance(literal, (int, float)):
            return normalize(jit_type, literal)
        raise JitTypeError(f"Cannot use {literal!r} as a {jit_type} constant")
    raise JitTypeError(f"Cannot create a constant of type {jit_type}")


def literal_type_for(op: str, other: JitType) -> JitType:
    """Type a bare literal takes when combined with an operand of type *other*."""
    if other.is_pointer and op in ("+", "-"):
        return NINT
    return other


# ── operand promotion ────────────────────────────────────────────


def _promote_integer(kind: TypeKind) -> TypeKind:
    if kind in (TypeKind.SBYTE, TypeKind.UBYTE, TypeKind.SHORT, TypeKind.USHORT):
        return TypeKind.INT
    return kind


def _common_integer(lhs: JitType, rhs: JitType) -> JitType:
    a = _TYPE_OF_KIND[_promote_integer(lhs.kind)]
    b = _TYPE_OF_KIND[_promote_integer(rhs.kind)]
    if a.size != b.size:
        return a if a.size > b.size else b
    if a == b:
        return a
    if a.is_unsigned or b.is_unsigned:
        return _TYPE_OF_KIND[_UNSIGNED_OF[a.kind]]
    return a


def _common_numeric(lhs: JitType, rhs: JitType) -> JitType:
    if lhs.is_float or rhs.is_float:
        floats = [t for t in (lhs, rhs) if t.is_float]
        return max(floats, key=lambda t: _FLOAT_RANK[t.kind])
    return _common_integer(lhs, rhs)


def _as_integer(jit_type: JitType) -> JitType:
    return NUINT if jit_type.is_pointer else jit_type


def binary_types(op: str, lhs: JitType, rhs: JitType) -> tuple[JitType, JitType]:
    """Return ``(operation_type, result_type)`` for ``lhs op rhs``."""
    if op not in BINARY_OPS:
        raise JitTypeError(f"Unknown binary operator '{op}'")
    if lhs.kind == TypeKind.OBJECT or rhs.kind == TypeKind.OBJECT:
        if op in ("==", "!=") and lhs.kind == rhs.kind:
            return lhs, INT
        raise JitTypeError(f"Operator '{op}' is not defined for {lhs} and {rhs}")
    for t in (lhs, rhs):
        if not (t.is_numeric or t.is_pointer):
            raise JitTypeError(f"Operator '{op}' is not defined for {lhs} and {rhs}")

    if lhs.is_pointer or rhs.is_pointer:
        if op in ("+", "-") and lhs.is_pointer and rhs.is_integer:
            return lhs, lhs
        if op == "+" and rhs.is_pointer and lhs.is_integer:
            return rhs, rhs
        if lhs.is_float or rhs.is_float:
            raise JitTypeError(f"Operator '{op}' is not defined for {lhs} and {rhs}")
        op_type = _common_integer(_as_integer(lhs), _as_integer(rhs))
        return op_type, (INT if op in COMPARISON_OPS else op_type)

    if op in BITWISE_OPS or op in SHIFT_OPS:
        if lhs.is_float or rhs.is_float:
            raise JitTypeError(f"Operator '{op}' requires integer operands")
        if op in SHIFT_OPS:
            op_type = _TYPE_OF_KIND[_promote_integer(lhs.kind)]
            return op_type, op_type
    op_type = _common_numeric(lhs, rhs)
    return op_type, (INT if op in COMPARISON_OPS else op_type)


def unary_type(op: str, operand: JitType) -> JitType:
    if op not in UNARY_OPS:
        raise JitTypeError(f"Unknown unary operator '{op}'")
    if operand.is_float and op == "-":
        return operand
    if operand.is_integer:
        return _TYPE_OF_KIND[_promote_integer(operand.kind)]
    raise JitTypeError(f"Operator '{op}' is not defined for {operand}")


def check_convertible(target: JitType, source: JitType) -> None:
    """Raise unless a value of *source* type may be stored into *target*."""
    if target.is_aggregate or source.is_aggregate:
        if target != source:
            raise JitTypeError(
                f"Cannot assign a value of type {source!r} to {target!r}"
            )
        return
    if target.is_void or source.is_void:
        raise JitTypeError("Cannot assign to or from VOID")
    if target.kind == TypeKind.OBJECT or source.kind == TypeKind.OBJECT:
        if target.kind != source.kind:
            raise JitTypeError(f"Cannot assign a value of type {source} to {target}")
        return
    if target.is_pointer and source.is_float:
        raise JitTypeError(f"Cannot assign a value of type {source} to {target}")
    if source.is_pointer and target.is_float:
        raise JitTypeError(f"Cannot assign a value of type {source} to {target}")
