"""Type descriptors — primitive kinds, struct layout, pointers and signatures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from . import constants
from .errors import JitTypeError


class TypeKind(str, Enum):
    VOID = "VOID"
    SBYTE = "SBYTE"
    UBYTE = "UBYTE"
    SHORT = "SHORT"
    USHORT = "USHORT"
    INT = "INT"
    UINT = "UINT"
    NINT = "NINT"
    NUINT = "NUINT"
    LONG = "LONG"
    ULONG = "ULONG"
    FLOAT32 = "FLOAT32"
    FLOAT64 = "FLOAT64"
    NFLOAT = "NFLOAT"
    VOID_PTR = "VOID_PTR"
    OBJECT = "OBJECT"
    # Composite kinds
    STRUCT = "STRUCT"
    POINTER = "POINTER"
    SIGNATURE = "SIGNATURE"


class ABI(str, Enum):
    """Calling-convention tags carried by signatures."""

    CDECL = "CDECL"
    VARARG = "VARARG"
    STDCALL = "STDCALL"
    FASTCALL = "FASTCALL"


# kind -> (size, alignment)
_SCALAR_LAYOUT: dict[TypeKind, tuple[int, int]] = {
    TypeKind.VOID: (0, 1),
    TypeKind.SBYTE: (1, 1),
    TypeKind.UBYTE: (1, 1),
    TypeKind.SHORT: (2, 2),
    TypeKind.USHORT: (2, 2),
    TypeKind.INT: (4, 4),
    TypeKind.UINT: (4, 4),
    TypeKind.NINT: (8, 8),
    TypeKind.NUINT: (8, 8),
    TypeKind.LONG: (8, 8),
    TypeKind.ULONG: (8, 8),
    TypeKind.FLOAT32: (4, 4),
    TypeKind.FLOAT64: (8, 8),
    TypeKind.NFLOAT: (8, 8),
    TypeKind.VOID_PTR: (constants.POINTER_SIZE, constants.POINTER_SIZE),
    TypeKind.OBJECT: (constants.POINTER_SIZE, constants.POINTER_SIZE),
    TypeKind.POINTER: (constants.POINTER_SIZE, constants.POINTER_SIZE),
    TypeKind.SIGNATURE: (constants.POINTER_SIZE, constants.POINTER_SIZE),
}

INTEGER_KINDS: frozenset[TypeKind] = frozenset(
    {
        TypeKind.SBYTE,
        TypeKind.UBYTE,
        TypeKind.SHORT,
        TypeKind.USHORT,
        TypeKind.INT,
        TypeKind.UINT,
        TypeKind.NINT,
        TypeKind.NUINT,
        TypeKind.LONG,
        TypeKind.ULONG,
    }
)
UNSIGNED_KINDS: frozenset[TypeKind] = frozenset(
    {
        TypeKind.UBYTE,
        TypeKind.USHORT,
        TypeKind.UINT,
        TypeKind.NUINT,
        TypeKind.ULONG,
    }
)
FLOAT_KINDS: frozenset[TypeKind] = frozenset(
    {TypeKind.FLOAT32, TypeKind.FLOAT64, TypeKind.NFLOAT}
)
POINTER_KINDS: frozenset[TypeKind] = frozenset(
    {TypeKind.VOID_PTR, TypeKind.POINTER, TypeKind.SIGNATURE}
)


class JitType:
    """A machine-level type.

    Primitive types are singletons exposed as module constants (``INT``,
    ``FLOAT64``, ...).  Composite types are built with ``create_struct``,
    ``create_pointer`` and ``create_signature``.
    """

    def __init__(self, kind: TypeKind, name: str = ""):
        self._kind = kind
        self._name = name or kind.value

    @property
    def kind(self) -> TypeKind:
        return self._kind

    @property
    def name(self) -> str:
        return self._name

    @property
    def size(self) -> int:
        return _SCALAR_LAYOUT[self._kind][0]

    @property
    def alignment(self) -> int:
        return _SCALAR_LAYOUT[self._kind][1]

    # ── classification ───────────────────────────────────────────

    @property
    def is_integer(self) -> bool:
        return self._kind in INTEGER_KINDS

    @property
    def is_unsigned(self) -> bool:
        return self._kind in UNSIGNED_KINDS

    @property
    def is_float(self) -> bool:
        return self._kind in FLOAT_KINDS

    @property
    def is_pointer(self) -> bool:
        return self._kind in POINTER_KINDS

    @property
    def is_numeric(self) -> bool:
        return self.is_integer or self.is_float

    @property
    def is_aggregate(self) -> bool:
        return self._kind == TypeKind.STRUCT

    @property
    def is_void(self) -> bool:
        return self._kind == TypeKind.VOID

    # ── struct layout (overridden by StructType) ─────────────────

    def get_offset(self, ordinal: int) -> int:
        raise JitTypeError(f"{self} has no fields")

    def set_offset(self, ordinal: int, offset: int) -> None:
        raise JitTypeError(f"{self} has no fields")

    # ── factories ────────────────────────────────────────────────

    @staticmethod
    def create_struct(member_types: Iterable[Any]) -> StructType:
        return StructType(member_types)

    @staticmethod
    def create_pointer(pointed: Any) -> PointerType:
        return PointerType(pointed)

    @staticmethod
    def create_signature(
        abi: ABI | str, return_type: Any, param_types: Iterable[Any]
    ) -> SignatureType:
        return SignatureType(abi, return_type, param_types)

    # ── value semantics ──────────────────────────────────────────

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JitType):
            return NotImplemented
        if type(self) is JitType and type(other) is JitType:
            return self._kind == other._kind
        return self is other

    def __hash__(self) -> int:
        return hash(self._kind)

    def __repr__(self) -> str:
        return f"<JitType {self._name}>"

    def __str__(self) -> str:
        return self._name


@dataclass
class _Component:
    type: JitType
    explicit_offset: int | None = None
    offset: int = 0


class StructType(JitType):
    """An ordered record of member types laid out by natural alignment.

    Offsets of individual members may be overridden with ``set_offset``;
    automatic members that follow an overridden one continue from its end.
    """

    def __init__(self, member_types: Iterable[Any], name: str = ""):
        super().__init__(TypeKind.STRUCT, name or "struct")
        self._components = [_Component(type=lookup_type(t)) for t in member_types]
        for component in self._components:
            if component.type.is_void:
                raise JitTypeError("A struct member cannot be VOID")
        self._size = 0
        self._alignment = 1
        self._layout_needed = True

    @property
    def num_fields(self) -> int:
        return len(self._components)

    @property
    def field_types(self) -> list[JitType]:
        return [c.type for c in self._components]

    @property
    def size(self) -> int:
        self._ensure_layout()
        return self._size

    @property
    def alignment(self) -> int:
        self._ensure_layout()
        return self._alignment

    def get_offset(self, ordinal: int) -> int:
        self._ensure_layout()
        return self._component(ordinal).offset

    def set_offset(self, ordinal: int, offset: int) -> None:
        if offset < 0:
            raise ValueError(f"Offset must be non-negative, got {offset}")
        self._component(ordinal).explicit_offset = offset
        self._layout_needed = True

    def _component(self, ordinal: int) -> _Component:
        if not 0 <= ordinal < len(self._components):
            raise IndexError(
                f"{self} has {len(self._components)} fields, no field {ordinal}"
            )
        return self._components[ordinal]

    def _ensure_layout(self):
        if self._layout_needed:
            self._perform_layout()
            self._layout_needed = False

    def _perform_layout(self):
        size = 0
        max_size = 0
        max_align = 1
        for component in self._components:
            field_size = component.type.size
            field_align = max(component.type.alignment, 1)
            if component.explicit_offset is None:
                if size % field_align:
                    size += field_align - size % field_align
                component.offset = size
                size += field_size
            else:
                component.offset = component.explicit_offset
                size = component.offset + field_size
            max_size = max(max_size, size)
            max_align = max(max_align, field_align)
        if max_size % max_align:
            max_size += max_align - max_size % max_align
        self._size = max_size
        self._alignment = max_align

    def __repr__(self) -> str:
        members = ", ".join(str(c.type) for c in self._components)
        return f"<StructType {{{members}}}>"


class PointerType(JitType):
    def __init__(self, pointed: Any):
        self._pointed = lookup_type(pointed)
        super().__init__(TypeKind.POINTER, f"{self._pointed}*")

    @property
    def pointed(self) -> JitType:
        return self._pointed

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JitType):
            return NotImplemented
        return isinstance(other, PointerType) and self._pointed == other._pointed

    def __hash__(self) -> int:
        return hash((self.kind, self._pointed))

    def __repr__(self) -> str:
        return f"<PointerType {self.name}>"


class SignatureType(JitType):
    def __init__(self, abi: ABI | str, return_type: Any, param_types: Iterable[Any]):
        try:
            self._abi = ABI(abi)
        except ValueError:
            raise JitTypeError(f"Unknown ABI: {abi!r}") from None
        self._return_type = lookup_type(return_type)
        self._params = tuple(lookup_type(t) for t in param_types)
        for param in self._params:
            if param.is_void:
                raise JitTypeError("A parameter cannot be VOID")
        params = ", ".join(str(p) for p in self._params)
        super().__init__(TypeKind.SIGNATURE, f"{self._return_type}({params})")

    @property
    def abi(self) -> ABI:
        return self._abi

    @property
    def return_type(self) -> JitType:
        return self._return_type

    @property
    def params(self) -> tuple[JitType, ...]:
        return self._params

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JitType):
            return NotImplemented
        return (
            isinstance(other, SignatureType)
            and self._abi == other._abi
            and self._return_type == other._return_type
            and self._params == other._params
        )

    def __hash__(self) -> int:
        return hash((self.kind, self._abi, self._return_type, self._params))

    def __repr__(self) -> str:
        return f"<SignatureType {self._abi.value} {self.name}>"


VOID = JitType(TypeKind.VOID)
SBYTE = JitType(TypeKind.SBYTE)
UBYTE = JitType(TypeKind.UBYTE)
SHORT = JitType(TypeKind.SHORT)
USHORT = JitType(TypeKind.USHORT)
INT = JitType(TypeKind.INT)
UINT = JitType(TypeKind.UINT)
NINT = JitType(TypeKind.NINT)
NUINT = JitType(TypeKind.NUINT)
LONG = JitType(TypeKind.LONG)
ULONG = JitType(TypeKind.ULONG)
FLOAT32 = JitType(TypeKind.FLOAT32)
FLOAT64 = JitType(TypeKind.FLOAT64)
NFLOAT = JitType(TypeKind.NFLOAT)
VOID_PTR = JitType(TypeKind.VOID_PTR)
OBJECT = JitType(TypeKind.OBJECT)

PRIMITIVE_TYPES: dict[str, JitType] = {
    t.name: t
    for t in (
        VOID,
        SBYTE,
        UBYTE,
        SHORT,
        USHORT,
        INT,
        UINT,
        NINT,
        NUINT,
        LONG,
        ULONG,
        FLOAT32,
        FLOAT64,
        NFLOAT,
        VOID_PTR,
        OBJECT,
    )
}


def lookup_type(type_ref: Any) -> JitType:
    """Resolve a type given either as a ``JitType`` or by name (``"INT"``)."""
    if isinstance(type_ref, JitType):
        return type_ref
    if isinstance(type_ref, str):
        found = PRIMITIVE_TYPES.get(type_ref.upper())
        if found is not None:
            return found
        raise JitTypeError(
            f"Unknown type name '{type_ref}'. Available: {sorted(PRIMITIVE_TYPES)}"
        )
    raise JitTypeError(f"Expected a JitType or type name, got {type_ref!r}")


def create_signature(
    abi: ABI | str, return_type: Any, param_types: Iterable[Any]
) -> SignatureType:
    return SignatureType(abi, return_type, param_types)
