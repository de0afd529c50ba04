"""Layout types — structs, fixed-length arrays and typed pointers.

Each layout type is a ``JitType`` that also knows the byte offset and type of
its members, and can produce an ``Instance`` bound to a base address.  An
instance turns member access into ``insn_load_relative`` /
``insn_store_relative`` against that base::

    point = Struct(("x", INT), ("y", INT))
    p = point.create(f)
    p.x = 1
    f.insn_return(p.x + p.y)
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from .errors import DuplicateMemberError, JitTypeError, UnknownMemberError
from .jit_types import JitType, PointerType, StructType, lookup_type
from .value import Value


def _member_value(function: Any, member_type: JitType, value: Any) -> Value:
    """Coerce *value* into a ``Value`` of *member_type* for a relative store."""
    if member_type.is_aggregate:
        raise JitTypeError(
            f"Cannot assign {value!r} to an aggregate member of type "
            f"{member_type!r}; assign its members individually"
        )
    if not isinstance(value, Value):
        return function.const(member_type, value)
    if value.type != member_type:
        return function.insn_convert(value, member_type)
    return value


def _load_member(function: Any, base: Value, offset: int, member_type: JitType) -> Any:
    if member_type.is_aggregate:
        # Nested aggregates are accessed in place through a derived base.
        address = base if offset == 0 else function.insn_add(base, offset)
        wrap = getattr(member_type, "wrap", None)
        if wrap is None:
            raise JitTypeError(f"Cannot access a member of type {member_type!r}")
        return wrap(address)
    return function.insn_load_relative(base, offset, member_type)


def _store_member(
    function: Any, base: Value, offset: int, member_type: JitType, value: Any
) -> None:
    function.insn_store_relative(
        base, offset, _member_value(function, member_type, value)
    )


class Struct(StructType):
    """A record of named members.

    Members are given as ``(name, type)`` pairs; names must be distinct.
    """

    def __init__(self, *members: tuple[str, Any], name: str = ""):
        names = [str(m[0]) for m in members]
        types = [lookup_type(m[1]) for m in members]
        seen: set[str] = set()
        for member_name in names:
            if member_name in seen:
                raise DuplicateMemberError(
                    f"Struct member '{member_name}' is defined more than once"
                )
            seen.add(member_name)
        super().__init__(types, name=name or f"struct{{{', '.join(names)}}}")
        self._member_names = names
        self._member_types = types
        self._index = {n: i for i, n in enumerate(names)}

    @classmethod
    def define(
        cls, members: Iterable[tuple[str, Any]] | Mapping[str, Any], name: str = ""
    ) -> Struct:
        if isinstance(members, Mapping):
            members = members.items()
        return cls(*members, name=name)

    @property
    def members(self) -> list[str]:
        return list(self._member_names)

    def ordinal_of(self, name: str) -> int:
        try:
            return self._index[str(name)]
        except KeyError:
            raise UnknownMemberError(
                f"{self} has no member '{name}'. Members: {self._member_names}"
            ) from None

    def offset_of(self, name: str) -> int:
        return self.get_offset(self.ordinal_of(name))

    def set_offset_of(self, name: str, offset: int) -> None:
        self.set_offset(self.ordinal_of(name), offset)

    def type_of(self, name: str) -> JitType:
        return self._member_types[self.ordinal_of(name)]

    def wrap(self, ptr: Value) -> Struct.Instance:
        return Struct.Instance(self, ptr)

    def create(self, function: Any) -> Struct.Instance:
        """Allocate a local of this type and wrap its address."""
        instance = function.value(self)
        return self.wrap(function.insn_address_of(instance))

    def __repr__(self) -> str:
        return f"<Struct {self.name}>"

    class Instance:
        """Typed accessors over a struct at ``ptr``.

        Members are reachable as ``inst["x"]``, ``inst.get("x")`` and
        ``inst.x``; assignment works the same three ways.  A member named
        like one of the accessors (``ptr``, ``get``, ``members``...) wins
        for attribute access; the accessor stays reachable through the
        ``Struct.Instance`` class, e.g. ``Struct.Instance.ptr.fget(inst)``.
        """

        def __init__(self, struct: Struct, ptr: Value):
            if not isinstance(ptr, Value):
                raise JitTypeError(f"Expected a pointer Value, got {ptr!r}")
            object.__setattr__(self, "_struct", struct)
            object.__setattr__(self, "_function", ptr.function)
            object.__setattr__(self, "_ptr", ptr)

        def __getattribute__(self, name: str) -> Any:
            if not name.startswith("_"):
                struct = object.__getattribute__(self, "_struct")
                if name in struct._index:
                    return object.__getattribute__(self, "_get")(name)
            return object.__getattribute__(self, name)

        @property
        def ptr(self) -> Value:
            return self._ptr

        @property
        def struct(self) -> Struct:
            return self._struct

        @property
        def members(self) -> list[str]:
            return self._struct.members

        def _get(self, name: str) -> Any:
            return _load_member(
                self._function,
                self._ptr,
                self._struct.offset_of(name),
                self._struct.type_of(name),
            )

        def _set(self, name: str, value: Any) -> None:
            _store_member(
                self._function,
                self._ptr,
                self._struct.offset_of(name),
                self._struct.type_of(name),
                value,
            )

        def get(self, name: str) -> Any:
            return self._get(name)

        def set(self, name: str, value: Any) -> None:
            self._set(name, value)

        def __getitem__(self, name: str) -> Any:
            return self._get(name)

        def __setitem__(self, name: str, value: Any) -> None:
            self._set(name, value)

        def __getattr__(self, name: str) -> Any:
            if name.startswith("_"):
                raise AttributeError(name)
            raise AttributeError(f"{self._struct} has no member '{name}'")

        def __setattr__(self, name: str, value: Any) -> None:
            if name in self._struct._index:
                self._set(name, value)
            else:
                raise AttributeError(
                    f"{self._struct} has no member '{name}'"
                )

        def __repr__(self) -> str:
            return f"<Struct.Instance {self._struct.name} at {self._ptr.name}>"


class Array(StructType):
    """A fixed-length array laid out as a struct of ``length`` elements."""

    def __init__(self, element_type: Any, length: int):
        if length < 0:
            raise ValueError(f"Array length must be non-negative, got {length}")
        element_type = lookup_type(element_type)
        super().__init__([element_type] * length, name=f"{element_type}[{length}]")
        self._element_type = element_type
        self._length = length

    @classmethod
    def define(cls, element_type: Any, length: int) -> Array:
        return cls(element_type, length)

    @property
    def type(self) -> JitType:
        return self._element_type

    @property
    def length(self) -> int:
        return self._length

    def set_offset(self, ordinal: int, offset: int) -> None:
        raise JitTypeError("Array element offsets are fixed")

    def offset_of(self, index: int) -> int:
        """Byte offset of element *index*; out-of-range indices are not checked."""
        if 0 <= index < self._length:
            return self.get_offset(index)
        return index * self._element_type.size

    def type_of(self, index: int) -> JitType:
        return self._element_type

    def wrap(self, ptr: Value) -> Array.Instance:
        return Array.Instance.wrap(self, ptr)

    def create(self, function: Any) -> Array.Instance:
        instance = function.value(self)
        return self.wrap(function.insn_address_of(instance))

    def __repr__(self) -> str:
        return f"<Array {self.name}>"

    class Instance(Value):
        """A pointer-typed variable holding the array base.

        ``ptr`` is the base the accessors read through; the instance itself is
        a separate, assignable variable initialised from it.
        """

        array_type: Array
        ptr: Value

        @classmethod
        def wrap(cls, array_type: Array, ptr: Value) -> Array.Instance:
            if not isinstance(ptr, Value):
                raise JitTypeError(f"Expected a pointer Value, got {ptr!r}")
            function = ptr.function
            value = function.new_value(PointerType(array_type), value_class=cls)
            value.store(ptr)
            value.array_type = array_type
            value.ptr = ptr
            return value

        def get(self, index: int) -> Any:
            return _load_member(
                self.function,
                self.ptr,
                self.array_type.offset_of(index),
                self.array_type.type,
            )

        def set(self, index: int, value: Any) -> None:
            _store_member(
                self.function,
                self.ptr,
                self.array_type.offset_of(index),
                self.array_type.type,
                value,
            )

        def __getitem__(self, index: int) -> Any:
            return self.get(index)

        def __setitem__(self, index: int, value: Any) -> None:
            self.set(index, value)


class Pointer(PointerType):
    """A pointer to *type* with raw address arithmetic for indexing."""

    def __init__(self, pointed: Any):
        super().__init__(pointed)

    @classmethod
    def define(cls, pointed: Any) -> Pointer:
        return cls(pointed)

    @property
    def type(self) -> JitType:
        return self.pointed

    def offset_of(self, index: int) -> int:
        return index * self.pointed.size

    def type_of(self, index: int) -> JitType:
        return self.pointed

    def wrap(self, ptr: Value) -> Pointer.Instance:
        return Pointer.Instance.wrap(self, ptr)

    def __repr__(self) -> str:
        return f"<Pointer {self.name}>"

    class Instance(Value):
        """A pointer-typed variable; element access goes through the wrapped
        original pointer."""

        pointer_type: Pointer
        ptr: Value

        @classmethod
        def wrap(cls, pointer_type: Pointer, ptr: Value) -> Pointer.Instance:
            if not isinstance(ptr, Value):
                raise JitTypeError(f"Expected a pointer Value, got {ptr!r}")
            function = ptr.function
            value = function.new_value(pointer_type, value_class=cls)
            value.store(ptr)
            value.pointer_type = pointer_type
            value.ptr = ptr
            return value

        def get(self, index: int) -> Any:
            return _load_member(
                self.function,
                self.ptr,
                self.pointer_type.offset_of(index),
                self.pointer_type.type_of(index),
            )

        def set(self, index: int, value: Any) -> None:
            _store_member(
                self.function,
                self.ptr,
                self.pointer_type.offset_of(index),
                self.pointer_type.type_of(index),
                value,
            )

        def __getitem__(self, index: int) -> Any:
            return self.get(index)

        def __setitem__(self, index: int, value: Any) -> None:
            self.set(index, value)
