"""Flat byte-addressable memory used by the engine.

Scalars are stored little-endian in their machine width.  OBJECT slots hold
an integer handle into a side table of host objects; handle 0 is ``None``.
"""

from __future__ import annotations

import logging
import struct
from typing import Any

from . import constants
from .errors import EngineError
from .jit_types import JitType, TypeKind

logger = logging.getLogger(__name__)

_FORMATS: dict[TypeKind, str] = {
    TypeKind.SBYTE: "<b",
    TypeKind.UBYTE: "<B",
    TypeKind.SHORT: "<h",
    TypeKind.USHORT: "<H",
    TypeKind.INT: "<i",
    TypeKind.UINT: "<I",
    TypeKind.NINT: "<q",
    TypeKind.NUINT: "<Q",
    TypeKind.LONG: "<q",
    TypeKind.ULONG: "<Q",
    TypeKind.FLOAT32: "<f",
    TypeKind.FLOAT64: "<d",
    TypeKind.NFLOAT: "<d",
    TypeKind.VOID_PTR: "<Q",
    TypeKind.POINTER: "<Q",
    TypeKind.SIGNATURE: "<Q",
    TypeKind.OBJECT: "<Q",
}


class Memory:
    def __init__(
        self,
        base: int = constants.MEMORY_BASE_ADDRESS,
        limit: int = constants.MEMORY_LIMIT,
    ):
        self._base = base
        self._limit = limit
        self._data = bytearray()
        self._top = 0
        self._objects: dict[int, Any] = {}
        self._handles: dict[int, int] = {}  # id(obj) -> handle
        self._next_handle = 1

    @property
    def base(self) -> int:
        return self._base

    @property
    def used(self) -> int:
        return self._top

    @property
    def object_count(self) -> int:
        return len(self._objects)

    # ── allocation ───────────────────────────────────────────────

    def alloc(self, size: int, alignment: int = 1) -> int:
        """Reserve *size* zeroed bytes and return their address."""
        alignment = max(alignment, 1)
        start = self._top
        if start % alignment:
            start += alignment - start % alignment
        end = start + max(size, 0)
        if end > self._limit:
            raise EngineError(f"Out of memory allocating {size} bytes")
        if end > len(self._data):
            self._data.extend(bytes(end - len(self._data)))
        self._data[start:end] = bytes(end - start)
        self._top = end
        return self._base + start

    def mark(self) -> int:
        return self._top

    def release(self, mark: int) -> None:
        """Free everything allocated after *mark*.

        Host-object handles are dropped once the whole stack is released.
        """
        self._top = mark
        if mark == 0 and self._objects:
            logger.debug("Dropping %d host object handles", len(self._objects))
            self._objects.clear()
            self._handles.clear()
            self._next_handle = 1

    # ── scalar access ────────────────────────────────────────────

    def read(self, address: int, jit_type: JitType) -> Any:
        fmt = self._format(jit_type)
        offset = self._offset(address, jit_type.size)
        (value,) = struct.unpack_from(fmt, self._data, offset)
        if jit_type.kind == TypeKind.OBJECT:
            return self._objects.get(value)
        return value

    def write(self, address: int, jit_type: JitType, value: Any) -> None:
        fmt = self._format(jit_type)
        offset = self._offset(address, jit_type.size)
        if jit_type.kind == TypeKind.OBJECT:
            value = self._intern(value)
        struct.pack_into(fmt, self._data, offset, value)

    # ── raw access ───────────────────────────────────────────────

    def read_bytes(self, address: int, size: int) -> bytes:
        offset = self._offset(address, size)
        return bytes(self._data[offset : offset + size])

    def write_bytes(self, address: int, data: bytes) -> None:
        offset = self._offset(address, len(data))
        self._data[offset : offset + len(data)] = data

    def copy(self, dest: int, src: int, size: int) -> None:
        self.write_bytes(dest, self.read_bytes(src, size))

    # ── helpers ──────────────────────────────────────────────────

    def _offset(self, address: int, size: int) -> int:
        offset = address - self._base
        if offset < 0 or offset + size > self._top:
            raise EngineError(f"Invalid memory access of {size} bytes at {address:#x}")
        return offset

    def _format(self, jit_type: JitType) -> str:
        fmt = _FORMATS.get(jit_type.kind)
        if fmt is None:
            raise EngineError(f"Cannot access a value of type {jit_type} in memory")
        return fmt

    def _intern(self, obj: Any) -> int:
        if obj is None:
            return 0
        handle = self._handles.get(id(obj))
        if handle is None:
            handle = self._next_handle
            self._next_handle += 1
            self._handles[id(obj)] = handle
            self._objects[handle] = obj
            logger.debug("Interned host object %r as handle %d", obj, handle)
        return handle
