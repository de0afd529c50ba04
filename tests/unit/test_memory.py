"""Tests for the engine's flat byte memory."""

import pytest

from jitkit.errors import EngineError
from jitkit.jit_types import FLOAT32, INT, OBJECT, SBYTE, ULONG
from jitkit.memory import Memory


class TestAllocation:
    def test_addresses_start_at_base(self):
        memory = Memory(base=0x1000)

        assert memory.alloc(4) == 0x1000

    def test_alignment(self):
        memory = Memory(base=0x1000)
        memory.alloc(1)

        assert memory.alloc(8, alignment=8) == 0x1008

    def test_allocation_is_zeroed(self):
        memory = Memory()
        address = memory.alloc(8)
        memory.write(address, ULONG, 2**64 - 1)
        memory.release(0)

        again = memory.alloc(8)

        assert again == address
        assert memory.read(again, ULONG) == 0

    def test_release_to_mark(self):
        memory = Memory()
        memory.alloc(16)
        mark = memory.mark()
        memory.alloc(32)

        memory.release(mark)

        assert memory.used == 16

    def test_out_of_memory(self):
        memory = Memory(limit=16)

        with pytest.raises(EngineError):
            memory.alloc(32)


class TestAccess:
    def test_scalar_round_trip(self):
        memory = Memory()
        address = memory.alloc(16)

        memory.write(address, SBYTE, -2)
        memory.write(address + 4, FLOAT32, 0.5)

        assert memory.read(address, SBYTE) == -2
        assert memory.read(address + 4, FLOAT32) == 0.5

    def test_object_handles(self):
        memory = Memory()
        address = memory.alloc(16)
        marker = object()

        memory.write(address, OBJECT, marker)
        memory.write(address + 8, OBJECT, None)

        assert memory.read(address, OBJECT) is marker
        assert memory.read(address + 8, OBJECT) is None

    def test_copy(self):
        memory = Memory()
        src = memory.alloc(4)
        dst = memory.alloc(4)
        memory.write(src, INT, 1234)

        memory.copy(dst, src, 4)

        assert memory.read(dst, INT) == 1234

    def test_access_below_base_raises(self):
        memory = Memory()
        memory.alloc(8)

        with pytest.raises(EngineError):
            memory.read(0, INT)

    def test_access_past_allocation_raises(self):
        memory = Memory()
        address = memory.alloc(4)

        with pytest.raises(EngineError):
            memory.read(address + 2, INT)

    def test_object_handles_dropped_when_stack_released(self):
        memory = Memory()
        address = memory.alloc(8)
        memory.write(address, OBJECT, object())

        memory.release(0)

        assert memory.object_count == 0

    def test_object_handles_kept_by_partial_release(self):
        memory = Memory()
        outer = memory.alloc(8)
        marker = object()
        memory.write(outer, OBJECT, marker)
        mark = memory.mark()
        memory.alloc(8)

        memory.release(mark)

        assert memory.object_count == 1
        assert memory.read(outer, OBJECT) is marker
