"""Reference engine — executes compiled functions over their CFG.

Registers live in a per-call ``Frame``; registers whose address is taken
(and every aggregate) live in ``Memory`` instead, allocated when the frame is
entered and released when it returns.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable

from .coercion import coerce_literal, normalize, zero_of
from .engine_types import (
    CompiledFunction,
    EngineConfig,
    ExecutionStats,
    Frame,
    StepOutcome,
)
from .errors import EngineError
from .ir import IRInstruction, Opcode
from .jit_types import OBJECT, PRIMITIVE_TYPES, VOID_PTR, JitType, TypeKind
from .memory import Memory

logger = logging.getLogger(__name__)

_TYPE_OF_KIND: dict[TypeKind, JitType] = {
    t.kind: t for t in PRIMITIVE_TYPES.values()
}
_TYPE_OF_KIND[TypeKind.POINTER] = VOID_PTR
_TYPE_OF_KIND[TypeKind.SIGNATURE] = VOID_PTR


def _kind_type(kind: TypeKind | None) -> JitType:
    if kind is None or kind not in _TYPE_OF_KIND:
        raise EngineError(f"No scalar representation for kind {kind}")
    return _TYPE_OF_KIND[kind]


def _truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return True


# ── arithmetic ───────────────────────────────────────────────────


def _int_div(a: int, b: int) -> int:
    if b == 0:
        raise EngineError("Integer division by zero")
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def _int_rem(a: int, b: int) -> int:
    if b == 0:
        raise EngineError("Integer division by zero")
    return a - _int_div(a, b) * b


def _float_div(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _float_rem(a: float, b: float) -> float:
    if b == 0:
        return math.nan
    return math.fmod(a, b)


def _shift_count(op_type: JitType, count: int) -> int:
    return count & (op_type.size * 8 - 1)


class Operators:
    """Binary and unary operator evaluation on normalised operands."""

    BINOP_TABLE: dict[str, Callable[[JitType, Any, Any], Any]] = {
        "+": lambda t, a, b: a + b,
        "-": lambda t, a, b: a - b,
        "*": lambda t, a, b: a * b,
        "/": lambda t, a, b: _float_div(a, b) if t.is_float else _int_div(a, b),
        "%": lambda t, a, b: _float_rem(a, b) if t.is_float else _int_rem(a, b),
        "&": lambda t, a, b: a & b,
        "|": lambda t, a, b: a | b,
        "^": lambda t, a, b: a ^ b,
        "<<": lambda t, a, b: a << _shift_count(t, b),
        ">>": lambda t, a, b: a >> _shift_count(t, b),
        "==": lambda t, a, b: int(a is b if t.kind == TypeKind.OBJECT else a == b),
        "!=": lambda t, a, b: int(
            a is not b if t.kind == TypeKind.OBJECT else a != b
        ),
        "<": lambda t, a, b: int(a < b),
        ">": lambda t, a, b: int(a > b),
        "<=": lambda t, a, b: int(a <= b),
        ">=": lambda t, a, b: int(a >= b),
    }

    UNOP_TABLE: dict[str, Callable[[Any], Any]] = {
        "-": lambda a: -a,
        "~": lambda a: ~a,
    }

    @classmethod
    def eval_binop(cls, op: str, op_type: JitType, lhs: Any, rhs: Any) -> Any:
        fn = cls.BINOP_TABLE.get(op)
        if fn is None:
            raise EngineError(f"Unknown binary operator '{op}'")
        return fn(op_type, lhs, rhs)

    @classmethod
    def eval_unop(cls, op: str, operand: Any) -> Any:
        fn = cls.UNOP_TABLE.get(op)
        if fn is None:
            raise EngineError(f"Unknown unary operator '{op}'")
        return fn(operand)


def _convert(target: JitType, source: JitType, value: Any) -> Any:
    if target.kind == TypeKind.OBJECT or target.is_void:
        return value
    if source.kind == TypeKind.OBJECT:
        raise EngineError(f"Cannot convert an OBJECT to {target}")
    return normalize(target, value)


# ── engine ───────────────────────────────────────────────────────


class Engine:
    """Runs compiled functions against a shared ``Memory``."""

    def __init__(self, memory: Memory, config: EngineConfig = EngineConfig()):
        self._memory = memory
        self._config = config
        self._stats = ExecutionStats()
        self._depth = 0
        self.last_stats = ExecutionStats()
        self._dispatch: dict[Opcode, Callable[..., StepOutcome]] = {
            Opcode.BINOP: self._handle_binop,
            Opcode.UNOP: self._handle_unop,
            Opcode.CONVERT: self._handle_convert,
            Opcode.LOAD_RELATIVE: self._handle_load_relative,
            Opcode.STORE_RELATIVE: self._handle_store_relative,
            Opcode.ADDRESS_OF: self._handle_address_of,
            Opcode.STORE: self._handle_store,
            Opcode.CALL: self._handle_call,
            Opcode.CALL_NATIVE: self._handle_call_native,
            Opcode.BRANCH: self._handle_branch,
            Opcode.BRANCH_IF: self._handle_branch_if,
            Opcode.BRANCH_IF_NOT: self._handle_branch_if_not,
            Opcode.RETURN: self._handle_return,
        }

    @property
    def memory(self) -> Memory:
        return self._memory

    @property
    def config(self) -> EngineConfig:
        return self._config

    def run(self, function: Any, args: tuple[Any, ...] | list[Any]) -> Any:
        """Apply a compiled *function* to host *args* and return a host value."""
        if not function.is_compiled:
            raise EngineError(f"Function '{function.name}' has not been compiled")
        compiled = function.compiled
        params = function.signature.params
        if len(args) != len(params):
            raise EngineError(
                f"'{compiled.name}' expects {len(params)} arguments, got {len(args)}"
            )
        values = [coerce_literal(t, a) for t, a in zip(params, args)]

        outermost = self._depth == 0
        if outermost:
            self._stats = ExecutionStats()
        try:
            result = self._execute(compiled, values)
        finally:
            if outermost:
                self.last_stats = self._stats
        logger.info(
            "Applied %s: %d steps, %d calls",
            compiled.name,
            self._stats.steps,
            self._stats.calls,
        )
        return result

    # ── frames ───────────────────────────────────────────────────

    def _execute(self, compiled: CompiledFunction, args: list[Any]) -> Any:
        if self._depth >= self._config.max_call_depth:
            raise EngineError(
                f"Maximum call depth {self._config.max_call_depth} exceeded "
                f"calling '{compiled.name}'"
            )
        self._depth += 1
        self._stats.calls += 1
        self._stats.max_depth = max(self._stats.max_depth, self._depth)
        mark = self._memory.mark()
        try:
            frame = self._enter(compiled, args)
            return self._run_blocks(compiled, frame)
        finally:
            self._memory.release(mark)
            self._depth -= 1

    def _enter(self, compiled: CompiledFunction, args: list[Any]) -> Frame:
        frame = Frame(function_name=compiled.name)
        for reg in compiled.addressable:
            jit_type = compiled.value_types[reg]
            frame.addresses[reg] = self._memory.alloc(
                jit_type.size, jit_type.alignment
            )
        for reg, value in zip(compiled.param_regs, args):
            self._write(compiled, frame, reg, value)
        return frame

    def _run_blocks(self, compiled: CompiledFunction, frame: Frame) -> Any:
        cfg = compiled.cfg
        fall_off = zero_of(compiled.return_type)
        if not cfg.blocks:
            return fall_off

        current_label = cfg.entry
        ip = 0
        while True:
            block = cfg.blocks[current_label]
            if ip >= len(block.instructions):
                if block.fallthrough is None:
                    return fall_off
                current_label = block.fallthrough
                ip = 0
                continue

            self._stats.steps += 1
            if self._stats.steps > self._config.max_steps:
                raise EngineError(
                    f"Step limit {self._config.max_steps} exceeded in '{compiled.name}'"
                )

            instruction = block.instructions[ip]
            logger.debug("[%s] %s:%d  %s", compiled.name, current_label, ip, instruction)
            handler = self._dispatch.get(instruction.opcode)
            if handler is None:
                raise EngineError(f"Cannot execute {instruction.opcode.value}")
            outcome = handler(instruction, compiled, frame)

            if outcome.returned:
                return outcome.return_value
            if outcome.next_label is not None:
                current_label = outcome.next_label
                ip = 0
            else:
                ip += 1

    # ── register access ──────────────────────────────────────────

    def _read(self, compiled: CompiledFunction, frame: Frame, reg: str) -> Any:
        if reg in compiled.constants:
            return compiled.constants[reg]
        jit_type = compiled.value_types[reg]
        address = frame.addresses.get(reg)
        if address is not None:
            if jit_type.is_aggregate:
                return address
            return self._memory.read(address, jit_type)
        return frame.registers.get(reg, zero_of(jit_type))

    def _write(
        self, compiled: CompiledFunction, frame: Frame, reg: str, value: Any
    ) -> None:
        jit_type = compiled.value_types[reg]
        value = normalize(jit_type, value)
        address = frame.addresses.get(reg)
        if address is not None:
            self._memory.write(address, jit_type, value)
        else:
            frame.registers[reg] = value

    # ── handlers ─────────────────────────────────────────────────

    def _handle_binop(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        op, lhs_reg, rhs_reg = inst.operands
        op_type = _kind_type(inst.kind)
        lhs = self._read(compiled, frame, lhs_reg)
        rhs = self._read(compiled, frame, rhs_reg)
        # Pointer arithmetic keeps the integer operand signed; the result wraps.
        if op_type.kind != TypeKind.OBJECT and not op_type.is_pointer:
            lhs = normalize(op_type, lhs)
            rhs = normalize(op_type, rhs)
        result = Operators.eval_binop(op, op_type, lhs, rhs)
        self._write(compiled, frame, inst.result_reg, result)
        return StepOutcome.advance()

    def _handle_unop(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        op, operand_reg = inst.operands
        result_type = compiled.value_types[inst.result_reg]
        operand = normalize(result_type, self._read(compiled, frame, operand_reg))
        self._write(
            compiled, frame, inst.result_reg, Operators.eval_unop(op, operand)
        )
        return StepOutcome.advance()

    def _handle_convert(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        (source_reg,) = inst.operands
        target = compiled.value_types[inst.result_reg]
        source = compiled.value_types[source_reg]
        value = self._read(compiled, frame, source_reg)
        self._write(compiled, frame, inst.result_reg, _convert(target, source, value))
        return StepOutcome.advance()

    def _handle_load_relative(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        base_reg, offset = inst.operands
        address = self._read(compiled, frame, base_reg) + offset
        jit_type = compiled.value_types[inst.result_reg]
        self._write(
            compiled, frame, inst.result_reg, self._memory.read(address, jit_type)
        )
        return StepOutcome.advance()

    def _handle_store_relative(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        base_reg, offset, value_reg = inst.operands
        address = self._read(compiled, frame, base_reg) + offset
        jit_type = compiled.value_types[value_reg]
        self._memory.write(address, jit_type, self._read(compiled, frame, value_reg))
        return StepOutcome.advance()

    def _handle_address_of(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        (reg,) = inst.operands
        address = frame.addresses.get(reg)
        if address is None:
            raise EngineError(f"Register {reg} has no storage address")
        self._write(compiled, frame, inst.result_reg, address)
        return StepOutcome.advance()

    def _handle_store(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        target_reg, source_reg = inst.operands
        target = compiled.value_types[target_reg]
        source = compiled.value_types[source_reg]
        if target.is_aggregate:
            self._memory.copy(
                frame.addresses[target_reg],
                self._read(compiled, frame, source_reg),
                target.size,
            )
            return StepOutcome.advance()
        value = _convert(target, source, self._read(compiled, frame, source_reg))
        self._write(compiled, frame, target_reg, value)
        return StepOutcome.advance()

    def _call_args(
        self, compiled: CompiledFunction, frame: Frame, arg_regs: list[str]
    ) -> list[Any]:
        return [self._read(compiled, frame, reg) for reg in arg_regs]

    def _handle_call(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        name, callee, *arg_regs = inst.operands
        if not callee.is_compiled:
            raise EngineError(f"Call to '{name}' before it was compiled")
        args = self._call_args(compiled, frame, arg_regs)
        logger.debug("Calling %s with %s", name, args)
        result = self._execute(callee.compiled, args)
        if not callee.return_type.is_void:
            self._write(compiled, frame, inst.result_reg, result)
        return StepOutcome.advance()

    def _handle_call_native(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        name, native, *arg_regs = inst.operands
        args = self._call_args(compiled, frame, arg_regs)
        logger.debug("Calling native %s with %s", name, args)
        result = native(*args)
        return_type = compiled.value_types[inst.result_reg]
        if return_type.is_void:
            return StepOutcome.advance()
        if result is None and return_type != OBJECT:
            raise EngineError(f"Native '{name}' returned None for {return_type}")
        self._write(compiled, frame, inst.result_reg, result)
        return StepOutcome.advance()

    def _handle_branch(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        return StepOutcome.jump(inst.label)

    def _handle_branch_if(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        (cond_reg,) = inst.operands
        if _truthy(self._read(compiled, frame, cond_reg)):
            return StepOutcome.jump(inst.label)
        return StepOutcome.advance()

    def _handle_branch_if_not(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        (cond_reg,) = inst.operands
        if _truthy(self._read(compiled, frame, cond_reg)):
            return StepOutcome.advance()
        return StepOutcome.jump(inst.label)

    def _handle_return(
        self, inst: IRInstruction, compiled: CompiledFunction, frame: Frame
    ) -> StepOutcome:
        if not inst.operands:
            return StepOutcome.ret(zero_of(compiled.return_type))
        value = self._read(compiled, frame, inst.operands[0])
        return StepOutcome.ret(normalize(compiled.return_type, value))
