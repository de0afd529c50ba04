"""Function — the builder session for one compiled function.

A ``Function`` accumulates instructions until ``compile()`` seals it.  After
sealing, no further instructions may be emitted and the function can be run
with ``apply``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from . import constants
from .cfg import CFG, build_cfg, cfg_to_mermaid
from .coercion import (
    binary_types,
    check_convertible,
    coerce_literal,
    literal_type_for,
    unary_type,
)
from .control import Case, If, Loop
from .engine_types import CompiledFunction
from .errors import (
    ConstructionError,
    EngineError,
    JitTypeError,
    ScopeViolationError,
    UnplacedLabelError,
)
from .ir import IRInstruction, Opcode
from .jit_types import VOID_PTR, JitType, SignatureType, TypeKind, lookup_type
from .label import Label
from .value import Value, ValueKind

logger = logging.getLogger(__name__)

_UNINITIALIZED = object()


class Function:
    def __init__(self, context: Any, signature: Any, name: str = ""):
        signature = lookup_type(signature)
        if not isinstance(signature, SignatureType):
            raise JitTypeError(f"Expected a signature type, got {signature!r}")
        self._context = context
        self._signature = signature
        self._reg_counter = 0
        self._label_counter = 0
        self._instructions: list[IRInstruction] = []
        self._values: dict[str, Value] = {}
        self._labels: list[Label] = []
        self._loops: list[Loop] = []
        self._compiled: CompiledFunction | None = None
        self._name = name or context.next_function_name()
        self._params = [
            self._new_value(t, ValueKind.PARAMETER) for t in signature.params
        ]
        context.register(self)

    # ── construction entry points ────────────────────────────────

    @classmethod
    def create(
        cls,
        context: Any,
        signature: Any,
        body: Callable[[Function], Any],
        name: str = "",
    ) -> Function:
        """Create a function in *context*, build it with *body* and compile it."""
        function = cls(context, signature, name=name)
        body(function)
        return function.compile()

    @classmethod
    def build(cls, signature: Any, body: Callable[[Function], Any] | None = None):
        """Compile *body* in a fresh ``Context``.

        Without *body*, returns a decorator::

            @Function.build(create_signature(ABI.CDECL, INT, [INT]))
            def identity(f):
                f.insn_return(f.param(0))
        """
        from .context import Context

        def _build(fn: Callable[[Function], Any]) -> Function:
            with Context() as context:
                return cls.create(
                    context, signature, fn, name=getattr(fn, "__name__", "")
                )

        if body is None:
            return _build
        return _build(body)

    # ── properties ───────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def context(self) -> Any:
        return self._context

    @property
    def signature(self) -> SignatureType:
        return self._signature

    @property
    def return_type(self) -> JitType:
        return self._signature.return_type

    @property
    def params(self) -> list[Value]:
        return list(self._params)

    @property
    def instructions(self) -> list[IRInstruction]:
        return list(self._instructions)

    @property
    def labels(self) -> list[Label]:
        return list(self._labels)

    @property
    def is_compiled(self) -> bool:
        return self._compiled is not None

    @property
    def compiled(self) -> CompiledFunction:
        if self._compiled is None:
            raise EngineError(f"Function '{self._name}' has not been compiled")
        return self._compiled

    @property
    def cfg(self) -> CFG:
        return self.compiled.cfg

    # ── helpers ──────────────────────────────────────────────────

    def _fresh_reg(self) -> str:
        r = f"{constants.REGISTER_PREFIX}{self._reg_counter}"
        self._reg_counter += 1
        return r

    def _fresh_label_name(self, prefix: str) -> str:
        lbl = f"{prefix}_{self._label_counter}"
        self._label_counter += 1
        return lbl

    def _new_value(
        self,
        jit_type: JitType,
        kind: ValueKind,
        literal: Any = None,
        value_class: type[Value] = Value,
    ) -> Value:
        value = value_class(self, jit_type, self._fresh_reg(), kind, literal)
        if jit_type.is_aggregate:
            value.mark_addressable()
        self._values[value.name] = value
        return value

    def new_value(self, jit_type: Any, value_class: type[Value] = Value) -> Value:
        """Allocate an uninitialised local of *jit_type* as an instance of
        *value_class* (used by layout instances)."""
        self._check_open()
        return self._new_value(lookup_type(jit_type), ValueKind.LOCAL, None, value_class)

    def _check_open(self):
        if self._compiled is not None:
            raise ScopeViolationError(
                f"Function '{self._name}' is sealed; no further instructions"
            )

    def _own(self, value: Value) -> Value:
        if value.function is not self:
            raise ScopeViolationError(
                f"{value!r} belongs to {value.function!r}, not {self!r}"
            )
        return value

    def _operand(self, value: Any, jit_type: JitType) -> Value:
        """Coerce *value* (a ``Value`` or a bare literal) for use as *jit_type*."""
        if isinstance(value, Value):
            self._own(value)
            if value.type != jit_type:
                return self.insn_convert(value, jit_type)
            return value
        return self.const(jit_type, value)

    def _emit(
        self,
        opcode: Opcode,
        *,
        result_reg: str = "",
        operands: list[Any] | None = None,
        label: str = "",
        kind: TypeKind | None = None,
    ) -> IRInstruction:
        self._check_open()
        inst = IRInstruction(
            opcode=opcode,
            result_reg=result_reg or None,
            operands=operands or [],
            label=label or None,
            kind=kind,
        )
        self._instructions.append(inst)
        return inst

    def _temporary(self, jit_type: JitType) -> Value:
        return self._new_value(jit_type, ValueKind.TEMPORARY)

    # ── values ───────────────────────────────────────────────────

    def get_param(self, index: int) -> Value:
        if not 0 <= index < len(self._params):
            raise ConstructionError(
                f"Function '{self._name}' has {len(self._params)} parameters, "
                f"no parameter {index}"
            )
        return self._params[index]

    def param(self, index: int) -> Value:
        return self.get_param(index)

    def const(self, jit_type: Any, literal: Any) -> Value:
        """Return a constant; constants are pooled, no instruction is emitted."""
        self._check_open()
        jit_type = lookup_type(jit_type)
        return self._new_value(
            jit_type, ValueKind.CONSTANT, coerce_literal(jit_type, literal)
        )

    def value(self, jit_type: Any, initial: Any = _UNINITIALIZED) -> Value:
        """Allocate a local variable, optionally storing *initial* into it."""
        self._check_open()
        jit_type = lookup_type(jit_type)
        if jit_type.is_void:
            raise JitTypeError("Cannot create a VOID variable")
        variable = self._new_value(jit_type, ValueKind.LOCAL)
        if initial is not _UNINITIALIZED:
            self.insn_store(variable, initial)
        return variable

    # ── labels and branches ──────────────────────────────────────

    def _attach(self, label: Label) -> Label:
        if label.function is None:
            label.bind(self, self._fresh_label_name(label.prefix))
            self._labels.append(label)
        elif label.function is not self:
            raise ScopeViolationError(
                f"{label!r} belongs to {label.function!r}, not {self!r}"
            )
        return label

    def new_label(self, prefix: str = constants.DEFAULT_LABEL_PREFIX) -> Label:
        self._check_open()
        return self._attach(Label(prefix))

    def insn_label(self, label: Label | None = None) -> Label:
        """Place *label* (a new one if omitted) at the current position."""
        self._check_open()
        label = self._attach(label if label is not None else Label())
        label.mark_placed()
        self._emit(Opcode.LABEL, label=label.name)
        return label

    def insn_branch(self, label: Label) -> None:
        self._check_open()
        self._emit(Opcode.BRANCH, label=self._attach(label).name)

    def _condition(self, cond: Any) -> Value:
        if not isinstance(cond, Value):
            raise JitTypeError(f"A branch condition must be a Value, got {cond!r}")
        self._own(cond)
        if cond.type.is_aggregate or cond.type.is_void:
            raise JitTypeError(f"Cannot branch on a value of type {cond.type!r}")
        return cond

    def insn_branch_if(self, cond: Any, label: Label) -> None:
        self._check_open()
        cond = self._condition(cond)
        self._emit(
            Opcode.BRANCH_IF,
            operands=[cond.name],
            label=self._attach(label).name,
        )

    def insn_branch_if_not(self, cond: Any, label: Label) -> None:
        self._check_open()
        cond = self._condition(cond)
        self._emit(
            Opcode.BRANCH_IF_NOT,
            operands=[cond.name],
            label=self._attach(label).name,
        )

    # ── arithmetic, bitwise and comparison ───────────────────────

    def _binop(self, op: str, lhs: Any, rhs: Any) -> Value:
        self._check_open()
        lhs_is_value = isinstance(lhs, Value)
        rhs_is_value = isinstance(rhs, Value)
        if not lhs_is_value and not rhs_is_value:
            raise JitTypeError(
                f"Cannot infer a type for {lhs!r} {op} {rhs!r}: "
                "at least one operand must be a Value"
            )
        if not lhs_is_value:
            lhs = self.const(literal_type_for(op, rhs.type), lhs)
        if not rhs_is_value:
            rhs = self.const(literal_type_for(op, lhs.type), rhs)
        self._own(lhs)
        self._own(rhs)
        op_type, result_type = binary_types(op, lhs.type, rhs.type)
        result = self._temporary(result_type)
        self._emit(
            Opcode.BINOP,
            result_reg=result.name,
            operands=[op, lhs.name, rhs.name],
            kind=op_type.kind,
        )
        return result

    def _unop(self, op: str, operand: Any) -> Value:
        self._check_open()
        if not isinstance(operand, Value):
            raise JitTypeError(f"Cannot infer a type for {op}{operand!r}")
        self._own(operand)
        result = self._temporary(unary_type(op, operand.type))
        self._emit(
            Opcode.UNOP,
            result_reg=result.name,
            operands=[op, operand.name],
            kind=operand.type.kind,
        )
        return result

    def insn_add(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("+", lhs, rhs)

    def insn_sub(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("-", lhs, rhs)

    def insn_mul(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("*", lhs, rhs)

    def insn_div(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("/", lhs, rhs)

    def insn_rem(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("%", lhs, rhs)

    def insn_and(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("&", lhs, rhs)

    def insn_or(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("|", lhs, rhs)

    def insn_xor(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("^", lhs, rhs)

    def insn_shl(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("<<", lhs, rhs)

    def insn_shr(self, lhs: Any, rhs: Any) -> Value:
        return self._binop(">>", lhs, rhs)

    def insn_eq(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("==", lhs, rhs)

    def insn_ne(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("!=", lhs, rhs)

    def insn_lt(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("<", lhs, rhs)

    def insn_gt(self, lhs: Any, rhs: Any) -> Value:
        return self._binop(">", lhs, rhs)

    def insn_le(self, lhs: Any, rhs: Any) -> Value:
        return self._binop("<=", lhs, rhs)

    def insn_ge(self, lhs: Any, rhs: Any) -> Value:
        return self._binop(">=", lhs, rhs)

    def insn_neg(self, operand: Any) -> Value:
        return self._unop("-", operand)

    def insn_not(self, operand: Any) -> Value:
        return self._unop("~", operand)

    # ── memory ───────────────────────────────────────────────────

    def insn_store(self, target: Value, source: Any) -> None:
        """Store *source* into *target*, promoting a literal to *target*'s type."""
        self._check_open()
        if not isinstance(target, Value):
            raise JitTypeError(f"Cannot store into {target!r}")
        self._own(target)
        if target.is_constant:
            raise JitTypeError(f"Cannot store into constant {target!r}")
        if not isinstance(source, Value):
            source = self.const(target.type, source)
        self._own(source)
        check_convertible(target.type, source.type)
        self._emit(
            Opcode.STORE,
            operands=[target.name, source.name],
            kind=target.type.kind,
        )

    def insn_convert(self, value: Value, jit_type: Any) -> Value:
        self._check_open()
        jit_type = lookup_type(jit_type)
        self._own(value)
        check_convertible(jit_type, value.type)
        if jit_type.is_aggregate:
            raise JitTypeError(f"Cannot convert to aggregate type {jit_type!r}")
        result = self._temporary(jit_type)
        self._emit(
            Opcode.CONVERT,
            result_reg=result.name,
            operands=[value.name],
            kind=value.type.kind,
        )
        return result

    def _base(self, base: Value) -> Value:
        if not isinstance(base, Value):
            raise JitTypeError(f"A base address must be a Value, got {base!r}")
        self._own(base)
        if not (base.type.is_pointer or base.type.is_integer):
            raise JitTypeError(f"{base!r} cannot be used as an address")
        return base

    def insn_load_relative(self, base: Value, offset: int, jit_type: Any) -> Value:
        """Load a value of *jit_type* from ``base + offset``."""
        self._check_open()
        base = self._base(base)
        jit_type = lookup_type(jit_type)
        if jit_type.is_aggregate or jit_type.is_void:
            raise JitTypeError(f"Cannot load a value of type {jit_type!r}")
        result = self._temporary(jit_type)
        self._emit(
            Opcode.LOAD_RELATIVE,
            result_reg=result.name,
            operands=[base.name, int(offset)],
            kind=jit_type.kind,
        )
        return result

    def insn_store_relative(self, base: Value, offset: int, value: Value) -> None:
        """Store *value* (in its own type) at ``base + offset``."""
        self._check_open()
        base = self._base(base)
        if not isinstance(value, Value):
            raise JitTypeError(
                f"insn_store_relative needs a Value to know the width, got {value!r}"
            )
        self._own(value)
        if value.type.is_void:
            raise JitTypeError("Cannot store a VOID value")
        self._emit(
            Opcode.STORE_RELATIVE,
            operands=[base.name, int(offset), value.name],
            kind=value.type.kind,
        )

    def insn_address_of(self, value: Value) -> Value:
        self._check_open()
        if not isinstance(value, Value):
            raise JitTypeError(f"Cannot take the address of {value!r}")
        self._own(value)
        if value.is_constant:
            raise JitTypeError(f"Cannot take the address of constant {value!r}")
        value.mark_addressable()
        result = self._temporary(VOID_PTR)
        self._emit(Opcode.ADDRESS_OF, result_reg=result.name, operands=[value.name])
        return result

    # ── calls and returns ────────────────────────────────────────

    def _call_args(self, signature: SignatureType, args: tuple[Any, ...]) -> list[str]:
        if len(args) != len(signature.params):
            raise JitTypeError(
                f"Expected {len(signature.params)} arguments, got {len(args)}"
            )
        return [self._operand(a, t).name for a, t in zip(args, signature.params)]

    def insn_call(self, name: str, function: Function, *args: Any) -> Value:
        """Call another jitkit function (or this one, recursively)."""
        self._check_open()
        if not isinstance(function, Function):
            raise JitTypeError(f"Expected a Function, got {function!r}")
        if function.context is not self._context:
            raise ScopeViolationError(
                f"{function!r} belongs to a different context than {self!r}"
            )
        arg_regs = self._call_args(function.signature, args)
        result = self._temporary(function.return_type)
        self._emit(
            Opcode.CALL,
            result_reg=result.name,
            operands=[name, function, *arg_regs],
        )
        return result

    def insn_call_native(
        self, name: str, native: Callable[..., Any], signature: Any, *args: Any
    ) -> Value:
        """Call a host callable with arguments converted per *signature*."""
        self._check_open()
        if not callable(native):
            raise JitTypeError(f"{native!r} is not callable")
        signature = lookup_type(signature)
        if not isinstance(signature, SignatureType):
            raise JitTypeError(f"Expected a signature type, got {signature!r}")
        arg_regs = self._call_args(signature, args)
        result = self._temporary(signature.return_type)
        self._emit(
            Opcode.CALL_NATIVE,
            result_reg=result.name,
            operands=[name, native, *arg_regs],
        )
        return result

    def insn_return(self, value: Any = None) -> None:
        self._check_open()
        if value is None:
            self._emit(Opcode.RETURN)
            return
        if self.return_type.is_void:
            raise JitTypeError(f"Function '{self._name}' returns VOID")
        value = self._operand(value, self.return_type)
        self._emit(Opcode.RETURN, operands=[value.name])

    def return_(self, value: Any = None) -> None:
        self.insn_return(value)

    # ── structured control flow ──────────────────────────────────

    def if_(self, cond: Any, body: Callable[[], Any], *, end_label: Label | None = None) -> If:
        """Emit ``if cond: body`` and return the open chain."""
        if end_label is None:
            end_label = self.new_label(constants.IF_END_LABEL_PREFIX)
        false_label = self.new_label(constants.IF_FALSE_LABEL_PREFIX)
        self.insn_branch_if_not(cond, false_label)
        body()
        self.insn_branch(end_label)
        self.insn_label(false_label)
        return If(self, end_label)

    def unless(
        self, cond: Any, body: Callable[[], Any], *, end_label: Label | None = None
    ) -> If:
        """Emit ``if not cond: body`` and return the open chain."""
        if end_label is None:
            end_label = self.new_label(constants.UNLESS_END_LABEL_PREFIX)
        true_label = self.new_label(constants.UNLESS_TRUE_LABEL_PREFIX)
        self.insn_branch_if(cond, true_label)
        body()
        self.insn_branch(end_label)
        self.insn_label(true_label)
        return If(self, end_label)

    def case(self, value: Any) -> Case:
        return Case(self, value)

    def _open_loop(self, cond: Any, branch: Callable[[Any, Label], None]) -> Loop:
        # The head is re-entered every iteration; only slots are re-read there.
        if isinstance(cond, Value) and (cond.is_constant or cond.is_temporary):
            raise JitTypeError(
                f"Loop condition {cond!r} would be computed once; pass a "
                f"callable that emits it, or a local or parameter"
            )
        start_label = self.new_label(constants.LOOP_START_LABEL_PREFIX)
        done_label = self.new_label(constants.LOOP_DONE_LABEL_PREFIX)
        self.insn_label(start_label)
        branch(cond() if callable(cond) else cond, done_label)
        loop = Loop(self, start_label, done_label)
        self._loops.append(loop)
        return loop

    def while_(self, cond: Any) -> Loop:
        """Open a loop that runs while ``cond()`` is non-zero."""
        return self._open_loop(cond, self.insn_branch_if_not)

    def until(self, cond: Any) -> Loop:
        """Open a loop that runs until ``cond()`` is non-zero."""
        return self._open_loop(cond, self.insn_branch_if)

    def close_loop(self, loop: Loop) -> None:
        if loop in self._loops:
            self._loops.remove(loop)

    def _innermost_loop(self) -> Loop:
        if not self._loops:
            raise ConstructionError("break_/redo used outside of any loop")
        return self._loops[-1]

    def break_(self) -> None:
        self._innermost_loop().break_()

    def redo(self) -> None:
        self._innermost_loop().redo()

    # ── sealing and execution ────────────────────────────────────

    def compile(self) -> Function:
        """Seal the function.  Every label must have been placed."""
        self._check_open()
        unplaced = [label.name for label in self._labels if not label.is_placed]
        if unplaced:
            raise UnplacedLabelError(self._name, unplaced)

        cfg = build_cfg(self._instructions)
        self._compiled = CompiledFunction(
            name=self._name,
            cfg=cfg,
            return_type=self.return_type,
            param_regs=tuple(p.name for p in self._params),
            value_types={reg: v.type for reg, v in self._values.items()},
            constants={
                reg: v.literal for reg, v in self._values.items() if v.is_constant
            },
            addressable=tuple(
                reg for reg, v in self._values.items() if v.is_addressable
            ),
        )
        self._loops = []
        logger.info(
            "Compiled %s: %d instructions, %d basic blocks",
            self._name,
            len(self._instructions),
            len(cfg.blocks),
        )
        return self

    def apply(self, *args: Any) -> Any:
        return self._context.engine.run(self, args)

    def __call__(self, *args: Any) -> Any:
        return self.apply(*args)

    # ── debugging ────────────────────────────────────────────────

    def dump(self) -> str:
        params = ", ".join(f"{p.name}: {p.type}" for p in self._params)
        lines = [f"function {self._name}({params}) -> {self.return_type}"]
        for inst in self._instructions:
            indent = "" if inst.opcode == Opcode.LABEL else "  "
            lines.append(f"{indent}{inst}")
        return "\n".join(lines)

    def to_mermaid(self) -> str:
        return cfg_to_mermaid(self.cfg)

    def __repr__(self) -> str:
        state = "compiled" if self.is_compiled else "building"
        return f"<Function {self._name} {self._signature.name} {state}>"
