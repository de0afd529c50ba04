"""Structured control flow built from labels and branches.

Usage::

    f.if_(cond, then_body).elsif(cond2, body2).else_(else_body).end()

    f.case(value).when(1, body1).when(2, body2).else_(other).end()

    f.while_(lambda: i < n).do(loop_body).end()

Bodies are zero-argument callables run inline while the chain is built;
loop bodies receive the ``Loop`` so they can ``break_`` or ``redo``.  Every
chain must be closed with ``end()``, otherwise its exit label stays unplaced
and ``Function.compile`` raises ``UnplacedLabelError``.
"""

from __future__ import annotations

from typing import Any, Callable

from . import constants
from .errors import ConstructionError
from .label import Label


class If:
    """An open ``if``/``unless`` chain sharing one exit label."""

    def __init__(self, function: Any, end_label: Label):
        self._function = function
        self._end_label = end_label
        self._closed = False
        self._has_else = False

    @property
    def end_label(self) -> Label:
        return self._end_label

    def _check_open(self):
        if self._closed:
            raise ConstructionError(f"Chain ending at {self._end_label!r} is closed")

    def _check_no_else(self):
        if self._has_else:
            raise ConstructionError(
                f"Chain ending at {self._end_label!r} already has an else branch"
            )

    def elsif(self, cond: Any, body: Callable[[], Any]) -> If:
        self._check_open()
        self._check_no_else()
        self._function.if_(cond, body, end_label=self._end_label)
        return self

    def elsunless(self, cond: Any, body: Callable[[], Any]) -> If:
        self._check_open()
        self._check_no_else()
        self._function.unless(cond, body, end_label=self._end_label)
        return self

    def else_(self, body: Callable[[], Any]) -> If:
        self._check_open()
        self._check_no_else()
        self._has_else = True
        body()
        return self

    def end(self) -> None:
        self._check_open()
        self._closed = True
        self._function.insn_label(self._end_label)


class Case:
    """A multi-way conditional lowered to an ``if``/``elsif`` chain of equality tests."""

    def __init__(self, function: Any, value: Any):
        self._function = function
        self._value = value
        self._if: If | None = None
        self._closed = False
        self._has_else = False

    def when(self, value: Any, body: Callable[[], Any]) -> Case:
        if self._closed:
            raise ConstructionError("when() after end() on a case")
        if self._has_else:
            raise ConstructionError("when() after else_() on a case")
        cond = self._function.insn_eq(self._value, value)
        if self._if is None:
            self._if = self._function.if_(cond, body)
        else:
            self._if = self._if.elsif(cond, body)
        return self

    def else_(self, body: Callable[[], Any]) -> Case:
        if self._closed:
            raise ConstructionError("else_() after end() on a case")
        if self._has_else:
            raise ConstructionError("else_() called twice on a case")
        self._has_else = True
        if self._if is None:
            body()
        else:
            self._if.else_(body)
        return self

    def end(self) -> None:
        if self._closed:
            raise ConstructionError("end() called twice on a case")
        self._closed = True
        if self._if is not None:
            self._if.end()


class Loop:
    """An open ``while``/``until`` loop.

    ``break_`` jumps past the loop, ``redo`` jumps to the current redo target
    (the loop head until ``redo_from_here`` moves it).
    """

    def __init__(self, function: Any, start_label: Label, done_label: Label):
        self._function = function
        self._start_label = start_label
        self._redo_label = start_label
        self._done_label = done_label
        self._closed = False

    @property
    def start_label(self) -> Label:
        return self._start_label

    @property
    def done_label(self) -> Label:
        return self._done_label

    @property
    def redo_label(self) -> Label:
        return self._redo_label

    def do(self, body: Callable[[Loop], Any]) -> Loop:
        body(self)
        return self

    def end(self) -> None:
        if self._closed:
            raise ConstructionError(f"Loop starting at {self._start_label!r} is closed")
        self._closed = True
        self._function.insn_branch(self._start_label)
        self._function.insn_label(self._done_label)
        self._function.close_loop(self)

    def break_(self) -> None:
        self._function.insn_branch(self._done_label)

    def redo(self) -> None:
        self._function.insn_branch(self._redo_label)

    def redo_from_here(self) -> Label:
        self._redo_label = self._function.insn_label(
            self._function.new_label(constants.REDO_LABEL_PREFIX)
        )
        return self._redo_label
