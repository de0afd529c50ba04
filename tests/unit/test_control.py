"""Tests for structured control flow — if/unless/case chains and loops."""

import pytest

from jitkit import (
    ABI,
    INT,
    ConstructionError,
    Function,
    JitTypeError,
    UnplacedLabelError,
    create_signature,
)
from jitkit.ir import Opcode


def _build(param_count, body):
    """Helper: compile *body* as an INT function of *param_count* INT params."""
    signature = create_signature(ABI.CDECL, INT, [INT] * param_count)
    return Function.build(signature, body)


def _if_elsif_else(f):
    result = f.value(INT, 1)
    f.if_(f.param(0), lambda: result.store(2)).elsif(
        f.param(1), lambda: result.store(3)
    ).else_(lambda: result.store(4)).end()
    f.insn_return(result)


class TestIf:
    def test_if_false_skips_body(self):
        def body(f):
            result = f.value(INT, 1)
            f.if_(f.param(0), lambda: result.store(2)).end()
            f.insn_return(result)

        function = _build(1, body)

        assert function(0) == 1

    def test_if_true_runs_body(self):
        def body(f):
            result = f.value(INT, 1)
            f.if_(f.param(0), lambda: result.store(2)).end()
            f.insn_return(result)

        function = _build(1, body)

        assert function(1) == 2

    def test_if_else(self):
        def body(f):
            result = f.value(INT, 1)
            f.if_(f.param(0), lambda: result.store(2)).else_(
                lambda: result.store(3)
            ).end()
            f.insn_return(result)

        function = _build(1, body)

        assert function(1) == 2
        assert function(0) == 3

    @pytest.mark.parametrize(
        "c0, c1, expected",
        [(0, 1, 3), (1, 0, 2), (1, 1, 2), (0, 0, 4)],
    )
    def test_elsif_truth_table(self, c0, c1, expected):
        function = _build(2, _if_elsif_else)

        assert function(c0, c1) == expected

    def test_condition_from_comparison(self):
        def body(f):
            result = f.value(INT, 0)
            f.if_(f.param(0) > 10, lambda: result.store(1)).end()
            f.insn_return(result)

        function = _build(1, body)

        assert function(11) == 1
        assert function(10) == 0

    def test_if_places_exactly_two_labels(self):
        for taken in (True, False):

            def body(f):
                cond = f.const(INT, 1 if taken else 0)
                f.if_(cond, lambda: None).else_(lambda: None).end()
                f.insn_return(0)

            function = _build(0, body)

            labels = function.labels
            assert len(labels) == 2
            assert all(label.is_placed for label in labels)
            placed = [i for i in function.instructions if i.opcode == Opcode.LABEL]
            assert len(placed) == 2

    def test_chain_shares_one_exit_label(self):
        function = _build(2, _if_elsif_else)

        end_targets = {
            inst.label
            for inst in function.instructions
            if inst.opcode == Opcode.BRANCH
        }
        assert len(end_targets) == 1

    def test_nested_if_labels_do_not_collide(self):
        def body(f):
            result = f.value(INT, 0)

            def inner():
                f.if_(f.param(1), lambda: result.store(result + 10)).end()

            f.if_(f.param(0), inner).else_(lambda: result.store(1)).end()
            f.insn_return(result)

        function = _build(2, body)

        names = [label.name for label in function.labels]
        assert len(names) == len(set(names))
        assert function(1, 1) == 10
        assert function(1, 0) == 0
        assert function(0, 1) == 1

    def test_missing_end_fails_at_compile(self):
        def body(f):
            f.if_(f.param(0), lambda: None)
            f.insn_return(0)

        with pytest.raises(UnplacedLabelError):
            _build(1, body)

    def test_end_twice_raises(self):
        def body(f):
            chain = f.if_(f.param(0), lambda: None)
            chain.end()
            with pytest.raises(ConstructionError):
                chain.end()
            f.insn_return(0)

        _build(1, body)

    def test_elsif_after_else_raises(self):
        def body(f):
            chain = f.if_(f.param(0), lambda: None).else_(lambda: None)
            with pytest.raises(ConstructionError):
                chain.elsif(f.param(0), lambda: None)
            with pytest.raises(ConstructionError):
                chain.elsunless(f.param(0), lambda: None)
            with pytest.raises(ConstructionError):
                chain.else_(lambda: None)
            chain.end()
            f.insn_return(0)

        _build(1, body)


class TestUnless:
    def test_unless_runs_body_when_false(self):
        def body(f):
            result = f.value(INT, 1)
            f.unless(f.param(0), lambda: result.store(2)).end()
            f.insn_return(result)

        function = _build(1, body)

        assert function(0) == 2
        assert function(1) == 1

    @pytest.mark.parametrize(
        "c0, c1, expected",
        [(0, 0, 2), (0, 1, 2), (1, 0, 3), (1, 1, 4)],
    )
    def test_elsunless_truth_table(self, c0, c1, expected):
        def body(f):
            result = f.value(INT, 1)
            f.unless(f.param(0), lambda: result.store(2)).elsunless(
                f.param(1), lambda: result.store(3)
            ).else_(lambda: result.store(4)).end()
            f.insn_return(result)

        function = _build(2, body)

        assert function(c0, c1) == expected

    def test_if_chain_mixes_elsunless(self):
        def body(f):
            result = f.value(INT, 0)
            f.if_(f.param(0), lambda: result.store(1)).elsunless(
                f.param(1), lambda: result.store(2)
            ).end()
            f.insn_return(result)

        function = _build(2, body)

        assert function(1, 1) == 1
        assert function(0, 0) == 2
        assert function(0, 1) == 0


class TestCase:
    def _classify(self, f):
        result = f.value(INT, 0)
        f.case(f.param(0)).when(1, lambda: result.store(10)).when(
            2, lambda: result.store(20)
        ).else_(lambda: result.store(30)).end()
        f.insn_return(result)

    def test_when_matches(self):
        function = _build(1, self._classify)

        assert function(1) == 10
        assert function(2) == 20

    def test_else_when_nothing_matches(self):
        function = _build(1, self._classify)

        assert function(7) == 30

    def test_first_match_wins(self):
        def body(f):
            result = f.value(INT, 0)
            f.case(f.param(0)).when(1, lambda: result.store(10)).when(
                1, lambda: result.store(11)
            ).end()
            f.insn_return(result)

        function = _build(1, body)

        assert function(1) == 10

    def test_end_without_when_is_noop(self):
        def body(f):
            f.case(f.param(0)).end()
            f.insn_return(5)

        function = _build(1, body)

        assert function.labels == []
        assert function(0) == 5

    def test_else_without_when_runs_unconditionally(self):
        def body(f):
            result = f.value(INT, 0)
            f.case(f.param(0)).else_(lambda: result.store(9)).end()
            f.insn_return(result)

        function = _build(1, body)

        assert function(3) == 9

    def test_when_after_else_raises(self):
        def body(f):
            case = f.case(f.param(0)).when(1, lambda: None).else_(lambda: None)
            with pytest.raises(ConstructionError):
                case.when(2, lambda: None)
            with pytest.raises(ConstructionError):
                case.else_(lambda: None)
            case.end()
            f.insn_return(0)

        _build(1, body)


class TestLoops:
    def _count_to(self, f):
        i = f.value(INT, 0)
        n = f.param(0)
        f.while_(lambda: i < n).do(lambda loop: i.store(i + 1)).end()
        f.insn_return(i)

    def test_while_counts(self):
        function = _build(1, self._count_to)

        assert function(5) == 5

    def test_zero_iteration_while_never_runs_body(self):
        def body(f):
            runs = f.value(INT, 0)
            f.while_(lambda: f.param(0) > 0).do(
                lambda loop: runs.store(runs + 1)
            ).end()
            f.insn_return(runs)

        function = _build(1, body)

        assert function(0) == 0

    def test_until(self):
        def body(f):
            i = f.value(INT, 0)
            f.until(lambda: i >= f.param(0)).do(lambda loop: i.store(i + 2)).end()
            f.insn_return(i)

        function = _build(1, body)

        assert function(7) == 8
        assert function(0) == 0

    def test_condition_is_reevaluated_each_iteration(self):
        def body(f):
            evaluations = f.value(INT, 0)
            i = f.value(INT, 0)

            def cond():
                evaluations.store(evaluations + 1)
                return i < 3

            f.while_(cond).do(lambda loop: i.store(i + 1)).end()
            f.insn_return(evaluations)

        function = _build(0, body)

        assert function() == 4

    def test_break_exits_loop_once(self):
        def body(f):
            i = f.value(INT, 0)
            exits = f.value(INT, 0)

            def loop_body(loop):
                f.if_(i == 5, loop.break_).end()
                i.store(i + 1)

            f.while_(lambda: i < 100).do(loop_body).end()
            exits.store(exits + 1)
            f.insn_return(i * 10 + exits)

        function = _build(0, body)

        assert function() == 51

    def test_function_break_targets_innermost_loop(self):
        def body(f):
            i = f.value(INT, 0)
            total = f.value(INT, 0)

            def inner(loop):
                f.break_()

            def outer(loop):
                f.while_(lambda: f.const(INT, 1)).do(inner).end()
                total.store(total + 1)
                i.store(i + 1)

            f.while_(lambda: i < 3).do(outer).end()
            f.insn_return(total)

        function = _build(0, body)

        assert function() == 3

    def test_break_outside_loop_raises(self):
        def body(f):
            with pytest.raises(ConstructionError):
                f.break_()
            f.insn_return(0)

        _build(0, body)

    def test_redo_jumps_to_loop_head(self):
        def body(f):
            i = f.value(INT, 0)
            total = f.value(INT, 0)

            def loop_body(loop):
                i.store(i + 1)
                f.if_(i == 3, loop.redo).end()
                total.store(total + i)

            f.while_(lambda: i < 5).do(loop_body).end()
            f.insn_return(total)

        function = _build(0, body)

        assert function() == 1 + 2 + 4 + 5

    def test_redo_from_here_retargets_redo(self):
        def body(f):
            i = f.value(INT, 0)
            j = f.value(INT, 0)

            def loop_body(loop):
                i.store(i + 1)
                loop.redo_from_here()
                j.store(j + 1)
                f.if_(j % 2 == 1, loop.redo).end()

            f.while_(lambda: i < 3).do(loop_body).end()
            f.insn_return(j)

        function = _build(0, body)

        assert function() == 6

    def test_redo_from_here_only_moves_current_loop(self):
        def body(f):
            outer_loop = {}

            def inner(loop):
                loop.redo_from_here()
                loop.break_()

            def outer(loop):
                outer_loop["loop"] = loop
                f.while_(lambda: f.const(INT, 1)).do(inner).end()
                loop.break_()

            f.while_(lambda: f.const(INT, 1)).do(outer).end()
            loop = outer_loop["loop"]
            assert loop.redo_label is loop.start_label
            f.insn_return(0)

        function = _build(0, body)

        assert function() == 0

    def test_loop_end_twice_raises(self):
        def body(f):
            loop = f.while_(lambda: f.const(INT, 0))
            loop.end()
            with pytest.raises(ConstructionError):
                loop.end()
            f.insn_return(0)

        _build(0, body)

    def test_unterminated_loop_fails_at_compile(self):
        def body(f):
            f.while_(lambda: f.param(0)).do(lambda loop: None)
            f.insn_return(0)

        with pytest.raises(UnplacedLabelError):
            _build(1, body)

    def test_computed_condition_raises(self):
        def body(f):
            i = f.value(INT, 0)
            with pytest.raises(JitTypeError):
                f.while_(i < f.param(0))
            with pytest.raises(JitTypeError):
                f.until(f.const(INT, 1))
            f.insn_return(i)

        function = _build(1, body)

        assert function.labels == []

    def test_variable_condition_is_reread_each_iteration(self):
        def body(f):
            remaining = f.value(INT, f.param(0))
            steps = f.value(INT, 0)

            def loop_body(loop):
                remaining.store(remaining - 1)
                steps.store(steps + 1)

            f.while_(remaining).do(loop_body).end()
            f.insn_return(steps)

        function = _build(1, body)

        assert function(3) == 3
