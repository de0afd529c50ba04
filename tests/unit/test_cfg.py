"""Tests for CFG builder, Mermaid export and instruction rendering."""

from jitkit.cfg import BasicBlock, CFG, _collapse_inst_lines, build_cfg, cfg_to_mermaid
from jitkit.ir import IRInstruction, Opcode
from jitkit.jit_types import TypeKind


def _make_instructions(*specs):
    """Helper: build IRInstruction list from (opcode, kwargs) tuples."""
    return [IRInstruction(opcode=op, **kw) for op, kw in specs]


def _diamond():
    return _make_instructions(
        (Opcode.BRANCH_IF_NOT, {"operands": ["%0"], "label": "if_false_1"}),
        (Opcode.STORE, {"operands": ["%1", "%2"]}),
        (Opcode.BRANCH, {"label": "if_end_0"}),
        (Opcode.LABEL, {"label": "if_false_1"}),
        (Opcode.STORE, {"operands": ["%1", "%3"]}),
        (Opcode.LABEL, {"label": "if_end_0"}),
        (Opcode.RETURN, {"operands": ["%1"]}),
    )


class TestBuildCfg:
    def test_unlabelled_start_is_entry(self):
        cfg = build_cfg(_make_instructions((Opcode.RETURN, {})))

        assert cfg.entry == "entry"
        assert list(cfg.blocks) == ["entry"]

    def test_labelled_start_becomes_entry(self):
        cfg = build_cfg(
            _make_instructions(
                (Opcode.LABEL, {"label": "start"}),
                (Opcode.RETURN, {}),
            )
        )

        assert cfg.entry == "start"
        assert cfg.blocks["start"].instructions[0].opcode == Opcode.RETURN

    def test_diamond_blocks_and_edges(self):
        cfg = build_cfg(_diamond())

        assert list(cfg.blocks) == ["entry", "__block_1", "if_false_1", "if_end_0"]
        assert cfg.blocks["entry"].successors == ["if_false_1", "__block_1"]
        assert cfg.blocks["__block_1"].successors == ["if_end_0"]
        assert cfg.blocks["if_false_1"].successors == ["if_end_0"]
        assert sorted(cfg.blocks["if_end_0"].predecessors) == [
            "__block_1",
            "if_false_1",
        ]

    def test_fallthrough_recorded(self):
        cfg = build_cfg(_diamond())

        assert cfg.blocks["entry"].fallthrough == "__block_1"
        assert cfg.blocks["__block_1"].fallthrough is None
        assert cfg.blocks["if_false_1"].fallthrough == "if_end_0"
        assert cfg.blocks["if_end_0"].fallthrough is None

    def test_return_has_no_successors(self):
        cfg = build_cfg(
            _make_instructions(
                (Opcode.RETURN, {}),
                (Opcode.LABEL, {"label": "dead"}),
                (Opcode.RETURN, {}),
            )
        )

        assert cfg.blocks["entry"].successors == []
        assert cfg.blocks["dead"].predecessors == []

    def test_str_lists_blocks(self):
        text = str(build_cfg(_diamond()))

        assert "[entry]" in text
        assert "succs=if_false_1, __block_1" in text


class TestCfgToMermaid:
    def test_header_and_entry_style(self):
        mermaid = cfg_to_mermaid(build_cfg(_diamond()))

        assert mermaid.startswith("flowchart TD")
        assert "style entry fill:#28a745,color:#fff" in mermaid

    def test_branch_if_not_edges_are_inverted(self):
        mermaid = cfg_to_mermaid(build_cfg(_diamond()))

        assert 'entry -->|"F"| if_false_1' in mermaid
        assert 'entry -->|"T"| __block_1' in mermaid

    def test_plain_edge(self):
        mermaid = cfg_to_mermaid(build_cfg(_diamond()))

        assert "if_false_1 --> if_end_0" in mermaid

    def test_collapse_keeps_terminator(self):
        lines = [f"line {i}" for i in range(30)]

        collapsed = _collapse_inst_lines(lines, max_lines=5)

        assert len(collapsed) == 5
        assert collapsed[-1] == "line 29"
        assert collapsed[3] == "... (26 more)"

    def test_empty_cfg_renders(self):
        assert cfg_to_mermaid(CFG()) == "flowchart TD"

    def test_empty_block_renders_placeholder(self):
        cfg = CFG(blocks={"entry": BasicBlock(label="entry")})

        assert "(empty)" in cfg_to_mermaid(cfg)


class TestInstructionRendering:
    def test_binop(self):
        inst = IRInstruction(
            opcode=Opcode.BINOP,
            result_reg="%2",
            operands=["+", "%0", "%1"],
            kind=TypeKind.INT,
        )

        assert str(inst) == "%2 = binop + %0 %1 :int"

    def test_label(self):
        assert str(IRInstruction(opcode=Opcode.LABEL, label="L_0")) == "L_0:"

    def test_branch(self):
        inst = IRInstruction(
            opcode=Opcode.BRANCH_IF, operands=["%3"], label="loop_done_1"
        )

        assert str(inst) == "branch_if %3 loop_done_1"

    def test_load_relative_renders_offset(self):
        inst = IRInstruction(
            opcode=Opcode.LOAD_RELATIVE,
            result_reg="%4",
            operands=["%1", 8],
            kind=TypeKind.FLOAT64,
        )

        assert str(inst) == "%4 = load_relative %1 8 :float64"

    def test_callable_operand_uses_name(self):
        inst = IRInstruction(opcode=Opcode.CALL_NATIVE, operands=["abs", abs, "%0"])

        assert str(inst) == "call_native abs abs %0"
