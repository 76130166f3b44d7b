# tests/test_cfg_reader.py
"""
Tests for the S-expression CFG reader: description text → host Function.
"""

import pytest

from shortcut_detector.cfg_reader import parse_function, parse_module, read_module_file
from shortcut_detector.ctrlflow_graph import Instruction, TerminatorKind
from shortcut_detector.errors import CfgParseError, ShortcutErrorCodes
from tests.conftest import (
    COINCIDENTAL_CFG, NESTED_IF_CFG, OR_CHAIN_CFG, SIMPLE_CHAIN_CFG, TOP_ONLY_CFG,
)


class TestParseFunction:

    def test_blocks_in_layout_order(self):
        fn = parse_function(SIMPLE_CHAIN_CFG)
        assert fn.name == "simple-chain"
        assert [b.name for b in fn.blocks] == ["B0", "B1", "L", "R"]
        assert fn.entry.name == "B0"

    def test_branch_targets(self):
        fn = parse_function(SIMPLE_CHAIN_CFG)
        b0 = fn.block("B0")
        assert b0.terminator_kind is TerminatorKind.CONDITIONAL
        assert b0.successor(0).name == "B1"
        assert b0.successor(1).name == "L"

    def test_named_values_link_to_users(self):
        fn = parse_function(SIMPLE_CHAIN_CFG)
        c0 = fn.value("c0")
        assert c0.opcode == "icmp"
        assert c0.operands == ["x", 0]
        assert c0.users == [fn.block("B0").terminator]

    def test_forward_reference(self):
        fn = parse_function(NESTED_IF_CFG)
        phi = fn.value("i")
        inext = fn.value("inext")
        assert isinstance(phi.operands[1], Instruction)
        assert phi.operands[1] is inext
        assert phi in inext.users

    def test_unnamed_store_writes_memory(self):
        fn = parse_function(TOP_ONLY_CFG)
        store = fn.block("A").instructions[0]
        assert store.opcode == "store"
        assert store.name is None
        assert store.may_write_memory

    def test_effect_flags(self):
        fn = parse_function("""
            (function flags
              (block b (x = call f :pure) (y = add 1 2 :writes) (ret y)))
        """)
        assert not fn.value("x").may_write_memory
        assert fn.value("y").may_write_memory

    def test_switch(self):
        fn = parse_function(COINCIDENTAL_CFG)
        e = fn.block("E")
        assert [b.name for b in e.successor_blocks()] == ["H", "P"]

    def test_ret_value(self):
        fn = parse_function(OR_CHAIN_CFG)
        assert fn.block("T").terminator.operands == [1]


class TestParseModule:

    def test_module_form(self):
        fns = parse_module("""
            (module m
              (function f (block a (ret)))
              (function g (block b (br c)) (block c (unreachable))))
        """)
        assert [f.name for f in fns] == ["f", "g"]
        assert fns[1].block("c").terminator.opcode == "unreachable"

    def test_several_top_level_functions(self):
        fns = parse_module(SIMPLE_CHAIN_CFG + OR_CHAIN_CFG)
        assert [f.name for f in fns] == ["simple-chain", "or-chain"]

    def test_parse_function_requires_exactly_one(self):
        with pytest.raises(CfgParseError):
            parse_function(SIMPLE_CHAIN_CFG + OR_CHAIN_CFG)

    def test_read_module_file(self, tmp_path):
        path = tmp_path / "chain.cfg"
        path.write_text(SIMPLE_CHAIN_CFG, encoding="utf-8")
        fns = read_module_file(path)
        assert len(fns) == 1
        assert fns[0].name == "simple-chain"


class TestParseErrors:

    def test_unbalanced(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_module("(function f (block a (ret))")
        assert exc_info.value.code == ShortcutErrorCodes.SEXP_SYNTAX

    def test_unknown_top_level(self):
        with pytest.raises(CfgParseError):
            parse_module("(program p)")

    def test_unknown_target(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_function("(function f (block a (br nowhere)))")
        assert exc_info.value.code == ShortcutErrorCodes.UNKNOWN_BLOCK

    def test_missing_terminator(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_function("(function f (block a (x = add 1 2)))")
        assert exc_info.value.code == ShortcutErrorCodes.MISSING_TERMINATOR

    def test_terminator_not_last(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_function("(function f (block a (ret) (ret)))")
        assert exc_info.value.code == ShortcutErrorCodes.TERMINATOR_NOT_LAST

    def test_bad_arity(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_function("(function f (block a (condbr c a)))")
        assert exc_info.value.code == ShortcutErrorCodes.BAD_ARITY

    def test_nested_operand(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_function("(function f (block a (x = add (1 2) 3) (ret)))")
        assert exc_info.value.code == ShortcutErrorCodes.BAD_OPERAND

    def test_duplicate_block_is_reported_as_parse_error(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_function("(function f (block a (ret)) (block a (ret)))")
        assert exc_info.value.code == ShortcutErrorCodes.DUPLICATE_BLOCK

    def test_empty_function(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_function("(function f)")
        assert exc_info.value.code == ShortcutErrorCodes.EMPTY_FUNCTION


class TestErrorLocation:

    def test_function_and_line_in_message(self):
        text = (
            "(function good (block a (ret)))\n"
            "\n"
            "(function bad\n"
            "  (block a (br nowhere)))\n"
        )
        with pytest.raises(CfgParseError) as exc_info:
            parse_module(text)
        err = exc_info.value
        assert err.function == "bad"
        assert err.line == 3
        assert str(err).endswith("(in function 'bad', line 3)")

    def test_shape_error_inside_module(self):
        text = "(module m\n  (function f (block a (condbr c a))))"
        with pytest.raises(CfgParseError) as exc_info:
            parse_module(text)
        assert exc_info.value.code == ShortcutErrorCodes.BAD_ARITY
        assert exc_info.value.function == "f"
        assert exc_info.value.line == 2

    def test_top_level_error_has_no_location(self):
        with pytest.raises(CfgParseError) as exc_info:
            parse_module("(program p)")
        assert exc_info.value.function is None
        assert exc_info.value.line is None
