# tests/test_reporter.py
"""
Tests for chain dumps and shortcut counters.
"""

import pytest

from shortcut_detector.ctrlflow_graph import Function
from shortcut_detector.detector import ShortcutDetector
from shortcut_detector.errors import InvariantViolation, ShortcutErrorCodes
from shortcut_detector.reporter import Reporter, ShortcutStats, render_chain
from tests.conftest import (
    COINCIDENTAL_CFG, LEAF_PAIR_CFG, MULTI_PASS_CFG, OR_CHAIN_CFG,
    SIMPLE_CHAIN_CFG, detect,
)


SIMPLE_CHAIN_REPORT = """\
**********func: simple-chain ********
----Dump start from B0------
 -B0 L(1) (Head) (haveSC) path(L) (isrightSC)
   Edge(B0->B1) propgtRep:null;fixRep:null
   Edge(B0->L) propgtRep:null;fixRep:null
  |-B1 L(0)
  |  Edge(B1->L) propgtRep:null;fixRep:null
  |  Edge(B1->R) propgtRep:null;fixRep:null
  | |L (leaf)
  |  R (leaf)
   L (leaf)

local shortcut number: 2
local shortcut sets (nested if): 1
local sets that failed domination Verify: 0
"""


class TestRender:

    def test_simple_chain_exact(self):
        assert detect(SIMPLE_CHAIN_CFG).report == SIMPLE_CHAIN_REPORT

    def test_no_chains(self):
        report = detect(LEAF_PAIR_CFG).report
        assert report.splitlines() == [
            "**********func: leaf-pair ********",
            "local shortcut number: 0",
            "local shortcut sets (nested if): 0",
            "local sets that failed domination Verify: 0",
        ]

    def test_absorbed_head_is_not_marked_head(self):
        lines = detect(OR_CHAIN_CFG).report.splitlines()
        assert " -A L(2) (Head) (haveSC) path(L) (isleftSC)" in lines
        assert "   -B L(1) (haveSC) path(L) (isleftSC)" in lines
        assert "     -C L(0)" in lines

    def test_nested_prefixes(self):
        lines = detect(MULTI_PASS_CFG).report.splitlines()
        assert lines[1] == "----Dump start from A------"
        assert lines[2] == " -A L(2) (Head) (haveSC) path(R) (isrightSC)"
        assert "  |-B L(1) (haveSC) path(L) (isrightSC)" in lines
        assert "  | |-C L(0)" in lines
        assert "  | |  Edge(C->X) propgtRep:null;fixRep:null" in lines
        assert "  | | |X (leaf)" in lines
        assert "  | |  Y (leaf)" in lines

    def test_failed_count(self):
        report = detect(COINCIDENTAL_CFG).report
        assert "Dump start" not in report
        assert report.endswith("local sets that failed domination Verify: 1\n")

    def test_render_chain_requires_head(self):
        result = detect(SIMPLE_CHAIN_CFG)
        with pytest.raises(InvariantViolation) as exc_info:
            render_chain(result.arena, result.node("B1"))
        assert exc_info.value.code == ShortcutErrorCodes.NOT_A_HEAD

    def test_missing_edges_are_an_invariant_violation(self):
        result = detect(SIMPLE_CHAIN_CFG)
        result.node("B1").out_edges = None
        with pytest.raises(InvariantViolation) as exc_info:
            result.render()
        assert exc_info.value.code == ShortcutErrorCodes.EDGES_NOT_BUILT


class TestIdempotence:

    @pytest.mark.parametrize("text", [SIMPLE_CHAIN_CFG, OR_CHAIN_CFG, MULTI_PASS_CFG])
    def test_render_twice(self, text):
        result = detect(text)
        reporter = Reporter(result.function.name, result.arena)
        first = reporter.render(result.heads, len(result.failed_heads))
        second = reporter.render(result.heads, len(result.failed_heads))
        assert first == second == result.report
        assert reporter.count(result.heads) == reporter.count(result.heads)


class TestShortcutStats:

    def test_count(self):
        result = detect(OR_CHAIN_CFG)
        stats = Reporter("or-chain", result.arena).count(result.heads, failed=2)
        assert stats == ShortcutStats(
            functions=1, shortcuts=3, shortcut_sets=1, failed_verification=2,
        )

    def test_merge_in_place(self):
        total = ShortcutStats()
        returned = total.merge(ShortcutStats(1, 2, 1, 0))
        assert returned is total
        total.merge(ShortcutStats(1, 3, 1, 1))
        assert total.as_dict() == {
            "functions": 2,
            "shortcuts": 5,
            "shortcut_sets": 2,
            "failed_verification": 1,
        }

    def test_add(self):
        a = ShortcutStats(1, 2, 1, 0)
        b = ShortcutStats(1, 0, 0, 1)
        assert a + b == ShortcutStats(2, 2, 1, 1)
        assert a == ShortcutStats(1, 2, 1, 0)


def _long_or_chain(n):
    """``c0 || c1 || ... || c{n-1}`` built through the host API.

    C0 is the entry; the remaining tests are laid out last-first so the
    builder settles in two passes.
    """
    fn = Function("long-or")
    blocks = {0: fn.add_block("C0")}
    for i in range(n - 1, 0, -1):
        blocks[i] = fn.add_block(f"C{i}")
    t, f = fn.add_block("T"), fn.add_block("F")
    for i in range(n):
        cond = fn.add_instruction(blocks[i], "icmp", [f"x{i}", 0], name=f"c{i}")
        fn.branch(blocks[i], cond, t, blocks[i + 1] if i + 1 < n else f)
    fn.ret(t, 1)
    fn.ret(f, 0)
    return fn


class TestDeepChains:

    def test_deep_or_chain_renders(self):
        n = 1500
        result = ShortcutDetector().run_on_function(_long_or_chain(n))
        assert result.head_names == ["C0"]
        assert result.stats.shortcuts == n
        assert result.stats.shortcut_sets == 1

        lines = result.report.splitlines()
        assert lines[:7] == [
            "**********func: long-or ********",
            "----Dump start from C0------",
            f" -C0 L({n - 1}) (Head) (haveSC) path(L) (isleftSC)",
            "   Edge(C0->T) propgtRep:null;fixRep:null",
            "   Edge(C0->C1) propgtRep:null;fixRep:null",
            "  |T (leaf)",
            f"   -C1 L({n - 2}) (haveSC) path(L) (isleftSC)",
        ]
        assert "  " * (n - 1) + " -C{} L(0)".format(n - 1) in lines
        assert lines[-3:] == [
            f"local shortcut number: {n}",
            "local shortcut sets (nested if): 1",
            "local sets that failed domination Verify: 0",
        ]
        assert result.render() == result.report
