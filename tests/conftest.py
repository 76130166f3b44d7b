# tests/conftest.py
"""
Shared CFG descriptions and helpers for the shortcut detector tests.

Every ``*_CFG`` constant is an S-expression function description readable
by :func:`shortcut_detector.cfg_reader.parse_function`.  Branch targets are
written ``(condbr cond LEFT RIGHT)``; LEFT is the left chain child.
"""

from typing import Iterable, List, Optional

import pytest

from shortcut_detector.cfg_reader import parse_function
from shortcut_detector.config import DetectorConfig
from shortcut_detector.ctrlflow_analysis import DominatorTree
from shortcut_detector.ctrlflow_graph import Function, reset_node_counter
from shortcut_detector.detector import FunctionResult, ShortcutDetector


# ═══════════════════════════════════════════════════════════════════════════
#  CFG descriptions
# ═══════════════════════════════════════════════════════════════════════════

# B0 -> (L, R), L falls through to R.  No shortcut.
LEAF_PAIR_CFG = """
(function leaf-pair
  (block B0 (c = icmp x 0) (condbr c L R))
  (block L (br R))
  (block R (ret)))
"""

# B0 -> (B1, L), B1 -> (L, R).  One chain headed by B0.
SIMPLE_CHAIN_CFG = """
(function simple-chain
  (block B0 (c0 = icmp x 0) (condbr c0 B1 L))
  (block B1 (c1 = icmp y 0) (condbr c1 L R))
  (block L (ret))
  (block R (ret)))
"""

# Same as SIMPLE_CHAIN_CFG, but B1 loops back to B0.
BACK_EDGE_CFG = """
(function back-edge
  (block B0 (c0 = icmp x 0) (condbr c0 B1 L))
  (block B1 (c1 = icmp y 0) (condbr c1 L B0))
  (block L (ret)))
"""

# Layout order puts every parent before its children, so the builder
# needs one pass per level.
MULTI_PASS_CFG = """
(function multi-pass
  (block A (ca = icmp x 0) (condbr ca B X))
  (block B (cb = icmp y 0) (condbr cb C X))
  (block C (cc = icmp z 0) (condbr cc X Y))
  (block X (ret))
  (block Y (ret)))
"""

# a || b || c
OR_CHAIN_CFG = """
(function or-chain
  (block A (ca = icmp a 0) (condbr ca T B))
  (block B (cb = icmp b 0) (condbr cb T C))
  (block C (cc = icmp c 0) (condbr cc T F))
  (block T (ret 1))
  (block F (ret 0)))
"""

# H and M share T, but M is also entered through P, bypassing H.
COINCIDENTAL_CFG = """
(function coincidental
  (block E (s = load p) (switch s H P))
  (block P (br M))
  (block H (ch = icmp x 0) (condbr ch M T))
  (block M (cm = icmp y 0) (condbr cm T X))
  (block T (ret))
  (block X (ret)))
"""

# SIMPLE_CHAIN_CFG plus a side path Q that also jumps to the shared target L.
SHARED_TARGET_CFG = """
(function shared-target
  (block E (s = load p) (switch s B0 Q))
  (block Q (br L))
  (block B0 (c0 = icmp x 0) (condbr c0 B1 L))
  (block B1 (c1 = icmp y 0) (condbr c1 L R))
  (block L (ret))
  (block R (ret)))
"""

# A stores before branching: it may head a chain but never sit inside one.
TOP_ONLY_CFG = """
(function top-only
  (block A (store v p) (ca = icmp a 0) (condbr ca B T))
  (block B (cb = icmp b 0) (condbr cb T F))
  (block T (ret))
  (block F (ret)))
"""

# P -> (Q, R), Q -> (R, X), R -> (X, Y): both children of P are chains.
DIAMOND_CHAIN_CFG = """
(function diamond-chain
  (block P (cp = icmp p 0) (condbr cp Q R))
  (block Q (cq = icmp q 0) (condbr cq R X))
  (block R (cr = icmp r 0) (condbr cr X Y))
  (block X (ret))
  (block Y (ret)))
"""

# Two unrelated ifs that happen to share a join block, plus a loop.
NESTED_IF_CFG = """
(function nested-if
  (block entry (c0 = icmp n 0) (condbr c0 then join))
  (block then (store 1 p) (br join))
  (block join (c1 = icmp m 0) (condbr c1 loop exit))
  (block loop (i = phi 0 inext) (inext = add i 1) (c2 = icmp inext m) (condbr c2 loop exit))
  (block exit (ret)))
"""

# U is never reached from the entry.
UNREACHABLE_CFG = """
(function unreachable
  (block entry (c = icmp x 0) (condbr c A B))
  (block A (ret))
  (block B (ret))
  (block U (cu = icmp y 0) (condbr cu A B)))
"""

ALL_CFGS = [
    LEAF_PAIR_CFG,
    SIMPLE_CHAIN_CFG,
    BACK_EDGE_CFG,
    MULTI_PASS_CFG,
    OR_CHAIN_CFG,
    COINCIDENTAL_CFG,
    SHARED_TARGET_CFG,
    TOP_ONLY_CFG,
    DIAMOND_CHAIN_CFG,
    NESTED_IF_CFG,
    UNREACHABLE_CFG,
]


# ═══════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════

def make_function(text: str) -> Function:
    return parse_function(text)


def detect(text: str, config: Optional[DetectorConfig] = None) -> FunctionResult:
    """Parse *text* and run the detector on it."""
    return ShortcutDetector(config).run_on_function(parse_function(text))


def dominators(fn: Function) -> DominatorTree:
    return DominatorTree(fn).compute()


def names(blocks: Iterable) -> List[str]:
    """Sorted names of blocks or chain nodes."""
    return sorted(b.name for b in blocks)


@pytest.fixture(autouse=True)
def _fresh_ids():
    reset_node_counter()
    yield
