# shortcut_detector/ctrlflow_analysis.py
"""
Dominance for the host model.

The shortcut detector treats dominance as a supplied capability: anything
that answers :class:`DominanceOracle` queries will do.  This module provides
the default oracle, :class:`DominatorTree`, computed directly over a
:class:`~shortcut_detector.ctrlflow_graph.Function`.

References
----------
[1] Cooper, Harvey, Kennedy – "A Simple, Fast Dominance Algorithm", 2001.
[2] Aho, Lam, Sethi, Ullman – "Compilers: Principles, Techniques, &
    Tools", 2e, §9.6 (natural loops), §9.7 (dominators).
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol, Set, Tuple, runtime_checkable

from .ctrlflow_graph import BasicBlock, Function

logger = logging.getLogger(__name__)


# ===================================================================
#  Oracle protocol
# ===================================================================

@runtime_checkable
class DominanceOracle(Protocol):
    """What the detector needs to know about dominance."""

    def dominates(self, a: BasicBlock, b: BasicBlock) -> bool:
        ...

    def is_reachable_from_entry(self, block: BasicBlock) -> bool:
        ...


# ===================================================================
#  Dominator Tree
# ===================================================================

class DominatorTree:
    """
    Dominator tree of a function.

    The implementation uses the Cooper–Harvey–Kennedy iterative
    algorithm [1] over a reverse post-order of the blocks reachable from
    the entry.

    Attributes after .compute():
        idom     : Dict[BasicBlock, BasicBlock]  - immediate dominator
        rpo      : List[BasicBlock]              - reachable blocks in RPO

    IMPORTANT - root convention
    ---------------------------
    The entry block's immediate dominator is set to *itself*
    (``self.idom[entry] is entry``).  Every walk up the idom chain
    **must** check for this self-loop to avoid infinite loops.
    """

    def __init__(self, function: Function):
        self.function = function
        self.idom: Dict[BasicBlock, BasicBlock] = {}
        self.rpo: List[BasicBlock] = []
        self._rpo_num: Dict[BasicBlock, int] = {}
        self._computed = False

    # ---- public API --------------------------------------------------

    def compute(self) -> "DominatorTree":
        """Compute immediate dominators."""
        if self._computed:
            return self
        self._compute_idom()
        self._computed = True
        logger.debug(
            "dominators of %s: %d/%d blocks reachable",
            self.function.name, len(self.rpo), len(self.function.blocks),
        )
        return self

    def is_reachable_from_entry(self, block: BasicBlock) -> bool:
        self.compute()
        return block in self._rpo_num

    def dominates(self, a: BasicBlock, b: BasicBlock) -> bool:
        """Return True if *a* dominates *b* (a dom b).

        A block dominates itself.  The entry block dominates every
        reachable block; an unreachable block is dominated by nothing
        but itself.
        """
        self.compute()
        if a is b:
            return True
        if b not in self.idom:
            return False
        cur = b
        while True:
            if cur is a:
                return True
            parent = self.idom[cur]
            if parent is cur:         # root of the dominator tree
                return False
            cur = parent

    def strictly_dominates(self, a: BasicBlock, b: BasicBlock) -> bool:
        """Return True if *a* strictly dominates *b*: a dom b and a ≠ b."""
        return a is not b and self.dominates(a, b)

    def immediate_dominator(self, block: BasicBlock) -> Optional[BasicBlock]:
        """The immediate dominator of *block*; ``None`` for the entry and
        for unreachable blocks."""
        self.compute()
        parent = self.idom.get(block)
        if parent is None or parent is block:
            return None
        return parent

    def all_dominators(self, block: BasicBlock) -> Set[BasicBlock]:
        """Return the set of all blocks that dominate *block* (including itself)."""
        self.compute()
        result: Set[BasicBlock] = {block}
        cur = block
        while cur in self.idom:
            parent = self.idom[cur]
            if parent is cur:
                break
            result.add(parent)
            cur = parent
        return result

    # ---- internals: Cooper–Harvey–Kennedy iterative algorithm --------

    def _compute_idom(self):
        entry = self.function.entry

        # RPO numbering via iterative DFS
        finish_stack: List[BasicBlock] = []
        vis: Set[BasicBlock] = set()
        s: List[Tuple[BasicBlock, int]] = [(entry, 0)]
        vis.add(entry)
        while s:
            node, idx = s[-1]
            succs = node.successor_blocks()
            if idx < len(succs):
                s[-1] = (node, idx + 1)
                child = succs[idx]
                if child not in vis:
                    vis.add(child)
                    s.append((child, 0))
            else:
                s.pop()
                finish_stack.append(node)

        self.rpo = list(reversed(finish_stack))
        self._rpo_num = {b: i for i, b in enumerate(self.rpo)}
        rpo_num = self._rpo_num

        idom: Dict[BasicBlock, Optional[BasicBlock]] = {b: None for b in self.rpo}
        idom[entry] = entry

        def _intersect(b1: BasicBlock, b2: BasicBlock) -> BasicBlock:
            """Walk two fingers up the idom tree until they meet."""
            finger1, finger2 = b1, b2
            while finger1 is not finger2:
                while rpo_num[finger1] > rpo_num[finger2]:
                    finger1 = idom[finger1]
                while rpo_num[finger2] > rpo_num[finger1]:
                    finger2 = idom[finger2]
            return finger1

        # Iterative refinement until fixed point
        changed = True
        while changed:
            changed = False
            for b in self.rpo:
                if b is entry:
                    continue
                preds = [
                    p for p in b.predecessor_blocks()
                    if p in rpo_num and idom[p] is not None
                ]
                if not preds:
                    continue
                new_idom = preds[0]
                for p in preds[1:]:
                    new_idom = _intersect(new_idom, p)
                if idom[b] is not new_idom:
                    idom[b] = new_idom
                    changed = True

        self.idom = {b: d for b, d in idom.items() if d is not None}
