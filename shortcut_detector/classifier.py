# shortcut_detector/classifier.py
"""
Block classification.

Every block of a function lands in exactly one of two sets:

``leaf``
    cannot be an intermediate chain node: unreachable, not a two-way
    branch, jumps backwards (a successor dominates it), or is not
    *only-branch* (see :func:`is_only_branch`).

``candidate``
    reachable two-way branch without back edges whose instructions do
    nothing but compute the branch condition.

Blocks that would have been candidates but fail the only-branch test are
demoted to ``leaf`` and also remembered as ``top_only``: they may still
root a chain, but are always a leaf when seen from above.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Set

from .ctrlflow_analysis import DominanceOracle
from .ctrlflow_graph import BasicBlock, Function, TerminatorKind
from .errors import InvariantViolation, ShortcutErrorCodes

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    """Result of classifying one function's blocks."""

    leaf: Set[BasicBlock] = field(default_factory=set)
    candidate: Set[BasicBlock] = field(default_factory=set)
    top_only: Set[BasicBlock] = field(default_factory=set)
    # Function layout order, used wherever iteration order matters.
    order: List[BasicBlock] = field(default_factory=list)

    def is_leaf(self, block: BasicBlock) -> bool:
        return block in self.leaf

    def ordered(self, blocks: Set[BasicBlock]) -> List[BasicBlock]:
        return [b for b in self.order if b in blocks]


def is_two_way_branch(block: BasicBlock) -> bool:
    return block.terminator_kind is TerminatorKind.CONDITIONAL


def is_only_branch(block: BasicBlock) -> bool:
    """Check that *block* does nothing but feed its own branch.

    * no instruction may write to memory;
    * no value may be used in another block;
    * no value may be used by an instruction at or before its definition.
    """
    marked: Set = set()
    for inst in block.instructions:
        marked.add(inst)
        if inst.may_write_memory:
            return False
        for user in inst.users:
            if user.block is not block:
                return False
            if user in marked:
                return False
    return True


def is_jump_back(
    block: BasicBlock, target: BasicBlock, oracle: DominanceOracle
) -> bool:
    """An edge ``block -> target`` goes backwards when *target* dominates *block*."""
    if not oracle.is_reachable_from_entry(block):
        raise InvariantViolation(
            f"back-edge test on unreachable block '{block.name}'",
            code=ShortcutErrorCodes.UNREACHABLE_BLOCK,
        )
    return oracle.dominates(target, block)


def has_back_edge(block: BasicBlock, oracle: DominanceOracle) -> bool:
    """Only branch terminators are inspected; anything else counts as a back edge."""
    kind = block.terminator_kind
    if kind is TerminatorKind.OTHER:
        return True
    back = is_jump_back(block, block.successor(0), oracle)
    if kind is TerminatorKind.CONDITIONAL:
        back = back or is_jump_back(block, block.successor(1), oracle)
    return back


def classify_blocks(
    function: Function,
    oracle: DominanceOracle,
    log_sets: bool = True,
) -> Classification:
    """Partition the blocks of *function* into leaves and candidates."""
    result = Classification(order=list(function.blocks))
    for block in function.blocks:
        if (
            not oracle.is_reachable_from_entry(block)
            or not is_two_way_branch(block)
            or has_back_edge(block, oracle)
        ):
            result.leaf.add(block)
        elif is_only_branch(block):
            result.candidate.add(block)
        else:
            result.leaf.add(block)
            result.top_only.add(block)

    if log_sets and logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            "%s leaf set: %s", function.name,
            " ".join(b.name for b in result.ordered(result.leaf)),
        )
        logger.debug(
            "%s candidate set: %s", function.name,
            " ".join(b.name for b in result.ordered(result.candidate)),
        )
        if result.top_only:
            logger.debug(
                "%s top-only: %s", function.name,
                " ".join(b.name for b in result.ordered(result.top_only)),
            )
    return result
