# shortcut_detector/verify.py
"""
Head selection and dominance verification.

The pattern matcher only looks at shape.  Two unrelated branches may target
the same block without one controlling the other, so a head is kept only if
its block dominates the block of every member of its chain, i.e. the chain
is a single-entry region.
"""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from .chain import ChainArena, ChainNode
from .ctrlflow_analysis import DominanceOracle
from .ctrlflow_graph import BasicBlock
from .errors import InvariantViolation, ShortcutErrorCodes

logger = logging.getLogger(__name__)


def dominates_chain(arena: ChainArena, head: ChainNode, oracle: DominanceOracle) -> bool:
    """Return True if *head*'s block dominates every chain member's block."""
    if not head.is_head:
        raise InvariantViolation(
            f"dominance check on non-head '{head.name}'",
            code=ShortcutErrorCodes.NOT_A_HEAD,
        )
    for handle in sorted(head.chain_members):
        member = arena[handle]
        if not oracle.dominates(head.block, member.block):
            logger.debug(
                "head %s does not dominate chain member %s",
                head.name, member.name,
            )
            return False
    return True


def select_heads(
    arena: ChainArena,
    oracle: DominanceOracle,
    order: Sequence[BasicBlock],
) -> Tuple[List[ChainNode], List[ChainNode]]:
    """Split the current heads into verified and failed ones.

    Heads are visited in *order* (function layout).  Failed heads are
    neither retried nor replaced by their members.
    """
    verified: List[ChainNode] = []
    failed: List[ChainNode] = []
    for block in order:
        node = arena.get(block)
        if node is None or not node.is_head:
            continue
        if dominates_chain(arena, node, oracle):
            verified.append(node)
        else:
            failed.append(node)

    if failed:
        logger.debug(
            "%d head(s) failed domination verify: %s",
            len(failed), ", ".join(n.name for n in failed),
        )
    return verified, failed
