# shortcut_detector/builder.py
"""
Chain construction.

Blocks are turned into ChainNodes bottom-up: a block resolves once both of
its branch targets are either leaves or already have a ChainNode.  The
builder keeps scanning the unresolved blocks until a full pass resolves
nothing.  Whatever is still unresolved at that point (typically blocks on a
successor cycle) is left out of the chain map.

Every newly built node is checked for a shortcut on the spot, which may
absorb heads built earlier into the new node's chain.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Set, Tuple

from .chain import ChainArena, ChainChild, ChainNode, Handle
from .classifier import Classification
from .ctrlflow_graph import BasicBlock
from .errors import DualShortcutError
from .matcher import Match, find_shortcut, walk_up

logger = logging.getLogger(__name__)


class ChainBuilder:
    """Builds the block → ChainNode map for one classified function.

    Parameters
    ----------
    classification:
        The leaf / candidate partition of the function.
    allow_top_only:
        Also build nodes for top-only blocks.  They can head a chain but
        their parents always see them as leaves.
    """

    def __init__(self, classification: Classification, allow_top_only: bool = True):
        self.classification = classification
        self.allow_top_only = allow_top_only
        self.arena = ChainArena()
        self.passes = 0

    # ---- public API --------------------------------------------------

    def build(self) -> ChainArena:
        cls = self.classification
        capable = set(cls.candidate)
        if self.allow_top_only:
            capable |= cls.top_only
        pending = cls.ordered(capable)

        changed = True
        while changed:
            changed = False
            self.passes += 1
            still_pending: List[BasicBlock] = []
            for block in pending:
                if self._try_resolve(block) is None:
                    still_pending.append(block)
                else:
                    changed = True
            pending = still_pending

        logger.debug(
            "built %d chain node(s) in %d pass(es), %d block(s) unresolved",
            len(self.arena), self.passes, len(pending),
        )
        return self.arena

    # ---- resolution --------------------------------------------------

    def _resolve_child(self, target: BasicBlock) -> Optional[ChainChild]:
        if self.classification.is_leaf(target):
            return ChainChild(target)
        if target in self.arena:
            return self.arena.child_for(target, as_leaf=False)
        return None

    def _try_resolve(self, block: BasicBlock) -> Optional[ChainNode]:
        left = self._resolve_child(block.successor(0))
        if left is None:
            return None
        right = self._resolve_child(block.successor(1))
        if right is None:
            return None

        node = self.arena.add(block, left, right)
        self._detect(node)
        return node

    # ---- shortcut detection ------------------------------------------

    def _detect(self, node: ChainNode) -> None:
        left, right = node.left, node.right

        # Search the chain side for the block on the other side.
        if not right.is_leaf:
            match = find_shortcut(self.arena, left.block, right.handle)
            if match is not None:
                self._record(node, match, right.handle, on_left=True)

        if not left.is_leaf:
            match = find_shortcut(self.arena, right.block, left.handle)
            if match is not None:
                if node.has_shortcut:
                    raise DualShortcutError(node.name)
                self._record(node, match, left.handle, on_left=False)

    def _record(self, node: ChainNode, match: Match, root: Handle, on_left: bool) -> None:
        path = walk_up(self.arena, match.midnode, root)
        steps: List[bool] = [match.on_left]
        members: Set[Handle] = set()
        absorbed: List[str] = []

        for member in path:
            if member.handle != root:
                steps.append(member.parent_via_left)
            if member.is_head:
                member.is_head = False
                members |= member.chain_members
                absorbed.append(member.name)
            members.add(member.handle)

        node.is_head = True
        node.has_shortcut = True
        node.shortcut_on_left = on_left
        node.shortcut_on_right = not on_left
        node.chain_path = tuple(reversed(steps))
        node.chain_members = members
        node.chain_member_count = 1 + len(members)

        logger.debug(
            "shortcut at %s via %s (path %s, %d member(s))",
            node.name, self.arena[match.midnode].name,
            node.path_string(), len(members),
        )
        if absorbed:
            logger.debug("%s absorbed head(s): %s", node.name, ", ".join(absorbed))


def build_chains(
    classification: Classification, allow_top_only: bool = True
) -> Tuple[ChainArena, int]:
    """Build the chain map; return the arena and the number of passes run."""
    builder = ChainBuilder(classification, allow_top_only=allow_top_only)
    arena = builder.build()
    return arena, builder.passes
