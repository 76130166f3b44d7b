# shortcut_detector/matcher.py
"""
Shortcut pattern matching.

A branch ``P`` whose one child is a leaf (or sub-chain) block ``K`` and
whose other child roots a chain subtree is a shortcut when some node inside
that subtree also branches to ``K``:

::

        P
       / \\
      /   M        <- midnode, found by find_shortcut()
     /   / \\
     K      ...

The search is breadth-first from the subtree root.  While it descends it
writes each ChainNode's ``parent_link`` so that the matched path can be
walked back up afterwards (:func:`walk_up`).
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, Optional, Set

from .chain import ChainArena, ChainNode, Handle
from .ctrlflow_graph import BasicBlock
from .errors import BrokenUplinkError


@dataclass(frozen=True)
class Match:
    """Where the shared target was found.

    ``midnode`` is the ChainNode that branches to the key; ``on_left`` says
    which of its children did.
    """

    midnode: Handle
    on_left: bool


def find_shortcut(
    arena: ChainArena, key: BasicBlock, root: Handle
) -> Optional[Match]:
    """Search the subtree rooted at *root* for a node branching to *key*.

    Leaf children are compared directly; a ChainNode child matches when its
    own block is *key*.  Every ChainNode is visited at most once and the
    first match wins.
    """
    worklist: Deque[Handle] = deque([root])
    marked: Set[Handle] = {root}

    while worklist:
        current = arena[worklist.popleft()]

        if current.left.is_leaf and current.left.block is key:
            return Match(current.handle, True)
        if current.right.is_leaf and current.right.block is key:
            return Match(current.handle, False)

        for child, via_left in ((current.left, True), (current.right, False)):
            if child.is_leaf or child.handle in marked:
                continue
            if child.block is key:
                return Match(current.handle, via_left)
            sub = arena[child.handle]
            sub.parent_link = current.handle
            sub.parent_via_left = via_left
            worklist.append(sub.handle)
            marked.add(sub.handle)

    return None


def walk_up(arena: ChainArena, start: Handle, root: Handle) -> Iterator[ChainNode]:
    """Yield the nodes from *start* up to and including *root*.

    Follows the back-links left by the last :func:`find_shortcut` over
    *root*; a missing link means the search did not produce this path.
    """
    node = arena[start]
    while node.handle != root:
        yield node
        if node.parent_link is None:
            raise BrokenUplinkError(node.name, arena[root].name)
        node = arena[node.parent_link]
    yield node
