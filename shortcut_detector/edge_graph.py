# shortcut_detector/edge_graph.py
"""
Explicit edge graph for verified chains.

Each node of a verified chain gets two out-edges, one per child.  An edge
that lands on a ChainNode of the same chain is also recorded among that
node's in-edges, so the chain can be walked as a plain graph without going
back to the build-time shape pointers.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Iterable, Set

from .chain import ChainArena, ChainNode, Edge, Handle

logger = logging.getLogger(__name__)


def build_out_edges(node: ChainNode) -> None:
    """Create *node*'s two out-edges unless they already exist."""
    if node.out_edges is None:
        node.out_edges = (
            Edge(node.handle, node.left.block),
            Edge(node.handle, node.right.block),
        )


def build_chain_edges(arena: ChainArena, head: ChainNode) -> Set[Handle]:
    """Materialise the edges of *head*'s chain.

    Breadth-first from the head, bounded to ``head.chain_members``.
    Returns the handles visited.
    """
    scope = head.chain_members
    worklist: Deque[Handle] = deque([head.handle])
    marked: Set[Handle] = set()

    while worklist:
        handle = worklist.popleft()
        if handle in marked:
            continue
        marked.add(handle)
        node = arena[handle]
        build_out_edges(node)

        for child, edge in zip(node.children(), node.out_edges):
            if child.is_leaf or child.handle not in scope:
                continue
            target = arena[child.handle]
            if not any(e is edge for e in target.in_edges):
                target.in_edges.append(edge)
            worklist.append(child.handle)

    logger.debug(
        "edges built for chain %s: %d node(s)", head.name, len(marked)
    )
    return marked


def build_edge_graph(arena: ChainArena, heads: Iterable[ChainNode]) -> None:
    for head in heads:
        build_chain_edges(arena, head)
