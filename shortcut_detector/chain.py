# shortcut_detector/chain.py
"""
Chain tree data model.

ChainNodes live in a :class:`ChainArena` and refer to each other through
integer handles (their index in the arena).  A child is either a leaf
block or the handle of another ChainNode; the back-link written by the
pattern matcher is a handle too, so absorbing a head into a larger chain is
just a flag flip on its arena slot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .ctrlflow_graph import BasicBlock

Handle = int


@dataclass(frozen=True)
class ChainChild:
    """One child of a ChainNode.

    ``block`` is always the child's block; ``handle`` is set when the child
    is itself a ChainNode.
    """

    block: BasicBlock
    handle: Optional[Handle] = None

    @property
    def is_leaf(self) -> bool:
        return self.handle is None


@dataclass(eq=False)
class Edge:
    """A directed edge from a chain node to one of its children's blocks.

    The two attribute slots are reserved for instrumentation metadata.
    """

    source: Handle
    destination: BasicBlock
    propagated_attribute: Any = None
    fixed_attribute: Any = None


@dataclass
class ChainNode:
    handle: Handle
    block: BasicBlock
    left: ChainChild
    right: ChainChild
    level: int = 0
    is_head: bool = False
    has_shortcut: bool = False
    shortcut_on_left: bool = False
    shortcut_on_right: bool = False
    chain_path: Tuple[bool, ...] = ()
    chain_member_count: int = 0
    chain_members: Set[Handle] = field(default_factory=set)
    parent_link: Optional[Handle] = None
    parent_via_left: bool = False
    out_edges: Optional[Tuple[Edge, Edge]] = None
    in_edges: List[Edge] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.block.name

    def children(self) -> Tuple[ChainChild, ChainChild]:
        return (self.left, self.right)

    def child_handles(self) -> List[Handle]:
        return [c.handle for c in (self.left, self.right) if c.handle is not None]

    def path_string(self) -> str:
        return "".join("L" if step else "R" for step in self.chain_path)

    def __repr__(self) -> str:
        return (
            f"ChainNode({self.name!r}, L={self.level}, head={self.is_head}, "
            f"members={self.chain_member_count})"
        )


class ChainArena:
    """Owns every ChainNode of one function analysis, keyed by block."""

    def __init__(self) -> None:
        self._nodes: List[ChainNode] = []
        self._by_block: Dict[BasicBlock, Handle] = {}

    def add(self, block: BasicBlock, left: ChainChild, right: ChainChild) -> ChainNode:
        if block in self._by_block:
            raise ValueError(f"block '{block.name}' already has a chain node")
        levels = [self[c.handle].level for c in (left, right) if c.handle is not None]
        node = ChainNode(
            handle=len(self._nodes),
            block=block,
            left=left,
            right=right,
            level=1 + max(levels) if levels else 0,
        )
        self._nodes.append(node)
        self._by_block[block] = node.handle
        return node

    def __getitem__(self, handle: Handle) -> ChainNode:
        return self._nodes[handle]

    def __contains__(self, block: BasicBlock) -> bool:
        return block in self._by_block

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ChainNode]:
        return iter(self._nodes)

    def get(self, block: BasicBlock) -> Optional[ChainNode]:
        handle = self._by_block.get(block)
        return None if handle is None else self._nodes[handle]

    def child_for(self, block: BasicBlock, as_leaf: bool) -> ChainChild:
        if as_leaf:
            return ChainChild(block)
        return ChainChild(block, self._by_block[block])

    def heads(self) -> List[ChainNode]:
        return [n for n in self._nodes if n.is_head]
