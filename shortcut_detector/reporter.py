# shortcut_detector/reporter.py
"""
Textual chain dumps and shortcut counters.

For every verified head the reporter renders the chain as an indented
tree::

     -B0 L(1) (Head) (haveSC) path(L) (isrightSC)
       Edge(B0->B1) propgtRep:null;fixRep:null
       Edge(B0->L) propgtRep:null;fixRep:null
      |-B1 L(0)
      |  Edge(B1->L) propgtRep:null;fixRep:null
      |  Edge(B1->R) propgtRep:null;fixRep:null
      | |L (leaf)
      |  R (leaf)
       L (leaf)

and adds the head's member count to the shortcut total and one to the
shortcut-set total.  Rendering only reads the chain arena, so reporting
the same arena twice gives the same text and the same counts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Set, Tuple, Union

from .chain import ChainArena, ChainNode, Edge, Handle
from .errors import InvariantViolation, ShortcutErrorCodes

logger = logging.getLogger(__name__)


# ===================================================================
#  Counters
# ===================================================================

@dataclass
class ShortcutStats:
    """Shortcut counters, local to one function or summed over many."""

    functions: int = 0
    shortcuts: int = 0
    shortcut_sets: int = 0
    failed_verification: int = 0

    def merge(self, other: "ShortcutStats") -> "ShortcutStats":
        """Add *other* into this accumulator in place and return it."""
        self.functions += other.functions
        self.shortcuts += other.shortcuts
        self.shortcut_sets += other.shortcut_sets
        self.failed_verification += other.failed_verification
        return self

    def __add__(self, other: "ShortcutStats") -> "ShortcutStats":
        if not isinstance(other, ShortcutStats):
            return NotImplemented
        return ShortcutStats().merge(self).merge(other)

    def as_dict(self) -> dict:
        return {
            "functions": self.functions,
            "shortcuts": self.shortcuts,
            "shortcut_sets": self.shortcut_sets,
            "failed_verification": self.failed_verification,
        }


# ===================================================================
#  Rendering
# ===================================================================

def _attr(value: Any) -> str:
    return "null" if value is None else str(value)


def render_edge(arena: ChainArena, edge: Edge, prefix: str) -> str:
    return (
        f"{prefix}  Edge({arena[edge.source].name}->{edge.destination.name}) "
        f"propgtRep:{_attr(edge.propagated_attribute)};"
        f"fixRep:{_attr(edge.fixed_attribute)}\n"
    )


def render_node(
    arena: ChainArena,
    node: ChainNode,
    prefix: str,
    scope: Set[Handle],
    head: ChainNode,
) -> str:
    """Render *node* and, if it belongs to *head*'s chain, its subtree.

    The subtree is walked with an explicit stack whose items are either
    finished text or a ``(node, prefix)`` pair still to be expanded.
    """
    parts: List[str] = []
    stack: List[Union[str, Tuple[ChainNode, str]]] = [(node, prefix)]

    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
            continue
        current, pfx = item

        line = f"{pfx}-{current.name} L({current.level})"
        if current.is_head:
            line += " (Head)"
        if current.has_shortcut:
            line += f" (haveSC) path({current.path_string()})"
        if current.shortcut_on_left:
            line += " (isleftSC)"
        if current.shortcut_on_right:
            line += " (isrightSC)"
        parts.append(line + "\n")

        if current is not head and current.handle not in scope:
            continue

        if current.out_edges is None:
            raise InvariantViolation(
                f"edges of chain node '{current.name}' were not built",
                code=ShortcutErrorCodes.EDGES_NOT_BUILT,
            )
        for edge in current.out_edges:
            parts.append(render_edge(arena, edge, pfx))

        # Right is pushed first so the left subtree is emitted before it.
        if current.right.is_leaf:
            stack.append(f"{pfx}  {current.right.block.name} (leaf)\n")
        else:
            stack.append((arena[current.right.handle], pfx + "  "))
        if current.left.is_leaf:
            stack.append(f"{pfx} |{current.left.block.name} (leaf)\n")
        else:
            stack.append((arena[current.left.handle], pfx + " |"))

    return "".join(parts)


def render_chain(arena: ChainArena, head: ChainNode) -> str:
    """Render the chain rooted at the verified *head*."""
    if not head.is_head:
        raise InvariantViolation(
            f"'{head.name}' is not a chain head",
            code=ShortcutErrorCodes.NOT_A_HEAD,
        )
    body = render_node(arena, head, " ", head.chain_members, head)
    return f"----Dump start from {head.name}------\n{body}\n"


class Reporter:
    """Renders one function's verified chains and counts its shortcuts."""

    def __init__(self, function_name: str, arena: ChainArena) -> None:
        self.function_name = function_name
        self.arena = arena

    def count(self, heads: Sequence[ChainNode], failed: int = 0) -> ShortcutStats:
        stats = ShortcutStats(functions=1, failed_verification=failed)
        for head in heads:
            stats.shortcuts += head.chain_member_count
            stats.shortcut_sets += 1
        return stats

    def render(
        self,
        heads: Sequence[ChainNode],
        failed: int = 0,
        stats: Optional[ShortcutStats] = None,
    ) -> str:
        if stats is None:
            stats = self.count(heads, failed)
        logger.debug("%s: rendering %d chain(s)", self.function_name, len(heads))
        lines: List[str] = [f"**********func: {self.function_name} ********\n"]
        for head in heads:
            lines.append(render_chain(self.arena, head))
        lines.append(f"local shortcut number: {stats.shortcuts}\n")
        lines.append(f"local shortcut sets (nested if): {stats.shortcut_sets}\n")
        lines.append(
            f"local sets that failed domination Verify: {stats.failed_verification}\n"
        )
        return "".join(lines)
