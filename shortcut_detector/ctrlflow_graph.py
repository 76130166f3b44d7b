"""
shortcut_detector.ctrlflow_graph
================================

In-memory host model of a function's control flow graph.

A :class:`Function` owns an ordered list of :class:`BasicBlock` objects (the
first one is the entry).  Every block holds straight-line
:class:`Instruction` objects and ends in exactly one terminator.  Successor
edges are derived from the terminator's targets and kept as
:class:`CFGEdge` objects on both endpoints.

The model is deliberately close to an SSA compiler IR: instructions know
their operands *and* their users, and each instruction carries a
``may_write_memory`` flag decided once at construction.  That is all the
shortcut detector needs from a host.

Public API
----------
    EdgeKind         - classification of a successor edge
    TerminatorKind   - closed variant over terminator shapes
    Instruction      - a single IR instruction
    BasicBlock       - a basic block
    CFGEdge          - a directed edge between two blocks
    Function         - the control flow graph for one function

Typical usage::

    from shortcut_detector.ctrlflow_graph import Function

    fn = Function("f")
    entry, then, done = fn.add_block("entry"), fn.add_block("then"), fn.add_block("done")
    cond = fn.add_instruction(entry, "icmp", ["a", "b"], name="c")
    fn.branch(entry, cond, then, done)
    fn.jump(then, done)
    fn.ret(done)
"""

from __future__ import annotations

import enum
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Union,
)

from .errors import CfgError, ShortcutErrorCodes

# ---------------------------------------------------------------------------
# Edge / terminator kinds
# ---------------------------------------------------------------------------


class EdgeKind(enum.Enum):
    """Classification of a CFG edge."""

    JUMP = "jump"
    BRANCH_TRUE = "branch-true"
    BRANCH_FALSE = "branch-false"
    SWITCH_CASE = "switch-case"
    SWITCH_DEFAULT = "switch-default"


class TerminatorKind(enum.Enum):
    """Shape of a block terminator, as far as the detector cares."""

    UNCONDITIONAL = "unconditional"
    CONDITIONAL = "conditional"
    OTHER = "other"            # ret, unreachable, switch


TERMINATOR_OPCODES: FrozenSet[str] = frozenset(
    {"br", "condbr", "ret", "unreachable", "switch"}
)

# Opcodes whose default memory effect is a write.
MEMORY_WRITING_OPCODES: FrozenSet[str] = frozenset(
    {
        "store",
        "call",
        "invoke",
        "atomicrmw",
        "cmpxchg",
        "fence",
        "memcpy",
        "memmove",
        "memset",
    }
)

# An operand is either another instruction of the function or an external
# value (argument, constant, global) kept as its spelling.
Operand = Union["Instruction", str, int]

# ---------------------------------------------------------------------------
# Identifiers
# ---------------------------------------------------------------------------

_next_node_id: int = 0


def _fresh_node_id() -> int:
    global _next_node_id
    nid = _next_node_id
    _next_node_id += 1
    return nid


def reset_node_counter() -> None:
    """Reset the global node-id counter (useful for deterministic tests)."""
    global _next_node_id
    _next_node_id = 0


# ---------------------------------------------------------------------------
# Instruction
# ---------------------------------------------------------------------------

class Instruction:
    """A single instruction.

    Attributes
    ----------
    opcode : str
        Operation name (``"icmp"``, ``"store"``, ``"condbr"``, …).
    name : str or None
        Name of the produced value, ``None`` for unnamed instructions.
    operands : list
        Instructions of the same function, or external values.
    users : list[Instruction]
        Instructions that have this one among their operands.  An
        instruction used twice by the same user appears twice.
    targets : list[BasicBlock]
        Successor blocks, non-empty only for branching terminators.
    block : BasicBlock or None
        The block this instruction has been appended to.
    may_write_memory : bool
        Whether executing the instruction may store to memory.
    """

    __slots__ = (
        "id",
        "opcode",
        "name",
        "operands",
        "users",
        "targets",
        "block",
        "may_write_memory",
    )

    def __init__(
        self,
        opcode: str,
        name: Optional[str] = None,
        may_write_memory: Optional[bool] = None,
    ) -> None:
        self.id: int = _fresh_node_id()
        self.opcode = opcode
        self.name = name
        self.operands: List[Operand] = []
        self.users: List[Instruction] = []
        self.targets: List[BasicBlock] = []
        self.block: Optional[BasicBlock] = None
        if may_write_memory is None:
            may_write_memory = opcode in MEMORY_WRITING_OPCODES
        self.may_write_memory: bool = may_write_memory

    @property
    def is_terminator(self) -> bool:
        return self.opcode in TERMINATOR_OPCODES

    def add_operand(self, value: Operand) -> None:
        """Append *value* to the operands, recording the use on instructions."""
        self.operands.append(value)
        if isinstance(value, Instruction):
            value.users.append(self)

    def label(self) -> str:
        parts = [self.opcode]
        for op in self.operands:
            if isinstance(op, Instruction):
                parts.append(op.name or f"#{op.id}")
            else:
                parts.append(str(op))
        parts.extend(t.name for t in self.targets)
        text = " ".join(parts)
        if self.name:
            text = f"{self.name} = {text}"
        return text

    def __repr__(self) -> str:
        return f"Instruction({self.label()!r})"

    def __hash__(self) -> int:
        return self.id

    def __eq__(self, other) -> bool:
        if isinstance(other, Instruction):
            return self.id == other.id
        return NotImplemented


# ---------------------------------------------------------------------------
# BasicBlock
# ---------------------------------------------------------------------------

class BasicBlock:
    """A basic block in the CFG.

    Attributes
    ----------
    id : int
        Unique (per-process) numeric identifier.
    name : str
        Block label, unique within its function.
    instructions : list[Instruction]
        Ordered instructions; the last one is the terminator once the block
        is complete.
    successors : list[CFGEdge]
        Outgoing edges, in terminator target order.
    predecessors : list[CFGEdge]
        Incoming edges.
    """

    __slots__ = (
        "id",
        "name",
        "function",
        "instructions",
        "successors",
        "predecessors",
    )

    def __init__(self, name: str, function: Optional["Function"] = None) -> None:
        self.id: int = _fresh_node_id()
        self.name = name
        self.function = function
        self.instructions: List[Instruction] = []
        self.successors: List[CFGEdge] = []
        self.predecessors: List[CFGEdge] = []

    # ----- helpers ----------------------------------------------------------

    @property
    def terminator(self) -> Optional[Instruction]:
        """The block terminator, or ``None`` while the block is incomplete."""
        if self.instructions and self.instructions[-1].is_terminator:
            return self.instructions[-1]
        return None

    @property
    def terminator_kind(self) -> TerminatorKind:
        term = self.terminator
        if term is None:
            return TerminatorKind.OTHER
        if term.opcode in ("br", "condbr"):
            if len(term.targets) == 2:
                return TerminatorKind.CONDITIONAL
            if len(term.targets) == 1:
                return TerminatorKind.UNCONDITIONAL
        return TerminatorKind.OTHER

    def successor(self, index: int) -> "BasicBlock":
        """Return the *index*-th terminator target."""
        term = self.terminator
        if term is None or index >= len(term.targets):
            raise CfgError(
                f"block '{self.name}' has no successor #{index}",
                code=ShortcutErrorCodes.UNKNOWN_BLOCK,
            )
        return term.targets[index]

    def successor_blocks(self) -> List["BasicBlock"]:
        return [e.dst for e in self.successors]

    def predecessor_blocks(self) -> List["BasicBlock"]:
        return [e.src for e in self.predecessors]

    def __repr__(self) -> str:
        return (
            f"BasicBlock({self.name!r}, ninstrs={len(self.instructions)}, "
            f"nsuccs={len(self.successors)})"
        )

    def __hash__(self) -> int:
        return self.id

    def __eq__(self, other) -> bool:
        if isinstance(other, BasicBlock):
            return self.id == other.id
        return NotImplemented


# ---------------------------------------------------------------------------
# CFGEdge
# ---------------------------------------------------------------------------

class CFGEdge:
    """A directed edge in the CFG.

    Attributes
    ----------
    src : BasicBlock
    dst : BasicBlock
    kind : EdgeKind
    label : str or None
        Optional auxiliary label (e.g. the case index for SWITCH_CASE).
    """

    __slots__ = ("src", "dst", "kind", "label")

    def __init__(
        self,
        src: BasicBlock,
        dst: BasicBlock,
        kind: EdgeKind = EdgeKind.JUMP,
        label: Optional[str] = None,
    ) -> None:
        self.src = src
        self.dst = dst
        self.kind = kind
        self.label = label

    def __repr__(self) -> str:
        return (
            f"CFGEdge({self.src.name} -> {self.dst.name}, "
            f"kind={self.kind.value!r})"
        )

    def __hash__(self) -> int:
        return hash((self.src.id, self.dst.id, self.kind, self.label))

    def __eq__(self, other) -> bool:
        if isinstance(other, CFGEdge):
            return (
                self.src.id == other.src.id
                and self.dst.id == other.dst.id
                and self.kind == other.kind
                and self.label == other.label
            )
        return NotImplemented


# ---------------------------------------------------------------------------
# Function
# ---------------------------------------------------------------------------

class Function:
    """Control flow graph of a single function.

    Attributes
    ----------
    name : str
    blocks : list[BasicBlock]
        All blocks in layout order; ``blocks[0]`` is the entry.
    edges : list[CFGEdge]
        All successor edges.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.blocks: List[BasicBlock] = []
        self.edges: List[CFGEdge] = []
        self._blocks_by_name: Dict[str, BasicBlock] = {}
        self._values_by_name: Dict[str, Instruction] = {}

    # ----- graph mutation ---------------------------------------------------

    @property
    def entry(self) -> BasicBlock:
        if not self.blocks:
            raise CfgError(
                f"function '{self.name}' has no blocks",
                code=ShortcutErrorCodes.EMPTY_FUNCTION,
            )
        return self.blocks[0]

    def add_block(self, name: str) -> BasicBlock:
        """Create a block called *name* at the end of the layout."""
        if name in self._blocks_by_name:
            raise CfgError(
                f"duplicate block '{name}' in function '{self.name}'",
                code=ShortcutErrorCodes.DUPLICATE_BLOCK,
            )
        block = BasicBlock(name, self)
        self.blocks.append(block)
        self._blocks_by_name[name] = block
        return block

    def add_instruction(
        self,
        block: BasicBlock,
        opcode: str,
        operands: Iterable[Operand] = (),
        name: Optional[str] = None,
        may_write_memory: Optional[bool] = None,
    ) -> Instruction:
        """Append a non-terminator instruction to *block*."""
        self._check_owned(block)
        if block.terminator is not None:
            raise CfgError(
                f"block '{block.name}' is already terminated",
                code=ShortcutErrorCodes.TERMINATOR_NOT_LAST,
            )
        inst = Instruction(opcode, name=name, may_write_memory=may_write_memory)
        self._register_value(inst)
        for op in operands:
            inst.add_operand(op)
        self._append(block, inst)
        return inst

    def jump(self, block: BasicBlock, target: BasicBlock) -> Instruction:
        return self._terminate(block, "br", (), [(target, EdgeKind.JUMP, None)])

    def branch(
        self,
        block: BasicBlock,
        condition: Operand,
        if_true: BasicBlock,
        if_false: BasicBlock,
    ) -> Instruction:
        """Terminate *block* with a two-way branch (``if_true`` is the left child)."""
        return self._terminate(
            block,
            "condbr",
            (condition,),
            [
                (if_true, EdgeKind.BRANCH_TRUE, None),
                (if_false, EdgeKind.BRANCH_FALSE, None),
            ],
        )

    def switch(
        self,
        block: BasicBlock,
        condition: Operand,
        default: BasicBlock,
        cases: Sequence[BasicBlock],
    ) -> Instruction:
        targets = [(default, EdgeKind.SWITCH_DEFAULT, None)]
        targets.extend(
            (case, EdgeKind.SWITCH_CASE, str(i)) for i, case in enumerate(cases)
        )
        return self._terminate(block, "switch", (condition,), targets)

    def ret(self, block: BasicBlock, value: Optional[Operand] = None) -> Instruction:
        operands = () if value is None else (value,)
        return self._terminate(block, "ret", operands, [])

    def unreachable(self, block: BasicBlock) -> Instruction:
        return self._terminate(block, "unreachable", (), [])

    def add_edge(
        self,
        src: BasicBlock,
        dst: BasicBlock,
        kind: EdgeKind = EdgeKind.JUMP,
        label: Optional[str] = None,
    ) -> CFGEdge:
        """Create an edge, register it, and wire up predecessor/successor lists."""
        e = CFGEdge(src, dst, kind=kind, label=label)
        self.edges.append(e)
        src.successors.append(e)
        dst.predecessors.append(e)
        return e

    # ----- queries ----------------------------------------------------------

    def block(self, name: str) -> BasicBlock:
        """Return the block called *name*."""
        try:
            return self._blocks_by_name[name]
        except KeyError:
            raise CfgError(
                f"function '{self.name}' has no block '{name}'",
                code=ShortcutErrorCodes.UNKNOWN_BLOCK,
            ) from None

    def has_block(self, name: str) -> bool:
        return name in self._blocks_by_name

    def value(self, name: str) -> Optional[Instruction]:
        """Return the instruction producing *name*, or ``None``."""
        return self._values_by_name.get(name)

    def reachable_from(self, start: BasicBlock) -> Set[BasicBlock]:
        """Return the set of blocks reachable from *start*."""
        visited: Set[BasicBlock] = set()
        worklist = [start]
        while worklist:
            n = worklist.pop()
            if n in visited:
                continue
            visited.add(n)
            for e in n.successors:
                worklist.append(e.dst)
        return visited

    # ----- serialisation helpers --------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation of this function."""
        lines = ["digraph CFG {"]
        if title:
            lines.append(f'  label="{title}";')
        lines.append("  node [shape=box, fontname=monospace, fontsize=10];")
        for b in self.blocks:
            body = "\\l".join(
                i.label().replace('"', '\\"') for i in b.instructions
            )
            lines.append(f'  "{b.name}" [label="{b.name}:\\l{body}\\l"];')
        for e in self.edges:
            style = ""
            elabel = e.kind.value
            if e.label:
                elabel += f": {e.label}"
            if e.kind == EdgeKind.BRANCH_TRUE:
                style = ', color=green, fontcolor=green'
            elif e.kind == EdgeKind.BRANCH_FALSE:
                style = ', color=red, fontcolor=red'
            lines.append(
                f'  "{e.src.name}" -> "{e.dst.name}" '
                f'[label="{elabel}"{style}];'
            )
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"Function(name={self.name!r}, blocks={len(self.blocks)}, "
            f"edges={len(self.edges)})"
        )

    # ----- internals --------------------------------------------------------

    def _check_owned(self, block: BasicBlock) -> None:
        if block.function is not self:
            raise CfgError(
                f"block '{block.name}' does not belong to function '{self.name}'",
                code=ShortcutErrorCodes.FOREIGN_BLOCK,
            )

    def _register_value(self, inst: Instruction) -> None:
        if inst.name is None:
            return
        if inst.name in self._values_by_name:
            raise CfgError(
                f"duplicate value '{inst.name}' in function '{self.name}'",
                code=ShortcutErrorCodes.DUPLICATE_VALUE,
            )
        self._values_by_name[inst.name] = inst

    def _append(self, block: BasicBlock, inst: Instruction) -> None:
        inst.block = block
        block.instructions.append(inst)

    def _terminate(self, block, opcode, operands, targets) -> Instruction:
        self._check_owned(block)
        if block.terminator is not None:
            raise CfgError(
                f"block '{block.name}' is already terminated",
                code=ShortcutErrorCodes.TERMINATOR_NOT_LAST,
            )
        inst = Instruction(opcode, may_write_memory=False)
        for op in operands:
            inst.add_operand(op)
        for target, kind, label in targets:
            self._check_owned(target)
            inst.targets.append(target)
            self.add_edge(block, target, kind=kind, label=label)
        self._append(block, inst)
        return inst
