# shortcut_detector/detector.py
"""
Shortcut detector facade.

Runs the per-function pipeline

    Classify → Build → SelectHeads → VerifyDominance → BuildEdges → Report

and hands back everything it derived in a :class:`FunctionResult`.  The
analysed function is only read, never modified.  Totals over several
functions are kept in a :class:`ShortcutStats` accumulator owned by the
caller; nothing is shared between two ``run_on_function`` calls.

Usage::

    from shortcut_detector import ShortcutDetector

    result = ShortcutDetector().run_on_function(fn)
    print(result.report)
    print(result.stats.shortcuts, result.stats.shortcut_sets)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .builder import ChainBuilder
from .chain import ChainArena, ChainNode
from .classifier import Classification, classify_blocks
from .config import DetectorConfig
from .ctrlflow_analysis import DominanceOracle, DominatorTree
from .ctrlflow_graph import Function
from .edge_graph import build_edge_graph
from .reporter import Reporter, ShortcutStats
from .verify import select_heads

logger = logging.getLogger(__name__)

__all__ = [
    "FunctionResult",
    "ShortcutDetector",
    "ShortcutStats",
    "analyze_functions",
]


@dataclass
class FunctionResult:
    """Everything the detector derived for one function."""

    function: Function
    classification: Classification
    arena: ChainArena
    heads: List[ChainNode] = field(default_factory=list)
    failed_heads: List[ChainNode] = field(default_factory=list)
    builder_passes: int = 0
    stats: ShortcutStats = field(default_factory=ShortcutStats)
    report: str = ""

    @property
    def head_names(self) -> List[str]:
        return [h.name for h in self.heads]

    def node(self, block_name: str) -> Optional[ChainNode]:
        """ChainNode of the block called *block_name*, if one was built."""
        if not self.function.has_block(block_name):
            return None
        return self.arena.get(self.function.block(block_name))

    def render(self) -> str:
        """Re-render the report from the stored chains."""
        reporter = Reporter(self.function.name, self.arena)
        return reporter.render(self.heads, len(self.failed_heads))


class ShortcutDetector:
    """Finds shortcut branch chains in functions, one function at a time."""

    def __init__(self, config: Optional[DetectorConfig] = None) -> None:
        self.config = config or DetectorConfig()
        for warning in self.config.validate():
            logger.warning("config: %s", warning)

    def run_on_function(
        self,
        function: Function,
        oracle: Optional[DominanceOracle] = None,
    ) -> FunctionResult:
        """Analyse *function*.

        *oracle* answers dominance queries; a :class:`DominatorTree` is
        computed when none is supplied.  Invariant violations propagate and
        no partial result is returned.
        """
        cfg = self.config
        if not function.blocks:
            logger.debug("%s: no blocks, nothing to analyse", function.name)
            return self._empty_result(function)
        if oracle is None:
            oracle = DominatorTree(function).compute()

        classification = classify_blocks(
            function, oracle, log_sets=cfg.log_classification
        )

        builder = ChainBuilder(classification, allow_top_only=cfg.allow_top_only_heads)
        arena = builder.build()

        heads, failed = select_heads(arena, oracle, classification.order)
        build_edge_graph(arena, heads)

        reporter = Reporter(function.name, arena)
        stats = reporter.count(heads, len(failed))
        report = reporter.render(heads, len(failed), stats) if cfg.emit_report else ""

        logger.info(
            "%s: %d shortcut(s) in %d set(s), %d set(s) failed verification",
            function.name, stats.shortcuts, stats.shortcut_sets,
            stats.failed_verification,
        )
        return FunctionResult(
            function=function,
            classification=classification,
            arena=arena,
            heads=heads,
            failed_heads=failed,
            builder_passes=builder.passes,
            stats=stats,
            report=report,
        )

    def _empty_result(self, function: Function) -> FunctionResult:
        # Declarations have no body; they still count as analysed functions.
        arena = ChainArena()
        reporter = Reporter(function.name, arena)
        stats = reporter.count([])
        return FunctionResult(
            function=function,
            classification=Classification(),
            arena=arena,
            stats=stats,
            report=reporter.render([], 0, stats) if self.config.emit_report else "",
        )


def analyze_functions(
    functions: Iterable[Function],
    config: Optional[DetectorConfig] = None,
    stats: Optional[ShortcutStats] = None,
) -> Tuple[List[FunctionResult], ShortcutStats]:
    """Run the detector over *functions* in order.

    Local counts are merged into *stats* (a fresh accumulator when omitted),
    which is returned together with the per-function results.
    """
    detector = ShortcutDetector(config)
    totals = stats if stats is not None else ShortcutStats()
    results: List[FunctionResult] = []
    for function in functions:
        result = detector.run_on_function(function)
        totals.merge(result.stats)
        results.append(result)
    return results, totals
