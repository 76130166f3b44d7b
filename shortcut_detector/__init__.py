"""
shortcut_detector - Short-circuit branch chain detection
========================================================

Finds *shortcut branches* in a function's control flow graph: conditional
branches that are links of a lowered ``a && b`` / ``a || b`` chain rather
than independent ``if`` statements that merely share a successor.

Core modules
------------
ctrlflow_graph
    In-memory host model: functions, basic blocks, instructions, edges.
ctrlflow_analysis
    The dominance oracle protocol and the default dominator tree.
classifier
    Leaf / candidate partition of a function's blocks.
chain
    ChainNode arena, chain children and edges.
matcher
    Breadth-first shortcut pattern search over a chain subtree.
builder
    Fixpoint construction of the chain map.
verify
    Head selection and dominance verification.
edge_graph
    Explicit edge graph for verified chains.
reporter
    Text dumps and shortcut counters.
detector
    The per-function pipeline and the multi-function driver.
cfg_reader
    S-expression function descriptions (needs ``sexpdata``).

Quick start
-----------
>>> from shortcut_detector import parse_function, ShortcutDetector
>>> fn = parse_function('''
... (function f
...   (block b0 (c0 = icmp a 0) (condbr c0 b1 done))
...   (block b1 (c1 = icmp b 0) (condbr c1 done out))
...   (block out (br done))
...   (block done (ret)))
... ''')
>>> ShortcutDetector().run_on_function(fn).stats.shortcut_sets
1
"""

from __future__ import annotations

import importlib
import logging
import sys
import warnings
from typing import Dict, List

__version__ = "0.1.0"
__all__: List[str] = []          # populated below

_log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Registry: (module_name, names_to_reexport)
#   CORE  - failure to import is fatal
#   ADDON - failure only warns (the detector is usable without it)
# ---------------------------------------------------------------------------

_CORE_MODULES: Dict[str, List[str]] = {
    "errors": [
        "ShortcutError",
        "CfgError",
        "CfgParseError",
        "InvariantViolation",
        "DualShortcutError",
        "BrokenUplinkError",
        "ShortcutErrorCodes",
    ],
    "config": [
        "DetectorConfig",
        "configure_logging",
    ],
    "ctrlflow_graph": [
        "Function",
        "BasicBlock",
        "Instruction",
        "CFGEdge",
        "EdgeKind",
        "TerminatorKind",
    ],
    "ctrlflow_analysis": [
        "DominanceOracle",
        "DominatorTree",
    ],
    "classifier": [
        "Classification",
        "classify_blocks",
        "is_only_branch",
        "has_back_edge",
    ],
    "chain": [
        "ChainArena",
        "ChainNode",
        "ChainChild",
        "Edge",
    ],
    "matcher": [
        "Match",
        "find_shortcut",
    ],
    "builder": [
        "ChainBuilder",
        "build_chains",
    ],
    "verify": [
        "select_heads",
        "dominates_chain",
    ],
    "edge_graph": [
        "build_edge_graph",
        "build_chain_edges",
    ],
    "reporter": [
        "Reporter",
        "ShortcutStats",
        "render_chain",
    ],
    "detector": [
        "ShortcutDetector",
        "FunctionResult",
        "analyze_functions",
    ],
}

_ADDON_MODULES: Dict[str, List[str]] = {
    "cfg_reader": [
        "parse_function",
        "parse_module",
        "read_module_file",
    ],
}


def _import_names(module_rel_name: str, names: List[str], *, fatal: bool = True) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        if fatal:
            raise ImportError(
                f"shortcut_detector: required submodule '{module_rel_name}' "
                f"failed to import: {exc}"
            ) from exc
        warnings.warn(
            f"shortcut_detector: optional submodule '{module_rel_name}' "
            f"could not be imported ({exc}); related symbols will be unavailable.",
            ImportWarning,
            stacklevel=2,
        )
        _log.debug("Skipped optional module %s: %s", module_rel_name, exc)
        return

    current_module = sys.modules[__name__]
    for name in names:
        obj = getattr(mod, name, None)
        if obj is None:
            msg = f"shortcut_detector.{module_rel_name} does not export '{name}'"
            if fatal:
                raise AttributeError(msg)
            _log.warning(msg)
            continue
        setattr(current_module, name, obj)
        __all__.append(name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names, fatal=True)

for _mod, _names in _ADDON_MODULES.items():
    _import_names(_mod, _names, fatal=False)

del _mod, _names
