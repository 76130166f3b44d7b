"""shortcut_detector/config.py - detector configuration and logging setup."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import List, Optional, TextIO

_log = logging.getLogger("shortcut_detector")


@dataclass
class DetectorConfig:
    """Tuning knobs for :class:`~shortcut_detector.detector.ShortcutDetector`."""

    # Branch blocks whose own instructions have side effects may still head
    # a chain; they are never intermediate chain nodes.
    allow_top_only_heads: bool = True

    # Log the leaf / candidate partition of every function at DEBUG level.
    log_classification: bool = True

    # Render the textual chain dump into each FunctionResult.
    emit_report: bool = True

    def validate(self) -> List[str]:
        """Return a list of validation warnings (empty if valid)."""
        warnings: List[str] = []
        for name in ("allow_top_only_heads", "log_classification", "emit_report"):
            if not isinstance(getattr(self, name), bool):
                warnings.append(f"{name} should be a bool")
        return warnings


def configure_logging(verbosity: int, stream: Optional[TextIO] = None) -> None:
    """Set up the ``shortcut_detector`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    stream:
        Destination of log records, ``sys.stderr`` by default.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    target = stream or sys.stderr
    _log.setLevel(level)
    # Calling again for the same stream only changes the level.
    for existing in _log.handlers:
        if isinstance(existing, logging.StreamHandler) and existing.stream is target:
            return

    handler = logging.StreamHandler(target)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    _log.addHandler(handler)
