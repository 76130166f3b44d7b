# shortcut_detector/errors.py
"""
Error types for the shortcut detector.

Error Hierarchy
───────────────
    ShortcutError (base)
    ├── CfgError             - malformed host model (duplicate names,
    │   │                      unknown targets, missing terminators)
    │   └── CfgParseError    - S-expression syntax / shape errors
    └── InvariantViolation   - detector bugs; fatal for the function
        ├── DualShortcutError
        └── BrokenUplinkError

Error Codes
───────────
Every error carries an :class:`ErrorCode` rendered as ``SCD-NNNN``:

  - 1000-1999: host CFG construction errors
  - 2000-2999: CFG description (S-expression) errors
  - 9000-9999: internal invariant violations

Expected negative outcomes (a branch that is not a shortcut, a head that
fails dominance verification, a block the chain builder cannot resolve) are
*not* errors and never raise.
"""

from __future__ import annotations

from enum import Enum, unique
from typing import Any, Optional


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR CATEGORIES AND CODES
# ═══════════════════════════════════════════════════════════════════════════════

@unique
class ErrorCategory(Enum):
    """Which part of the pipeline an error belongs to."""

    HOST_MODEL = "host-model"
    CFG_SYNTAX = "cfg-syntax"
    INTERNAL = "internal"


class ErrorCode:
    """
    Structured error code ``PREFIX-NNNN``.
    """

    __slots__ = ("prefix", "number", "category")

    def __init__(self, prefix: str, number: int, category: ErrorCategory) -> None:
        self.prefix = prefix
        self.number = number
        self.category = category

    @property
    def code(self) -> str:
        """Get the full error code string."""
        return f"{self.prefix}-{self.number:04d}"

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"ErrorCode({self.code!r}, {self.category.name})"

    def __hash__(self) -> int:
        return hash((self.prefix, self.number))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ErrorCode):
            return self.prefix == other.prefix and self.number == other.number
        if isinstance(other, str):
            return self.code == other
        return False


class ShortcutErrorCodes:
    """Predefined error codes."""

    # Host model
    DUPLICATE_BLOCK = ErrorCode("SCD", 1001, ErrorCategory.HOST_MODEL)
    DUPLICATE_VALUE = ErrorCode("SCD", 1002, ErrorCategory.HOST_MODEL)
    UNKNOWN_BLOCK = ErrorCode("SCD", 1003, ErrorCategory.HOST_MODEL)
    MISSING_TERMINATOR = ErrorCode("SCD", 1004, ErrorCategory.HOST_MODEL)
    TERMINATOR_NOT_LAST = ErrorCode("SCD", 1005, ErrorCategory.HOST_MODEL)
    FOREIGN_BLOCK = ErrorCode("SCD", 1006, ErrorCategory.HOST_MODEL)
    EMPTY_FUNCTION = ErrorCode("SCD", 1007, ErrorCategory.HOST_MODEL)

    # S-expression descriptions
    SEXP_SYNTAX = ErrorCode("SCD", 2001, ErrorCategory.CFG_SYNTAX)
    UNEXPECTED_FORM = ErrorCode("SCD", 2002, ErrorCategory.CFG_SYNTAX)
    BAD_OPERAND = ErrorCode("SCD", 2003, ErrorCategory.CFG_SYNTAX)
    BAD_ARITY = ErrorCode("SCD", 2004, ErrorCategory.CFG_SYNTAX)

    # Internal
    INTERNAL_ERROR = ErrorCode("SCD", 9000, ErrorCategory.INTERNAL)
    DUAL_SHORTCUT = ErrorCode("SCD", 9001, ErrorCategory.INTERNAL)
    BROKEN_UPLINK = ErrorCode("SCD", 9002, ErrorCategory.INTERNAL)
    NOT_A_HEAD = ErrorCode("SCD", 9003, ErrorCategory.INTERNAL)
    EDGES_NOT_BUILT = ErrorCode("SCD", 9004, ErrorCategory.INTERNAL)
    UNREACHABLE_BLOCK = ErrorCode("SCD", 9005, ErrorCategory.INTERNAL)


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION CLASSES
# ═══════════════════════════════════════════════════════════════════════════════

class ShortcutError(Exception):
    """
    Base exception for all shortcut-detector errors.
    """

    default_code: ErrorCode = ShortcutErrorCodes.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        hint: str = "",
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.hint = hint
        self.cause = cause

    def __str__(self) -> str:
        text = f"{self.code}: {self.message}"
        if self.hint:
            text += f" (hint: {self.hint})"
        return text


# ───────────────────────────────────────────────────────────────────────────────
# HOST MODEL ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class CfgError(ShortcutError):
    """The host control-flow graph is malformed."""

    default_code = ShortcutErrorCodes.UNKNOWN_BLOCK


class CfgParseError(CfgError):
    """An S-expression function description could not be read."""

    default_code = ShortcutErrorCodes.UNEXPECTED_FORM

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        form: Any = None,
        function: Optional[str] = None,
        line: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, code=code, **kwargs)
        self.form = form
        self.function = function
        self.line = line

    def __str__(self) -> str:
        text = super().__str__()
        if self.function is not None:
            text += f" (in function '{self.function}'"
            if self.line is not None:
                text += f", line {self.line}"
            text += ")"
        elif self.line is not None:
            text += f" (line {self.line})"
        return text


# ───────────────────────────────────────────────────────────────────────────────
# INTERNAL ERRORS
# ───────────────────────────────────────────────────────────────────────────────

class InvariantViolation(ShortcutError):
    """
    A chain-construction invariant does not hold.

    These are defects in the detector, never a property of the input, so
    the analysis of the current function is abandoned when one is raised.
    """

    default_code = ShortcutErrorCodes.INTERNAL_ERROR


class DualShortcutError(InvariantViolation):
    """A chain node matched a shortcut on both of its children."""

    default_code = ShortcutErrorCodes.DUAL_SHORTCUT

    def __init__(self, block_name: str, **kwargs: Any) -> None:
        super().__init__(
            f"block '{block_name}' has shortcuts on both children",
            **kwargs,
        )
        self.block_name = block_name


class BrokenUplinkError(InvariantViolation):
    """A matched path ended before reaching the searched subtree root."""

    default_code = ShortcutErrorCodes.BROKEN_UPLINK

    def __init__(self, block_name: str, root_name: str, **kwargs: Any) -> None:
        super().__init__(
            f"parent link of '{block_name}' is missing while walking "
            f"back to '{root_name}'",
            **kwargs,
        )
        self.block_name = block_name
        self.root_name = root_name
