"""shortcut_detector/cfg_reader.py – S-expression → host CFG reader.

Builds :class:`~shortcut_detector.ctrlflow_graph.Function` objects from a
small S-expression description, parsed with ``sexpdata``.

Surface syntax
--------------
::

    (module <name> (function ...) ...)
    (function <name> <block> ...)          ;; first block is the entry
    (block <name> <form> ...)              ;; last form is the terminator

    ;; instructions
    (<value> = <opcode> <operand> ... [:writes | :pure])
    (<opcode> <operand> ... [:writes | :pure])

    ;; terminators
    (br <target>)
    (condbr <cond> <if-true> <if-false>)
    (ret [<value>])
    (unreachable)
    (switch <cond> <default> <target> ...)

An operand that names a value defined anywhere in the function becomes a
def-use link (forward references are fine).  Any other symbol, string or
number is kept as an external value.  ``:writes`` / ``:pure`` override the
opcode's default memory effect.

Public API
----------
``parse_function(text) -> Function``
``parse_module(text) -> List[Function]``
``read_module_file(path) -> List[Function]``
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

try:
    import sexpdata
    from sexpdata import Symbol
except ImportError:  # pragma: no cover
    raise ImportError(
        "The 'sexpdata' package is required to read CFG descriptions. "
        "Install it with:  pip install sexpdata"
    )

from .ctrlflow_graph import BasicBlock, Function, Instruction, Operand
from .errors import CfgError, CfgParseError, ShortcutErrorCodes

Sexp = Any

_FLAGS = {":writes": True, ":pure": False}


# ═══════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════

def _show(s: Sexp) -> str:
    try:
        return sexpdata.dumps(s)
    except Exception:
        return repr(s)


def _sym_name(s: Sexp) -> str:
    if isinstance(s, Symbol):
        return s.value()
    raise CfgParseError(
        f"expected symbol, got {type(s).__name__}: {_show(s)}", form=s
    )


def _as_name(s: Sexp) -> str:
    """Block, function and value names may be symbols or string literals."""
    if isinstance(s, Symbol):
        return s.value()
    if isinstance(s, str):
        return s
    if isinstance(s, int) and not isinstance(s, bool):
        return str(s)
    raise CfgParseError(
        f"expected a name, got {type(s).__name__}: {_show(s)}", form=s
    )


def _expect_list(s: Sexp, *, min_len: int = 0, tag: Optional[str] = None) -> list:
    if not isinstance(s, list):
        raise CfgParseError(
            f"expected list{f' ({tag} ...)' if tag else ''}, got {_show(s)}",
            form=s,
        )
    if len(s) < min_len:
        raise CfgParseError(
            f"form too short: expected at least {min_len} elements: {_show(s)}",
            code=ShortcutErrorCodes.BAD_ARITY,
            form=s,
        )
    if tag is not None and (not s or not isinstance(s[0], Symbol) or s[0].value() != tag):
        raise CfgParseError(f"expected ({tag} ...), got {_show(s)}", form=s)
    return s


def _head(s: list) -> str:
    if not s:
        raise CfgParseError("unexpected empty list", form=s)
    return _sym_name(s[0])


def _loads(text: str) -> list:
    # sexpdata reads one form; wrap so several top-level forms are allowed.
    try:
        return sexpdata.loads(f"({text})", nil=None, true=None, false=None)
    except Exception as e:
        raise CfgParseError(
            f"S-expression syntax error: {e}",
            code=ShortcutErrorCodes.SEXP_SYNTAX,
            cause=e,
        ) from e


# ═══════════════════════════════════════════════════════════════════════
#  Instruction forms
# ═══════════════════════════════════════════════════════════════════════

class _InstrForm:
    """An instruction form split into its parts, not yet materialised."""

    __slots__ = ("form", "name", "opcode", "operands", "writes")

    def __init__(self, form: list) -> None:
        self.form = form
        items = list(form)
        self.writes: Optional[bool] = None
        while items and isinstance(items[-1], Symbol) and items[-1].value() in _FLAGS:
            self.writes = _FLAGS[items.pop().value()]

        self.name: Optional[str] = None
        if len(items) >= 2 and isinstance(items[1], Symbol) and items[1].value() == "=":
            if len(items) < 3:
                raise CfgParseError(
                    f"named instruction without opcode: {_show(form)}",
                    code=ShortcutErrorCodes.BAD_ARITY,
                    form=form,
                )
            self.name = _as_name(items[0])
            items = items[2:]
        if not items:
            raise CfgParseError("empty instruction form", form=form)
        self.opcode = _sym_name(items[0])
        self.operands: List[Sexp] = items[1:]


def _split_block(form: Sexp) -> Tuple[str, List[_InstrForm], list]:
    lst = _expect_list(form, min_len=2, tag="block")
    name = _as_name(lst[1])
    body = [_expect_list(f, min_len=1) for f in lst[2:]]
    if not body or _head(body[-1]) not in _TERMINATORS:
        raise CfgParseError(
            f"block '{name}' does not end in a terminator",
            code=ShortcutErrorCodes.MISSING_TERMINATOR,
            form=form,
        )
    instrs = []
    for f in body[:-1]:
        if _head(f) in _TERMINATORS:
            raise CfgParseError(
                f"terminator inside block '{name}' is not the last form",
                code=ShortcutErrorCodes.TERMINATOR_NOT_LAST,
                form=f,
            )
        instrs.append(_InstrForm(f))
    return name, instrs, body[-1]


# ═══════════════════════════════════════════════════════════════════════
#  Function builder
# ═══════════════════════════════════════════════════════════════════════

class _FunctionReader:
    def __init__(self, name: str) -> None:
        self.fn = Function(name)
        self.values: Dict[str, Instruction] = {}

    def operand(self, s: Sexp) -> Operand:
        if isinstance(s, Symbol):
            return self.values.get(s.value(), s.value())
        if isinstance(s, bool):
            return str(s).lower()
        if isinstance(s, (int, str)):
            return s
        if isinstance(s, float):
            return str(s)
        raise CfgParseError(
            f"bad operand {_show(s)} in function '{self.fn.name}'",
            code=ShortcutErrorCodes.BAD_OPERAND,
            form=s,
        )

    def block(self, s: Sexp) -> BasicBlock:
        name = _as_name(s)
        if not self.fn.has_block(name):
            raise CfgParseError(
                f"unknown block '{name}' in function '{self.fn.name}'",
                code=ShortcutErrorCodes.UNKNOWN_BLOCK,
                form=s,
            )
        return self.fn.block(name)

    def read(self, blocks: List[Sexp]) -> Function:
        split = [_split_block(b) for b in blocks]
        if not split:
            raise CfgParseError(
                f"function '{self.fn.name}' has no blocks",
                code=ShortcutErrorCodes.EMPTY_FUNCTION,
            )

        for name, _, _ in split:
            self.fn.add_block(name)

        # Values first, operands once every value exists.
        pending: List[Tuple[Instruction, _InstrForm]] = []
        for name, instrs, _ in split:
            bb = self.fn.block(name)
            for form in instrs:
                inst = self.fn.add_instruction(
                    bb, form.opcode, (), name=form.name, may_write_memory=form.writes
                )
                if form.name is not None:
                    self.values[form.name] = inst
                pending.append((inst, form))
        for inst, form in pending:
            for op in form.operands:
                inst.add_operand(self.operand(op))

        for name, _, term in split:
            bb = self.fn.block(name)
            _TERMINATORS[_head(term)](self, bb, term)
        return self.fn


# ═══════════════════════════════════════════════════════════════════════
#  Terminators
# ═══════════════════════════════════════════════════════════════════════

_TERMINATORS: Dict[str, Callable[[_FunctionReader, BasicBlock, list], Instruction]] = {}


def _register(tag: str):
    def deco(fn):
        _TERMINATORS[tag] = fn
        return fn
    return deco


def _arity(s: list, n: int) -> None:
    if len(s) != n:
        raise CfgParseError(
            f"({_head(s)} ...) takes {n - 1} argument(s): {_show(s)}",
            code=ShortcutErrorCodes.BAD_ARITY,
            form=s,
        )


@_register("br")
def _read_br(r: _FunctionReader, bb: BasicBlock, s: list) -> Instruction:
    _arity(s, 2)
    return r.fn.jump(bb, r.block(s[1]))


@_register("condbr")
def _read_condbr(r: _FunctionReader, bb: BasicBlock, s: list) -> Instruction:
    _arity(s, 4)
    return r.fn.branch(bb, r.operand(s[1]), r.block(s[2]), r.block(s[3]))


@_register("ret")
def _read_ret(r: _FunctionReader, bb: BasicBlock, s: list) -> Instruction:
    if len(s) > 2:
        _arity(s, 2)
    value = r.operand(s[1]) if len(s) == 2 else None
    return r.fn.ret(bb, value)


@_register("unreachable")
def _read_unreachable(r: _FunctionReader, bb: BasicBlock, s: list) -> Instruction:
    _arity(s, 1)
    return r.fn.unreachable(bb)


@_register("switch")
def _read_switch(r: _FunctionReader, bb: BasicBlock, s: list) -> Instruction:
    _expect_list(s, min_len=3)
    cases = [r.block(t) for t in s[3:]]
    return r.fn.switch(bb, r.operand(s[1]), r.block(s[2]), cases)


# ═══════════════════════════════════════════════════════════════════════
#  Top level
# ═══════════════════════════════════════════════════════════════════════

def _read_function(s: Sexp) -> Function:
    lst = _expect_list(s, min_len=2, tag="function")
    name = _as_name(lst[1])
    try:
        return _FunctionReader(name).read(lst[2:])
    except CfgParseError as e:
        if e.function is None:
            e.function = name
        raise
    except CfgError as e:
        raise CfgParseError(
            e.message, code=e.code, form=s, function=name, cause=e
        ) from e


def _function_line(text: str, name: str) -> Optional[int]:
    """1-based line of the first ``(function <name>`` in *text*."""
    m = re.search(r"\(\s*function\s+" + re.escape(name) + r"(?=[\s()])", text)
    if m is None:
        return None
    return text.count("\n", 0, m.start()) + 1


def _read_toplevel(forms: List[Sexp]) -> List[Function]:
    functions: List[Function] = []
    for form in forms:
        lst = _expect_list(form, min_len=1)
        tag = _head(lst)
        if tag == "module":
            _expect_list(lst, min_len=2)
            functions.extend(_read_function(f) for f in lst[2:])
        elif tag == "function":
            functions.append(_read_function(lst))
        else:
            raise CfgParseError(
                f"expected (module ...) or (function ...), got ({tag} ...)",
                form=form,
            )
    return functions


def parse_module(text: str) -> List[Function]:
    """Parse every function described in *text*.

    >>> fns = parse_module('''
    ... (module m
    ...   (function f
    ...     (block entry (c = icmp a b) (condbr c t e))
    ...     (block t (br e))
    ...     (block e (ret))))
    ... ''')
    >>> [fn.name for fn in fns]
    ['f']
    """
    forms = _loads(text)
    try:
        return _read_toplevel(forms)
    except CfgParseError as e:
        if e.function is not None and e.line is None:
            e.line = _function_line(text, e.function)
        raise


def parse_function(text: str) -> Function:
    """Parse a text that describes exactly one function."""
    functions = parse_module(text)
    if len(functions) != 1:
        raise CfgParseError(
            f"expected exactly one function, found {len(functions)}",
            code=ShortcutErrorCodes.BAD_ARITY,
        )
    return functions[0]


def read_module_file(path: Union[str, Path]) -> List[Function]:
    """Read and parse a CFG description file."""
    p = Path(path)
    return parse_module(p.read_text(encoding="utf-8"))
