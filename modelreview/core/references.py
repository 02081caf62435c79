"""
modelreview/core/references.py

Regex-level handling of cell references inside formula text.

- split string literals away from formula code, so references and numbers
  inside "..." are never touched
- reference-stripped normalisation used to group "the same" formula
- relative R1C1 rendering used by the worksheet map to spot copies
- volatile function detection
"""

from __future__ import annotations

import re
from typing import Callable, List, Optional, Tuple

from openpyxl.utils.cell import column_index_from_string

# Excel volatile functions (non-exhaustive but practical)
_VOLATILE_FUNCS = {
    "NOW", "TODAY", "RAND", "RANDBETWEEN",
    "OFFSET", "INDIRECT", "CELL", "INFO",
}

_STRING_RE = re.compile(r'"(?:[^"]|"")*"?')
# text literals plus quoted sheet qualifiers ('Q1 Data'!)
_PROTECTED_RE = re.compile(r'"(?:[^"]|"")*"?|\'(?:[^\']|\'\')*\'!')

# A reference may not sit inside a longer identifier, a function name or a
# sheet prefix.
_BEFORE = r"(?<![A-Za-z0-9_.])"
_AFTER = r"(?![A-Za-z0-9_(!])"

_ABS_CELL_RE = re.compile(_BEFORE + r"\$[A-Z]{1,3}\$\d{1,7}" + _AFTER)
_ANY_CELL_RE = re.compile(_BEFORE + r"\$?[A-Z]{1,3}\$?\d{1,7}" + _AFTER)

_A1_RE = re.compile(
    _BEFORE
    + r"(?:"
    + r"(?P<cabs>\$?)(?P<col>[A-Z]{1,3})(?P<rabs>\$?)(?P<row>\d{1,7})" + _AFTER
    + r"|(?P<ca1>\$?)(?P<c1>[A-Z]{1,3}):(?P<ca2>\$?)(?P<c2>[A-Z]{1,3})" + _AFTER
    + r"|(?P<ra1>\$?)(?P<r1>\d{1,7}):(?P<ra2>\$?)(?P<r2>\d{1,7})" + _AFTER
    + r")"
)

# "A1#" / "$B$4#": spill reference operator directly after a reference or name.
_SPILL_RE = re.compile(r"(?<=[A-Za-z0-9_\]])#")


def _split(formula: str, pattern: "re.Pattern[str]") -> List[Tuple[str, bool]]:
    out: List[Tuple[str, bool]] = []
    pos = 0
    for m in pattern.finditer(formula or ""):
        if m.start() > pos:
            out.append((formula[pos:m.start()], False))
        out.append((m.group(0), True))
        pos = m.end()
    if pos < len(formula or ""):
        out.append((formula[pos:], False))
    return out


def split_strings(formula: str) -> List[Tuple[str, bool]]:
    """Split formula into (segment, is_string_literal) pieces, in order."""
    return _split(formula, _STRING_RE)


def split_code(formula: str) -> List[Tuple[str, bool]]:
    """Like split_strings, but quoted sheet names ('Q1 Data'!) are kept apart too."""
    return _split(formula, _PROTECTED_RE)


def _map_code(formula: str, fn: Callable[[str], str]) -> str:
    return "".join(seg if kept else fn(seg) for seg, kept in split_code(formula))


def strip_quoted_segments(s: str) -> str:
    """Replace characters inside double-quotes with spaces to preserve indices."""
    def _blank(seg: str) -> str:
        if len(seg) >= 2 and seg.endswith('"'):
            return '"' + " " * (len(seg) - 2) + '"'
        # unterminated literal runs to the end of the formula
        return '"' + " " * (len(seg) - 1)

    return "".join(_blank(seg) if is_str else seg for seg, is_str in split_strings(s))


def detect_volatile_functions(formula: str) -> List[str]:
    """
    Returns a sorted list of volatile function names found in the formula.
    """
    if not formula:
        return []
    f = strip_quoted_segments(formula).upper()
    hits = [fn for fn in _VOLATILE_FUNCS if re.search(_BEFORE + fn + r"\s*\(", f)]
    hits.sort()
    return hits


def normalize_formula(formula: str) -> str:
    """
    Reference-stripped form used to group structurally identical formulas.

    Absolute references become <ABS_REF>, relative or mixed ones <REF>, and
    ranges collapse to <RANGE> / <ABS_RANGE>. Text literals are kept as is.
    """
    if not isinstance(formula, str) or not formula.lstrip("{").startswith("="):
        return formula

    def _norm(code: str) -> str:
        code = _ABS_CELL_RE.sub("<ABS_REF>", code)
        code = _ANY_CELL_RE.sub("<REF>", code)
        code = code.replace("<REF>:<REF>", "<RANGE>")
        code = code.replace("<ABS_REF>:<ABS_REF>", "<ABS_RANGE>")
        return code

    return _map_code(formula, _norm)


def _offset(label: str, absolute: bool, target: int, origin: int) -> str:
    if absolute:
        return f"{label}{target + 1}"
    delta = target - origin
    return label if delta == 0 else f"{label}[{delta}]"


def to_r1c1(formula: str, row: int, column: int) -> str:
    """
    Render an A1 formula in R1C1 notation relative to the zero-based cell
    (row, column). Copies of one formula along a row or column render to the
    same text.
    """
    if not isinstance(formula, str):
        return formula

    def _col(letters: str) -> int:
        return column_index_from_string(letters) - 1

    def _sub(m: "re.Match[str]") -> str:
        if m.group("col") is not None:
            return _offset("R", bool(m.group("rabs")), int(m.group("row")) - 1, row) + _offset(
                "C", bool(m.group("cabs")), _col(m.group("col")), column
            )
        if m.group("c1") is not None:
            return (
                _offset("C", bool(m.group("ca1")), _col(m.group("c1")), column)
                + ":"
                + _offset("C", bool(m.group("ca2")), _col(m.group("c2")), column)
            )
        return (
            _offset("R", bool(m.group("ra1")), int(m.group("r1")) - 1, row)
            + ":"
            + _offset("R", bool(m.group("ra2")), int(m.group("r2")) - 1, row)
        )

    return _map_code(formula, lambda code: _A1_RE.sub(_sub, code))


def mask_spill_markers(formula: str) -> str:
    """Blank out spill operators ("A1#") without moving any other character."""
    return _map_code(formula, lambda code: _SPILL_RE.sub(" ", code))


def has_spill_marker(formula: Optional[str]) -> bool:
    if not isinstance(formula, str):
        return False
    return any("#" in seg for seg, kept in split_code(formula) if not kept)
