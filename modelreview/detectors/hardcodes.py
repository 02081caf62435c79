"""Hard-coded literal detector.

Finds values written directly inside formulas (numbers, percentages, text,
dates, array constants, cross-sheet and external references) that may
represent hidden business assumptions, e.g. =A1*1.05, =IF(C1="USD",...),
=DATE(2024,10,1).

Design goals:
- Read-only, deterministic.
- Token-aware: each literal knows its enclosing function, argument position
  and whether it sits inside an array constant.
- Never raises for malformed formulas: if the tokenizer gives up, a
  conservative regex pass still extracts bare numbers and quoted strings.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from openpyxl.formula.tokenizer import Token, Tokenizer, TokenizerError

from modelreview.core.references import mask_spill_markers, strip_quoted_segments

logger = logging.getLogger(__name__)


class LiteralKind(str, Enum):
    NUMERIC = "numeric"
    PERCENTAGE = "percentage"
    STRING = "string"
    BOOLEAN = "boolean"
    DATE = "date"
    TIME = "time"
    ARRAY = "array"
    NAMED = "named-literal"
    EXTERNAL = "external"
    HEX = "hexadecimal"


DATE_FUNCTIONS = frozenset({
    "DATE", "DATEVALUE", "EDATE", "EOMONTH", "TODAY", "NOW",
    "WORKDAY", "WORKDAY.INTL", "WEEKDAY", "WEEKNUM", "YEAR", "MONTH", "DAY",
})
TIME_FUNCTIONS = frozenset({"TIME", "TIMEVALUE", "HOUR", "MINUTE", "SECOND"})
KNOWN_CONSTANTS = frozenset({"PI", "E", "PHI", "TRUE", "FALSE"})

_HEX_RE = re.compile(r"^0x[0-9a-f]+$", re.IGNORECASE)
_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d(?::[0-5]\d(?:\.\d{1,3})?)?$")
_DATE_RE = re.compile(r"^(\d{1,2}[/-]){2}\d{2,4}$")

_FALLBACK_NUM_RE = re.compile(r"\d+(?:\.\d+)?")
_FALLBACK_STR_RE = re.compile(r'"((?:[^"]|"")*)"')

_FUNC_PREFIXES = ("_XLFN._XLWS.", "_XLFN.", "_XLWS.")


class FormulaParseError(ValueError):
    """The formula could not be tokenized."""


@dataclass(frozen=True)
class FormulaToken:
    value: str
    type: str
    subtype: str
    index: int
    length: int


@dataclass(frozen=True)
class HardCodedLiteral:
    kind: LiteralKind
    value: str
    display: str
    index: int
    length: int
    token_index: int = -1
    parent_function: Optional[str] = None
    argument_index: int = 0
    absolute_value: Optional[float] = None
    is_likely_input: bool = False
    is_flag: bool = False
    is_recognized_constant: bool = False
    contains_mixed_types: bool = False
    is_linked_workbook: bool = False
    hint: Optional[str] = None

    @property
    def is_benign(self) -> bool:
        if self.kind == LiteralKind.BOOLEAN and self.is_flag:
            return True
        if self.kind == LiteralKind.NAMED and self.is_recognized_constant:
            return True
        if self.kind == LiteralKind.STRING and self.is_flag:
            return True
        return False

    def snippet(self, formula: str, pad: int = 12) -> str:
        start = max(0, self.index - pad)
        end = min(len(formula), self.index + self.length + pad)
        text = formula[start:end]
        if start > 0:
            text = "..." + text
        if end < len(formula):
            text = text + "..."
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "value": self.value,
            "display": self.display,
            "index": self.index,
            "length": self.length,
            "parent_function": self.parent_function,
            "argument_index": self.argument_index,
            "is_likely_input": self.is_likely_input,
            "contains_mixed_types": self.contains_mixed_types,
            "is_linked_workbook": self.is_linked_workbook,
        }


class LiteralScan(NamedTuple):
    literals: Tuple[HardCodedLiteral, ...]
    fallback_reason: Optional[str] = None


def _split_array_formula(formula: str) -> Tuple[str, int]:
    """{=...} array formulas are analysed without their braces."""
    f = formula.strip()
    if f.startswith("{=") and f.endswith("}"):
        return f[1:-1], formula.index("{") + 1
    return formula, 0


def tokenize_formula(formula: str) -> Tuple[FormulaToken, ...]:
    """
    Tokenize with openpyxl and attach offsets into the original string.
    Raises FormulaParseError when the formula cannot be tokenized.
    """
    if not isinstance(formula, str) or not formula.startswith("="):
        raise FormulaParseError(f"Not a formula: {formula!r}")
    masked = mask_spill_markers(formula)
    try:
        items = Tokenizer(masked).items
    except (TokenizerError, IndexError, AssertionError) as exc:
        raise FormulaParseError(f"{type(exc).__name__}: {exc}") from exc

    out: List[FormulaToken] = []
    offset = 1
    for tok in items:
        value = tok.value or ""
        if not value:
            out.append(FormulaToken("", tok.type, tok.subtype, offset, 0))
            continue
        start = masked.find(value, offset)
        index = start if start >= 0 else offset
        out.append(FormulaToken(value, tok.type, tok.subtype, index, len(value)))
        offset = index + len(value)
    return tuple(out)


class _Context:
    __slots__ = ("function", "argument_index")

    def __init__(self, function: Optional[str]) -> None:
        self.function = function
        self.argument_index = 0


def _function_name(token_value: str) -> str:
    name = token_value[:-1].strip().upper()
    for prefix in _FUNC_PREFIXES:
        if name.startswith(prefix):
            return name[len(prefix):]
    return name


def _next_significant(tokens: Tuple[FormulaToken, ...], idx: int) -> Optional[FormulaToken]:
    for tok in tokens[idx + 1:]:
        if tok.type != Token.WSPACE:
            return tok
    return None


def _number_literal(
    tok: FormulaToken, idx: int, tokens: Tuple[FormulaToken, ...], parent: Optional[_Context]
) -> HardCodedLiteral:
    raw = tok.value.strip()
    number = float(raw)
    fn = parent.function if parent else None
    arg = parent.argument_index if parent else 0
    nxt = _next_significant(tokens, idx)

    if nxt is not None and nxt.type == Token.OP_POST and nxt.value == "%":
        return HardCodedLiteral(
            kind=LiteralKind.PERCENTAGE,
            value=raw,
            display=f"{raw}%",
            index=tok.index,
            length=(nxt.index + nxt.length) - tok.index,
            token_index=idx,
            parent_function=fn,
            argument_index=arg,
            absolute_value=abs(number),
            is_likely_input=True,
            hint="Percentage literal embedded in formula.",
        )

    is_integer = number.is_integer()
    likely = abs(number) >= 1
    hint = None
    if fn in DATE_FUNCTIONS:
        if arg == 0 and len(raw) == 4:
            likely, hint = True, "Year literal supplied to date function."
        elif arg <= 2 and is_integer:
            likely, hint = True, "Day or month literal supplied to date function."
    if fn in TIME_FUNCTIONS and is_integer and arg <= 2:
        likely, hint = True, "Time component literal supplied to time function."

    return HardCodedLiteral(
        kind=LiteralKind.NUMERIC,
        value=raw,
        display=raw,
        index=tok.index,
        length=tok.length,
        token_index=idx,
        parent_function=fn,
        argument_index=arg,
        absolute_value=abs(number),
        is_likely_input=likely,
        hint=hint,
    )


def _unquote(raw: str) -> str:
    if len(raw) >= 2 and raw[0] == '"' and raw[-1] == '"':
        raw = raw[1:-1]
    return raw.replace('""', '"')


def _text_literal(value: str, index: int, length: int, idx: int, parent: Optional[_Context]) -> HardCodedLiteral:
    fn = parent.function if parent else None
    base = dict(
        value=value,
        display=f'"{value}"',
        index=index,
        length=length,
        token_index=idx,
        parent_function=fn,
        argument_index=parent.argument_index if parent else 0,
    )

    if len(value) == 1:
        return HardCodedLiteral(kind=LiteralKind.STRING, is_flag=True, **base)
    if value.upper() in KNOWN_CONSTANTS:
        return HardCodedLiteral(kind=LiteralKind.NAMED, is_recognized_constant=True, **base)
    if fn in DATE_FUNCTIONS or _DATE_RE.match(value):
        return HardCodedLiteral(
            kind=LiteralKind.DATE, is_likely_input=True,
            hint="Date literal embedded directly in formula.", **base
        )
    if fn in TIME_FUNCTIONS or _TIME_RE.match(value):
        return HardCodedLiteral(
            kind=LiteralKind.TIME, is_likely_input=True,
            hint="Time literal embedded directly in formula.", **base
        )
    if _HEX_RE.match(value):
        return HardCodedLiteral(kind=LiteralKind.HEX, **base)
    return HardCodedLiteral(kind=LiteralKind.STRING, **base)


def _classify_tokens(tokens: Tuple[FormulaToken, ...]) -> List[HardCodedLiteral]:
    literals: List[HardCodedLiteral] = []
    stack: List[_Context] = []
    array_open: List[int] = []
    array_spans: List[Tuple[int, int]] = []

    for idx, tok in enumerate(tokens):
        if tok.type == Token.FUNC:
            if tok.subtype == Token.OPEN:
                stack.append(_Context(_function_name(tok.value)))
            elif stack:
                stack.pop()
            continue

        if tok.type == Token.ARRAY:
            if tok.subtype == Token.OPEN:
                stack.append(_Context(None))
                array_open.append(idx)
            else:
                if stack:
                    stack.pop()
                if array_open:
                    array_spans.append((array_open.pop(), idx))
            continue

        if tok.type == Token.SEP:
            if stack:
                stack[-1].argument_index += 1
            continue

        if tok.type != Token.OPERAND:
            continue

        parent = stack[-1] if stack else None
        if tok.subtype == Token.NUMBER:
            literals.append(_number_literal(tok, idx, tokens, parent))
        elif tok.subtype == Token.LOGICAL:
            upper = tok.value.upper()
            literals.append(HardCodedLiteral(
                kind=LiteralKind.BOOLEAN,
                value=upper,
                display=upper,
                index=tok.index,
                length=tok.length,
                token_index=idx,
                parent_function=parent.function if parent else None,
                is_flag=True,
            ))
        elif tok.subtype == Token.TEXT:
            literals.append(_text_literal(_unquote(tok.value), tok.index, tok.length, idx, parent))
        elif tok.subtype == Token.RANGE and "!" in tok.value:
            literals.append(HardCodedLiteral(
                kind=LiteralKind.EXTERNAL,
                value=tok.value,
                display=tok.value,
                index=tok.index,
                length=tok.length,
                token_index=idx,
                parent_function=parent.function if parent else None,
                is_linked_workbook="[" in tok.value,
            ))

    if array_spans:
        literals = [_tag_array(lit, array_spans) for lit in literals]
    return literals


def _tag_array(lit: HardCodedLiteral, spans: List[Tuple[int, int]]) -> HardCodedLiteral:
    if not any(start <= lit.token_index <= end for start, end in spans):
        return lit
    kind = LiteralKind.ARRAY if lit.kind == LiteralKind.NUMERIC else lit.kind
    return replace(lit, kind=kind, contains_mixed_types=True)


def _looks_like_ref_part(s: str, start: int, end: int) -> bool:
    """Heuristic: avoid matching row numbers in refs like A10 or $B$12."""
    prev = s[start - 1] if start > 0 else ""
    nxt = s[end] if end < len(s) else ""
    if prev.isalpha() or prev in "$_." or prev.isdigit():
        return True
    if nxt.isalpha() or nxt in "$_(":
        return True
    return False


def _fallback_literals(formula: str) -> List[HardCodedLiteral]:
    """Context-free pass: bare numbers and quoted strings only."""
    literals: List[HardCodedLiteral] = []
    blanked = strip_quoted_segments(formula)
    for m in _FALLBACK_NUM_RE.finditer(blanked):
        if _looks_like_ref_part(blanked, m.start(), m.end()):
            continue
        raw = m.group(0)
        literals.append(HardCodedLiteral(
            kind=LiteralKind.NUMERIC,
            value=raw,
            display=raw,
            index=m.start(),
            length=len(raw),
            absolute_value=abs(float(raw)),
        ))
    for m in _FALLBACK_STR_RE.finditer(formula):
        literals.append(_text_literal(_unquote(m.group(0)), m.start(), len(m.group(0)), -1, None))
    literals.sort(key=lambda lit: lit.index)
    return literals


@lru_cache(maxsize=4096)
def scan_formula_literals(formula: str) -> LiteralScan:
    """Classify the literals of one formula; results are cached per formula text."""
    if not isinstance(formula, str):
        return LiteralScan(())
    expr, shift = _split_array_formula(formula)
    if not expr.startswith("="):
        return LiteralScan(())

    try:
        tokens = tokenize_formula(expr)
    except FormulaParseError as exc:
        logger.debug("tokenizer failed for %r, falling back to regex pass: %s", formula, exc)
        found = _fallback_literals(expr)
        reason = str(exc)
    else:
        found = _classify_tokens(tokens)
        reason = None

    out = tuple(
        replace(lit, index=lit.index + shift) if shift else lit
        for lit in found
        if not lit.is_benign
    )
    return LiteralScan(out, reason)


def detect_hardcoded_literals(formula: str) -> List[HardCodedLiteral]:
    """Return the non-benign literals of formula, in order of appearance."""
    return list(scan_formula_literals(formula).literals)
