# modelreview/detectors/drift.py
from __future__ import annotations

import re
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from modelreview.core.config import DriftOptions

_CELL_REF_RE = re.compile(
    r"(?:(?P<sheet>'[^']+'|[A-Za-z0-9_]+)!)?\$?[A-Z]{1,3}\$?\d+(?::\$?[A-Z]{1,3}\$?\d+)?"
)
_NUM_RE = re.compile(r"(?<![A-Za-z_])[-+]?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?")
_WS_RE = re.compile(r"\s+")

DRIFT_NOTE = "Formula shape differs from dominant pattern in the same row (possible copy/paste drift)."


def formula_shape(formula: str) -> str:
    """
    Shape of a formula: references become CELL and numbers NUM, whitespace
    is dropped and the rest upper-cased. Array braces are ignored. Anything
    that is not a formula has the empty shape.
    """
    if not isinstance(formula, str):
        return ""
    f = formula.strip()
    if f.startswith("{=") and f.endswith("}"):
        f = f[1:-1]
    if not f.startswith("="):
        return ""
    f = _CELL_REF_RE.sub("CELL", f)
    f = _NUM_RE.sub("NUM", f)
    f = _WS_RE.sub("", f)
    return f.upper()


@dataclass(frozen=True)
class DriftFinding:
    cell: str
    formula: str
    row: int
    dominant_shape: str
    cell_shape: str
    drift_scope: str = "row"
    note: str = DRIFT_NOTE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cell": self.cell,
            "formula": self.formula,
            "row": self.row,
            "dominant_shape": self.dominant_shape,
            "cell_shape": self.cell_shape,
            "drift_scope": self.drift_scope,
            "note": self.note,
        }


class RowPatternTracker:
    """
    Row-wise dominant-shape heuristic over a streamed sheet.

    Formulas are buffered per row until close_rows() is told the row can no
    longer grow; the row is then judged and dropped.
    """

    def __init__(self, options: Optional[DriftOptions] = None) -> None:
        self.options = options or DriftOptions()
        self._rows: Dict[int, List[Tuple[str, str, str]]] = defaultdict(list)
        self.findings: List[DriftFinding] = []

    @property
    def full(self) -> bool:
        return len(self.findings) >= self.options.max_findings

    def add(self, row: int, addr: str, formula: str) -> None:
        """row is the 1-based sheet row of addr."""
        if not self.options.enabled or self.full:
            return
        shape = formula_shape(formula)
        if shape:
            self._rows[row].append((addr, formula, shape))

    def close_rows(self, upto_row: Optional[int] = None) -> List[DriftFinding]:
        """Judge every buffered row <= upto_row (all rows when None)."""
        done = sorted(r for r in self._rows if upto_row is None or r <= upto_row)
        new: List[DriftFinding] = []
        for r in done:
            items = self._rows.pop(r)
            new.extend(self._judge(r, items))
        return new

    def _judge(self, row: int, items: List[Tuple[str, str, str]]) -> List[DriftFinding]:
        opts = self.options
        if self.full or len(items) < opts.min_row_formula_count:
            return []

        counts = Counter(it[2] for it in items)
        dominant_shape, dom_count = counts.most_common(1)[0]
        if dom_count / max(1, len(items)) < opts.dominant_ratio:
            # no strong 'expected' shape
            return []

        out: List[DriftFinding] = []
        for addr, formula, shape in items:
            if shape == dominant_shape:
                continue
            finding = DriftFinding(
                cell=addr,
                formula=formula,
                row=row,
                dominant_shape=dominant_shape,
                cell_shape=shape,
            )
            self.findings.append(finding)
            out.append(finding)
            if self.full:
                break
        return out
