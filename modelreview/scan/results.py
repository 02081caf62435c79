"""
modelreview/scan/results.py

Immutable result values handed to presentation and export code.
Everything here serialises through to_dict() into plain JSON types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from modelreview.detectors.complexity import ComplexityBand
from modelreview.detectors.drift import DriftFinding
from modelreview.detectors.hardcodes import HardCodedLiteral
from modelreview.detectors.severity import SEVERITY_ORDER, Severity


class AnalysisMode(str, Enum):
    STREAMING = "streaming"
    MASSIVE_SKIM = "massive-skim"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class FormulaInfo:
    formula: str
    example: str
    count: int
    cells: Tuple[str, ...]
    score: int
    band: ComplexityBand
    is_array: bool = False
    is_volatile: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "formula": self.formula,
            "example": self.example,
            "count": self.count,
            "cells": list(self.cells),
            "cells_truncated": self.count > len(self.cells),
            "score": self.score,
            "band": self.band.value,
            "is_array": self.is_array,
            "is_volatile": self.is_volatile,
        }


@dataclass(frozen=True)
class HardCodedFinding:
    cell: str
    formula: str
    literal: HardCodedLiteral
    severity: Severity
    rationale: str
    suggested_fix: str
    snippet: str
    repetition_count: int = 1
    is_undocumented_parameter: bool = False

    @property
    def is_repeated(self) -> bool:
        return self.repetition_count > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cell": self.cell,
            "formula": self.formula,
            "value": self.literal.display,
            "kind": self.literal.kind.value,
            "severity": self.severity.value,
            "rationale": self.rationale,
            "suggested_fix": self.suggested_fix,
            "snippet": self.snippet,
            "repetition_count": self.repetition_count,
            "is_repeated": self.is_repeated,
            "is_undocumented_parameter": self.is_undocumented_parameter,
            "literal": self.literal.to_dict(),
        }


@dataclass(frozen=True)
class HardCodedAnalysis:
    """Findings of one sheet, kept in scan order and partitioned on demand."""

    findings: Tuple[HardCodedFinding, ...] = ()
    findings_detected: int = 0
    truncated: bool = False

    def by_severity(self, severity: Severity) -> Tuple[HardCodedFinding, ...]:
        return tuple(f for f in self.findings if f.severity == severity)

    @property
    def high(self) -> Tuple[HardCodedFinding, ...]:
        return self.by_severity(Severity.HIGH)

    @property
    def medium(self) -> Tuple[HardCodedFinding, ...]:
        return self.by_severity(Severity.MEDIUM)

    @property
    def low(self) -> Tuple[HardCodedFinding, ...]:
        return self.by_severity(Severity.LOW)

    @property
    def info(self) -> Tuple[HardCodedFinding, ...]:
        return self.by_severity(Severity.INFO)

    @property
    def undocumented_parameters(self) -> Tuple[HardCodedFinding, ...]:
        return tuple(f for f in self.findings if f.is_undocumented_parameter)

    def counts(self) -> Dict[str, int]:
        out = {s.value: 0 for s in SEVERITY_ORDER}
        for f in self.findings:
            out[f.severity.value] += 1
        return out

    def __len__(self) -> int:
        return len(self.findings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "counts": self.counts(),
            "findings_detected": self.findings_detected,
            "truncated": self.truncated,
            "undocumented_parameters": len(self.undocumented_parameters),
            "by_severity": {
                s.value: [f.to_dict() for f in self.by_severity(s)] for s in SEVERITY_ORDER
            },
        }


@dataclass(frozen=True)
class WorksheetResult:
    name: str
    mode: AnalysisMode
    used_range: Optional[str] = None
    total_cells: int = 0
    total_formulas: int = 0
    total_values: int = 0
    formulas: Tuple[FormulaInfo, ...] = ()
    hardcodes: HardCodedAnalysis = field(default_factory=HardCodedAnalysis)
    drift: Tuple[DriftFinding, ...] = ()
    complexity: ComplexityBand = ComplexityBand.LOW
    reason: Optional[str] = None
    errors: Tuple[Dict[str, Any], ...] = ()

    @property
    def unique_formulas(self) -> int:
        return len(self.formulas)

    @classmethod
    def empty(
        cls,
        name: str,
        mode: AnalysisMode,
        reason: str,
        used_range: Optional[str] = None,
        total_cells: int = 0,
    ) -> "WorksheetResult":
        return cls(name=name, mode=mode, used_range=used_range, total_cells=total_cells, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "analysis_mode": self.mode.value,
            "reason": self.reason,
            "used_range": self.used_range,
            "total_cells": self.total_cells,
            "total_formulas": self.total_formulas,
            "total_values": self.total_values,
            "unique_formulas": self.unique_formulas,
            "formula_complexity": self.complexity.value,
            "unique_formulas_list": [f.to_dict() for f in self.formulas],
            "hard_coded_value_analysis": self.hardcodes.to_dict(),
            "formula_drift": [d.to_dict() for d in self.drift],
            "errors": list(self.errors),
        }


@dataclass(frozen=True)
class WorkbookResult:
    worksheets: Tuple[WorksheetResult, ...]
    total_formulas: int
    unique_formulas: int
    review_minutes: float
    timestamp: str
    missing_sheets: Tuple[str, ...] = ()

    @property
    def total_worksheets(self) -> int:
        return len(self.worksheets)

    @property
    def total_cells(self) -> int:
        return sum(ws.total_cells for ws in self.worksheets)

    def severity_totals(self) -> Dict[str, int]:
        out = {s.value: 0 for s in SEVERITY_ORDER}
        for ws in self.worksheets:
            for k, v in ws.hardcodes.counts().items():
                out[k] += v
        return out

    def worksheet(self, name: str) -> Optional[WorksheetResult]:
        for ws in self.worksheets:
            if ws.name == name:
                return ws
        return None

    def errors(self) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        for ws in self.worksheets:
            out.extend(ws.errors)
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_timestamp": self.timestamp,
            "total_worksheets": self.total_worksheets,
            "total_cells": self.total_cells,
            "total_formulas": self.total_formulas,
            "unique_formulas": self.unique_formulas,
            "estimated_review_minutes": self.review_minutes,
            "hard_coded_totals": self.severity_totals(),
            "missing_sheets": list(self.missing_sheets),
            "worksheets": [ws.to_dict() for ws in self.worksheets],
        }
