"""
modelreview/detectors/severity.py

Severity tiers for hard-coded literals.

The decision table below is evaluated top to bottom and its thresholds are
part of the audit contract: changing them changes the severity of findings
recorded in earlier reviews.

    benign (recognised constant, flag)   -> no finding
    array / mixed-type                   -> High if mixed, else Medium
    hexadecimal                          -> High
    percentage                           -> >=100 High, >=10 Medium, else Low
    numeric                              -> >=1000 or fractional High,
                                            >=100 Medium, >=10 Low, else Info
    string                               -> length >=6 Medium, >=3 Low, else Info
    date / time                          -> Medium if likely input, else Low
    named literal (unrecognised)         -> Low
    external reference                   -> Info if linked workbook, else Low
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from modelreview.core.config import cfg_get
from modelreview.detectors.hardcodes import HardCodedLiteral, LiteralKind


class Severity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    INFO = "Info"


SEVERITY_ORDER = (Severity.HIGH, Severity.MEDIUM, Severity.LOW, Severity.INFO)


@dataclass(frozen=True)
class SeverityThresholds:
    percentage_high: float = 100
    percentage_medium: float = 10
    numeric_high: float = 1000
    numeric_medium: float = 100
    numeric_low: float = 10
    string_medium: int = 6
    string_low: int = 3

    @classmethod
    def from_config(cls, cfg: Optional[Dict[str, Any]] = None) -> "SeverityThresholds":
        raw = cfg_get(cfg or {}, "app.severity", {}) or {}
        d = cls()
        return cls(
            percentage_high=float(raw.get("percentage_high", d.percentage_high)),
            percentage_medium=float(raw.get("percentage_medium", d.percentage_medium)),
            numeric_high=float(raw.get("numeric_high", d.numeric_high)),
            numeric_medium=float(raw.get("numeric_medium", d.numeric_medium)),
            numeric_low=float(raw.get("numeric_low", d.numeric_low)),
            string_medium=int(raw.get("string_medium", d.string_medium)),
            string_low=int(raw.get("string_low", d.string_low)),
        )


@dataclass(frozen=True)
class SeverityAssessment:
    severity: Severity
    rationale: str
    suggested_fix: str


_FIX_INPUT = "Move the value to a labelled input cell or named range and reference it."
_FIX_PERCENT = "Reference a named percentage input instead of hard-coding it."
_FIX_DATE = "Keep dates in an assumptions area and reference the cell."
_FIX_TEXT = "Reference a lookup list or input cell rather than embedding text."
_FIX_ARRAY = "Replace the array constant with a referenced range."
_FIX_EXTERNAL = "Confirm the source is intended and documented; prefer an import step over a live link."


class SeverityModel:
    """Pure mapping from a classified literal to a severity assessment."""

    def __init__(self, thresholds: Optional[SeverityThresholds] = None) -> None:
        self.thresholds = thresholds or SeverityThresholds()

    def assess(self, literal: HardCodedLiteral) -> Optional[SeverityAssessment]:
        """None means the literal is benign and produces no finding."""
        if literal.is_benign:
            return None

        t = self.thresholds
        kind = literal.kind

        if kind == LiteralKind.ARRAY or literal.contains_mixed_types:
            if literal.contains_mixed_types:
                return SeverityAssessment(
                    Severity.HIGH,
                    "Array constant embedded in formula mixes hard-coded values.",
                    _FIX_ARRAY,
                )
            return SeverityAssessment(Severity.MEDIUM, "Array constant embedded in formula.", _FIX_ARRAY)

        if kind == LiteralKind.HEX:
            return SeverityAssessment(
                Severity.HIGH,
                "Hexadecimal literal embedded in formula.",
                "Document the code in an input cell and reference it.",
            )

        if kind == LiteralKind.PERCENTAGE:
            magnitude = literal.absolute_value or 0.0
            if magnitude >= t.percentage_high:
                sev = Severity.HIGH
            elif magnitude >= t.percentage_medium:
                sev = Severity.MEDIUM
            else:
                sev = Severity.LOW
            return SeverityAssessment(sev, "Percentage literal embedded in formula.", _FIX_PERCENT)

        if kind == LiteralKind.NUMERIC:
            magnitude = literal.absolute_value or 0.0
            fractional = not float(magnitude).is_integer()
            if magnitude >= t.numeric_high or fractional:
                sev = Severity.HIGH
                why = "Large or fractional number embedded in formula (likely a rate or business parameter)."
            elif magnitude >= t.numeric_medium:
                sev = Severity.MEDIUM
                why = "Sizeable number embedded in formula."
            elif magnitude >= t.numeric_low:
                sev = Severity.LOW
                why = "Common multiplier or small count embedded in formula."
            else:
                sev = Severity.INFO
                why = "Small integer embedded in formula."
            if literal.hint:
                why = f"{why} {literal.hint}"
            return SeverityAssessment(sev, why, _FIX_INPUT)

        if kind == LiteralKind.STRING:
            size = len(literal.value)
            if size >= t.string_medium:
                sev = Severity.MEDIUM
            elif size >= t.string_low:
                sev = Severity.LOW
            else:
                sev = Severity.INFO
            return SeverityAssessment(sev, "Text literal embedded in formula.", _FIX_TEXT)

        if kind in (LiteralKind.DATE, LiteralKind.TIME):
            sev = Severity.MEDIUM if literal.is_likely_input else Severity.LOW
            label = "Date" if kind == LiteralKind.DATE else "Time"
            return SeverityAssessment(sev, f"{label} literal embedded directly in formula.", _FIX_DATE)

        if kind == LiteralKind.NAMED:
            return SeverityAssessment(Severity.LOW, "Unrecognised named literal in formula.", _FIX_INPUT)

        if kind == LiteralKind.EXTERNAL:
            if literal.is_linked_workbook:
                return SeverityAssessment(Severity.INFO, "Reference to a linked workbook.", _FIX_EXTERNAL)
            return SeverityAssessment(Severity.LOW, "Reference to another sheet.", _FIX_EXTERNAL)

        return SeverityAssessment(Severity.LOW, "Literal embedded in formula.", _FIX_INPUT)
