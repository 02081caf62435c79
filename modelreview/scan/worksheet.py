"""
modelreview/scan/worksheet.py

Worksheet scan: Init -> (MassiveSkim | Streaming) -> Done, or Skipped.

The scan is a generator. steps() yields a ScanEvent after the used region
has been resolved and again after every block, so the caller decides when
the next host round-trip happens. run() simply drains it.

Memory stays bounded by one block plus the sample caps: at most
max_formula_samples addresses per unique formula and max_findings findings
per sheet are retained, whatever the sheet size.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from modelreview.core.cells import Block, cell_address
from modelreview.core.config import ScanOptions
from modelreview.core.control import (
    CancelToken,
    ProgressCallback,
    is_empty,
    is_formula,
    notify,
)
from modelreview.core.cursor import GridCursor
from modelreview.core.references import normalize_formula
from modelreview.detectors.complexity import ComplexityBand, ComplexityResult, ComplexityScorer
from modelreview.detectors.drift import RowPatternTracker
from modelreview.detectors.hardcodes import HardCodedLiteral, scan_formula_literals
from modelreview.detectors.severity import Severity, SeverityAssessment, SeverityModel
from modelreview.host.base import BlockData, CellKind, HostError, SheetHost
from modelreview.scan.results import (
    AnalysisMode,
    FormulaInfo,
    HardCodedAnalysis,
    HardCodedFinding,
    WorksheetResult,
)

logger = logging.getLogger(__name__)

# lookup, conditional-aggregate and volatile functions, array constants, 3+ nesting levels
_COMPLEX_RE = re.compile(
    r"(INDEX|MATCH|VLOOKUP|HLOOKUP|XLOOKUP|SUMIFS|COUNTIFS|AVERAGEIFS|INDIRECT|OFFSET|ARRAY)\s*\(|\{.*\}|\(.*\(.*\(.*\)",
    re.IGNORECASE,
)


class ScanPhase(str, Enum):
    INIT = "init"
    MASSIVE_SKIM = "massive-skim"
    STREAMING = "streaming"
    DONE = "done"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ScanEvent:
    sheet: str
    phase: ScanPhase
    blocks_done: int = 0
    blocks_total: int = 0
    message: str = ""


class _FormulaAggregate:
    __slots__ = ("key", "example", "count", "cells", "is_array", "structure")

    def __init__(self, key: str, example: str, is_array: bool, structure: ComplexityResult) -> None:
        self.key = key
        self.example = example
        self.count = 0
        self.cells: List[str] = []
        self.is_array = is_array
        self.structure = structure


class FindingsBuilder:
    """
    Provisional findings for one sheet.

    Repetition is only known once every formula has been seen, so findings
    stay mutable here until finalize() returns the immutable analysis.
    """

    def __init__(self, max_findings: int = 400) -> None:
        self.max_findings = int(max_findings)
        self.detected = 0
        self._pending: List[tuple] = []

    @property
    def truncated(self) -> bool:
        return self.detected > len(self._pending)

    def add(self, cell: str, formula: str, literal: HardCodedLiteral, assessment: SeverityAssessment) -> bool:
        self.detected += 1
        if len(self._pending) >= self.max_findings:
            return False
        self._pending.append((cell, formula, literal, assessment))
        return True

    def finalize(self) -> HardCodedAnalysis:
        repeats = Counter(lit.display for _, _, lit, _ in self._pending)
        findings = []
        for cell, formula, lit, assessment in self._pending:
            count = repeats[lit.display]
            findings.append(
                HardCodedFinding(
                    cell=cell,
                    formula=formula,
                    literal=lit,
                    severity=assessment.severity,
                    rationale=assessment.rationale,
                    suggested_fix=assessment.suggested_fix,
                    snippet=lit.snippet(formula),
                    repetition_count=count,
                    is_undocumented_parameter=(
                        count > 1 and assessment.severity in (Severity.HIGH, Severity.MEDIUM)
                    ),
                )
            )
        return HardCodedAnalysis(
            findings=tuple(findings),
            findings_detected=self.detected,
            truncated=self.truncated,
        )


def assess_sheet_complexity(formulas: List[FormulaInfo]) -> ComplexityBand:
    """Volume, uniqueness and share of complex formulas, two points each."""
    if not formulas:
        return ComplexityBand.LOW

    total = sum(f.count for f in formulas)
    unique = len(formulas)
    complex_count = sum(
        1 for f in formulas if f.band != ComplexityBand.LOW or _COMPLEX_RE.search(f.example)
    )

    score = 0
    if total > 100:
        score += 2
    elif total > 20:
        score += 1

    uniqueness = unique / total if total else 0.0
    if uniqueness > 0.7:
        score += 2
    elif uniqueness > 0.4:
        score += 1

    ratio = complex_count / unique
    if ratio > 0.3:
        score += 2
    elif ratio > 0.1:
        score += 1

    if score >= 4:
        return ComplexityBand.HIGH
    if score >= 2:
        return ComplexityBand.MEDIUM
    return ComplexityBand.LOW


class WorksheetScanner:
    def __init__(
        self,
        sheet: SheetHost,
        options: Optional[ScanOptions] = None,
        scorer: Optional[ComplexityScorer] = None,
        severity: Optional[SeverityModel] = None,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> None:
        self.sheet = sheet
        self.options = options or ScanOptions()
        self.scorer = scorer or ComplexityScorer()
        self.severity = severity or SeverityModel()
        self.progress = progress
        self.cancel = cancel
        self.phase = ScanPhase.INIT
        self.result: Optional[WorksheetResult] = None

        self._formulas: Dict[str, _FormulaAggregate] = {}
        self._findings = FindingsBuilder(self.options.max_findings)
        self._drift = RowPatternTracker(self.options.drift)
        self._errors: List[Dict[str, Any]] = []
        self._total_formulas = 0
        self._total_values = 0

    @property
    def name(self) -> str:
        return self.sheet.name

    def run(self) -> WorksheetResult:
        for _ in self.steps():
            pass
        assert self.result is not None
        return self.result

    def steps(self) -> Iterator[ScanEvent]:
        if self.phase != ScanPhase.INIT:
            raise RuntimeError(f"Scanner for '{self.name}' has already run")

        notify(self.progress, f"Analyzing worksheet {self.name}")
        region = self.sheet.used_region()
        if region is None or region.cell_count == 0:
            logger.info("sheet %s has no used region, skipping", self.name)
            self.phase = ScanPhase.SKIPPED
            self.result = WorksheetResult.empty(self.name, AnalysisMode.SKIPPED, "no_used_region")
            yield ScanEvent(self.name, self.phase, message="no used region")
            return

        if region.cell_count >= self.options.massive_cell_threshold:
            self.phase = ScanPhase.MASSIVE_SKIM
            notify(
                self.progress,
                f"{self.name}: {region.cell_count} cells, switching to summary counts",
            )
            self.result = self._skim(region.address, region.cell_count)
            self.phase = ScanPhase.DONE
            yield ScanEvent(self.name, self.phase, message=self.result.reason or "")
            return

        self.phase = ScanPhase.STREAMING
        cursor = GridCursor(
            self.sheet,
            region,
            block_rows=self.options.block_rows,
            block_columns=self.options.block_columns,
        )
        total_blocks = len(cursor)
        yield ScanEvent(self.name, self.phase, 0, total_blocks, message=region.address)
        if self.cancel is not None:
            self.cancel.check(self.name)

        done = 0
        for data in cursor:
            block = data.block
            self._consume(data)
            if block.closes_band:
                self._drift.close_rows(block.last_row + 1)
            done += 1
            message = _block_message(self.name, block)
            notify(self.progress, message)
            yield ScanEvent(self.name, self.phase, done, total_blocks, message)
            if self.cancel is not None:
                self.cancel.check(self.name)

        self.result = self._finalize(region.address, region.cell_count)
        self.phase = ScanPhase.DONE
        yield ScanEvent(self.name, self.phase, done, total_blocks, message="done")

    def _skim(self, used_range: str, total_cells: int) -> WorksheetResult:
        threshold = self.options.massive_cell_threshold
        try:
            formulas = int(self.sheet.count_cells(CellKind.FORMULAS))
            constants = int(self.sheet.count_cells(CellKind.CONSTANTS))
        except HostError as exc:
            logger.warning("skim counts failed on %s: %s", self.name, exc)
            return WorksheetResult.empty(
                self.name,
                AnalysisMode.MASSIVE_SKIM,
                f"skim_count_failed: {exc}",
                used_range=used_range,
                total_cells=total_cells,
            )
        return WorksheetResult(
            name=self.name,
            mode=AnalysisMode.MASSIVE_SKIM,
            used_range=used_range,
            total_cells=total_cells,
            total_formulas=formulas,
            total_values=constants,
            reason=f"exceeds_massive_threshold_{threshold}",
        )

    def _consume(self, data: BlockData) -> None:
        include_empty = self.options.include_empty_cells
        for cell in data.iter_cells():
            formula = cell.formula
            if is_formula(formula):
                if not include_empty and is_empty(cell.value):
                    continue
                self._total_formulas += 1
                self._add_formula(cell.row, cell.column, formula.strip())
            elif not is_empty(cell.value) or (cell.text or "").strip():
                self._total_values += 1

    def _add_formula(self, row: int, column: int, formula: str) -> None:
        addr = cell_address(row, column)
        key = normalize_formula(formula) if self.options.group_similar_formulas else formula

        agg = self._formulas.get(key)
        if agg is None:
            is_array = formula.startswith("{=")
            agg = _FormulaAggregate(key, formula, is_array, self.scorer.structure(formula, is_array))
            self._formulas[key] = agg
        agg.count += 1
        if len(agg.cells) < self.options.max_formula_samples:
            agg.cells.append(addr)

        scan = scan_formula_literals(formula)
        if scan.fallback_reason and len(self._errors) < self.options.max_findings:
            self._errors.append(
                {
                    "scope": "parse_formula",
                    "type": "tokenize_failed",
                    "dependent": f"{self.name}!{addr}",
                    "ref": "",
                    "details": scan.fallback_reason,
                }
            )
        for literal in scan.literals:
            assessment = self.severity.assess(literal)
            if assessment is not None:
                self._findings.add(addr, formula, literal, assessment)

        self._drift.add(row + 1, addr, formula)

    def _finalize(self, used_range: str, total_cells: int) -> WorksheetResult:
        self._drift.close_rows()
        infos = []
        for agg in self._formulas.values():
            scored = self.scorer.with_usage(agg.structure, agg.count)
            infos.append(
                FormulaInfo(
                    formula=agg.key,
                    example=agg.example,
                    count=agg.count,
                    cells=tuple(agg.cells),
                    score=scored.score,
                    band=scored.band,
                    is_array=agg.is_array,
                    is_volatile=scored.is_volatile,
                )
            )
        # most used first; ties keep first-seen order
        infos.sort(key=lambda f: -f.count)

        hardcodes = self._findings.finalize()
        logger.debug(
            "%s: %d formulas, %d unique, %d findings",
            self.name,
            self._total_formulas,
            len(infos),
            len(hardcodes),
        )
        return WorksheetResult(
            name=self.name,
            mode=AnalysisMode.STREAMING,
            used_range=used_range,
            total_cells=total_cells,
            total_formulas=self._total_formulas,
            total_values=self._total_values,
            formulas=tuple(infos),
            hardcodes=hardcodes,
            drift=tuple(self._drift.findings),
            complexity=assess_sheet_complexity(infos),
            errors=tuple(self._errors),
        )


def _block_message(sheet: str, block: Block) -> str:
    return (
        f"Analyzing {sheet}: rows {block.row + 1}-{block.last_row + 1}, "
        f"cols {block.column + 1}-{block.last_column + 1}"
    )


def scan_worksheet(
    sheet: SheetHost,
    options: Optional[ScanOptions] = None,
    progress: Optional[ProgressCallback] = None,
    cancel: Optional[CancelToken] = None,
) -> WorksheetResult:
    return WorksheetScanner(sheet, options, progress=progress, cancel=cancel).run()
