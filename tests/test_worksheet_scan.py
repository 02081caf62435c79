"""Tests for the per-sheet scan orchestrator."""

import json

import pytest

from modelreview.core.config import DriftOptions, ScanOptions
from modelreview.core.control import CancelToken, ScanCancelled
from modelreview.detectors.complexity import ComplexityBand
from modelreview.detectors.severity import Severity
from modelreview.host.base import HostError
from modelreview.host.memory import GridSheet
from modelreview.scan.results import AnalysisMode
from modelreview.scan.worksheet import (
    FindingsBuilder,
    ScanPhase,
    WorksheetScanner,
    assess_sheet_complexity,
    scan_worksheet,
)


class TestEndToEnd:
    def test_repeated_multiplier(self, multiplier_sheet):
        result = scan_worksheet(multiplier_sheet)

        assert result.mode == AnalysisMode.STREAMING
        assert result.total_cells == 3
        assert result.total_formulas == 2
        assert result.total_values == 1
        assert result.unique_formulas == 1

        info = result.formulas[0]
        assert info.formula == "=<REF>*12"
        assert info.example == "=A1*12"
        assert info.count == 2
        assert info.cells == ("A2", "A3")

        findings = result.hardcodes.findings
        assert [f.cell for f in findings] == ["A2", "A3"]
        for f in findings:
            assert f.literal.value == "12"
            assert f.severity == Severity.LOW
            assert "Common multiplier" in f.rationale
            assert f.repetition_count == 2
            assert f.is_repeated
            assert not f.is_undocumented_parameter
        assert result.hardcodes.counts()["Low"] == 2

    def test_result_is_json_ready(self, multiplier_sheet):
        d = scan_worksheet(multiplier_sheet).to_dict()
        json.dumps(d)
        assert d["analysis_mode"] == "streaming"
        assert d["unique_formulas_list"][0]["count"] == 2

    def test_quoted_sheet_names_group_separately(self):
        sheet = GridSheet(
            "S",
            {"A1": "='Q1 Data'!B1*12", "A2": "='Q1 Data'!B2*12", "A3": "='FY24 Plan'!B3*12"},
        )
        result = scan_worksheet(sheet)
        assert [(f.formula, f.count) for f in result.formulas] == [
            ("='Q1 Data'!<REF>*12", 2),
            ("='FY24 Plan'!<REF>*12", 1),
        ]

    def test_exact_grouping(self):
        sheet = GridSheet("S", {"A1": 5, "A2": "=A1*12", "A3": "=A2*12"})
        grouped = scan_worksheet(sheet)
        exact = scan_worksheet(sheet, ScanOptions(group_similar_formulas=False))
        assert grouped.unique_formulas == 1
        assert exact.unique_formulas == 2
        assert {f.formula for f in exact.formulas} == {"=A1*12", "=A2*12"}

    def test_most_used_formula_first(self):
        sheet = GridSheet("S", {"A1": "=SUM(B1:B3)", "A2": "=C1*2", "A3": "=C2*2", "A4": "=C3*2"})
        result = scan_worksheet(sheet)
        assert [f.count for f in result.formulas] == [3, 1]

    def test_undocumented_parameter(self):
        sheet = GridSheet("S", {"A1": "=B1*1.05", "A2": "=B2*1.05", "A3": "=B3*3"})
        findings = scan_worksheet(sheet).hardcodes
        flagged = findings.undocumented_parameters
        assert [f.cell for f in flagged] == ["A1", "A2"]
        assert all(f.severity == Severity.HIGH for f in flagged)
        assert findings.by_severity(Severity.INFO)[0].repetition_count == 1


class TestModes:
    def test_empty_sheet_is_skipped(self):
        result = scan_worksheet(GridSheet("Blank"))
        assert result.mode == AnalysisMode.SKIPPED
        assert result.reason == "no_used_region"
        assert result.total_cells == 0

    def test_massive_sheet_uses_counts_only(self):
        sheet = GridSheet("Big", {"A1": 1, "B1": "=A1*2", "A2": "x", "B2": "=A2&\"y\""})
        result = scan_worksheet(sheet, ScanOptions(massive_cell_threshold=4))
        assert result.mode == AnalysisMode.MASSIVE_SKIM
        assert result.total_cells == 4
        assert result.total_formulas == 2
        assert result.total_values == 2
        assert result.formulas == ()
        assert len(result.hardcodes) == 0
        assert result.reason == "exceeds_massive_threshold_4"
        assert sheet.reads == []

    def test_failed_skim_count_is_reported(self):
        sheet = GridSheet("Big", {"A1": 1, "B2": "=A1"}, fail_counts=True)
        result = scan_worksheet(sheet, ScanOptions(massive_cell_threshold=1))
        assert result.mode == AnalysisMode.MASSIVE_SKIM
        assert result.reason.startswith("skim_count_failed")
        assert result.total_formulas == 0

    def test_block_read_failure_propagates(self):
        sheet = GridSheet("S", {"A1": "=B1"}, fail_reads=True)
        with pytest.raises(HostError):
            scan_worksheet(sheet)


class TestCaps:
    def test_sample_addresses_capped(self):
        cells = {f"A{i}": f"=B{i}+C{i}" for i in range(1, 8)}
        result = scan_worksheet(GridSheet("S", cells), ScanOptions(max_formula_samples=3))
        info = result.formulas[0]
        assert info.count == 7
        assert info.cells == ("A1", "A2", "A3")
        assert info.to_dict()["cells_truncated"] is True

    def test_findings_capped(self):
        cells = {f"A{i}": f"=B{i}*{i + 10}" for i in range(1, 6)}
        result = scan_worksheet(GridSheet("S", cells), ScanOptions(max_findings=2))
        assert len(result.hardcodes) == 2
        assert result.hardcodes.findings_detected == 5
        assert result.hardcodes.truncated

    def test_builder_finalize_counts_by_display(self):
        from modelreview.detectors.hardcodes import detect_hardcoded_literals
        from modelreview.detectors.severity import SeverityModel

        model = SeverityModel()
        builder = FindingsBuilder(max_findings=10)
        for cell, formula in [("A1", "=B1*500"), ("A2", "=B2*500"), ("A3", "=B3*7")]:
            (lit,) = detect_hardcoded_literals(formula)
            builder.add(cell, formula, lit, model.assess(lit))
        analysis = builder.finalize()
        assert [f.repetition_count for f in analysis.findings] == [2, 2, 1]
        assert [f.is_undocumented_parameter for f in analysis.findings] == [True, True, False]
        assert analysis.medium[0].snippet == "=B1*500"


class TestEmptyFormulaCells:
    def test_blank_valued_formulas_can_be_excluded(self):
        sheet = GridSheet("S", {"A1": "=B1", "A2": "=B2"}, values={"A2": 3})
        assert scan_worksheet(sheet).total_formulas == 2
        assert scan_worksheet(sheet, ScanOptions(include_empty_cells=False)).total_formulas == 1


class TestScheduling:
    def test_yields_after_every_block(self, multiplier_sheet):
        scanner = WorksheetScanner(multiplier_sheet, ScanOptions(block_rows=1, block_columns=1))
        events = list(scanner.steps())
        phases = [e.phase for e in events]
        assert phases[0] == ScanPhase.STREAMING
        assert phases[-1] == ScanPhase.DONE
        block_events = [e for e in events[1:-1]]
        assert [e.blocks_done for e in block_events] == [1, 2, 3]
        assert all(e.blocks_total == 3 for e in block_events)
        assert scanner.result is not None

    def test_scanner_runs_once(self, multiplier_sheet):
        scanner = WorksheetScanner(multiplier_sheet)
        scanner.run()
        with pytest.raises(RuntimeError):
            scanner.run()

    def test_cancel_between_blocks(self, multiplier_sheet):
        token = CancelToken()
        scanner = WorksheetScanner(multiplier_sheet, ScanOptions(block_rows=1), cancel=token)
        steps = scanner.steps()
        next(steps)
        next(steps)
        token.cancel()
        with pytest.raises(ScanCancelled):
            next(steps)
        assert len(multiplier_sheet.reads) == 1
        assert scanner.result is None

    def test_progress_messages(self, multiplier_sheet):
        messages = []
        scan_worksheet(multiplier_sheet, progress=messages.append)
        assert messages[0] == "Analyzing worksheet Model"
        assert messages[1] == "Analyzing Model: rows 1-3, cols 1-1"

    def test_failing_progress_callback_does_not_abort(self, multiplier_sheet):
        def boom(message):
            raise ValueError("display closed")

        result = scan_worksheet(multiplier_sheet, progress=boom)
        assert result.total_formulas == 2


class TestDiagnostics:
    def test_tokenizer_fallback_is_recorded(self):
        sheet = GridSheet("S", {"A1": "=SUM(B1,2))"})
        result = scan_worksheet(sheet)
        assert len(result.errors) == 1
        err = result.errors[0]
        assert err["scope"] == "parse_formula"
        assert err["dependent"] == "S!A1"
        assert [f.literal.value for f in result.hardcodes.findings] == ["2"]

    def test_row_drift_detected_during_scan(self):
        cells = {f"{c}1": f"={p}2*1.1" for p, c in zip("ABCDEFG", "BCDEFGH")}
        cells["F1"] = "=SUM(E2:E9)"
        result = scan_worksheet(GridSheet("S", cells), ScanOptions(block_columns=3))
        assert [d.cell for d in result.drift] == ["F1"]

    def test_drift_can_be_disabled(self):
        cells = {f"{c}1": f"={p}2*1.1" for p, c in zip("ABCDEFG", "BCDEFGH")}
        cells["F1"] = "=SUM(E2:E9)"
        opts = ScanOptions(drift=DriftOptions(enabled=False))
        assert scan_worksheet(GridSheet("S", cells), opts).drift == ()


class TestSheetComplexity:
    def test_empty_is_low(self):
        assert assess_sheet_complexity([]) == ComplexityBand.LOW

    def test_many_unique_lookups_is_high(self):
        cells = {f"A{i}": f"=VLOOKUP(B{i},C:D,{i % 7 + 2},FALSE)+{i}" for i in range(1, 30)}
        result = scan_worksheet(GridSheet("S", cells))
        assert result.complexity == ComplexityBand.HIGH
