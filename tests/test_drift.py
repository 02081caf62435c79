"""Tests for the row pattern (copy drift) tracker."""

from modelreview.core.config import DriftOptions
from modelreview.detectors.drift import RowPatternTracker, formula_shape


def _fill_row(tracker, row, odd_one=None):
    cols = "BCDEFGH"
    for i, col in enumerate(cols):
        prev = "ABCDEFG"[i]
        formula = f"={prev}{row + 1}*1.1"
        if col == odd_one:
            formula = f"=SUM({prev}{row + 1}:{prev}{row + 5})"
        tracker.add(row, f"{col}{row}", formula)


class TestFormulaShape:
    def test_refs_and_numbers_abstracted(self):
        assert formula_shape("=A1*1.1") == formula_shape("=$Z$9 * 2")
        assert formula_shape("=sum(A1:B2)") == "=SUM(CELL)"

    def test_non_formula_has_no_shape(self):
        assert formula_shape("text") == ""
        assert formula_shape(None) == ""


class TestRowPatternTracker:
    def test_reports_odd_cell_when_row_closes(self):
        tracker = RowPatternTracker()
        _fill_row(tracker, 3, odd_one="F")
        found = tracker.close_rows(3)
        assert [f.cell for f in found] == ["F3"]
        assert found[0].row == 3
        assert found[0].dominant_shape == "=CELL*NUM"
        assert tracker.findings == found

    def test_rows_stay_open_until_closed(self):
        tracker = RowPatternTracker()
        _fill_row(tracker, 8, odd_one="C")
        assert tracker.close_rows(7) == []
        assert len(tracker.close_rows()) == 1

    def test_short_rows_ignored(self):
        tracker = RowPatternTracker(DriftOptions(min_row_formula_count=10))
        _fill_row(tracker, 1, odd_one="C")
        assert tracker.close_rows() == []

    def test_no_dominant_shape(self):
        tracker = RowPatternTracker(DriftOptions(min_row_formula_count=2, dominant_ratio=0.9))
        tracker.add(1, "A1", "=B1+1")
        tracker.add(1, "B1", "=SUM(C1:C2)")
        assert tracker.close_rows() == []

    def test_cap_and_disabled(self):
        capped = RowPatternTracker(DriftOptions(max_findings=1))
        _fill_row(capped, 1, odd_one="C")
        _fill_row(capped, 2, odd_one="D")
        capped.close_rows()
        assert len(capped.findings) == 1

        off = RowPatternTracker(DriftOptions(enabled=False))
        _fill_row(off, 1, odd_one="C")
        assert off.close_rows() == []
