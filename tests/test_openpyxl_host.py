"""Tests for the openpyxl-backed workbook host."""

import pytest
from openpyxl import Workbook
from openpyxl.worksheet.formula import ArrayFormula

from modelreview.core.cells import Block
from modelreview.core.cursor import GridCursor
from modelreview.host.base import CellKind, HostError
from modelreview.host.openpyxl_host import OpenpyxlWorkbook, clean_formula, formula_text
from modelreview.mapping.generator import MapSymbol, WorksheetMapGenerator
from modelreview.scan.workbook import scan_workbook


@pytest.fixture
def workbook(xlsx_path):
    with OpenpyxlWorkbook(xlsx_path) as wb:
        yield wb


class TestFormulaText:
    def test_storage_prefixes_removed(self):
        assert clean_formula("=_xlfn.XLOOKUP(A1,B:B,C:C)") == "=XLOOKUP(A1,B:B,C:C)"
        assert clean_formula("=_xlfn._xlws.SORT(A1:A9)") == "=SORT(A1:A9)"

    def test_anchor_array_becomes_spill_reference(self):
        assert clean_formula("=SUM(_xlfn.ANCHORARRAY(B2))") == "=SUM(B2#)"

    def test_constants_have_no_formula(self):
        assert formula_text(5) is None
        assert formula_text("=") is None
        assert formula_text("text") is None

    def test_array_formula_braced(self):
        assert formula_text(ArrayFormula("A1:A3", "=B1:B3*2")) == "{=B1:B3*2}"


class TestSheet:
    def test_sheet_names(self, workbook):
        assert workbook.sheet_names() == ["Model", "Empty"]

    def test_unknown_sheet(self, workbook):
        with pytest.raises(HostError):
            workbook.sheet("Ghost")

    def test_used_region(self, workbook):
        region = workbook.sheet("Model").used_region()
        assert region.address == "A1:C3"
        assert workbook.sheet("Empty").used_region() is None

    def test_read_block(self, workbook):
        sheet = workbook.sheet("Model")
        (data,) = list(GridCursor.open(sheet))
        assert data.formulas[0][0] is None
        assert data.values[0][0] == 5
        assert data.texts[0][0] == "5"
        assert data.formulas[1][0] == "=A1*12"
        assert data.formulas[0][1] == "=XLOOKUP(A1,A2:A3,A2:A3)"
        assert data.formulas[0][2] == "{=A1:A3*2}"
        # never calculated, so no cached values
        assert data.values[1][0] is None

    def test_read_block_in_r1c1(self, workbook):
        sheet = workbook.sheet("Model")
        data = sheet.read_block(Block(row=1, column=0, row_count=2, column_count=1), r1c1=True)
        assert data.formulas[0][0] == "=R[-1]C*12"
        assert data.formulas[1][0] == "=R[-2]C*12"

    def test_count_cells(self, workbook):
        sheet = workbook.sheet("Model")
        assert sheet.count_cells(CellKind.FORMULAS) == 4
        assert sheet.count_cells(CellKind.CONSTANTS) == 1

    def test_spill_range(self, workbook):
        sheet = workbook.sheet("Model")
        assert sheet.spill_range(0, 2).address == "C1:C3"
        assert sheet.spill_range(0, 0) is None


class TestEndToEnd:
    def test_scan(self, workbook):
        result = scan_workbook(workbook)
        model = result.worksheet("Model")
        assert model.total_formulas == 4
        assert model.total_values == 1
        assert "=<REF>*12" in {f.formula for f in model.formulas}
        assert [f.cell for f in model.hardcodes.findings if f.literal.value == "12"] == ["A2", "A3"]
        assert result.worksheet("Empty").reason == "no_used_region"

    def test_map(self, workbook):
        m = WorksheetMapGenerator().generate(workbook.sheet("Model"))
        assert m.symbol_at(0, 0) == MapSymbol.NUMBER
        assert m.symbol_at(1, 0) == MapSymbol.UNIQUE
        assert m.symbol_at(0, 2) == MapSymbol.ARRAY
        assert [m.symbol_at(r, 2) for r in range(3)] == [MapSymbol.ARRAY] * 3
        assert [a.address for a in m.array_areas] == ["C1:C3"]
        assert m.counts[MapSymbol.ARRAY] == 3


class TestArrayAreas:
    """Array formula ranges saved by Excel for dynamic arrays."""

    @pytest.fixture
    def spill_workbook(self, tmp_path):
        wb = Workbook()
        ws = wb.active
        ws.title = "Spill"
        ws["A1"] = 1
        ws["B1"] = ArrayFormula("B1:C3", "=_xlfn.SEQUENCE(3,2)")
        ws["E1"] = ArrayFormula("E1:F3", "=_xlfn.ANCHORARRAY(B1)")
        path = tmp_path / "spill.xlsx"
        wb.save(path)
        with OpenpyxlWorkbook(path) as book:
            yield book

    def test_used_region_covers_array_ranges(self, spill_workbook):
        assert spill_workbook.sheet("Spill").used_region().address == "A1:F3"

    def test_single_cell_array_is_not_a_spill(self, tmp_path):
        wb = Workbook()
        wb.active["A1"] = ArrayFormula("A1", "=SUM(B1:B3*C1:C3)")
        path = tmp_path / "single.xlsx"
        wb.save(path)
        with OpenpyxlWorkbook(path) as book:
            sheet = book.sheet(book.sheet_names()[0])
            assert sheet.spill_range(0, 0) is None

    def test_map_promotes_every_array_cell(self, spill_workbook):
        m = WorksheetMapGenerator().generate(spill_workbook.sheet("Spill"))
        assert m.render_text() == "NAA.AA\n.AA.AA\n.AA.AA"
        assert m.counts[MapSymbol.ARRAY] == 12
        assert [a.address for a in m.array_areas] == ["B1:C3", "E1:F3"]
