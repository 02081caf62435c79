"""Shared test fixtures for modelreview."""

import pytest
from openpyxl import Workbook
from openpyxl.worksheet.formula import ArrayFormula

from modelreview.host.memory import GridSheet, MemoryWorkbook


@pytest.fixture
def multiplier_sheet():
    """A1=5 with the same hard-coded multiplier copied into A2 and A3."""
    return GridSheet("Model", {"A1": 5, "A2": "=A1*12", "A3": "=A1*12"})


@pytest.fixture
def small_workbook():
    """Two populated sheets sharing one formula shape, plus an empty sheet."""
    return MemoryWorkbook(
        [
            GridSheet("Inputs", {"A1": 5, "A2": "=A1*12", "A3": "=A2*12"}),
            GridSheet("Calc", {"B5": 3, "B6": "=B5*12", "C6": '=IF(B6>100,"Review","")'}),
            GridSheet("Notes"),
        ]
    )


@pytest.fixture
def xlsx_path(tmp_path):
    """A real workbook written with openpyxl (no cached values)."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Model"
    ws["A1"] = 5
    ws["A2"] = "=A1*12"
    ws["A3"] = "=A1*12"
    ws["B1"] = "=_xlfn.XLOOKUP(A1,A2:A3,A2:A3)"
    ws["C1"] = ArrayFormula("C1:C3", "=A1:A3*2")
    wb.create_sheet("Empty")
    path = tmp_path / "model.xlsx"
    wb.save(path)
    return path
