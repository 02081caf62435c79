"""
modelreview/host/openpyxl_host.py

Workbook host backed by openpyxl.

The file is opened twice: once for formula text and once with data_only=True
for the values Excel cached on its last save. A workbook written by a tool
that never calculated it has no cached values, so formula cells read as None.

openpyxl keeps the storage form of newer functions ("_xlfn.XLOOKUP",
"_xlfn.ANCHORARRAY(B2)"); formula text is rewritten to the form a user
types ("XLOOKUP", "B2#") before it leaves the host.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from openpyxl import load_workbook
from openpyxl.worksheet.formula import ArrayFormula

from modelreview.core.cells import Block, Region
from modelreview.core.references import to_r1c1
from modelreview.host.base import BlockData, CellKind, HostError, display_text, freeze_grid

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"_xl(?:fn|ws)\.", re.IGNORECASE)
_ANCHOR_RE = re.compile(r"ANCHORARRAY\(\s*([^()]+?)\s*\)", re.IGNORECASE)


def clean_formula(text: str) -> str:
    f = _PREFIX_RE.sub("", text)
    return _ANCHOR_RE.sub(r"\1#", f)


def formula_text(value: Any) -> Optional[str]:
    """Formula text of a cell value, or None if the cell holds a constant."""
    if isinstance(value, ArrayFormula):
        text = value.text or ""
        if not text.startswith("="):
            text = "=" + text
        return "{" + clean_formula(text) + "}"
    if isinstance(value, str) and value.startswith("=") and len(value) > 1:
        return clean_formula(value)
    return None


def _array_area(value: Any) -> Optional[Region]:
    if not isinstance(value, ArrayFormula) or not value.ref:
        return None
    try:
        return Region.from_address(value.ref)
    except ValueError:
        logger.debug("unparseable array ref %r", value.ref)
        return None


class OpenpyxlSheet:
    def __init__(self, ws, values_ws) -> None:
        self.ws = ws
        self.values_ws = values_ws
        self.name = ws.title
        self._region: Optional[Region] = None
        self._region_known = False

    def _populated(self) -> Iterator[Tuple[Tuple[int, int], Any]]:
        cells = getattr(self.ws, "_cells", None)
        if isinstance(cells, dict):
            for key, cell in cells.items():
                if cell.value is not None and cell.value != "":
                    yield key, cell.value
            return
        for row in self.ws.iter_rows():
            for cell in row:
                if cell.value is not None and cell.value != "":
                    yield (cell.row, cell.column), cell.value

    def used_region(self) -> Optional[Region]:
        if self._region_known:
            return self._region
        top = left = None
        bottom = right = 0
        for (r, c), value in self._populated():
            corners = [(r, c)]
            area = _array_area(value)
            if area is not None:
                # the array's range belongs to the sheet even where no cell is stored
                corners.append((area.row + 1, area.column + 1))
                corners.append((area.last_row + 1, area.last_column + 1))
            for cr, cc in corners:
                top = cr if top is None else min(top, cr)
                left = cc if left is None else min(left, cc)
                bottom = max(bottom, cr)
                right = max(right, cc)
        self._region_known = True
        if top is None or left is None:
            self._region = None
        else:
            self._region = Region(top - 1, left - 1, bottom - top + 1, right - left + 1)
        return self._region

    def read_block(self, block: Block, *, r1c1: bool = False) -> BlockData:
        bounds = dict(
            min_row=block.row + 1,
            max_row=block.last_row + 1,
            min_col=block.column + 1,
            max_col=block.last_column + 1,
        )
        try:
            f_rows = list(self.ws.iter_rows(values_only=True, **bounds))
            v_rows = list(self.values_ws.iter_rows(values_only=True, **bounds))
        except Exception as exc:
            raise HostError(f"Cannot read {self.name}!{block.address}: {exc}") from exc

        formulas: List[List[Optional[str]]] = []
        values: List[List[Any]] = []
        texts: List[List[str]] = []
        for i, (f_row, v_row) in enumerate(zip(f_rows, v_rows)):
            row = block.row + i
            fr, vr, tr = [], [], []
            for j, (raw, cached) in enumerate(zip(f_row, v_row)):
                f = formula_text(raw)
                if f is None:
                    value = raw
                else:
                    value = cached
                    if r1c1:
                        f = to_r1c1(f, row, block.column + j)
                fr.append(f)
                vr.append(value)
                tr.append(display_text(value))
            formulas.append(fr)
            values.append(vr)
            texts.append(tr)
        return BlockData(block, freeze_grid(formulas), freeze_grid(values), freeze_grid(texts))

    def count_cells(self, kind: CellKind) -> int:
        formulas = 0
        constants = 0
        for _, value in self._populated():
            if formula_text(value) is None:
                constants += 1
            else:
                formulas += 1
        return formulas if kind == CellKind.FORMULAS else constants

    def spill_range(self, row: int, column: int) -> Optional[Region]:
        """Range recorded on an array formula anchored at (row, column)."""
        cells = getattr(self.ws, "_cells", {}) or {}
        cell = cells.get((row + 1, column + 1))
        area = _array_area(getattr(cell, "value", None))
        if area is None or area.cell_count < 2:
            return None
        return area


class OpenpyxlWorkbook:
    """Read-only view of an .xlsx/.xlsm file. Use as a context manager to close it."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.wb = load_workbook(filename=str(self.path), data_only=False, read_only=False, keep_vba=True)
        self.values_wb = load_workbook(filename=str(self.path), data_only=True, read_only=False)
        self._sheets: Dict[str, OpenpyxlSheet] = {}

    def sheet_names(self) -> List[str]:
        return [ws.title for ws in self.wb.worksheets]

    def sheet(self, name: str) -> OpenpyxlSheet:
        if name not in self._sheets:
            if name not in self.sheet_names():
                raise HostError(f"No worksheet named '{name}' in {self.path.name}")
            self._sheets[name] = OpenpyxlSheet(self.wb[name], self.values_wb[name])
        return self._sheets[name]

    def close(self) -> None:
        self.wb.close()
        self.values_wb.close()

    def __enter__(self) -> "OpenpyxlWorkbook":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
