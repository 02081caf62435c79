"""
modelreview/mapping/generator.py

Worksheet map: one symbol per cell describing how the sheet was filled.

    F  formula that differs from its left and upper neighbour
    <  same R1C1 formula as the cell to the left
    ^  same R1C1 formula as the cell above
    +  same as both
    L  label (text)
    N  numeric (or boolean) input
    A  array formula, or a cell inside a dynamic-array spill
       blank

The map walks the sheet in blocks like the scan does, comparing relative
(R1C1) formula text so that copies of one formula line up. Spill anchors
found on the way are resolved afterwards and their rectangles promoted to A.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from modelreview.core.cells import Region
from modelreview.core.config import MapOptions
from modelreview.core.control import CancelToken, ProgressCallback, is_empty, notify
from modelreview.core.cursor import GridCursor
from modelreview.core.references import has_spill_marker
from modelreview.host.base import SheetHost

logger = logging.getLogger(__name__)


class MapSymbol(str, Enum):
    UNIQUE = "F"
    COPY_LEFT = "<"
    COPY_UP = "^"
    COPY_BOTH = "+"
    LABEL = "L"
    NUMBER = "N"
    ARRAY = "A"
    BLANK = ""


COUNTED_SYMBOLS = tuple(s for s in MapSymbol if s != MapSymbol.BLANK)


def _zero_counts() -> Dict[MapSymbol, int]:
    return {s: 0 for s in COUNTED_SYMBOLS}


@dataclass(frozen=True)
class MapAnomalies:
    change_of_direction: int = 0
    horizontal_breaks: int = 0
    vertical_breaks: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "change_of_direction": self.change_of_direction,
            "horizontal_breaks": self.horizontal_breaks,
            "vertical_breaks": self.vertical_breaks,
        }


@dataclass(frozen=True)
class MapResult:
    """symbols is indexed relative to the used region's top-left cell."""

    worksheet: str
    used_range: str
    start_row: int
    start_column: int
    row_count: int
    column_count: int
    symbols: Tuple[Tuple[MapSymbol, ...], ...] = ()
    counts: Dict[MapSymbol, int] = field(default_factory=_zero_counts)
    array_areas: Tuple[Region, ...] = ()
    anomalies: MapAnomalies = field(default_factory=MapAnomalies)
    skipped: bool = False
    skip_reason: Optional[str] = None

    def symbol_at(self, row: int, column: int) -> MapSymbol:
        """Symbol of the absolute zero-based cell (row, column)."""
        return self.symbols[row - self.start_row][column - self.start_column]

    def render_text(self, blank: str = ".") -> str:
        lines = []
        for row in self.symbols:
            lines.append("".join(s.value or blank for s in row))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worksheet": self.worksheet,
            "used_range": self.used_range,
            "start_row": self.start_row,
            "start_column": self.start_column,
            "row_count": self.row_count,
            "column_count": self.column_count,
            "symbols": [[s.value for s in row] for row in self.symbols],
            "counts": {s.value: n for s, n in self.counts.items()},
            "array_areas": [a.to_dict() for a in self.array_areas],
            "anomalies": self.anomalies.to_dict(),
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
        }


class WorksheetMapGenerator:
    def __init__(self, options: Optional[MapOptions] = None) -> None:
        self.options = options or MapOptions()

    def generate(
        self,
        sheet: SheetHost,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> MapResult:
        region = sheet.used_region()
        if region is None or region.cell_count == 0:
            return _empty(sheet.name, "A1", 0, 0, "no_used_region")

        max_cells = self.options.max_cells
        if region.cell_count > max_cells:
            logger.info("map of %s skipped: %d cells", sheet.name, region.cell_count)
            return _empty(
                sheet.name, region.address, region.row, region.column, f"exceeds_max_cells_{max_cells}"
            )

        rows, cols = region.row_count, region.column_count
        symbols: List[List[MapSymbol]] = [[MapSymbol.BLANK] * cols for _ in range(rows)]
        counts = _zero_counts()
        anchors: Dict[Tuple[int, int], None] = {}
        row_state: List[Optional[str]] = [None] * rows
        col_state: List[Optional[str]] = [None] * cols

        cursor = GridCursor(
            sheet,
            region,
            block_rows=self.options.block_rows,
            block_columns=self.options.block_columns,
            r1c1=True,
        )
        for data in cursor:
            b = data.block
            notify(
                progress,
                f"Mapping {sheet.name}: rows {b.row + 1}-{b.last_row + 1}, "
                f"cols {b.column + 1}-{b.last_column + 1}",
            )
            for cell in data.iter_cells():
                r = cell.row - region.row
                c = cell.column - region.column
                symbol = self._classify(cell.formula, cell.value, cell.text, r, c, row_state, col_state)
                # array formulas may carry a multi-cell ref; spill references always might
                if symbol == MapSymbol.ARRAY or has_spill_marker(cell.formula):
                    anchors.setdefault((cell.row, cell.column), None)
                if symbol != MapSymbol.BLANK:
                    counts[symbol] += 1
                symbols[r][c] = symbol
            if cancel is not None:
                cancel.check(sheet.name)

        areas = self._promote_spills(sheet, region, anchors, symbols, counts)
        anomalies = analyse_anomalies(symbols)

        return MapResult(
            worksheet=sheet.name,
            used_range=region.address,
            start_row=region.row,
            start_column=region.column,
            row_count=rows,
            column_count=cols,
            symbols=tuple(tuple(r) for r in symbols),
            counts=counts,
            array_areas=tuple(areas),
            anomalies=anomalies,
        )

    @staticmethod
    def _classify(
        formula: Optional[str],
        value: Any,
        text: Optional[str],
        row: int,
        col: int,
        row_state: List[Optional[str]],
        col_state: List[Optional[str]],
    ) -> MapSymbol:
        f = formula.strip() if isinstance(formula, str) else ""

        if f.startswith("{=") and f.endswith("}"):
            row_state[row] = None
            col_state[col] = None
            return MapSymbol.ARRAY

        if f.startswith("="):
            left = row_state[row] if col > 0 else None
            up = col_state[col]
            if left == f and up == f:
                symbol = MapSymbol.COPY_BOTH
            elif left == f:
                symbol = MapSymbol.COPY_LEFT
            elif up == f:
                symbol = MapSymbol.COPY_UP
            else:
                symbol = MapSymbol.UNIQUE
            row_state[row] = f
            col_state[col] = f
            return symbol

        row_state[row] = None
        col_state[col] = None

        if not is_empty(value):
            if isinstance(value, (int, float)):
                return MapSymbol.NUMBER
            return MapSymbol.LABEL
        if text and text.strip():
            return MapSymbol.LABEL
        return MapSymbol.BLANK

    @staticmethod
    def _promote_spills(
        sheet: SheetHost,
        region: Region,
        anchors: Dict[Tuple[int, int], None],
        symbols: List[List[MapSymbol]],
        counts: Dict[MapSymbol, int],
    ) -> List[Region]:
        areas: List[Region] = []
        for row, column in anchors:
            spill = sheet.spill_range(row, column)
            if spill is None:
                continue
            if not region.covers(spill):
                logger.debug("spill %s of %s lies outside the used range", spill.address, sheet.name)
                continue

            promoted = 0
            for r in range(spill.row - region.row, spill.last_row - region.row + 1):
                for c in range(spill.column - region.column, spill.last_column - region.column + 1):
                    previous = symbols[r][c]
                    if previous == MapSymbol.ARRAY:
                        continue
                    if previous != MapSymbol.BLANK:
                        counts[previous] = max(0, counts[previous] - 1)
                    symbols[r][c] = MapSymbol.ARRAY
                    promoted += 1
            if promoted:
                counts[MapSymbol.ARRAY] += promoted
                areas.append(spill)
        return areas


_LEFT = (MapSymbol.COPY_LEFT, MapSymbol.COPY_BOTH)
_UP = (MapSymbol.COPY_UP, MapSymbol.COPY_BOTH)
_STOP = (MapSymbol.NUMBER, MapSymbol.LABEL, MapSymbol.BLANK)


def analyse_anomalies(symbols: List[List[MapSymbol]]) -> MapAnomalies:
    """
    Count direction changes inside copy runs along each row, and runs that end
    in an input, label or blank cell along rows (horizontal) and columns
    (vertical). F and A end a run without counting as a break.
    """
    changes = 0
    h_breaks = 0
    v_breaks = 0
    if not symbols:
        return MapAnomalies()

    for row in symbols:
        last: Optional[str] = None
        in_run = False
        for s in row:
            if s in _LEFT:
                if last and last != "left":
                    changes += 1
                last, in_run = "left", True
            elif s == MapSymbol.COPY_UP:
                if last and last != "up":
                    changes += 1
                last, in_run = "up", True
            else:
                if s in _STOP and in_run:
                    h_breaks += 1
                last, in_run = None, False

    for c in range(len(symbols[0])):
        in_run = False
        for row in symbols:
            s = row[c]
            if s in _UP:
                in_run = True
            else:
                if s in _STOP and in_run:
                    v_breaks += 1
                in_run = False

    return MapAnomalies(changes, h_breaks, v_breaks)


def _empty(name: str, used_range: str, row: int, column: int, reason: str) -> MapResult:
    return MapResult(
        worksheet=name,
        used_range=used_range,
        start_row=row,
        start_column=column,
        row_count=0,
        column_count=0,
        skipped=True,
        skip_reason=reason,
    )
