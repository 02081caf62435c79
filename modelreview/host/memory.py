"""
modelreview/host/memory.py

A spreadsheet held in plain dicts. Useful for library callers that already
have their cells in memory, and for tests: spill ranges are declared up
front and host failures can be switched on.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from modelreview.core.cells import Block, Region, cell_address, parse_address
from modelreview.core.references import to_r1c1
from modelreview.host.base import BlockData, CellKind, HostError, display_text, freeze_grid


def _is_formula(content: Any) -> bool:
    return isinstance(content, str) and (content.startswith("=") or content.startswith("{="))


class GridSheet:
    """
    cells maps A1 addresses to cell content: a formula string ("=A1*12",
    "{=SUM(A1:A3*B1:B3)}") or a plain value. values optionally gives the
    calculated value of formula cells. spills maps an anchor address to the
    range its dynamic array fills ("B2": "B2:C4").

    reads keeps the most recent max_reads blocks handed out by read_block,
    oldest first, so callers can see what a scan touched.
    """

    def __init__(
        self,
        name: str,
        cells: Optional[Mapping[str, Any]] = None,
        values: Optional[Mapping[str, Any]] = None,
        spills: Optional[Mapping[str, str]] = None,
        fail_reads: bool = False,
        fail_counts: bool = False,
        max_reads: int = 1000,
    ) -> None:
        self.name = name
        self._cells: Dict[Tuple[int, int], Any] = {}
        self._values: Dict[Tuple[int, int], Any] = {}
        self._spills: Dict[Tuple[int, int], Region] = {}
        self.fail_reads = fail_reads
        self.fail_counts = fail_counts
        self.max_reads = int(max_reads)
        self.reads: List[Block] = []

        for addr, content in (cells or {}).items():
            self.set(addr, content)
        for addr, value in (values or {}).items():
            self._values[parse_address(addr)] = value
        for addr, ref in (spills or {}).items():
            self._spills[parse_address(addr)] = Region.from_address(ref)

    @classmethod
    def from_rows(cls, name: str, rows: Sequence[Sequence[Any]], origin: str = "A1", **kwargs: Any) -> "GridSheet":
        r0, c0 = parse_address(origin)
        cells = {}
        for r, row in enumerate(rows):
            for c, content in enumerate(row):
                if content is not None and content != "":
                    cells[cell_address(r0 + r, c0 + c)] = content
        return cls(name, cells, **kwargs)

    def set(self, addr: str, content: Any) -> None:
        key = parse_address(addr)
        if content is None or content == "":
            self._cells.pop(key, None)
        else:
            self._cells[key] = content

    def used_region(self) -> Optional[Region]:
        keys = list(self._cells)
        for anchor, area in self._spills.items():
            if anchor in self._cells:
                keys.append((area.row, area.column))
                keys.append((area.last_row, area.last_column))
        if not keys:
            return None
        top = min(r for r, _ in keys)
        left = min(c for _, c in keys)
        bottom = max(r for r, _ in keys)
        right = max(c for _, c in keys)
        return Region(top, left, bottom - top + 1, right - left + 1)

    def _value_at(self, key: Tuple[int, int]) -> Any:
        content = self._cells.get(key)
        if _is_formula(content):
            return self._values.get(key)
        return content

    def read_block(self, block: Block, *, r1c1: bool = False) -> BlockData:
        if self.fail_reads:
            raise HostError(f"read of {self.name}!{block.address} failed")
        self.reads.append(block)
        if len(self.reads) > self.max_reads:
            del self.reads[: len(self.reads) - self.max_reads]
        formulas, values, texts = [], [], []
        for r in range(block.row, block.row + block.row_count):
            f_row, v_row, t_row = [], [], []
            for c in range(block.column, block.column + block.column_count):
                content = self._cells.get((r, c))
                formula = content if _is_formula(content) else None
                if formula is not None and r1c1:
                    formula = to_r1c1(formula, r, c)
                value = self._value_at((r, c))
                f_row.append(formula)
                v_row.append(value)
                t_row.append(display_text(value))
            formulas.append(f_row)
            values.append(v_row)
            texts.append(t_row)
        return BlockData(block, freeze_grid(formulas), freeze_grid(values), freeze_grid(texts))

    def count_cells(self, kind: CellKind) -> int:
        if self.fail_counts:
            raise HostError(f"cell count on {self.name} failed")
        formulas = sum(1 for v in self._cells.values() if _is_formula(v))
        if kind == CellKind.FORMULAS:
            return formulas
        return len(self._cells) - formulas

    def spill_range(self, row: int, column: int) -> Optional[Region]:
        return self._spills.get((row, column))


class MemoryWorkbook:
    def __init__(self, sheets: Iterable[GridSheet] = ()) -> None:
        self._sheets: Dict[str, GridSheet] = {}
        for s in sheets:
            self.add(s)

    def add(self, sheet: GridSheet) -> GridSheet:
        self._sheets[sheet.name] = sheet
        return sheet

    def sheet_names(self) -> List[str]:
        return list(self._sheets)

    def sheet(self, name: str) -> GridSheet:
        try:
            return self._sheets[name]
        except KeyError:
            raise HostError(f"No worksheet named '{name}'") from None
