"""
modelreview/host/base.py

The boundary between the analysis engine and whatever holds the workbook.

Hosts answer five questions about a sheet: its used region, the contents of
one block (formula text, resolved value, display text), the same formulas in
relative R1C1 form, bulk counts of formula/constant cells, and the spill
rectangle of a dynamic-array anchor.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, List, Optional, Protocol, Sequence, Tuple

from modelreview.core.cells import Block, Region


class HostError(RuntimeError):
    """The host could not answer a query (connection lost, file unreadable...)."""


class CellKind(str, Enum):
    FORMULAS = "formulas"
    CONSTANTS = "constants"


@dataclass(frozen=True)
class CellData:
    row: int
    column: int
    formula: Optional[str]
    value: Any
    text: str


@dataclass(frozen=True)
class BlockData:
    """
    Contents of one block. Grids are indexed [local_row][local_column].

    formulas holds formula text for formula cells and None elsewhere.
    """

    block: Block
    formulas: Tuple[Tuple[Optional[str], ...], ...]
    values: Tuple[Tuple[Any, ...], ...]
    texts: Tuple[Tuple[str, ...], ...]

    def iter_cells(self) -> Iterator[CellData]:
        """Row-major walk with absolute coordinates."""
        b = self.block
        for r in range(b.row_count):
            f_row = self.formulas[r]
            v_row = self.values[r]
            t_row = self.texts[r]
            for c in range(b.column_count):
                yield CellData(
                    row=b.row + r,
                    column=b.column + c,
                    formula=f_row[c],
                    value=v_row[c],
                    text=t_row[c],
                )


class SheetHost(Protocol):
    name: str

    def used_region(self) -> Optional[Region]:
        ...

    def read_block(self, block: Block, *, r1c1: bool = False) -> BlockData:
        ...

    def count_cells(self, kind: CellKind) -> int:
        ...

    def spill_range(self, row: int, column: int) -> Optional[Region]:
        ...


class WorkbookHost(Protocol):
    def sheet_names(self) -> List[str]:
        ...

    def sheet(self, name: str) -> SheetHost:
        ...


def freeze_grid(rows: Sequence[Sequence[Any]]) -> Tuple[Tuple[Any, ...], ...]:
    return tuple(tuple(r) for r in rows)


def display_text(value: Any) -> str:
    """Fallback display text for hosts that do not render number formats."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
