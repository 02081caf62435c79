# modelreview/core/cursor.py
from __future__ import annotations

from typing import Iterator, Optional

from modelreview.core.cells import Block, Region
from modelreview.host.base import BlockData, SheetHost

DEFAULT_BLOCK_ROWS = 200
DEFAULT_BLOCK_COLUMNS = 120


class EmptyRegion(LookupError):
    """The worksheet has no used region."""

    def __init__(self, sheet: str):
        super().__init__(f"Worksheet '{sheet}' has no used region")
        self.sheet = sheet


class GridCursor:
    """
    Paginated, row-major walk over a sheet's used region.

    Blocks are at most block_rows x block_columns; the last block of each row
    or column band is clipped to the region. Only one block is read at a time
    and nothing keeps a reference to it after the caller moves on. Iterating
    again starts over.
    """

    def __init__(
        self,
        sheet: SheetHost,
        region: Optional[Region],
        block_rows: int = DEFAULT_BLOCK_ROWS,
        block_columns: int = DEFAULT_BLOCK_COLUMNS,
        r1c1: bool = False,
    ) -> None:
        if block_rows < 1 or block_columns < 1:
            raise ValueError("block dimensions must be positive")
        self.sheet = sheet
        self.region = region
        self.block_rows = int(block_rows)
        self.block_columns = int(block_columns)
        self.r1c1 = r1c1

    @classmethod
    def open(
        cls,
        sheet: SheetHost,
        block_rows: int = DEFAULT_BLOCK_ROWS,
        block_columns: int = DEFAULT_BLOCK_COLUMNS,
        r1c1: bool = False,
    ) -> "GridCursor":
        region = sheet.used_region()
        if region is None or region.cell_count == 0:
            raise EmptyRegion(sheet.name)
        return cls(sheet, region, block_rows=block_rows, block_columns=block_columns, r1c1=r1c1)

    def positions(self) -> Iterator[Block]:
        reg = self.region
        if reg is None or reg.cell_count == 0:
            return
        for r0 in range(0, reg.row_count, self.block_rows):
            rows = min(self.block_rows, reg.row_count - r0)
            for c0 in range(0, reg.column_count, self.block_columns):
                cols = min(self.block_columns, reg.column_count - c0)
                yield Block(
                    row=reg.row + r0,
                    column=reg.column + c0,
                    row_count=rows,
                    column_count=cols,
                    closes_band=(c0 + cols) >= reg.column_count,
                )

    def __iter__(self) -> Iterator[BlockData]:
        for block in self.positions():
            yield self.sheet.read_block(block, r1c1=self.r1c1)

    def __len__(self) -> int:
        reg = self.region
        if reg is None or reg.cell_count == 0:
            return 0
        row_bands = -(-reg.row_count // self.block_rows)
        col_bands = -(-reg.column_count // self.block_columns)
        return row_bands * col_bands
