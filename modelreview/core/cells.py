"""
modelreview/core/cells.py

Cell addressing and rectangular regions.

Internally every position is a zero-based (row, column) pair. Presentation
uses the usual 1-based A1 form ("A1", "AB12"), encoded with openpyxl's
column helpers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from openpyxl.utils.cell import column_index_from_string, get_column_letter

_ADDR_RE = re.compile(r"^\$?(?P<col>[A-Za-z]{1,3})\$?(?P<row>\d+)$")


def column_letter(index: int) -> str:
    """1-based column index -> letters (1 -> "A", 27 -> "AA")."""
    return get_column_letter(int(index))


def column_index(letters: str) -> int:
    """Letters -> 1-based column index ("A" -> 1)."""
    return column_index_from_string(str(letters).upper())


def cell_address(row: int, column: int) -> str:
    """Zero-based (row, column) -> A1 address."""
    return f"{column_letter(column + 1)}{row + 1}"


def parse_address(addr: str) -> Tuple[int, int]:
    """A1 address (optionally with $) -> zero-based (row, column)."""
    m = _ADDR_RE.match(str(addr or "").strip())
    if not m:
        raise ValueError(f"Not a cell address: {addr!r}")
    return int(m.group("row")) - 1, column_index(m.group("col")) - 1


@dataclass(frozen=True)
class Region:
    """Rectangle of cells, zero-based top-left plus extent."""

    row: int
    column: int
    row_count: int
    column_count: int

    @property
    def cell_count(self) -> int:
        return self.row_count * self.column_count

    @property
    def last_row(self) -> int:
        return self.row + self.row_count - 1

    @property
    def last_column(self) -> int:
        return self.column + self.column_count - 1

    def contains(self, row: int, column: int) -> bool:
        return self.row <= row <= self.last_row and self.column <= column <= self.last_column

    def covers(self, other: "Region") -> bool:
        return (
            self.contains(other.row, other.column)
            and self.contains(other.last_row, other.last_column)
        )

    @property
    def address(self) -> str:
        start = cell_address(self.row, self.column)
        if self.row_count == 1 and self.column_count == 1:
            return start
        return f"{start}:{cell_address(self.last_row, self.last_column)}"

    @classmethod
    def from_address(cls, ref: str) -> "Region":
        """Build from "B2" or "B2:D9" (a sheet prefix is ignored)."""
        ref = str(ref or "")
        if "!" in ref:
            ref = ref.rsplit("!", 1)[1]
        parts = ref.split(":")
        r1, c1 = parse_address(parts[0])
        r2, c2 = parse_address(parts[-1])
        top, bottom = min(r1, r2), max(r1, r2)
        left, right = min(c1, c2), max(c1, c2)
        return cls(row=top, column=left, row_count=bottom - top + 1, column_count=right - left + 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "row": self.row,
            "column": self.column,
            "row_count": self.row_count,
            "column_count": self.column_count,
        }


@dataclass(frozen=True)
class Block(Region):
    """
    One page of a used region, as handed out by the grid cursor.

    closes_band is True for the right-most block of a row band: once it has
    been read, every row in the band has been seen in full.
    """

    closes_band: bool = False
