"""
Region: a rectangular A1 address, optionally qualified by a sheet name.

Every action targets exactly one region.  Regions are compared by overlap
when protecting existing data, and resized to the payload dimensions
before a write lands.
"""

from __future__ import annotations

from typing import Iterator, Optional, Tuple

from openpyxl.utils.cell import get_column_letter, range_boundaries
from pydantic import BaseModel


class InvalidAddressError(ValueError):
    """Raised when an address string cannot be parsed as an A1 range."""


def split_sheet(address: str) -> Tuple[Optional[str], str]:
    """
    Split ``"'My Sheet'!A1:B2"`` into ``("My Sheet", "A1:B2")``.

    The sheet part may be quoted; doubled quotes inside a quoted name are
    unescaped.
    """
    address = address.strip()
    if "!" not in address:
        return None, address
    sheet, _, ref = address.rpartition("!")
    sheet = sheet.strip()
    if len(sheet) >= 2 and sheet[0] == "'" and sheet[-1] == "'":
        sheet = sheet[1:-1].replace("''", "'")
    return (sheet or None), ref.strip()


def quote_sheet(sheet: str) -> str:
    """Quote a sheet name for use in a formula or qualified address."""
    if sheet.replace("_", "").isalnum() and not sheet[0].isdigit():
        return sheet
    return "'" + sheet.replace("'", "''") + "'"


class Region(BaseModel):
    """A rectangular block of cells (1-based, inclusive bounds)."""

    min_row: int
    min_col: int
    max_row: int
    max_col: int
    sheet: Optional[str] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, address: str, sheet: Optional[str] = None) -> "Region":
        """
        Parse ``"A1"``, ``"A1:C3"``, ``"Sheet1!B2:B10"`` or ``"$A$1"``.

        An explicit sheet prefix in *address* wins over the *sheet* argument.
        """
        if not address or not address.strip():
            raise InvalidAddressError("Empty address")
        prefix, ref = split_sheet(address)
        ref = ref.replace("$", "").upper()
        try:
            min_col, min_row, max_col, max_row = range_boundaries(ref)
        except (ValueError, TypeError) as exc:
            raise InvalidAddressError(f"Invalid address: {address!r}") from exc
        if None in (min_col, min_row, max_col, max_row):
            raise InvalidAddressError(
                f"Address must name cells, not whole rows or columns: {address!r}"
            )
        return cls(
            min_row=min_row,
            min_col=min_col,
            max_row=max_row,
            max_col=max_col,
            sheet=prefix or sheet,
        )

    @classmethod
    def from_origin(
        cls, row: int, col: int, num_rows: int, num_cols: int, sheet: Optional[str] = None
    ) -> "Region":
        return cls(
            min_row=row,
            min_col=col,
            max_row=row + max(num_rows, 1) - 1,
            max_col=col + max(num_cols, 1) - 1,
            sheet=sheet,
        )

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------

    @property
    def num_rows(self) -> int:
        return self.max_row - self.min_row + 1

    @property
    def num_cols(self) -> int:
        return self.max_col - self.min_col + 1

    @property
    def size(self) -> int:
        return self.num_rows * self.num_cols

    @property
    def is_single_cell(self) -> bool:
        return self.num_rows == 1 and self.num_cols == 1

    @property
    def top_left(self) -> str:
        return f"{get_column_letter(self.min_col)}{self.min_row}"

    @property
    def bottom_right(self) -> str:
        return f"{get_column_letter(self.max_col)}{self.max_row}"

    @property
    def ref(self) -> str:
        """The A1 reference without the sheet name."""
        if self.is_single_cell:
            return self.top_left
        return f"{self.top_left}:{self.bottom_right}"

    @property
    def address(self) -> str:
        """The A1 reference, sheet-qualified when the sheet is known."""
        if self.sheet:
            return f"{quote_sheet(self.sheet)}!{self.ref}"
        return self.ref

    def resized(self, num_rows: int, num_cols: int) -> "Region":
        """Same top-left corner, new dimensions."""
        return Region.from_origin(
            self.min_row, self.min_col, num_rows, num_cols, sheet=self.sheet
        )

    def moved_to(self, row: int, col: int) -> "Region":
        """Same dimensions, new top-left corner."""
        return Region.from_origin(row, col, self.num_rows, self.num_cols, sheet=self.sheet)

    def on_sheet(self, sheet: str) -> "Region":
        return self.model_copy(update={"sheet": sheet})

    def overlaps(self, other: "Region") -> bool:
        if self.sheet and other.sheet and self.sheet != other.sheet:
            return False
        return not (
            self.max_row < other.min_row
            or other.max_row < self.min_row
            or self.max_col < other.min_col
            or other.max_col < self.min_col
        )

    def contains(self, row: int, col: int) -> bool:
        return self.min_row <= row <= self.max_row and self.min_col <= col <= self.max_col

    def cells(self) -> Iterator[Tuple[int, int]]:
        """Iterate ``(row, col)`` pairs in row-major order."""
        for r in range(self.min_row, self.max_row + 1):
            for c in range(self.min_col, self.max_col + 1):
                yield r, c

    def column_letters(self) -> list[str]:
        return [get_column_letter(c) for c in range(self.min_col, self.max_col + 1)]

    def __str__(self) -> str:
        return self.address
