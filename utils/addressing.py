"""
A1 coordinate helpers shared by the document model and the engine.
"""

from __future__ import annotations

from typing import Tuple

from openpyxl.utils import column_index_from_string, get_column_letter


def coord(col: int, row: int) -> str:
    """Return an A1-style coordinate from 1-based col/row indices."""
    return f"{get_column_letter(col)}{row}"


def parse_coord(coordinate: str) -> Tuple[int, int]:
    """Parse 'AB12' → (row=12, col=28).  Both 1-based."""
    coordinate = coordinate.replace("$", "")
    col_str = "".join(c for c in coordinate if c.isalpha())
    row_num = int("".join(c for c in coordinate if c.isdigit()) or "0")
    col_num = column_index_from_string(col_str.upper()) if col_str else 0
    return row_num, col_num


def column_index(letter: str) -> int:
    """'C' → 3."""
    return column_index_from_string(letter.replace("$", "").strip().upper())


def column_letter(index: int) -> str:
    """3 → 'C'."""
    return get_column_letter(index)


def is_column_letter(text: str) -> bool:
    text = text.strip()
    return 0 < len(text) <= 3 and text.isalpha() and text.isascii()
