"""
Formula-text helpers: normalisation, error sentinels, reference rewriting.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional, Set

from openpyxl.utils import column_index_from_string, get_column_letter

from dto.region import quote_sheet, split_sheet

FORMULA_MARKER = "="

# Values a cell shows when its formula could not be evaluated.
ERROR_SENTINELS = frozenset(
    {
        "#SPILL!",
        "#REF!",
        "#VALUE!",
        "#NAME?",
        "#DIV/0!",
        "#N/A",
        "#NULL!",
        "#NUM!",
        "#CALC!",
        "#GETTING_DATA",
        "#ERROR!",
    }
)

# Sentinels that point at a structurally wrong formula rather than at data.
STRUCTURAL_ERRORS = frozenset({"#SPILL!", "#REF!"})

# Functions whose result spills over several cells.
ARRAY_FUNCTIONS = ("UNIQUE", "SORT", "SORTBY", "FILTER", "SEQUENCE", "TRANSPOSE")

_CELL_REF = re.compile(
    r"(?<![A-Za-z0-9_!.:$'\]])"
    r"(\$?[A-Za-z]{1,3}\$?\d+(?::\$?[A-Za-z]{1,3}\$?\d+)?)"
    r"(?![A-Za-z0-9_(!'])"
)

_RANGE_REF = re.compile(
    r"(?:(?P<sheet>'(?:[^']|'')+'|[A-Za-z_][A-Za-z0-9_.]*)!)?"
    r"(?<![A-Za-z0-9_])\$?(?P<c1>[A-Za-z]{1,3})\$?\d+"
    r"(?::\$?(?P<c2>[A-Za-z]{1,3})\$?\d+)?"
    r"(?![A-Za-z0-9_(])"
)


def normalize_formula(formula: Any) -> str:
    """Ensure the formula text starts with ``=``."""
    text = str(formula).strip()
    if not text:
        return text
    if not text.startswith(FORMULA_MARKER):
        text = FORMULA_MARKER + text
    return text


def is_formula(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(FORMULA_MARKER) and len(value) > 1


def is_error_value(value: Any) -> bool:
    """True for ``#REF!``-style sentinels, whatever object carries them."""
    if value is None or isinstance(value, (bool, int, float)):
        return False
    return str(value).strip().upper() in ERROR_SENTINELS


def error_code(value: Any) -> Optional[str]:
    if not is_error_value(value):
        return None
    return str(value).strip().upper()


def uses_array_function(formula: str) -> bool:
    upper = formula.upper()
    return any(f"{name}(" in upper for name in ARRAY_FUNCTIONS)


def _split_literals(formula: str) -> List[str]:
    """
    Split *formula* into alternating code / string-literal chunks.

    String literals keep their surrounding double quotes; ``""`` inside a
    literal is an escaped quote and does not end it.
    """
    chunks: List[str] = []
    current: List[str] = []
    in_string = False
    i = 0
    while i < len(formula):
        ch = formula[i]
        if ch == '"':
            if in_string and i + 1 < len(formula) and formula[i + 1] == '"':
                current.append('""')
                i += 2
                continue
            if in_string:
                current.append(ch)
                chunks.append("".join(current))
                current = []
            else:
                if current:
                    chunks.append("".join(current))
                current = [ch]
            in_string = not in_string
        else:
            current.append(ch)
        i += 1
    if current:
        chunks.append("".join(current))
    return chunks


def qualify_formula_references(formula: str, sheet: str) -> str:
    """
    Prefix every unqualified cell/range reference with *sheet*.

    ``=COUNTIF(I2:I99,"BOGOTA")`` → ``=COUNTIF(Data!I2:I99,"BOGOTA")``.
    References already carrying a sheet, and text inside string
    literals, are left untouched.
    """
    prefix = quote_sheet(sheet) + "!"
    parts = []
    for chunk in _split_literals(formula):
        if chunk.startswith('"'):
            parts.append(chunk)
        else:
            parts.append(_CELL_REF.sub(lambda m: prefix + m.group(1), chunk))
    return "".join(parts)


def referenced_columns(formula: str, default_sheet: Optional[str] = None) -> Set[tuple]:
    """
    ``{(sheet, column_letter), …}`` for every cell reference in *formula*.

    *sheet* is ``default_sheet`` for unqualified references.
    """
    found: Set[tuple] = set()
    for chunk in _split_literals(formula):
        if chunk.startswith('"'):
            continue
        for m in _RANGE_REF.finditer(chunk):
            sheet = default_sheet
            if m.group("sheet"):
                sheet, _ = split_sheet(m.group("sheet") + "!A1")
            first = column_index_from_string(m.group("c1").upper())
            last = column_index_from_string((m.group("c2") or m.group("c1")).upper())
            for col in range(min(first, last), max(first, last) + 1):
                found.add((sheet, get_column_letter(col)))
    return found
