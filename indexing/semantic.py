"""
Semantic type inference for spreadsheet columns.

The header text is checked against keyword patterns first (identifiers,
then amounts, quantities and dates); when no keyword matches, the shape of
the data decides.  The result tells the agent whether a column should be
counted (ids), summed (amounts) or grouped by (categories), and tells the
validator what a referenced column holds.
"""

from __future__ import annotations

import re
import unicodedata
from typing import List, Optional

from dto.data_index import DataType, NumericStats, SemanticType

_ID_PATTERNS = [
    r"\bid\b", r"\bids?\b", r"\bcod(igo)?\b", r"\bcode\b",
    r"\bnumero?\b", r"\bnum\b", r"\bn[uo]m?\b", r"\bno\.?\b",
    r"\bcontrato\b", r"\bcontract\b",
    r"\bcedula\b", r"\bruc\b", r"\bnit\b", r"\bdni\b", r"\bci\b",
    r"\bdocumento\b", r"\bdoc\b",
    r"\breferencia\b", r"\bref\b",
    r"\bfolio\b", r"\bticket\b", r"\borden\b", r"\border\b",
    r"\bfactura\b", r"\binvoice\b",
    r"\bcliente\b", r"\bclient\b", r"\busuario\b", r"\buser\b",
    r"\bsolicitud\b", r"\brequest\b",
    r"\bplan\b", r"\bgrupo\b", r"\bgroup\b",
    r"\bserie\b", r"\bserial\b",
    r"\bsku\b", r"\bitem\b", r"\bproducto\b", r"\bproduct\b",
]

_AMOUNT_PATTERNS = [
    r"\bmonto\b", r"\bamount\b", r"\bvalor\b", r"\bprecio\b", r"\bprice\b",
    r"\brevenue\b",
    r"\btotal\b", r"\bsubtotal\b",
    r"\bimporte\b", r"\bcosto\b", r"\bcost\b",
    r"\bventa\b", r"\bsale\b", r"\bingreso\b", r"\bingress\b",
    r"\begreso\b", r"\bgasto\b", r"\bexpense\b",
    r"\bpago\b", r"\bpayment\b",
    r"\bsaldo\b", r"\bbalance\b",
    r"\bcomision\b", r"\bcommission\b",
    r"\bdescuento\b", r"\bdiscount\b",
    r"\biva\b", r"\btax\b", r"\bimpuesto\b",
    r"\bcuota\b", r"\bfee\b",
    r"\b(usd|eur|cop|mxn|pen|clp)\b", r"\$", r"\bmoneda\b",
]

_QUANTITY_PATTERNS = [
    r"\bcantidad\b", r"\bqty\b", r"\bquantity\b",
    r"\bunidades?\b", r"\bunits?\b",
    r"\bstock\b", r"\binventario\b",
    r"\bpiezas?\b", r"\bpieces?\b",
]

_DATE_PATTERNS = [
    r"\bfecha\b", r"\bdate\b", r"\bdia\b", r"\bday\b",
    r"\bmes\b", r"\bmonth\b", r"\bano\b", r"\byear\b",
    r"\bcreado\b", r"\bcreated\b", r"\bmodificado\b", r"\bmodified\b",
    r"\binicio\b", r"\bstart\b", r"\bfin\b", r"\bend\b",
    r"\bvencimiento\b", r"\bexpir",
]


def _compile(patterns: List[str]) -> List[re.Pattern]:
    return [re.compile(p) for p in patterns]


# Checked in this order; the first family with a match wins.
_HEADER_RULES = [
    ("id", _compile(_ID_PATTERNS)),
    ("amount", _compile(_AMOUNT_PATTERNS)),
    ("quantity", _compile(_QUANTITY_PATTERNS)),
    ("date", _compile(_DATE_PATTERNS)),
]


def normalize_header(header: str) -> str:
    """Lower-case and strip accents: 'Año Cédula' → 'ano cedula'."""
    decomposed = unicodedata.normalize("NFD", header.lower())
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def semantic_type_from_header(header: str) -> Optional[SemanticType]:
    text = normalize_header(header)
    for semantic_type, patterns in _HEADER_RULES:
        if any(p.search(text) for p in patterns):
            return semantic_type  # type: ignore[return-value]
    return None


def infer_semantic_type(
    header: str,
    data_type: DataType,
    unique_count: int,
    total_rows: int,
    stats: Optional[NumericStats] = None,
) -> SemanticType:
    from_header = semantic_type_from_header(header)
    if from_header:
        return from_header

    if data_type == "date":
        return "date"
    if data_type in ("text", "mixed"):
        return "category"
    if data_type != "number" or stats is None:
        return "unknown"

    unique_ratio = unique_count / total_rows if total_rows else 0.0
    # Mostly distinct values
    if unique_ratio > 0.7:
        return "id"
    # A near-consecutive range the size of the table is a sequence
    if stats.min >= 1 and stats.max - stats.min + 1 <= total_rows * 1.2 and unique_ratio > 0.5:
        return "id"
    if stats.avg != int(stats.avg):
        return "amount"
    if stats.avg < 1000 and stats.max < 10000:
        return "quantity"
    return "amount"
