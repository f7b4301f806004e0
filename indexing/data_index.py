"""
Build the column catalogue of a worksheet.

Two flavours:

  - ``DataIndex`` — per analysed column: header, letter, data type,
    semantic type, top values with counts and numeric stats, plus a few
    sample rows.  Capped at MAX_ROWS_TO_ANALYZE rows × MAX_COLUMNS_TO_ANALYZE
    columns.
  - ``LightweightDataIndex`` — header and data range of every column, no
    sampling.

Both are cached in an ``IndexCache`` keyed by ``(sheet, rows, cols)``;
any change of the used-range dimensions invalidates the entry.
"""

from __future__ import annotations

import datetime
import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from document.workbook import WorkbookDocument, is_empty
from dto.data_index import (
    ColumnIndexEntry,
    DataIndex,
    DataType,
    LightweightColumnMeta,
    LightweightDataIndex,
    NumericStats,
)
from dto.region import Region
from engine.constants import (
    MAX_COLUMNS_TO_ANALYZE,
    MAX_ROWS_TO_ANALYZE,
    MAX_UNIQUE_VALUES,
    MAX_VALUE_LENGTH,
    SAMPLE_COLUMNS,
    SAMPLE_ROWS,
)
from indexing.semantic import infer_semantic_type
from utils.addressing import column_letter

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, int, int]

# Header synonyms tried when neither an exact nor a partial match exists.
_HEADER_SYNONYMS: Dict[str, List[str]] = {
    "status": ["estado", "estatus", "situacion", "situación"],
    "estado": ["status", "estatus", "situacion", "situación"],
    "cliente": ["customer", "nombre", "name", "client"],
    "customer": ["cliente", "client", "name", "nombre"],
    "fecha": ["date", "dia", "día"],
    "date": ["fecha", "day"],
}


# -------------------------------------------------------------------
# Cache
# -------------------------------------------------------------------

class IndexCache:
    """
    One cached index per flavour, valid while its key still matches.

    Owned by the caller and passed in explicitly; nothing is module-global.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[CacheKey, BaseModel]] = {}

    @staticmethod
    def key_for(sheet: str, num_rows: int, num_cols: int) -> CacheKey:
        return sheet, num_rows, num_cols

    def get(self, kind: str, key: CacheKey) -> Optional[BaseModel]:
        entry = self._entries.get(kind)
        if entry is None or entry[0] != key:
            return None
        return entry[1]

    def put(self, kind: str, key: CacheKey, value: BaseModel) -> None:
        self._entries[kind] = (key, value)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# -------------------------------------------------------------------
# Column analysis
# -------------------------------------------------------------------

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_date(value: Any) -> bool:
    return isinstance(value, (datetime.date, datetime.datetime, datetime.time))


def _classify(numeric: int, dates: int, text: int) -> DataType:
    if numeric == dates == text == 0:
        return "empty"
    if dates > (numeric + text) * 2:
        return "date"
    if numeric > (text + dates) * 2:
        return "number"
    if numeric > 0 and (text > 0 or dates > 0):
        return "mixed"
    return "text"


def analyze_column(
    header: str, letter: str, position: int, values: Sequence[Any], total_rows: int
) -> ColumnIndexEntry:
    counts: Counter = Counter()
    numbers: List[float] = []
    dates = text = empty = 0
    for value in values:
        if is_empty(value):
            empty += 1
            continue
        counts[str(value).strip()[:MAX_VALUE_LENGTH]] += 1
        if _is_number(value):
            numbers.append(float(value))
        elif _is_date(value):
            dates += 1
        else:
            text += 1

    data_type = _classify(len(numbers), dates, text)
    stats = None
    if data_type == "number" and numbers:
        total = sum(numbers)
        stats = NumericStats(
            min=min(numbers), max=max(numbers), avg=total / len(numbers), sum=total
        )

    return ColumnIndexEntry(
        header=header,
        position=position,
        letter=letter,
        data_type=data_type,
        semantic_type=infer_semantic_type(header, data_type, len(counts), total_rows, stats),
        unique_count=len(counts),
        total_count=len(values) - empty,
        empty_count=empty,
        top_values=[
            {"value": value, "count": count}
            for value, count in counts.most_common(MAX_UNIQUE_VALUES)
        ],
        numeric_stats=stats,
    )


def find_column_by_header(headers: Sequence[str], search_term: str) -> Optional[int]:
    """
    Position of the header matching *search_term*.

    Exact (case-insensitive) match first, then containment, then a few
    common synonyms.
    """
    wanted = search_term.strip().lower()
    if not wanted:
        return None
    lowered = [str(h or "").strip().lower() for h in headers]
    if wanted in lowered:
        return lowered.index(wanted)
    for i, header in enumerate(lowered):
        if wanted in header:
            return i
    for synonym in _HEADER_SYNONYMS.get(wanted, []):
        for i, header in enumerate(lowered):
            if synonym in header:
                return i
    return None


# -------------------------------------------------------------------
# Indexer
# -------------------------------------------------------------------

class DataIndexer:
    def __init__(self, document: WorkbookDocument, cache: Optional[IndexCache] = None):
        self.document = document
        self.cache = cache if cache is not None else IndexCache()

    def _used(self, sheet: Optional[str]) -> Optional[Region]:
        used = self.document.used_region(sheet)
        if used is None:
            logger.debug("  [Index] Sheet %r is empty", sheet or self.document.active_sheet_name)
        return used

    def _headers(self, used: Region) -> List[str]:
        header_row = used.resized(1, used.num_cols)
        row = self.document.read_values(header_row)[0]
        return ["" if v is None else str(v) for v in row]

    def build(self, sheet: Optional[str] = None, force_rebuild: bool = False) -> Optional[DataIndex]:
        used = self._used(sheet)
        if used is None:
            return None
        key = IndexCache.key_for(used.sheet, used.num_rows, used.num_cols)
        if not force_rebuild:
            cached = self.cache.get("full", key)
            if cached is not None:
                return cached  # type: ignore[return-value]

        headers = self._headers(used)
        data_rows = max(used.num_rows - 1, 0)
        analyzed = min(data_rows, MAX_ROWS_TO_ANALYZE)
        num_cols = min(used.num_cols, MAX_COLUMNS_TO_ANALYZE)

        body: List[List[Any]] = []
        if analyzed:
            body_region = Region.from_origin(
                used.min_row + 1, used.min_col, analyzed, num_cols, sheet=used.sheet
            )
            body = self.document.read_values(body_region)

        columns = []
        for offset in range(num_cols):
            letter = column_letter(used.min_col + offset)
            header = headers[offset] or f"Col_{letter}"
            values = [row[offset] for row in body]
            columns.append(analyze_column(header, letter, offset, values, max(data_rows, 1)))

        sample_cols = min(num_cols, SAMPLE_COLUMNS)
        index = DataIndex(
            sheet_name=used.sheet,
            total_rows=used.num_rows,
            total_columns=used.num_cols,
            analyzed_rows=analyzed,
            header_row=used.min_row,
            data_start_row=used.min_row + 1,
            data_end_row=used.max_row,
            columns=columns,
            sample_rows=[row[:sample_cols] for row in body[:SAMPLE_ROWS]],
        )
        self.cache.put("full", key, index)
        logger.info(
            "  [Index] Built data index for %r: %d rows × %d cols (%d analysed)",
            used.sheet, used.num_rows, used.num_cols, analyzed,
        )
        return index

    def build_lightweight(
        self, sheet: Optional[str] = None, force_rebuild: bool = False
    ) -> Optional[LightweightDataIndex]:
        used = self._used(sheet)
        if used is None:
            return None
        key = IndexCache.key_for(used.sheet, used.num_rows, used.num_cols)
        if not force_rebuild:
            cached = self.cache.get("lightweight", key)
            if cached is not None:
                return cached  # type: ignore[return-value]

        headers = self._headers(used)
        columns = []
        for offset, header in enumerate(headers):
            letter = column_letter(used.min_col + offset)
            columns.append(
                LightweightColumnMeta(
                    header=header,
                    letter=letter,
                    data_range=f"{letter}{used.min_row + 1}:{letter}{used.max_row}",
                )
            )
        index = LightweightDataIndex(
            sheet_name=used.sheet,
            total_rows=used.num_rows,
            total_columns=used.num_cols,
            columns=columns,
        )
        self.cache.put("lightweight", key, index)
        return index
