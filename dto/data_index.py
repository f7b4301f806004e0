"""
Column catalogue handed to the agent as context.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel

SemanticType = Literal["id", "amount", "quantity", "category", "date", "unknown"]
DataType = Literal["number", "text", "date", "mixed", "empty"]


class NumericStats(BaseModel):
    min: float
    max: float
    avg: float
    sum: float


class ColumnIndexEntry(BaseModel):
    header: str
    position: int          # 0-based offset from the first used column
    letter: str
    data_type: DataType = "empty"
    semantic_type: SemanticType = "unknown"
    unique_count: int = 0
    total_count: int = 0
    empty_count: int = 0
    top_values: List[Dict[str, Any]] = []   # [{"value": ..., "count": n}]
    numeric_stats: Optional[NumericStats] = None


class DataIndex(BaseModel):
    sheet_name: str
    total_rows: int
    total_columns: int
    analyzed_rows: int
    header_row: int
    data_start_row: int
    data_end_row: int
    columns: List[ColumnIndexEntry] = []
    sample_rows: List[List[Any]] = []

    def column(self, header: str) -> Optional[ColumnIndexEntry]:
        wanted = header.strip().lower()
        for entry in self.columns:
            if entry.header.strip().lower() == wanted:
                return entry
        return None

    def column_by_letter(self, letter: str) -> Optional[ColumnIndexEntry]:
        letter = letter.upper()
        for entry in self.columns:
            if entry.letter == letter:
                return entry
        return None


class LightweightColumnMeta(BaseModel):
    header: str
    letter: str
    data_range: str       # e.g. "C2:C1500"


class LightweightDataIndex(BaseModel):
    sheet_name: str
    total_rows: int
    total_columns: int
    columns: List[LightweightColumnMeta] = []
