"""
Render workbook state as the context text sent with each agent request.
"""

from __future__ import annotations

from typing import List, Optional

from document.workbook import WorkbookDocument
from dto.data_index import DataIndex, LightweightDataIndex
from engine.constants import CALC_SHEET_NAME, MAX_ROWS_TO_ANALYZE, WIDE_DATA_COLUMNS
from indexing.data_index import DataIndexer

_SEMANTIC_LABELS = {
    "id": "ID/CODE→COUNT",
    "amount": "AMOUNT→SUM",
    "quantity": "QUANTITY",
    "category": "CATEGORY",
    "date": "DATE",
    "unknown": "",
}

# Values listed per text column before truncating with "..."
_DISPLAY_VALUES = 20


def format_data_index(index: DataIndex) -> str:
    lines: List[str] = [
        f"[DATA INDEX: {index.sheet_name} - {index.total_rows} rows × {index.total_columns} cols]"
    ]
    if index.total_rows > MAX_ROWS_TO_ANALYZE:
        lines.append(
            f"[SAMPLED: only {MAX_ROWS_TO_ANALYZE} of {index.total_rows} rows were analysed; "
            "counts below are APPROXIMATE. Use COUNTIF formulas for exact answers.]"
        )
    lines.append('[NOTE: "+" means there are more values → use UNIQUE/COUNTIF formulas]')
    lines.append("")

    for col in index.columns:
        info = f"  {col.letter}:{col.header}"
        label = _SEMANTIC_LABELS.get(col.semantic_type, "")
        if label:
            info += f" <{label}>"
        if col.data_type == "number" and col.numeric_stats:
            s = col.numeric_stats
            info += f" [min={s.min:.0f}, max={s.max:.0f}, count={col.total_count}]"
        elif col.top_values:
            shown = col.top_values[:_DISPLAY_VALUES]
            more = col.unique_count > len(shown)
            values = ", ".join(f"{v['value']}({v['count']})" for v in shown)
            info += f" [{col.unique_count} values{'+' if more else ''}] → {values}{'...' if more else ''}"
        lines.append(info)

    lines.append("")
    lines.append("[TYPES: <ID/CODE→COUNT> = use COUNTA | <AMOUNT→SUM> = use SUM]")
    return "\n".join(lines)


def format_lightweight_index(index: LightweightDataIndex) -> str:
    last = index.columns[-1].letter if index.columns else "A"
    first = index.columns[0].letter if index.columns else "A"
    lines: List[str] = [
        f"[DATA INDEX: {index.sheet_name}]",
        f"[Dimensions: {index.total_rows} rows × {index.total_columns} columns ({first}-{last})]",
    ]
    wide = index.total_columns > WIDE_DATA_COLUMNS
    if wide:
        lines.append(
            f"[WIDE DATA: last column {last} is past K. ASK the user where new content should go.]"
        )
    lines.append("")
    lines.append("[AVAILABLE COLUMNS:]")
    for col in index.columns:
        lines.append(f'  {col.letter}: "{col.header}" → data in {col.data_range}')

    lines.append("")
    lines.append("[CALCULATIONS:]")
    lines.append(f'- For questions, use a "calc" action; formulas run on the hidden sheet {CALC_SHEET_NAME}')
    lines.append('- Example: count matching rows → =COUNTIF(I2:I500,"BOGOTA")')
    lines.append("- NEVER answer with approximate data. ALWAYS compute with real formulas.")
    lines.append("")
    lines.append("[CREATING CONTENT:]")
    if wide:
        lines.append(f"- Data reaches column {last}; ask whether to use a new sheet or a specific cell")
    else:
        lines.append(f"- New content may go after column {last}")
    lines.append("- NEVER modify the user's data without explicit permission")
    return "\n".join(lines)


def build_context(
    document: WorkbookDocument,
    indexer: DataIndexer,
    sheet: Optional[str] = None,
    force_rebuild: bool = False,
) -> str:
    """Sheet list, used range and column catalogue of *sheet* (or the active one)."""
    name = sheet or document.active_sheet_name
    visible = [
        ws.title for ws in document.workbook.worksheets if ws.sheet_state == "visible"
    ]
    lines = [
        f"Active sheet: {name}",
        f"Sheets: {', '.join(visible)}",
    ]
    used = document.used_region(name)
    if used is None:
        lines.append("The sheet is empty.")
        return "\n".join(lines)

    lines.append(f"Used range: {used.ref}")
    lightweight = indexer.build_lightweight(name, force_rebuild=force_rebuild)
    full = indexer.build(name, force_rebuild=force_rebuild)
    if lightweight is not None:
        lines += ["", format_lightweight_index(lightweight)]
    if full is not None:
        lines += ["", format_data_index(full)]
    return "\n".join(lines)
