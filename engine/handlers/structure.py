"""
Structural actions: tables, charts, pivot summaries, filters, sorting,
duplicate removal, text-to-columns and named ranges.

These rewrite or annotate existing data rather than adding new values, so
most of them act in place.  The two that produce new cells (pivot
summaries and the extra columns of text-to-columns) respect the same
no-overwrite rule as plain writes.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from openpyxl.chart import AreaChart, BarChart, DoughnutChart, LineChart, PieChart, Reference
from openpyxl.chart.marker import Marker
from openpyxl.formula.translate import Translator
from openpyxl.utils.cell import absolute_coordinate
from openpyxl.workbook.defined_name import DefinedName
from openpyxl.worksheet.filters import CustomFilter, CustomFilters, FilterColumn, Filters
from openpyxl.worksheet.table import Table, TableStyleInfo

from document.errors import DocumentError
from document.workbook import is_empty
from dto.actions import (
    ChartAction,
    ClearFilterAction,
    FilterAction,
    FilterCriteria,
    NamedRangeAction,
    PivotTableAction,
    PivotTableConfig,
    RemoveDuplicatesAction,
    SortAction,
    TableAction,
    TextToColumnsAction,
)
from dto.region import Region, quote_sheet
from dto.results import ActionResult
from engine.handlers.base import BaseHandler, HandlerMethod, fail, ok
from indexing.data_index import find_column_by_header
from utils.addressing import column_index, coord, is_column_letter
from utils.formula import is_formula

logger = logging.getLogger(__name__)

DEFAULT_TABLE_STYLE = "TableStyleMedium2"

_DELIMITERS = {"comma": ",", "semicolon": ";", "tab": "\t", "space": " "}

_CRITERIA = re.compile(r"^\s*(>=|<=|<>|>|<|=)?\s*(.*?)\s*$")
_CRITERIA_OPERATORS = {
    ">=": "greaterThanOrEqual",
    "<=": "lessThanOrEqual",
    "<>": "notEqual",
    ">": "greaterThan",
    "<": "lessThan",
    "=": "equal",
}


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", ""))
        except ValueError:
            return None
    return None


def _sort_key(value: Any) -> Tuple[int, Any]:
    number = _as_number(value) if not isinstance(value, str) else None
    if number is not None:
        return 0, number
    return 1, str(value).lower()


def _coerce(text: str) -> Any:
    """Turn a split fragment into a number when it looks like one."""
    stripped = text.strip()
    if re.fullmatch(r"-?\d+", stripped):
        return int(stripped)
    if re.fullmatch(r"-?\d*\.\d+", stripped):
        return float(stripped)
    return stripped


def _table_name(candidate: str) -> str:
    name = re.sub(r"\W", "_", candidate.strip()) or "Table"
    if not (name[0].isalpha() or name[0] == "_"):
        name = "T_" + name
    return name


class StructureHandler(BaseHandler):
    def kinds(self) -> Dict[str, HandlerMethod]:
        return {
            "table": self.table,
            "chart": self.chart,
            "pivotTable": self.pivot_table,
            "filter": self.filter,
            "clearFilter": self.clear_filter,
            "sort": self.sort,
            "removeDuplicates": self.remove_duplicates,
            "textToColumns": self.text_to_columns,
            "namedRange": self.named_range,
        }

    # -- tables & charts ---------------------------------------------

    def _existing_table_names(self) -> set:
        return {name.lower() for ws in self.document.workbook.worksheets for name in ws.tables}

    def table(self, action: TableAction) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        for existing in ws.tables.values():
            if region.overlaps(Region.parse(existing.ref, sheet=region.sheet)):
                return fail(action, f"Range overlaps existing table {existing.displayName} ({existing.ref})")

        taken = self._existing_table_names()
        base = _table_name(action.table_name or "Table")
        name, n = base, 1
        while name.lower() in taken:
            n += 1
            name = f"{base}{n}"

        table = Table(displayName=name, ref=region.ref, headerRowCount=1 if action.has_headers else 0)
        table.tableStyleInfo = TableStyleInfo(name=DEFAULT_TABLE_STYLE, showRowStripes=True)
        ws.add_table(table)
        return ok(action, f"Created table {name} on {region.ref}", final_address=region.address)

    def chart(self, action: ChartAction) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        kind = action.chart_type

        if kind.startswith(("bar", "column")):
            chart = BarChart()
            chart.type = "bar" if kind.startswith("bar") else "col"
            if kind.endswith("Stacked"):
                chart.grouping = "stacked"
                chart.overlap = 100
        elif kind.startswith("line"):
            chart = LineChart()
        elif kind == "pie":
            chart = PieChart()
        elif kind == "doughnut":
            chart = DoughnutChart()
        else:
            chart = AreaChart()
            if kind == "areaStacked":
                chart.grouping = "stacked"

        if region.num_cols > 1:
            data = Reference(
                ws, min_col=region.min_col + 1, min_row=region.min_row,
                max_col=region.max_col, max_row=region.max_row,
            )
            cats = Reference(
                ws, min_col=region.min_col, min_row=region.min_row + 1, max_row=region.max_row,
            )
            chart.add_data(data, titles_from_data=True)
            chart.set_categories(cats)
        else:
            data = Reference(
                ws, min_col=region.min_col, min_row=region.min_row,
                max_col=region.max_col, max_row=region.max_row,
            )
            chart.add_data(data, titles_from_data=True)

        if kind == "lineMarkers":
            for series in chart.series:
                series.marker = Marker(symbol="circle")
        if action.chart_title:
            chart.title = action.chart_title

        anchor = action.anchor or coord(region.max_col + 2, region.min_row)
        ws.add_chart(chart, anchor)
        return ok(action, f"Created {kind} chart from {region.ref} at {anchor}")

    # -- pivot summaries ------------------------------------------------

    def pivot_table(self, action: PivotTableAction) -> ActionResult:
        cfg = action.pivot_config
        if cfg is None:
            return fail(action, "pivotConfig is required")

        source_sheet = cfg.source_sheet or self.document.active_sheet_name
        source = Region.parse(cfg.source_range, sheet=source_sheet)
        rows = self.document.read_values(source.on_sheet(self.document.sheet(source.sheet).title))
        if len(rows) < 2:
            return fail(action, f"Source range {cfg.source_range} has no data rows")
        matrix = build_pivot_summary(cfg, rows[0], rows[1:])

        if action.sheet_name and self.document.find_sheet(action.sheet_name) is None:
            self.document.create_sheet(action.sheet_name)
        target = self.ctx.region_of(action).resized(len(matrix), len(matrix[0]))
        decision = self.ctx.guard.resolve(target, allow_overwrite=action.allow_overwrite)
        written = self.document.write_values(decision.region, matrix)
        return ok(
            action,
            f"Wrote {cfg.value_function} of {cfg.value_field} by {cfg.row_field} to {written.address}",
            final_address=written.address,
            relocated=decision.relocated,
        )

    # -- filters ----------------------------------------------------------

    def filter(self, action: FilterAction) -> ActionResult:
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        ws.auto_filter.ref = region.ref
        ws.auto_filter.filterColumn = []

        for criteria in action.filter_criteria:
            ws.auto_filter.filterColumn.append(self._filter_column(criteria))

        hidden = 0
        if action.filter_criteria:
            body = self.document.read_values(region)[1:]
            for offset, row in enumerate(body, start=region.min_row + 1):
                visible = all(
                    _passes(row[c.column_index], c)
                    for c in action.filter_criteria
                    if c.column_index < len(row)
                )
                ws.row_dimensions[offset].hidden = not visible
                hidden += 0 if visible else 1
        return ok(action, f"Applied filter to {region.ref} ({hidden} row(s) hidden)")

    @staticmethod
    def _filter_column(criteria: FilterCriteria) -> FilterColumn:
        if criteria.values:
            return FilterColumn(colId=criteria.column_index, filters=Filters(filter=list(criteria.values)))
        m = _CRITERIA.match(criteria.criteria or "")
        operator = _CRITERIA_OPERATORS[m.group(1) or "="]
        return FilterColumn(
            colId=criteria.column_index,
            customFilters=CustomFilters(customFilter=[CustomFilter(operator=operator, val=m.group(2))]),
        )

    def clear_filter(self, action: ClearFilterAction) -> ActionResult:
        ws = self.ctx.worksheet_of(action)
        previous = ws.auto_filter.ref
        if previous:
            region = Region.parse(previous, sheet=ws.title)
            for r in range(region.min_row, region.max_row + 1):
                ws.row_dimensions[r].hidden = False
        ws.auto_filter.ref = None
        ws.auto_filter.filterColumn = []
        return ok(action, f"Cleared filter on {ws.title}")

    # -- in-place rewrites ---------------------------------------------

    def sort(self, action: SortAction) -> ActionResult:
        cfg = action.sort_config
        if cfg is None or not cfg.columns:
            return fail(action, "sortConfig with at least one column is required")
        region = self.ctx.region_of(action)
        body = Region(
            min_row=region.min_row + (1 if cfg.has_headers else 0), max_row=region.max_row,
            min_col=region.min_col, max_col=region.max_col, sheet=region.sheet,
        ) if region.num_rows > (1 if cfg.has_headers else 0) else None
        if body is None:
            return ok(action, f"Nothing to sort in {region.ref}")

        stored = self.document.read_formulas(body)
        shown = self.document.read_values(body)
        order = list(range(len(stored)))
        # Least significant key first; Python's sort is stable.
        for key in reversed(cfg.columns):
            idx = key.column_index
            filled = [i for i in order if not is_empty(shown[i][idx])]
            blanks = [i for i in order if is_empty(shown[i][idx])]
            filled.sort(key=lambda i: _sort_key(shown[i][idx]), reverse=not key.ascending)
            order = filled + blanks

        rewritten = []
        for new_pos, old_pos in enumerate(order):
            row = []
            for j, value in enumerate(stored[old_pos]):
                if is_formula(value):
                    col = body.min_col + j
                    value = Translator(value, origin=coord(col, body.min_row + old_pos)).translate_formula(
                        coord(col, body.min_row + new_pos)
                    )
                row.append(value)
            rewritten.append(row)
        self.document.write_values(body, rewritten)
        return ok(action, f"Sorted {body.num_rows} row(s) in {region.ref}")

    def remove_duplicates(self, action: RemoveDuplicatesAction) -> ActionResult:
        region = self.ctx.region_of(action)
        if region.num_rows < 2:
            return ok(action, f"Nothing to deduplicate in {region.ref}")
        body = Region(
            min_row=region.min_row + 1, max_row=region.max_row,
            min_col=region.min_col, max_col=region.max_col, sheet=region.sheet,
        )
        rows = self.document.read_formulas(body)
        columns = action.remove_duplicates_columns or list(range(region.num_cols))

        seen = set()
        unique = []
        for row in rows:
            key = tuple(
                str(row[c]).strip().lower() if not is_empty(row[c]) else ""
                for c in columns
                if c < len(row)
            )
            if key in seen:
                continue
            seen.add(key)
            unique.append(row)

        removed = len(rows) - len(unique)
        padded = unique + [[None] * region.num_cols for _ in range(removed)]
        self.document.write_values(body, padded)
        return ok(action, f"Removed {removed} duplicate row(s); {len(unique)} remain")

    def text_to_columns(self, action: TextToColumnsAction) -> ActionResult:
        cfg = action.text_to_columns_config
        if cfg is None:
            return fail(action, "textToColumnsConfig is required")
        delimiter = cfg.custom_delimiter if cfg.delimiter == "custom" else _DELIMITERS[cfg.delimiter]
        if not delimiter:
            return fail(action, "A custom delimiter is required")

        region = self.ctx.region_of(action)
        source = region.resized(region.num_rows, 1)
        split_rows = []
        for (value,) in self.document.read_values(source):
            if is_empty(value):
                split_rows.append([value])
                continue
            parts = str(value).split(delimiter)
            if cfg.treat_consecutive_as_one:
                parts = [p for p in parts if p != ""]
            split_rows.append([_coerce(p) for p in parts])

        width = max(len(r) for r in split_rows)
        if width > 1 and not action.allow_overwrite:
            spill = Region.from_origin(source.min_row, source.min_col + 1, source.num_rows, width - 1, sheet=source.sheet)
            if not self.document.is_region_empty(spill):
                return fail(
                    action,
                    f"Splitting needs {spill.ref} but it already contains data. "
                    "Set allowOverwrite to replace it.",
                )
        matrix = [row + [None] * (width - len(row)) for row in split_rows]
        written = self.document.write_values(source.resized(source.num_rows, width), matrix)
        return ok(action, f"Split {source.ref} into {width} column(s)", final_address=written.address)

    # -- names ------------------------------------------------------------

    def named_range(self, action: NamedRangeAction) -> ActionResult:
        cfg = action.named_range_config
        if cfg is None or not cfg.name:
            return fail(action, "namedRangeConfig with a name is required")
        region = self.ctx.region_of(action)
        ws = self.document.sheet(region.sheet)
        target = f"{quote_sheet(ws.title)}!{absolute_coordinate(region.ref)}"

        names = ws.defined_names if cfg.scope == "worksheet" else self.document.workbook.defined_names
        if cfg.name in names:
            raise DocumentError(f"The name {cfg.name!r} already exists")
        defined = DefinedName(cfg.name, attr_text=target, comment=cfg.comment)
        names.add(defined)
        return ok(action, f"Defined name {cfg.name} → {target} ({cfg.scope} scope)")


# -------------------------------------------------------------------
# Pivot helpers
# -------------------------------------------------------------------

def _field_position(headers: List[Any], field: str) -> int:
    text_headers = ["" if h is None else str(h) for h in headers]
    pos = find_column_by_header(text_headers, field)
    if pos is None and is_column_letter(field) and field.isupper():
        pos = column_index(field) - 1
    if pos is None or pos >= len(headers):
        raise DocumentError(f"Pivot field not found in source headers: {field!r}")
    return pos


def aggregate(function: str, values: List[Any]) -> Any:
    """Apply a pivot aggregation to the raw cell values of one group."""
    if function == "count":
        return sum(1 for v in values if not is_empty(v))
    numbers = [n for n in (_as_number(v) for v in values) if n is not None]
    if function == "sum":
        return sum(numbers)
    if not numbers:
        return None
    if function == "average":
        return round(sum(numbers) / len(numbers), 2)
    if function == "max":
        return max(numbers)
    return min(numbers)


def build_pivot_summary(cfg: PivotTableConfig, headers: List[Any], rows: List[List[Any]]) -> List[List[Any]]:
    """
    Render a pivot configuration as a plain summary matrix.

    Rows are the distinct ``row_field`` values in first-seen order; with a
    ``column_field`` each distinct value gets its own column.  A grand
    total row (and column) closes the table.  A ``filter_field`` is shown
    above the table as ``(All)``, the way an unfiltered pivot shows it.
    """
    row_pos = _field_position(headers, cfg.row_field)
    value_pos = _field_position(headers, cfg.value_field)
    col_pos = _field_position(headers, cfg.column_field) if cfg.column_field else None

    groups: Dict[Tuple[str, str], List[Any]] = defaultdict(list)
    row_keys: List[str] = []
    col_keys: List[str] = []
    for row in rows:
        rkey = "" if is_empty(row[row_pos]) else str(row[row_pos]).strip()
        if not rkey:
            continue
        ckey = "" if col_pos is None or is_empty(row[col_pos]) else str(row[col_pos]).strip()
        if rkey not in row_keys:
            row_keys.append(rkey)
        if col_pos is not None and ckey not in col_keys:
            col_keys.append(ckey)
        groups[(rkey, ckey)].append(row[value_pos])

    fn = cfg.value_function
    label = f"{fn.capitalize()} of {cfg.value_field}"
    matrix: List[List[Any]] = []
    if cfg.filter_field:
        matrix.append([cfg.filter_field, "(All)"])
        matrix.append([])

    if col_pos is None:
        matrix.append([cfg.row_field, label])
        for rkey in row_keys:
            matrix.append([rkey, aggregate(fn, groups[(rkey, "")])])
        matrix.append(["Grand Total", aggregate(fn, [v for vals in groups.values() for v in vals])])
    else:
        matrix.append([f"{label} ({cfg.row_field} / {cfg.column_field})"] + col_keys + ["Grand Total"])
        for rkey in row_keys:
            line = [rkey] + [aggregate(fn, groups.get((rkey, ckey), [])) for ckey in col_keys]
            line.append(aggregate(fn, [v for ckey in col_keys for v in groups.get((rkey, ckey), [])]))
            matrix.append(line)
        totals = ["Grand Total"]
        for ckey in col_keys:
            totals.append(aggregate(fn, [v for rkey in row_keys for v in groups.get((rkey, ckey), [])]))
        totals.append(aggregate(fn, [v for vals in groups.values() for v in vals]))
        matrix.append(totals)

    width = max(len(line) for line in matrix)
    return [line + [None] * (width - len(line)) for line in matrix]


def _passes(value: Any, criteria: FilterCriteria) -> bool:
    text = "" if value is None else str(value).strip()
    if criteria.values:
        return text.lower() in {v.strip().lower() for v in criteria.values}
    m = _CRITERIA.match(criteria.criteria or "")
    op, operand = m.group(1) or "=", m.group(2)
    left, right = _as_number(value), _as_number(operand)
    if left is None or right is None:
        left, right = text.lower(), operand.lower()
    if op == "=":
        return left == right
    if op == "<>":
        return left != right
    if op == ">":
        return left > right
    if op == ">=":
        return left >= right
    if op == "<":
        return left < right
    return left <= right
