"""
Handlers that put data into cells or read it back out.

  - WriteHandler: ``write`` and ``formula`` — sized to the payload and
    routed through the collision guard.
  - QueryHandler: ``read``, ``calc``, ``countByCategory``,
    ``avgByCategory`` and ``search`` — gather data for the agent without
    touching the user's cells.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Any, Dict, List, Optional

from openpyxl.formula.translate import Translator

from document.workbook import is_empty
from dto.actions import (
    AvgByCategoryAction,
    CalcAction,
    CountByCategoryAction,
    FormulaAction,
    ReadAction,
    SearchAction,
    WriteAction,
)
from dto.region import Region
from dto.results import (
    ActionResult,
    CalcResult,
    CategoryAverage,
    CategoryCount,
    ReadResult,
)
from engine.constants import CALC_SHEET_NAME, CALC_TIMEOUT_SECONDS
from engine.handlers.base import BaseHandler, HandlerMethod, fail, ok
from indexing.data_index import find_column_by_header
from utils.addressing import column_index, coord, is_column_letter
from utils.formula import (
    is_error_value,
    normalize_formula,
    qualify_formula_references,
)

logger = logging.getLogger(__name__)

SPILL_HINT = (
    "#SPILL! means a UNIQUE-style formula tried to return too many values. "
    "Use individual COUNTIFS formulas per category instead of UNIQUE."
)


def _pad(matrix: List[List[Any]], num_cols: int) -> List[List[Any]]:
    return [list(row) + [None] * (num_cols - len(row)) for row in matrix]


def _relocation_note(requested: Region, relocated: bool) -> str:
    if not relocated:
        return ""
    return f"Avoided overwriting data in {requested.ref}; "


# -------------------------------------------------------------------
# Writes
# -------------------------------------------------------------------

class WriteHandler(BaseHandler):
    def kinds(self) -> Dict[str, HandlerMethod]:
        return {"write": self.write, "formula": self.formula}

    def write(self, action: WriteAction) -> ActionResult:
        region = self.ctx.region_of(action)
        if action.values:
            rows, cols = action.payload_shape()
            matrix = _pad(action.values, cols)
            # The payload decides the size; the address is only an anchor.
            target = region.resized(rows, cols)
        elif action.value is not None:
            matrix = [[action.value] * region.num_cols for _ in range(region.num_rows)]
            target = region
        else:
            return ok(action, f"No data to write in {region.ref}", final_address=region.address)

        decision = self.ctx.guard.resolve(target, allow_overwrite=action.allow_overwrite)
        written = self.document.write_values(decision.region, matrix)
        note = _relocation_note(target, decision.relocated)
        return ok(
            action,
            f"{note}Wrote {written.num_rows}x{written.num_cols} value(s) to {written.ref}",
            final_address=written.address,
            relocated=decision.relocated,
        )

    def formula(self, action: FormulaAction) -> ActionResult:
        region = self.ctx.region_of(action)
        if action.formulas:
            rows, cols = action.payload_shape()
            # A multi-cell address must match the matrix exactly.
            target = self.document.fit_region(region, rows, cols)
            matrix = [
                [normalize_formula(f) if f else None for f in row]
                for row in _pad(action.formulas, cols)
            ]
        elif action.formula:
            target = region
            matrix = self._fill_down(normalize_formula(action.formula), region)
        else:
            return ok(action, f"No formula to write in {region.ref}", final_address=region.address)

        decision = self.ctx.guard.resolve(target, allow_overwrite=action.allow_overwrite)
        final = decision.region
        if decision.relocated and action.formula and not action.formulas:
            matrix = self._fill_down(normalize_formula(action.formula), final)
        written = self.document.write_values(final, matrix)
        note = _relocation_note(target, decision.relocated)
        return ok(
            action,
            f"{note}Wrote formula(s) to {written.ref}",
            final_address=written.address,
            relocated=decision.relocated,
        )

    @staticmethod
    def _fill_down(formula: str, region: Region) -> List[List[str]]:
        """Copy *formula* over *region*, shifting relative references per cell."""
        translator = Translator(formula, origin=region.top_left)
        return [
            [translator.translate_formula(coord(c, r)) for c in range(region.min_col, region.max_col + 1)]
            for r in range(region.min_row, region.max_row + 1)
        ]


# -------------------------------------------------------------------
# Queries
# -------------------------------------------------------------------

class QueryHandler(BaseHandler):
    def kinds(self) -> Dict[str, HandlerMethod]:
        return {
            "read": self.read,
            "calc": self.calc,
            "countByCategory": self.count_by_category,
            "avgByCategory": self.avg_by_category,
            "search": self.search,
        }

    def read(self, action: ReadAction) -> ActionResult:
        region = self.ctx.region_of(action)
        values = self.document.read_values(region)
        cells = {
            coord(region.min_col + j, region.min_row + i): value
            for i, row in enumerate(values)
            for j, value in enumerate(row)
            if not is_empty(value)
        }
        data = ReadResult(
            address=region.address,
            num_rows=region.num_rows,
            num_cols=region.num_cols,
            values=cells,
        )
        return ok(
            action,
            f"Read {len(cells)} non-empty cell(s) from {region.ref}",
            final_address=region.address,
            read_data=data,
        )

    # -- calc ----------------------------------------------------------

    def calc(self, action: CalcAction) -> ActionResult:
        formulas = action.formula_list()
        if not formulas:
            return fail(action, "No formulas were given to calculate")
        source = self.ctx.region_of(action).sheet
        results = self._evaluate_on_calc_sheet(formulas, source)

        errors = [r for r in results if is_error_value(r.result)]
        if errors:
            listing = "; ".join(f"{r.formula} → {r.result}" for r in errors)
            hint = f" {SPILL_HINT}" if any(str(r.result).upper() == "#SPILL!" for r in errors) else ""
            return fail(
                action,
                f"Formula errors ({len(errors)}/{len(results)}): {listing}.{hint}",
                calc_results=results,
            )
        return ok(action, f"Calculated {len(results)} formula(s)", calc_results=results)

    def _evaluate_on_calc_sheet(self, formulas: List[str], source_sheet: str) -> List[CalcResult]:
        """
        Evaluate *formulas* in column A of the hidden scratch sheet.

        Unqualified references point at *source_sheet*.  The scratch sheet
        is cleared before and after use.
        """
        doc = self.document
        if doc.find_sheet(CALC_SHEET_NAME) is None:
            doc.create_sheet(CALC_SHEET_NAME, hidden=True)
        doc.clear_sheet(CALC_SHEET_NAME)
        try:
            for i, formula in enumerate(formulas, start=1):
                qualified = qualify_formula_references(normalize_formula(formula), source_sheet)
                doc.fill(Region.from_origin(i, 1, 1, 1, sheet=CALC_SHEET_NAME), qualified)
            doc.recalculate(timeout=CALC_TIMEOUT_SECONDS)
            column = doc.read_values(Region.from_origin(1, 1, len(formulas), 1, sheet=CALC_SHEET_NAME))
            return [
                CalcResult(formula=formula, result=row[0])
                for formula, row in zip(formulas, column)
            ]
        finally:
            doc.clear_sheet(CALC_SHEET_NAME)

    # -- category aggregates ------------------------------------------

    def _data_columns(self, sheet: str, *specs: Optional[str]) -> List[Optional[List[Any]]]:
        """Values below the header row for each column spec (letter or header)."""
        used = self.document.used_region(sheet)
        if used is None or used.num_rows < 2:
            return [[] if spec else None for spec in specs]
        headers = self.document.read_values(used.resized(1, used.num_cols))[0]
        out: List[Optional[List[Any]]] = []
        for spec in specs:
            if not spec:
                out.append(None)
                continue
            col = self._resolve_column(spec, headers, used)
            region = Region(
                min_row=used.min_row + 1, max_row=used.max_row,
                min_col=col, max_col=col, sheet=sheet,
            )
            out.append([row[0] for row in self.document.read_values(region)])
        return out

    @staticmethod
    def _resolve_column(spec: str, headers: List[Any], used: Region) -> int:
        spec = spec.strip()
        labels = ["" if h is None else str(h).strip() for h in headers]
        # A header named like a column ("ID", "QTY") wins over the letter.
        for pos, label in enumerate(labels):
            if label.lower() == spec.lower():
                return used.min_col + pos
        if is_column_letter(spec) and spec.isupper():
            return column_index(spec)
        pos = find_column_by_header(labels, spec)
        if pos is None:
            raise ValueError(f"Column not found: {spec!r}")
        return used.min_col + pos

    @staticmethod
    def _row_matches(filter_cell: Any, filter_value: Optional[str]) -> bool:
        if filter_value is None:
            return True
        return str("" if filter_cell is None else filter_cell).strip().lower() == filter_value.strip().lower()

    def _sheet_for(self, action: Any) -> str:
        if action.sheet_name:
            return self.document.sheet(action.sheet_name).title
        return self.ctx.region_of(action).sheet

    def count_by_category(self, action: CountByCategoryAction) -> ActionResult:
        if not action.category_column:
            return fail(action, "No category column was given")
        sheet = self._sheet_for(action)
        categories, filters = self._data_columns(
            sheet, action.category_column, action.filter_column if action.filter_value is not None else None
        )
        counts: Counter = Counter()
        for i, value in enumerate(categories or []):
            key = "" if value is None else str(value).strip()
            if not key:
                continue
            if filters is not None and not self._row_matches(filters[i], action.filter_value):
                continue
            counts[key] += 1

        results = [
            CategoryCount(category=category, count=count)
            for category, count in sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        ]
        total = sum(r.count for r in results)
        return ok(
            action,
            f"{len(results)} categories, total: {total}",
            category_counts=results,
        )

    def avg_by_category(self, action: AvgByCategoryAction) -> ActionResult:
        if not action.category_column or not action.value_column:
            return fail(action, "categoryColumn and valueColumn are both required")
        sheet = self._sheet_for(action)
        categories, values, filters = self._data_columns(
            sheet,
            action.category_column,
            action.value_column,
            action.filter_column if action.filter_value is not None else None,
        )
        sums: Dict[str, float] = defaultdict(float)
        counts: Counter = Counter()
        for i, value in enumerate(categories or []):
            key = "" if value is None else str(value).strip()
            if not key:
                continue
            if filters is not None and not self._row_matches(filters[i], action.filter_value):
                continue
            number = values[i] if values is not None else None
            if not isinstance(number, (int, float)) or isinstance(number, bool):
                continue
            sums[key] += number
            counts[key] += 1

        results = [
            CategoryAverage(category=key, average=round(sums[key] / counts[key], 2), count=counts[key])
            for key in counts
        ]
        results.sort(key=lambda r: r.average, reverse=True)
        total = sum(r.count for r in results)
        overall = round(sum(r.average * r.count for r in results) / total, 2) if total else 0
        return ok(
            action,
            f"{len(results)} categories, overall average: {overall}",
            category_averages=results,
        )

    # -- search ----------------------------------------------------------

    def search(self, action: SearchAction) -> ActionResult:
        if not action.search_value:
            return ok(action, "No search value was given")
        region = self.ctx.region_of(action)
        term = action.search_value.lower()
        matches = [
            coord(region.min_col + j, region.min_row + i)
            for i, row in enumerate(self.document.read_values(region))
            for j, value in enumerate(row)
            if not is_empty(value) and term in str(value).lower()
        ]
        if not matches:
            return ok(action, f'"{action.search_value}" not found in {region.ref}')
        ws = self.document.sheet(region.sheet)
        ws.sheet_view.selection[0].activeCell = matches[0]
        ws.sheet_view.selection[0].sqref = matches[0]
        return ok(
            action,
            f"Found {len(matches)} match(es). First at {matches[0]}",
            final_address=Region.parse(matches[0], sheet=region.sheet).address,
        )
