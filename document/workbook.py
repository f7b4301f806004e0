"""
WorkbookDocument — the live spreadsheet the engine mutates.

Thin request/response layer over an openpyxl ``Workbook``:

  - region reads return computed values for formula cells (falling back to
    the formula text when no value could be computed);
  - region writes resize a single-cell anchor to the payload dimensions
    and reject a multi-cell address whose shape differs from the payload;
  - sheet enumerate / activate / create / delete with case-insensitive
    duplicate detection;
  - recalculation through a pluggable evaluator, bounded by a timeout.
"""

from __future__ import annotations

import io
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from pathlib import Path
from typing import Any, List, Optional, Sequence, Union

import openpyxl
from openpyxl import Workbook
from openpyxl.worksheet.formula import ArrayFormula
from openpyxl.worksheet.worksheet import Worksheet

from document.errors import (
    CalculationTimeoutError,
    DocumentError,
    DuplicateSheetError,
    RangeSizeMismatchError,
    SheetNotFoundError,
)
from document.evaluation import ComputedValues, Evaluator, FormulasEvaluator
from dto.region import Region
from utils.addressing import coord
from utils.formula import is_formula, normalize_formula

logger = logging.getLogger(__name__)

DEFAULT_CALC_TIMEOUT_SECONDS = 30.0


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, str) and value.strip() == ""


def _formula_text(value: Any) -> Optional[str]:
    if isinstance(value, ArrayFormula):
        return value.text
    if is_formula(value):
        return value
    return None


class WorkbookDocument:
    def __init__(
        self,
        workbook: Workbook,
        evaluator: Optional[Evaluator] = None,
        calc_timeout: float = DEFAULT_CALC_TIMEOUT_SECONDS,
    ):
        self.workbook = workbook
        self._evaluator: Evaluator = evaluator or FormulasEvaluator()
        self.calc_timeout = calc_timeout
        self._computed: Optional[ComputedValues] = None

    @classmethod
    def load(
        cls, path: Union[str, Path], evaluator: Optional[Evaluator] = None, **kwargs: Any
    ) -> "WorkbookDocument":
        logger.info("Loading workbook: %s", path)
        return cls(openpyxl.load_workbook(path), evaluator=evaluator, **kwargs)

    def save(self, path: Union[str, Path]) -> None:
        self.workbook.save(path)
        logger.info("Workbook saved to %s", path)

    # ------------------------------------------------------------------
    # Sheets
    # ------------------------------------------------------------------

    @property
    def sheet_names(self) -> List[str]:
        return list(self.workbook.sheetnames)

    @property
    def active_sheet_name(self) -> str:
        return self.workbook.active.title

    def find_sheet(self, name: str) -> Optional[Worksheet]:
        wanted = name.strip().lower()
        for ws in self.workbook.worksheets:
            if ws.title.lower() == wanted:
                return ws
        return None

    def sheet(self, name: Optional[str] = None) -> Worksheet:
        """The named worksheet, or the active one when *name* is empty."""
        if not name:
            return self.workbook.active
        ws = self.find_sheet(name)
        if ws is None:
            raise SheetNotFoundError(name)
        return ws

    def activate_sheet(self, name: str) -> Worksheet:
        ws = self.sheet(name)
        self.workbook.active = self.workbook.worksheets.index(ws)
        for other in self.workbook.worksheets:
            other.sheet_view.tabSelected = other is ws
        return ws

    def create_sheet(self, name: str, hidden: bool = False) -> Worksheet:
        name = name.strip()
        if not name:
            raise DocumentError("Sheet name must not be empty")
        if self.find_sheet(name) is not None:
            raise DuplicateSheetError(name)
        ws = self.workbook.create_sheet(title=name)
        if hidden:
            ws.sheet_state = "hidden"
        self._invalidate()
        return ws

    def delete_sheet(self, name: str) -> None:
        ws = self.sheet(name)
        visible = [w for w in self.workbook.worksheets if w.sheet_state == "visible"]
        if visible == [ws]:
            raise DocumentError("A workbook must contain at least one visible worksheet")
        self.workbook.remove(ws)
        self._invalidate()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_formulas(self, region: Region) -> List[List[Any]]:
        """Stored cell contents: formula text for formula cells."""
        ws = self.sheet(region.sheet)
        rows = []
        for r in range(region.min_row, region.max_row + 1):
            row = []
            for c in range(region.min_col, region.max_col + 1):
                value = ws.cell(row=r, column=c).value
                text = _formula_text(value)
                row.append(text if text is not None else value)
            rows.append(row)
        return rows

    def read_values(self, region: Region) -> List[List[Any]]:
        """Displayed values: the computed result for formula cells."""
        ws = self.sheet(region.sheet)
        stored = self.read_formulas(region)
        if not any(_formula_text(v) for row in stored for v in row):
            return stored
        computed = self.computed_values()
        sheet_key = ws.title.upper()
        values = []
        for i, row in enumerate(stored):
            out = []
            for j, value in enumerate(row):
                if _formula_text(value) is not None:
                    key = (sheet_key, coord(region.min_col + j, region.min_row + i))
                    value = computed.get(key, value)
                out.append(value)
            values.append(out)
        return values

    def read_cell(self, row: int, col: int, sheet: Optional[str] = None) -> Any:
        return self.read_values(Region.from_origin(row, col, 1, 1, sheet=sheet))[0][0]

    def is_region_empty(self, region: Region) -> bool:
        ws = self.sheet(region.sheet)
        for r, c in region.cells():
            if not is_empty(ws.cell(row=r, column=c).value):
                return False
        return True

    def used_region(self, sheet: Optional[str] = None) -> Optional[Region]:
        """Bounding box of the non-empty cells, or ``None`` for a blank sheet."""
        ws = self.sheet(sheet)
        min_row = min_col = None
        max_row = max_col = 0
        for row in ws.iter_rows():
            for cell in row:
                if is_empty(cell.value):
                    continue
                min_row = cell.row if min_row is None else min(min_row, cell.row)
                min_col = cell.column if min_col is None else min(min_col, cell.column)
                max_row = max(max_row, cell.row)
                max_col = max(max_col, cell.column)
        if min_row is None:
            return None
        return Region(
            min_row=min_row, min_col=min_col, max_row=max_row, max_col=max_col,
            sheet=ws.title,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def fit_region(self, region: Region, num_rows: int, num_cols: int) -> Region:
        """
        Resolve the region a payload of ``num_rows × num_cols`` lands in.

        A single-cell address is an anchor and grows to the payload; any
        other address must match the payload exactly.
        """
        if region.is_single_cell:
            return region.resized(num_rows, num_cols)
        if (region.num_rows, region.num_cols) != (num_rows, num_cols):
            raise RangeSizeMismatchError(
                region.address, (region.num_rows, region.num_cols), (num_rows, num_cols)
            )
        return region

    def write_values(self, region: Region, values: Sequence[Sequence[Any]]) -> Region:
        """Write a values matrix; strings starting with ``=`` become formulas."""
        rows = [list(row) for row in values]
        num_cols = max((len(row) for row in rows), default=1) or 1
        target = self.fit_region(region, len(rows) or 1, num_cols)
        ws = self.sheet(target.sheet)
        for i, row in enumerate(rows):
            for j in range(num_cols):
                value = row[j] if j < len(row) else None
                ws.cell(row=target.min_row + i, column=target.min_col + j).value = value
        self._invalidate()
        return target.on_sheet(ws.title)

    def write_formulas(self, region: Region, formulas: Sequence[Sequence[Optional[str]]]) -> Region:
        matrix = [
            [normalize_formula(f) if f not in (None, "") else None for f in row]
            for row in formulas
        ]
        return self.write_values(region, matrix)

    def fill(self, region: Region, value: Any) -> Region:
        """Write the same value (or formula) into every cell of *region*."""
        ws = self.sheet(region.sheet)
        for r, c in region.cells():
            ws.cell(row=r, column=c).value = value
        self._invalidate()
        return region.on_sheet(ws.title)

    def clear(self, region: Region) -> None:
        self.fill(region, None)

    def clear_sheet(self, name: str) -> None:
        ws = self.sheet(name)
        for row in ws.iter_rows():
            for cell in row:
                cell.value = None
        self._invalidate()

    def touch(self) -> None:
        """Mark computed values stale after a direct worksheet edit."""
        self._invalidate()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _invalidate(self) -> None:
        self._computed = None

    def computed_values(self) -> ComputedValues:
        if self._computed is None:
            self.recalculate()
        return self._computed or {}

    def _snapshot(self) -> Workbook:
        buffer = io.BytesIO()
        self.workbook.save(buffer)
        buffer.seek(0)
        return openpyxl.load_workbook(buffer)

    def recalculate(self, timeout: Optional[float] = None) -> ComputedValues:
        """
        Evaluate every formula, bounded by *timeout* seconds.

        Raises ``CalculationTimeoutError`` when the evaluator does not
        finish in time; the document keeps no computed values then.

        The evaluator works on a copy taken on the calling thread, so a
        timed-out evaluation left running never sees later edits.
        """
        timeout = self.calc_timeout if timeout is None else timeout
        try:
            snapshot = self._snapshot()
        except Exception:
            logger.warning("Could not snapshot the workbook for evaluation", exc_info=True)
            self._computed = {}
            return self._computed
        pool = ThreadPoolExecutor(max_workers=1)
        try:
            future = pool.submit(self._evaluator, snapshot)
            try:
                self._computed = future.result(timeout=timeout)
            except FuturesTimeoutError as exc:
                self._computed = None
                raise CalculationTimeoutError(timeout) from exc
        finally:
            pool.shutdown(wait=False)
        return self._computed
