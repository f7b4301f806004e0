"""
Result Validator.

Two tiers:

  - ``validate`` — per action, write/formula kinds only.  Re-reads the
    region the action landed in and marks the result passed or failed:
      1. data was expected but nothing reads back → "no data written"
      2. multi-row payload with too many expected cells reading back
         empty → "incomplete table"
      3. every cell of a formula region is an error sentinel → failed;
         an array formula (UNIQUE, FILTER, …) filled over a range reads as
         #SPILL! in every cell, as the host would show it
      4. otherwise passed, reporting the filled/total ratio
  - ``assess_batch`` — across all formula aggregates of a batch.  Flags
    results that look wrong without being hard failures: zero-heavy
    numeric output, and overflow/reference errors in individual cells.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Sequence

from document.workbook import WorkbookDocument, is_empty
from dto.actions import ActionBase, CalcAction, FormulaAction, WriteAction
from dto.data_index import DataIndex
from dto.region import Region
from dto.results import ActionResult, SuspicionReport
from engine.constants import (
    ALL_ZERO_MIN_COUNT,
    INCOMPLETE_EMPTY_RATIO,
    INCOMPLETE_MIN_EMPTY,
    SUSPICIOUS_ZERO_MIN_COUNT,
    SUSPICIOUS_ZERO_RATIO,
)
from utils.addressing import coord
from utils.formula import (
    STRUCTURAL_ERRORS,
    error_code,
    is_error_value,
    referenced_columns,
    uses_array_function,
)

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def expected_mask(action: ActionBase, region: Region) -> List[List[bool]]:
    """Which cells of *region* the action's payload meant to fill."""
    matrix: Optional[List[List[Any]]] = None
    if isinstance(action, WriteAction) and action.values:
        matrix = action.values
    elif isinstance(action, FormulaAction) and action.formulas:
        matrix = action.formulas
    if matrix is None:
        filled = action.expects_data()  # type: ignore[attr-defined]
        return [[filled] * region.num_cols for _ in range(region.num_rows)]

    mask = []
    for i in range(region.num_rows):
        row = matrix[i] if i < len(matrix) else []
        mask.append([j < len(row) and not is_empty(row[j]) for j in range(region.num_cols)])
    return mask


def _spills(action: ActionBase, region: Region) -> bool:
    """An array-returning formula filled over more than one cell."""
    return (
        isinstance(action, FormulaAction)
        and not action.formulas
        and bool(action.formula)
        and not region.is_single_cell
        and uses_array_function(action.formula)
    )


def validate(action: ActionBase, result: ActionResult, document: WorkbookDocument) -> ActionResult:
    """Return *result* enriched with the validation verdict.  Never mutates it."""
    address = result.final_address or result.requested_address
    region = Region.parse(address)
    values = document.read_values(region)
    if _spills(action, region):
        # Every copy of the array formula collides with its neighbours.
        values = [["#SPILL!"] * region.num_cols for _ in range(region.num_rows)]
    cells = [v for row in values for v in row]
    total = len(cells)
    filled = sum(1 for v in cells if not is_empty(v))

    passed = True
    if action.expects_data() and filled == 0:  # type: ignore[attr-defined]
        passed, message = False, f"No data written to {region.ref}"
    else:
        mask = expected_mask(action, region)
        missing = sum(
            1
            for i, row in enumerate(values)
            for j, v in enumerate(row)
            if mask[i][j] and is_empty(v)
        )
        if region.num_rows > 1 and missing > INCOMPLETE_MIN_EMPTY and missing / total > INCOMPLETE_EMPTY_RATIO:
            pct = round(100 * missing / total)
            passed, message = False, f"Incomplete table: {missing}/{total} empty ({pct}%)"
        elif isinstance(action, FormulaAction) and filled and all(is_error_value(v) for v in cells):
            codes = Counter(error_code(v) for v in cells)
            listing = ", ".join(f"{code} x{n}" for code, n in codes.most_common())
            passed, message = False, f"All {total} formula cell(s) returned errors: {listing}"
        else:
            message = f"{filled}/{total} cells filled"

    if passed:
        logger.debug("  [Validator] %s passed: %s", region, message)
    else:
        logger.warning("  [Validator] %s failed: %s", region, message)
    return result.model_copy(
        update={
            "validated": True,
            "validation_passed": passed,
            "validation_message": message,
            "actual_values": values,
        }
    )


# -------------------------------------------------------------------
# Batch suspicion
# -------------------------------------------------------------------

def _formula_texts(action: ActionBase) -> List[str]:
    if isinstance(action, FormulaAction):
        if action.formulas:
            return [f for row in action.formulas for f in row if f]
        return [action.formula] if action.formula else []
    if isinstance(action, CalcAction):
        return action.formula_list()
    return []


def _column_hints(
    actions: Sequence[ActionBase],
    results: Sequence[ActionResult],
    data_index: Optional[DataIndex],
    default_sheet: Optional[str],
) -> Dict[str, str]:
    if data_index is None:
        return {}
    hints: Dict[str, str] = {}
    for action, result in zip(actions, results):
        address = result.final_address or result.requested_address or action.range
        sheet = Region.parse(address, sheet=default_sheet).sheet or default_sheet
        for formula in _formula_texts(action):
            for ref_sheet, letter in referenced_columns(formula, sheet):
                if not ref_sheet or ref_sheet.lower() != data_index.sheet_name.lower():
                    continue
                entry = data_index.column_by_letter(letter)
                if entry is not None:
                    hints[f"{data_index.sheet_name}!{letter}"] = (
                        f'"{entry.header}" is {entry.semantic_type} ({entry.data_type})'
                    )
    return hints


def assess_batch(
    actions: Sequence[ActionBase],
    results: Sequence[ActionResult],
    data_index: Optional[DataIndex] = None,
    default_sheet: Optional[str] = None,
) -> SuspicionReport:
    """
    Pool the outputs of every successful formula/calc action in the batch
    and decide whether they look wrong.

    Zero-heavy output is judged on the pooled numbers, not per action:
    ten single-cell COUNTIFS that all return 0 are as suspect as one
    ten-cell range of zeros.
    """
    numbers: List[Any] = []
    error_cells: List[str] = []
    involved_actions: List[ActionBase] = []
    involved_results: List[ActionResult] = []

    for action, result in zip(actions, results):
        if result.failed:
            continue
        outputs: List[Any] = []
        if isinstance(action, FormulaAction) and result.actual_values is not None:
            region = Region.parse(result.final_address or result.requested_address)
            for i, row in enumerate(result.actual_values):
                for j, value in enumerate(row):
                    outputs.append(value)
                    if error_code(value) in STRUCTURAL_ERRORS:
                        cell = coord(region.min_col + j, region.min_row + i)
                        error_cells.append(f"{error_code(value)} in {cell}")
        elif isinstance(action, CalcAction) and result.calc_results:
            outputs = [c.result for c in result.calc_results]
        else:
            continue
        numbers.extend(v for v in outputs if _is_number(v))
        involved_actions.append(action)
        involved_results.append(result)

    zeros = sum(1 for v in numbers if v == 0)
    reasons: List[str] = []
    if len(numbers) > ALL_ZERO_MIN_COUNT and zeros == len(numbers):
        reasons.append(f"All {len(numbers)} numeric results are 0")
    elif len(numbers) > SUSPICIOUS_ZERO_MIN_COUNT and zeros / len(numbers) > SUSPICIOUS_ZERO_RATIO:
        pct = round(100 * zeros / len(numbers))
        reasons.append(f"{zeros} of {len(numbers)} numeric results are 0 ({pct}%)")
    if error_cells:
        reasons.append("Error values in results: " + ", ".join(error_cells[:10]))

    report = SuspicionReport(
        suspicious=bool(reasons),
        reasons=reasons,
        numeric_count=len(numbers),
        zero_count=zeros,
        error_cells=error_cells,
        column_hints=_column_hints(involved_actions, involved_results, data_index, default_sheet)
        if reasons else {},
    )
    if report.suspicious:
        logger.warning("  [Validator] Suspicious batch: %s", "; ".join(reasons))
    return report
