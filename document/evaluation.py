"""
Formula evaluation for openpyxl workbooks.

openpyxl stores formulas as text and never computes them.  An evaluator
turns a workbook into a lookup ``(SHEET_NAME_UPPER, COORD) → value``;
``WorkbookDocument`` consults it when a formula cell is read.
"""

from __future__ import annotations

import logging
import re
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

import formulas
import numpy as np
from openpyxl import Workbook

logger = logging.getLogger(__name__)

ComputedValues = Dict[Tuple[str, str], Any]
Evaluator = Callable[[Workbook], ComputedValues]

_SNAPSHOT_NAME = "snapshot.xlsx"


def _unwrap(value: Any) -> Any:
    """Unwrap ``Ranges`` objects, numpy scalars and 1-element arrays."""
    v = value
    if hasattr(v, "value"):
        v = getattr(v, "value", v)
    if isinstance(v, np.ndarray):
        if v.size != 1:
            raise ValueError("multi-cell result")
        v = v.flat[0]
    if isinstance(v, (np.integer, np.floating)):
        v = v.item()
    elif isinstance(v, np.bool_):
        v = bool(v)
    elif isinstance(v, str):
        # XlError subclasses str; keep the plain text ("#VALUE!")
        v = str(v)
    return v


def compute_formula_values(file_path: str) -> ComputedValues:
    """
    Use the ``formulas`` library to evaluate every formula in the workbook
    saved at *file_path*.

    Sheet names are normalised to uppercase for case-insensitive matching.
    """
    computed: ComputedValues = {}
    xl_model = formulas.ExcelModel().loads(file_path).finish()
    results = xl_model.calculate()

    # results keys look like  "'[file.xlsx]SHEET NAME'!E2"  or range variants
    pattern = re.compile(
        r"'\[" + re.escape(Path(file_path).name) + r"\](.+?)'!([A-Z]+\d+)$",
        re.IGNORECASE,
    )
    for key, val in results.items():
        m = pattern.match(str(key))
        if not m:
            continue
        try:
            computed[(m.group(1).upper(), m.group(2).upper())] = _unwrap(val)
        except ValueError:
            continue
    return computed


class FormulasEvaluator:
    """
    Default evaluator: snapshot the workbook to a temporary file and run
    it through ``formulas.ExcelModel``.

    Evaluation failures are logged and yield an empty lookup, so reads
    fall back to the formula text.
    """

    def __call__(self, workbook: Workbook) -> ComputedValues:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / _SNAPSHOT_NAME
            workbook.save(path)
            try:
                computed = compute_formula_values(str(path))
            except Exception:
                logger.warning(
                    "Formula evaluation failed; reads fall back to the formula text",
                    exc_info=True,
                )
                return {}
        logger.debug("  [Evaluator] %d formula value(s) computed", len(computed))
        return computed
