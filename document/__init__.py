from document.errors import (
    CalculationTimeoutError,
    DocumentError,
    DuplicateSheetError,
    RangeSizeMismatchError,
    SheetNotFoundError,
)
from document.evaluation import FormulasEvaluator
from document.workbook import WorkbookDocument

__all__ = [
    "CalculationTimeoutError",
    "DocumentError",
    "DuplicateSheetError",
    "FormulasEvaluator",
    "RangeSizeMismatchError",
    "SheetNotFoundError",
    "WorkbookDocument",
]
