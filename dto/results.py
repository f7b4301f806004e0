"""
Result records produced while executing a batch of actions.

An ``ActionResult`` is created once by the executor and never patched: the
validator returns an enriched copy via ``model_copy``, and a correction
round produces brand-new results.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

Verdict = Literal["passed", "failed"]


class CalcResult(BaseModel):
    formula: str
    result: Any = None


class CategoryCount(BaseModel):
    category: str
    count: int


class CategoryAverage(BaseModel):
    category: str
    average: float
    count: int


class ReadResult(BaseModel):
    """Non-empty cells of a read region, keyed by A1 address."""

    address: str
    num_rows: int
    num_cols: int
    values: Dict[str, Any] = {}


class ActionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    action_type: str
    success: bool
    message: str = ""
    error: Optional[str] = None

    # Post-write validation (write / formula only)
    validated: bool = False
    validation_passed: Optional[bool] = None
    validation_message: Optional[str] = None
    actual_values: Optional[List[List[Any]]] = None

    # Where the action actually landed (differs from the request after a
    # relocation or a payload-driven resize).
    requested_address: Optional[str] = None
    final_address: Optional[str] = None
    relocated: bool = False

    # Query payloads
    read_data: Optional[ReadResult] = None
    calc_results: Optional[List[CalcResult]] = None
    category_counts: Optional[List[CategoryCount]] = None
    category_averages: Optional[List[CategoryAverage]] = None

    @property
    def failed(self) -> bool:
        return not self.success or self.validation_passed is False

    @property
    def has_query_payload(self) -> bool:
        return self.success and any(
            payload is not None
            for payload in (
                self.read_data,
                self.calc_results,
                self.category_counts,
                self.category_averages,
            )
        )

    def describe(self) -> str:
        """Single-line summary used in logs and correction prompts."""
        where = self.final_address or self.requested_address or "?"
        if not self.success:
            return f"{self.action_type} on {where}: ERROR {self.error}"
        if self.validation_passed is False:
            return f"{self.action_type} on {where}: FAILED {self.validation_message}"
        return f"{self.action_type} on {where}: {self.message}"


class SuspicionReport(BaseModel):
    """Batch-level anomaly verdict for formula aggregates."""

    suspicious: bool = False
    reasons: List[str] = []
    numeric_count: int = 0
    zero_count: int = 0
    error_cells: List[str] = []
    # Column semantic types referenced by the suspicious formulas, e.g.
    # {"Sales!C": '"Total" is amount (number)'}; used to annotate the
    # correction request.
    column_hints: Dict[str, str] = {}
