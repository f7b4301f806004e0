"""
Correction prompts: sent back to the agent when actions failed or their
results look wrong.
"""

from __future__ import annotations

from typing import List, Sequence, Tuple

from dto.actions import ActionBase
from dto.results import ActionResult, SuspicionReport


def _failure_lines(failures: Sequence[Tuple[ActionBase, ActionResult]]) -> str:
    lines = []
    for action, result in failures:
        reason = result.error if not result.success else result.validation_message
        where = result.final_address or action.range
        lines.append(f'- Action "{action.type}" on {where}: {reason}')  # type: ignore[attr-defined]
    return "\n".join(lines)


def get_failure_correction_prompt(failures: Sequence[Tuple[ActionBase, ActionResult]]) -> str:
    return f"""[ERROR IN PREVIOUS ACTIONS]
The following actions failed:
{_failure_lines(failures)}

COMMON ERRORS AND FIXES:
1. "The number of rows or columns in the input array doesn't match the size of the range", or every
   cell showing #SPILL! → UNIQUE/SORT/FILTER formulas go in ONE SINGLE CELL (e.g. "A2"), NOT in a
   range (e.g. "A2:A100").  Excel spills them automatically.
2. "A resource with the same name already exists" → the sheet already exists: use a different name
   or activate the existing sheet.
3. Wrong sheet reference → use the exact sheet name from the index.
4. No empty region found → the sheet is crowded: create a new sheet for the output.

Please return the CORRECTED actions to complete the task."""


def get_suspicion_correction_prompt(
    report: SuspicionReport,
    formulas: Sequence[Tuple[str, str]],
    original_request: str,
) -> str:
    """
    *formulas* is ``[(address, formula_text), ...]`` for the formula
    actions whose results were judged suspicious.
    """
    findings: List[str] = [f"- {reason}" for reason in report.reasons]
    for address, formula in formulas:
        findings.append(f"- Formula in {address}: {formula[:100]}")
    hints = ""
    if report.column_hints:
        hints = "\nCOLUMNS REFERENCED:\n" + "\n".join(
            f"- {ref}: {hint}" for ref, hint in sorted(report.column_hints.items())
        ) + "\n"

    return f"""[RESULT CHECK - ANOMALIES DETECTED]

The formulas ran but the results look WRONG:
{chr(10).join(findings)}
{hints}
ORIGINAL USER REQUEST: "{original_request}"

COMMON PROBLEMS AND FIXES:
1. **All values are 0**: the column references are wrong.  Check:
   - Does the date column hold real dates or text?
   - Does the value column hold numbers or text?
   - Do the references point at the right sheet?

2. **SUMIF/COUNTIF returns 0**:
   - The criterion does not match (case, extra spaces)
   - The criteria column has a different format than expected
   - Use SUMIFS with sheet-qualified references: SUMIFS('SheetName'!EU:EU,'SheetName'!AJ:AJ,A2)

3. **Date formulas**:
   - YEAR() only works on real dates, not text
   - Use TEXT(AJ2,"YYYY") if the date is stored as text

4. **#SPILL! / #REF!**: array formulas belong in a single cell; a #REF! points at a deleted or
   out-of-range reference.

REQUIRED ACTION:
1. Work out what is wrong with the references
2. Return NEW, corrected formulas
3. If you are unsure about the data format, first run a "calc" action to check it:
   =TYPE(AJ2) → 1 = number/date, 2 = text
   =LEFT(AJ2,10) → shows what the cell holds

Please return the CORRECTED actions."""
