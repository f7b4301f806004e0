"""
Follow-up prompts: hand the results of query actions (calc, read,
count/average by category) back to the agent so it can answer the user's
question with real figures.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dto.actions import ActionBase
from dto.results import ActionResult

MAX_CATEGORY_LINES = 30
MAX_READ_CELLS = 200


def format_calc_results(action: ActionBase, result: ActionResult) -> str:
    lines = [f"• {c.formula} = {c.result}" for c in result.calc_results or []]
    title = action.description or "Calculations"
    return f"{title}:\n" + "\n".join(lines)


def format_category_counts(action: ActionBase, result: ActionResult) -> str:
    counts = result.category_counts or []
    lines = [f"• {c.category}: {c.count}" for c in counts]
    lines.append(f"TOTAL: {sum(c.count for c in counts)}")
    title = action.description or "Count by category"
    return f"{title} ({len(counts)} categories):\n" + "\n".join(lines)


def format_category_averages(action: ActionBase, result: ActionResult) -> str:
    averages = result.category_averages or []
    lines = [f"• {a.category}: {a.average} ({a.count} records)" for a in averages[:MAX_CATEGORY_LINES]]
    if len(averages) > MAX_CATEGORY_LINES:
        lines.append(f"… and {len(averages) - MAX_CATEGORY_LINES} more categories")
    total = sum(a.count for a in averages)
    overall = round(sum(a.average * a.count for a in averages) / total, 2) if total else 0
    lines.append(f"Overall average: {overall} ({total} records)")
    title = action.description or "Average by category"
    return f"{title}:\n" + "\n".join(lines)


def format_read_data(action: ActionBase, result: ActionResult) -> str:
    data = result.read_data
    if data is None:
        return ""
    cells = list(data.values.items())
    lines = [f"{ref}: {value}" for ref, value in cells[:MAX_READ_CELLS]]
    if len(cells) > MAX_READ_CELLS:
        lines.append(f"… {len(cells) - MAX_READ_CELLS} more non-empty cells")
    return f"Range {data.address} ({data.num_rows} rows x {data.num_cols} columns):\n" + "\n".join(lines)


_SECTIONS: Dict[str, Tuple[str, Any]] = {
    "calc": ("CALCULATION RESULTS", format_calc_results),
    "countByCategory": ("COUNT BY CATEGORY RESULTS", format_category_counts),
    "avgByCategory": ("AVERAGE BY CATEGORY RESULTS", format_category_averages),
    "read": ("DATA READ", format_read_data),
}


def get_query_followup_prompt(
    results: Sequence[Tuple[ActionBase, ActionResult]],
    original_request: str,
    other_actions: Optional[List[Dict[str, Any]]] = None,
    warnings: Optional[List[str]] = None,
) -> str:
    blocks: List[str] = []
    for kind, (title, render) in _SECTIONS.items():
        rendered = [
            render(action, result)
            for action, result in results
            if action.type == kind and result.success  # type: ignore[attr-defined]
        ]
        if rendered:
            blocks.append(f"[{title} - 100% REAL DATA]\n" + "\n\n".join(rendered))

    errors = [
        f'- "{action.type}" on {action.range}: {result.error}'  # type: ignore[attr-defined]
        for action, result in results
        if not result.success
    ]
    if errors:
        blocks.append("[QUERIES THAT FAILED]\n" + "\n".join(errors))
    if warnings:
        blocks.append(
            "[WARNING - THESE RESULTS LOOK SUSPICIOUS]\n"
            + "\n".join(f"- {w}" for w in warnings)
            + "\nCheck the column references before presenting them."
        )

    note = ""
    if other_actions:
        note = f"\n\nNote: you had also proposed these actions: {json.dumps(other_actions, default=str)}"

    return (
        "\n\n".join(blocks)
        + f'\n\nNow answer the user\'s original question: "{original_request}"\n'
        "Present these figures clearly.  Use ONLY the data above and do not invent figures."
        + note
    )
