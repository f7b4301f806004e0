"""
Spreadsheet assistant — CLI entry point.

Usage:
    python assistant.py <book.xlsx> "<request>" [--sheet NAME] [--output out.xlsx] [--provider claude]

Runs one chat turn: the request and the workbook context go to the agent,
the returned actions are executed (with collision protection, validation
and bounded correction rounds), and the workbook is saved.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import dotenv

from ai import AgentError, AgentSession, get_decision_service
from document import WorkbookDocument
from dto.actions import AnyAction
from engine.constants import EDIT_MODE, EDIT_MODE_CONFIRM
from engine.correction import CorrectionOrchestrator, TurnOutcome
from engine.executor import DispatchExecutor
from prompts.system import get_system_prompt

dotenv.load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger(__name__)


def build_orchestrator(
    document: WorkbookDocument,
    provider: Optional[str] = None,
    sheet: Optional[str] = None,
    edit_mode: str = EDIT_MODE,
) -> CorrectionOrchestrator:
    executor = DispatchExecutor(document)
    session = AgentSession(
        get_decision_service(provider),
        get_system_prompt(executor.supported_kinds),
    )
    return CorrectionOrchestrator(
        session,
        document,
        executor,
        sheet=sheet,
        edit_mode=edit_mode,
        confirm=_confirm_on_terminal,
    )


def _confirm_on_terminal(actions: List[AnyAction]) -> bool:
    print("\nProposed actions:")
    for action in actions:
        print(f"  - {action.label()}" + (f": {action.description}" if action.description else ""))
    answer = input("Execute these actions? [y/N] ").strip().lower()
    return answer in ("y", "yes")


def render_outcome(outcome: TurnOutcome) -> str:
    lines = [outcome.message]
    if outcome.results:
        lines += ["", f"{'ACTION':<18} {'WHERE':<24} STATUS"]
        for result in outcome.results:
            where = result.final_address or result.requested_address or ""
            if not result.success:
                status = f"ERROR: {result.error}"
            elif result.validation_passed is False:
                status = f"FAILED: {result.validation_message}"
            else:
                status = result.message
                if result.relocated:
                    status += f" (moved from {result.requested_address})"
            lines.append(f"{result.action_type:<18} {where:<24} {status}")
    if outcome.pending_actions:
        lines += ["", f"{len(outcome.pending_actions)} action(s) not executed (awaiting confirmation)."]
    if outcome.explanation:
        lines += ["", f"Note: {outcome.explanation}"]
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Spreadsheet assistant — ask for changes to an .xlsx workbook in plain language.",
    )
    parser.add_argument("excel_file", help="Path to the .xlsx workbook")
    parser.add_argument("request", help="What you want done, in plain language")
    parser.add_argument("--sheet", default=None, help="Sheet to work on (default: the active sheet)")
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Where to save the result (default: overwrite the input workbook)",
    )
    parser.add_argument(
        "--provider",
        default=None,
        help="AI provider: claude, openai, azure or gemini (default: $AI_PROVIDER or claude)",
    )
    args = parser.parse_args()

    excel_path = args.excel_file
    if not os.path.isfile(excel_path):
        logger.error("File not found: %s", excel_path)
        sys.exit(1)

    document = WorkbookDocument.load(excel_path)
    if args.sheet:
        document.activate_sheet(args.sheet)
    orchestrator = build_orchestrator(document, args.provider, args.sheet)

    try:
        outcome = orchestrator.run_turn(args.request)
    except AgentError as exc:
        logger.error("%s", exc)
        sys.exit(2)

    print(render_outcome(outcome))

    if outcome.results:
        output_path = args.output or excel_path
        document.save(output_path)
    elif args.output:
        document.save(args.output)
    else:
        logger.info("No actions executed; %s left unchanged", Path(excel_path).name)


if __name__ == "__main__":
    main()
