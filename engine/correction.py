"""
Correction Orchestrator — one chat turn, end to end.

    idle → executing → validating → done
                           │
                           └→ correcting → executing → …

A turn sends the user's request (with the workbook context) to the agent,
executes the returned actions and inspects the results.  Three kinds of
re-entry exist, each with its own budget:

  - follow-up   — query actions (calc, read, count/average by category)
                  ran; their results go back to the agent so it can answer
                  (MAX_FOLLOWUP_ROUNDS)
  - failure     — some action failed or failed validation
                  (MAX_FAILURE_ROUNDS)
  - suspicion   — the batch validated but its aggregates look wrong
                  (MAX_SUSPICION_ROUNDS)

When a budget runs out the turn ends with the last results and an
explanation; the loop never runs unbounded.  Correction requests always
rebuild the data index, since the previous batch may have changed the sheet.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel

from ai.session import AgentSession
from document.workbook import WorkbookDocument
from dto.actions import QUERY_KINDS, ActionBase, AnyAction, FormulaAction
from dto.results import ActionResult, SuspicionReport
from dto.response import StructuredResponse
from engine.constants import (
    EDIT_MODE,
    EDIT_MODE_CONFIRM,
    MAX_FAILURE_ROUNDS,
    MAX_FOLLOWUP_ROUNDS,
    MAX_SUSPICION_ROUNDS,
)
from engine.executor import DispatchExecutor
from engine.validator import assess_batch
from indexing.data_index import DataIndexer
from indexing.summary import build_context
from prompts.correction import get_failure_correction_prompt, get_suspicion_correction_prompt
from prompts.followup import get_query_followup_prompt

logger = logging.getLogger(__name__)

TurnState = Literal["idle", "executing", "validating", "correcting", "done"]

ConfirmCallback = Callable[[List[AnyAction]], bool]


class TurnOutcome(BaseModel):
    request: str
    message: str = ""
    # Every result of the turn, in execution order, across all rounds.
    results: List[ActionResult] = []
    # Results of the last executed batch only.
    last_results: List[ActionResult] = []
    failure_rounds: int = 0
    suspicion_rounds: int = 0
    followup_rounds: int = 0
    # Actions that were proposed but not executed (declined confirmation).
    pending_actions: List[AnyAction] = []
    suspicion: Optional[SuspicionReport] = None
    explanation: Optional[str] = None
    states: List[TurnState] = []

    @property
    def correction_rounds(self) -> int:
        return self.failure_rounds + self.suspicion_rounds

    @property
    def failed_results(self) -> List[ActionResult]:
        return [r for r in self.last_results if r.failed]


class CorrectionOrchestrator:
    def __init__(
        self,
        session: AgentSession,
        document: WorkbookDocument,
        executor: Optional[DispatchExecutor] = None,
        indexer: Optional[DataIndexer] = None,
        *,
        sheet: Optional[str] = None,
        edit_mode: str = EDIT_MODE,
        confirm: Optional[ConfirmCallback] = None,
        max_failure_rounds: int = MAX_FAILURE_ROUNDS,
        max_suspicion_rounds: int = MAX_SUSPICION_ROUNDS,
        max_followup_rounds: int = MAX_FOLLOWUP_ROUNDS,
    ):
        self.session = session
        self.document = document
        self.executor = executor or DispatchExecutor(document)
        self.indexer = indexer or DataIndexer(document)
        self.sheet = sheet
        self.edit_mode = edit_mode
        self.confirm = confirm
        self.max_failure_rounds = max_failure_rounds
        self.max_suspicion_rounds = max_suspicion_rounds
        self.max_followup_rounds = max_followup_rounds
        self.state: TurnState = "idle"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, state: TurnState, outcome: TurnOutcome) -> None:
        self.state = state
        outcome.states.append(state)
        logger.debug("  [Correction] → %s", state)

    def _sheet_name(self) -> str:
        if self.sheet and self.document.find_sheet(self.sheet) is not None:
            return self.document.sheet(self.sheet).title
        return self.document.active_sheet_name

    def _context(self, force_rebuild: bool = False) -> str:
        return build_context(self.document, self.indexer, self._sheet_name(), force_rebuild=force_rebuild)

    def _approved(self, actions: List[AnyAction]) -> bool:
        if self.edit_mode != EDIT_MODE_CONFIRM:
            return True
        if self.confirm is None:
            logger.info("  [Correction] Confirm mode without a callback; leaving actions pending")
            return False
        return bool(self.confirm(actions))

    def _finish(
        self,
        outcome: TurnOutcome,
        response: StructuredResponse,
        explanation: Optional[str] = None,
    ) -> TurnOutcome:
        self._enter("done", outcome)
        outcome.message = response.message
        outcome.explanation = explanation
        if explanation:
            logger.warning("  [Correction] Turn ended: %s", explanation)
        else:
            logger.info("  [Correction] Turn done")
        return outcome

    @staticmethod
    def _suspect_formulas(
        actions: Sequence[ActionBase], results: Sequence[ActionResult]
    ) -> List[Tuple[str, str]]:
        out = []
        for action, result in zip(actions, results):
            if isinstance(action, FormulaAction) and not result.failed:
                text = action.formula or "; ".join(f for row in action.formulas or [] for f in row if f)
                out.append((result.final_address or action.range, text))
        return out

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    def run_turn(self, user_message: str) -> TurnOutcome:
        """
        Process *user_message* through every round it needs.

        Only ``AgentError`` escapes; everything that goes wrong with an
        individual action ends up in its ``ActionResult``.
        """
        outcome = TurnOutcome(request=user_message)
        self._enter("idle", outcome)
        logger.info("  [Correction] New turn: %s", user_message[:120])
        response = self.session.send(user_message, self._context())

        while True:
            actions: List[AnyAction] = list(response.actions or [])
            if not actions:
                return self._finish(outcome, response)

            if not self._approved(actions):
                outcome.pending_actions = actions
                return self._finish(outcome, response, "Actions are waiting for confirmation")

            queries = [a for a in actions if a.type in QUERY_KINDS]
            run_queries_only = bool(queries) and outcome.followup_rounds < self.max_followup_rounds
            batch = queries if run_queries_only else actions

            self._enter("executing", outcome)
            results = self.executor.execute_all(batch)
            outcome.results.extend(results)
            outcome.last_results = results

            if run_queries_only and any(r.success for r in results):
                outcome.followup_rounds += 1
                others = [a.to_wire() for a in actions if a.type not in QUERY_KINDS]
                report = assess_batch(batch, results, self.indexer.build(self._sheet_name()), self._sheet_name())
                prompt = get_query_followup_prompt(
                    list(zip(batch, results)),
                    user_message,
                    others,
                    report.reasons if report.suspicious else None,
                )
                logger.info(
                    "  [Correction] Follow-up %d/%d with %d query result(s)",
                    outcome.followup_rounds, self.max_followup_rounds, len(results),
                )
                response = self.session.send(prompt, self._context())
                continue

            self._enter("validating", outcome)
            failures = [(a, r) for a, r in zip(batch, results) if r.failed]
            if failures:
                if outcome.failure_rounds < self.max_failure_rounds:
                    outcome.failure_rounds += 1
                    self._enter("correcting", outcome)
                    logger.info(
                        "  [Correction] %d failed action(s); correction round %d/%d",
                        len(failures), outcome.failure_rounds, self.max_failure_rounds,
                    )
                    response = self.session.send(
                        get_failure_correction_prompt(failures), self._context(force_rebuild=True)
                    )
                    continue
                details = "; ".join(r.describe() for _, r in failures)
                return self._finish(
                    outcome,
                    response,
                    f"{len(failures)} action(s) still failed after "
                    f"{outcome.failure_rounds} correction round(s): {details}",
                )

            sheet = self._sheet_name()
            report = assess_batch(batch, results, self.indexer.build(sheet), sheet)
            if report.suspicious:
                outcome.suspicion = report
                if outcome.suspicion_rounds < self.max_suspicion_rounds:
                    outcome.suspicion_rounds += 1
                    self._enter("correcting", outcome)
                    logger.info(
                        "  [Correction] Suspicious results; correction round %d/%d",
                        outcome.suspicion_rounds, self.max_suspicion_rounds,
                    )
                    prompt = get_suspicion_correction_prompt(
                        report, self._suspect_formulas(batch, results), user_message
                    )
                    response = self.session.send(prompt, self._context(force_rebuild=True))
                    continue
                return self._finish(
                    outcome,
                    response,
                    "Results still look suspicious after correction: " + "; ".join(report.reasons),
                )

            outcome.suspicion = None
            return self._finish(outcome, response)
