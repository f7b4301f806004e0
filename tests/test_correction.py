"""Unit tests — CorrectionOrchestrator turn handling and correction budgets."""

from __future__ import annotations

import json

import pytest

from ai.session import AgentError
from document import WorkbookDocument
from dto.region import Region
from tests.conftest import FakeEvaluator, make_workbook


def envelope(message: str, *actions: dict) -> dict:
    return {"message": message, "actions": list(actions)}


@pytest.mark.unit
class TestPlainTurns:
    def test_answer_without_actions(self, make_orchestrator) -> None:
        orchestrator, service = make_orchestrator(["The total is 42"])
        outcome = orchestrator.run_turn("What is the total?")
        assert outcome.message == "The total is 42"
        assert outcome.results == []
        assert outcome.states == ["idle", "done"]
        assert len(service.requests) == 1

    def test_request_carries_workbook_context(self, make_orchestrator) -> None:
        orchestrator, service = make_orchestrator(["ok"])
        orchestrator.run_turn("Hello")
        assert "Active sheet: Data" in service.prompts[0]
        assert service.prompts[0].endswith("Request: Hello")

    def test_successful_write(self, make_orchestrator, document: WorkbookDocument) -> None:
        orchestrator, _ = make_orchestrator(
            [envelope("Adding a note", {"type": "write", "range": "E1", "values": [["Checked"]]})]
        )
        outcome = orchestrator.run_turn("Add a note")
        assert outcome.message == "Adding a note"
        assert [r.success for r in outcome.results] == [True]
        assert outcome.states == ["idle", "executing", "validating", "done"]
        assert outcome.correction_rounds == 0
        assert document.read_cell(1, 5) == "Checked"

    def test_agent_error_propagates(self, make_orchestrator) -> None:
        orchestrator, _ = make_orchestrator([ConnectionError("offline")])
        with pytest.raises(AgentError):
            orchestrator.run_turn("Hello")


@pytest.mark.unit
class TestFailureCorrection:
    def test_spill_range_is_rewritten_as_a_single_cell(self, make_orchestrator) -> None:
        evaluator = FakeEvaluator(
            resolve=lambda sheet, cell, formula: "#SPILL!" if cell.startswith("B") else "North"
        )
        doc = WorkbookDocument(make_workbook([["Zone"], ["North"], ["South"], ["North"]]), evaluator=evaluator)
        orchestrator, service = make_orchestrator(
            [
                envelope("Listing zones", {"type": "formula", "range": "B2:B10", "formula": "=UNIQUE(A2:A4)"}),
                envelope("Fixed", {"type": "formula", "range": "D2", "formula": "=UNIQUE(A2:A4)"}),
            ],
            document=doc,
        )
        outcome = orchestrator.run_turn("List the distinct zones")

        first = outcome.results[0]
        assert first.validation_passed is False
        assert "#SPILL! x9" in first.validation_message
        assert outcome.failure_rounds == 1
        assert "[ERROR IN PREVIOUS ACTIONS]" in service.prompts[1]
        assert "ONE SINGLE CELL" in service.prompts[1]

        assert [r.final_address for r in outcome.last_results] == ["Data!D2"]
        assert outcome.last_results[0].validation_passed is True
        assert outcome.explanation is None
        assert outcome.message == "Fixed"
        assert "correcting" in outcome.states

    def test_budget_exhausted(self, make_orchestrator) -> None:
        bad = envelope("Trying", {"type": "explode", "range": "A1"})
        orchestrator, service = make_orchestrator([bad, bad, bad])
        outcome = orchestrator.run_turn("Do something odd")
        assert outcome.failure_rounds == 1
        assert len(service.requests) == 2
        assert outcome.explanation.startswith("1 action(s) still failed after 1 correction round(s)")
        assert "Unknown action type" in outcome.explanation
        assert outcome.states[-1] == "done"

    def test_failed_action_does_not_stop_the_batch(self, make_orchestrator, document: WorkbookDocument) -> None:
        orchestrator, _ = make_orchestrator(
            [
                envelope(
                    "Two things",
                    {"type": "activateSheet", "sheetName": "Missing"},
                    {"type": "write", "range": "E1", "value": "kept"},
                ),
                envelope("Done, without the sheet switch"),
            ]
        )
        outcome = orchestrator.run_turn("Switch and write")
        assert [r.success for r in outcome.results] == [False, True]
        assert document.read_cell(1, 5) == "kept"
        assert outcome.failure_rounds == 1
        assert outcome.explanation is None


@pytest.mark.unit
class TestSuspicionCorrection:
    def _zero_for_west(self, evaluator: FakeEvaluator) -> None:
        evaluator.resolve = lambda sheet, cell, formula: 0 if "West" in formula else 7

    def test_all_zero_results_get_exactly_one_round(self, make_orchestrator, evaluator) -> None:
        self._zero_for_west(evaluator)
        west = {"type": "formula", "range": "E1:E10", "formula": '=COUNTIFS(A2:A6,"West")'}
        orchestrator, service = make_orchestrator(
            [envelope("Counting", west), envelope("Counting again", dict(west, range="H1:H10"))]
        )
        outcome = orchestrator.run_turn("Count West rows")
        assert outcome.suspicion_rounds == 1
        assert outcome.failure_rounds == 0
        assert len(service.requests) == 2
        assert "[RESULT CHECK - ANOMALIES DETECTED]" in service.prompts[1]
        assert "All 10 numeric results are 0" in service.prompts[1]
        assert 'Data!A: "Zone" is category (text)' in service.prompts[1]
        assert outcome.explanation.startswith("Results still look suspicious after correction")
        assert outcome.suspicion.suspicious

    def test_corrected_results_end_the_turn(self, make_orchestrator, evaluator) -> None:
        self._zero_for_west(evaluator)
        orchestrator, _ = make_orchestrator(
            [
                envelope("Counting", {"type": "formula", "range": "E1:E10", "formula": '=COUNTIFS(A2:A6,"West")'}),
                envelope("Counting North", {"type": "formula", "range": "H1", "formula": '=COUNTIFS(A2:A6,"North")'}),
            ]
        )
        outcome = orchestrator.run_turn("Count rows")
        assert outcome.suspicion_rounds == 1
        assert outcome.suspicion is None
        assert outcome.explanation is None
        assert outcome.last_results[0].actual_values == [[7]]

    def test_few_zeros_are_not_suspicious(self, make_orchestrator, evaluator) -> None:
        self._zero_for_west(evaluator)
        orchestrator, service = make_orchestrator(
            [envelope("Counting", {"type": "formula", "range": "E1:E3", "formula": '=COUNTIFS(A2:A6,"West")'})]
        )
        outcome = orchestrator.run_turn("Count West rows")
        assert outcome.suspicion_rounds == 0
        assert len(service.requests) == 1


@pytest.mark.unit
class TestQueryFollowUp:
    def test_calc_results_go_back_to_the_agent(self, make_orchestrator, evaluator) -> None:
        evaluator.values['=COUNTIF(Data!A2:A6,"North")'] = 2
        orchestrator, service = make_orchestrator(
            [
                envelope("Counting", {"type": "calc", "calcFormulas": ['=COUNTIF(A2:A6,"North")']}),
                "There are 2 rows for North.",
            ]
        )
        outcome = orchestrator.run_turn("How many North rows?")
        assert outcome.followup_rounds == 1
        assert outcome.message == "There are 2 rows for North."
        followup = service.prompts[1]
        assert "[CALCULATION RESULTS - 100% REAL DATA]" in followup
        assert '=COUNTIF(A2:A6,"North") = 2' in followup
        assert 'Now answer the user\'s original question: "How many North rows?"' in followup

    def test_category_counts_are_listed(self, make_orchestrator) -> None:
        orchestrator, service = make_orchestrator(
            [envelope("Counting", {"type": "countByCategory", "categoryColumn": "Zone"}), "Done"]
        )
        orchestrator.run_turn("Rows per zone?")
        followup = service.prompts[1]
        assert "[COUNT BY CATEGORY RESULTS - 100% REAL DATA]" in followup
        assert "• North: 2" in followup
        assert "TOTAL: 5" in followup

    def test_other_actions_wait_for_the_answer(self, make_orchestrator, document, evaluator) -> None:
        evaluator.values["=SUM(Data!C2:C6)"] = 150
        orchestrator, service = make_orchestrator(
            [
                envelope(
                    "Summing",
                    {"type": "calc", "calcFormulas": ["=SUM(C2:C6)"]},
                    {"type": "write", "range": "E1", "value": "Total"},
                ),
                "The total is 150.",
            ]
        )
        outcome = orchestrator.run_turn("What is the total?")
        assert [r.action_type for r in outcome.results] == ["calc"]
        assert document.read_cell(1, 5) is None
        note = service.prompts[1].split("you had also proposed these actions: ")[1]
        assert json.loads(note) == [{"type": "write", "range": "E1", "value": "Total"}]

    def test_followup_budget(self, make_orchestrator, evaluator) -> None:
        evaluator.values["=SUM(Data!C2:C6)"] = 150
        calc = envelope("Summing", {"type": "calc", "calcFormulas": ["=SUM(C2:C6)"]})
        orchestrator, service = make_orchestrator([calc, calc, calc], max_followup_rounds=1)
        outcome = orchestrator.run_turn("Total?")
        assert outcome.followup_rounds == 1
        assert len(service.requests) == 2
        assert len(outcome.results) == 2
        assert outcome.states[-1] == "done"

    def test_failed_query_goes_to_failure_correction(self, make_orchestrator, evaluator) -> None:
        evaluator.values["=UNIQUE(Data!A2:A6)"] = "#SPILL!"
        orchestrator, service = make_orchestrator(
            [envelope("Listing", {"type": "calc", "calcFormulas": ["=UNIQUE(A2:A6)"]}), "Sorry."]
        )
        outcome = orchestrator.run_turn("Which zones exist?")
        assert outcome.followup_rounds == 0
        assert outcome.failure_rounds == 1
        assert "#SPILL!" in service.prompts[1]


@pytest.mark.unit
class TestConfirmMode:
    def test_declined_actions_stay_pending(self, make_orchestrator, document) -> None:
        orchestrator, _ = make_orchestrator(
            [envelope("Writing", {"type": "write", "range": "E1", "value": "x"})],
            edit_mode="confirm",
            confirm=lambda actions: False,
        )
        outcome = orchestrator.run_turn("Write x")
        assert outcome.results == []
        assert [a.type for a in outcome.pending_actions] == ["write"]
        assert outcome.explanation == "Actions are waiting for confirmation"
        assert document.is_region_empty(Region.parse("E1", sheet="Data"))

    def test_no_callback_means_pending(self, make_orchestrator) -> None:
        orchestrator, _ = make_orchestrator(
            [envelope("Writing", {"type": "write", "range": "E1", "value": "x"})], edit_mode="confirm"
        )
        assert orchestrator.run_turn("Write x").pending_actions

    def test_approved_actions_run(self, make_orchestrator, document) -> None:
        seen = []

        def approve(actions):
            seen.extend(actions)
            return True

        orchestrator, _ = make_orchestrator(
            [envelope("Writing", {"type": "write", "range": "E1", "value": "x"})],
            edit_mode="confirm",
            confirm=approve,
        )
        outcome = orchestrator.run_turn("Write x")
        assert len(seen) == 1
        assert outcome.results[0].success
        assert document.read_cell(1, 5) == "x"
