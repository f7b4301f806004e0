"""Unit tests — post-write validation and batch suspicion."""

from __future__ import annotations

import pytest

from document import WorkbookDocument
from dto.actions import CalcAction, FormulaAction, WriteAction, parse_action
from dto.region import Region
from dto.results import ActionResult, CalcResult
from engine.validator import assess_batch, expected_mask, validate
from indexing.data_index import DataIndexer


def _result(action, address: str) -> ActionResult:
    return ActionResult(action_type=action.type, success=True, requested_address=action.range, final_address=address)


def _formula_result(address: str, values) -> tuple:
    action = FormulaAction(range=address, formula="=COUNTIFS(Data!A2:A6,\"x\",Data!C2:C6,\">0\")")
    result = ActionResult(
        action_type="formula", success=True, final_address=f"Data!{address}",
        validated=True, validation_passed=True, actual_values=values,
    )
    return action, result


@pytest.mark.unit
class TestValidate:
    def test_passed(self, document: WorkbookDocument) -> None:
        action = WriteAction(range="E1", values=[["a", "b"]])
        document.write_values(Region.parse("E1", sheet="Data"), [["a", "b"]])
        verdict = validate(action, _result(action, "Data!E1:F1"), document)
        assert verdict.validated
        assert verdict.validation_passed is True
        assert verdict.validation_message == "2/2 cells filled"

    def test_original_result_is_not_mutated(self, document: WorkbookDocument) -> None:
        action = WriteAction(range="E1", value="x")
        original = _result(action, "Data!E1")
        verdict = validate(action, original, document)
        assert verdict is not original
        assert original.validated is False

    def test_no_data_written(self, document: WorkbookDocument) -> None:
        action = WriteAction(range="E1", value="x")
        verdict = validate(action, _result(action, "Data!E1"), document)
        assert verdict.validation_passed is False
        assert verdict.validation_message == "No data written to E1"
        assert verdict.failed

    def test_incomplete_table(self, document: WorkbookDocument) -> None:
        values = [["h1", "h2"], ["a", "b"], ["c", "d"], ["e", "f"]]
        action = WriteAction(range="E1", values=values)
        # Only the header row reached the sheet.
        document.write_values(Region.parse("E1", sheet="Data"), [["h1", "h2"]])
        verdict = validate(action, _result(action, "Data!E1:F4"), document)
        assert verdict.validation_passed is False
        assert verdict.validation_message == "Incomplete table: 6/8 empty (75%)"

    def test_deliberate_blanks_are_not_incomplete(self, document: WorkbookDocument) -> None:
        values = [["Zone", None, None], [None, None, None], ["Total", None, 150], [None, None, None]]
        action = WriteAction(range="E1", values=values)
        document.write_values(Region.parse("E1", sheet="Data"), values)
        verdict = validate(action, _result(action, "Data!E1:G4"), document)
        assert verdict.validation_passed is True
        assert verdict.validation_message == "3/12 cells filled"

    def test_single_row_is_never_incomplete(self, document: WorkbookDocument) -> None:
        action = WriteAction(range="E1", values=[["a", "b", "c", "d", "e", "f"]])
        document.write_values(Region.parse("E1", sheet="Data"), [["a"]])
        verdict = validate(action, _result(action, "Data!E1:J1"), document)
        assert verdict.validation_passed is True

    def test_formula_errors(self, document: WorkbookDocument, evaluator) -> None:
        evaluator.resolve = lambda sheet, cell, formula: "#REF!" if cell == "E1" else "#N/A"
        action = FormulaAction(range="E1:E3", formula="=VLOOKUP(A2,Z:Z,2,0)")
        document.fill(Region.parse("E1:E3", sheet="Data"), "=VLOOKUP(A2,Z:Z,2,0)")
        verdict = validate(action, _result(action, "Data!E1:E3"), document)
        assert verdict.validation_passed is False
        assert verdict.validation_message == "All 3 formula cell(s) returned errors: #N/A x2, #REF! x1"

    def test_some_errors_still_pass(self, document: WorkbookDocument, evaluator) -> None:
        evaluator.resolve = lambda sheet, cell, formula: "#N/A" if cell == "E1" else 3
        action = FormulaAction(range="E1:E2", formula="=X")
        document.fill(Region.parse("E1:E2", sheet="Data"), "=X")
        assert validate(action, _result(action, "Data!E1:E2"), document).validation_passed is True

    def test_expected_mask_for_ragged_payload(self) -> None:
        action = WriteAction(range="A1", values=[["a"], ["b", ""]])
        assert expected_mask(action, Region.parse("A1:B2")) == [[True, False], [True, False]]


@pytest.mark.unit
class TestAssessBatch:
    def test_all_zero_above_threshold(self) -> None:
        pairs = [_formula_result(f"E{i}", [[0]]) for i in range(1, 7)]
        report = assess_batch([a for a, _ in pairs], [r for _, r in pairs])
        assert report.suspicious
        assert report.reasons == ["All 6 numeric results are 0"]

    def test_five_zeros_are_not_enough(self) -> None:
        pairs = [_formula_result(f"E{i}", [[0]]) for i in range(1, 6)]
        assert not assess_batch([a for a, _ in pairs], [r for _, r in pairs]).suspicious

    def test_mostly_zero(self) -> None:
        values = [[0]] * 11 + [[4]]
        action, result = _formula_result("E1:E12", values)
        report = assess_batch([action], [result])
        assert report.reasons == ["11 of 12 numeric results are 0 (92%)"]

    def test_healthy_results(self) -> None:
        action, result = _formula_result("E1:E12", [[i] for i in range(12)])
        report = assess_batch([action], [result])
        assert not report.suspicious
        assert report.numeric_count == 12

    def test_calc_results_are_pooled(self) -> None:
        calc = CalcAction(calc_formulas=["=COUNTIF(A:A,1)"] * 6)
        result = ActionResult(
            action_type="calc", success=True,
            calc_results=[CalcResult(formula="=COUNTIF(A:A,1)", result=0)] * 6,
        )
        assert assess_batch([calc], [result]).suspicious

    def test_failed_results_are_ignored(self) -> None:
        pairs = [_formula_result(f"E{i}", [[0]]) for i in range(1, 7)]
        failed = [r.model_copy(update={"validation_passed": False}) for _, r in pairs]
        assert not assess_batch([a for a, _ in pairs], failed).suspicious

    def test_structural_errors_are_reported_by_cell(self) -> None:
        action, result = _formula_result("B2:B3", [[5], ["#SPILL!"]])
        report = assess_batch([action], [result])
        assert report.error_cells == ["#SPILL! in B3"]
        assert report.reasons == ["Error values in results: #SPILL! in B3"]

    def test_column_hints(self, document: WorkbookDocument) -> None:
        index = DataIndexer(document).build("Data")
        pairs = [_formula_result(f"E{i}", [[0]]) for i in range(1, 7)]
        report = assess_batch([a for a, _ in pairs], [r for _, r in pairs], index, "Data")
        assert report.column_hints == {
            "Data!A": '"Zone" is category (text)',
            "Data!C": '"Amount" is amount (number)',
        }

    def test_parsed_actions_work_too(self) -> None:
        action = parse_action({"type": "formula", "range": "E1", "formula": "=1"})
        result = ActionResult(action_type="formula", success=True, final_address="Data!E1", actual_values=[[1]])
        assert not assess_batch([action], [result]).suspicious
