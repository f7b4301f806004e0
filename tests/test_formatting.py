"""Unit tests — cosmetic actions mapped onto the openpyxl object model."""

from __future__ import annotations

import pytest

from dto.actions import parse_action
from engine.executor import DispatchExecutor
from engine.handlers.formatting import argb


def run(executor: DispatchExecutor, raw: dict):
    return executor.execute(parse_action(raw))


@pytest.mark.unit
class TestColors:
    @pytest.mark.parametrize(
        "given,expected",
        [("#1f4e79", "FF1F4E79"), ("abc", "FFAABBCC"), ("80FF0000", "80FF0000"), (None, None)],
    )
    def test_argb(self, given, expected) -> None:
        assert argb(given) == expected


@pytest.mark.unit
class TestCellStyles:
    def test_format(self, executor: DispatchExecutor, document) -> None:
        result = run(
            executor,
            {
                "type": "format",
                "range": "A1:C1",
                "format": {"bold": True, "backgroundColor": "#1F4E79", "fontColor": "#FFFFFF",
                           "horizontalAlignment": "center", "borders": True, "numberFormat": "@"},
            },
        )
        assert result.success
        cell = document.sheet()["B1"]
        assert cell.font.bold is True
        assert cell.font.color.rgb == "FFFFFFFF"
        assert cell.fill.start_color.rgb == "FF1F4E79"
        assert cell.alignment.horizontal == "center"
        assert cell.border.left.style == "thin"
        assert cell.number_format == "@"

    def test_format_with_merge(self, executor: DispatchExecutor, document) -> None:
        run(executor, {"type": "format", "range": "E1:F1", "format": {"merge": True}})
        assert "E1:F1" in {str(r) for r in document.sheet().merged_cells.ranges}

    def test_merge_single_cell_is_a_no_op(self, executor: DispatchExecutor, document) -> None:
        result = run(executor, {"type": "merge", "range": "E1"})
        assert result.success
        assert not document.sheet().merged_cells.ranges

    def test_column_width_and_row_height(self, executor: DispatchExecutor, document) -> None:
        run(executor, {"type": "columnWidth", "range": "B1:C1", "width": 20})
        run(executor, {"type": "rowHeight", "range": "A1", "height": 30})
        ws = document.sheet()
        assert ws.column_dimensions["B"].width == 20
        assert ws.column_dimensions["C"].width == 20
        assert ws.row_dimensions[1].height == 30

    def test_autofit(self, executor: DispatchExecutor, document) -> None:
        run(executor, {"type": "autofit", "range": "A1:C6"})
        assert document.sheet().column_dimensions["B"].width == len("Product") + 2


@pytest.mark.unit
class TestRules:
    def test_cell_value_rule(self, executor: DispatchExecutor, document) -> None:
        result = run(
            executor,
            {
                "type": "conditionalFormat",
                "range": "C2:C6",
                "conditionalFormatConfig": {
                    "type": "cellValue",
                    "cellValue": {"operator": "equalTo", "value1": 40, "format": {"backgroundColor": "#FFC7CE"}},
                },
            },
        )
        assert result.success
        rules = [rule for cf in document.sheet().conditional_formatting for rule in cf.rules]
        assert rules[0].operator == "equal"
        assert float(rules[0].formula[0]) == 40

    def test_missing_rule_settings(self, executor: DispatchExecutor) -> None:
        result = run(
            executor,
            {"type": "conditionalFormat", "range": "C2:C6", "conditionalFormatConfig": {"type": "cellValue"}},
        )
        assert not result.success

    def test_list_validation(self, executor: DispatchExecutor, document) -> None:
        run(
            executor,
            {"type": "dataValidation", "range": "D2:D6",
             "dataValidationConfig": {"type": "list", "list": ["Yes", "No"]}},
        )
        dv = document.sheet().data_validations.dataValidation[0]
        assert dv.formula1 == '"Yes,No"'
        assert str(dv.sqref) == "D2:D6"


@pytest.mark.unit
class TestAnnotations:
    def test_comment(self, executor: DispatchExecutor, document) -> None:
        run(executor, {"type": "comment", "range": "A1", "commentText": "Sales zone"})
        assert document.sheet()["A1"].comment.text == "Sales zone"

    def test_external_hyperlink(self, executor: DispatchExecutor, document) -> None:
        run(
            executor,
            {"type": "hyperlink", "range": "E1",
             "hyperlinkConfig": {"address": "https://example.com", "textToDisplay": "Docs"}},
        )
        cell = document.sheet()["E1"]
        assert cell.hyperlink.target == "https://example.com"
        assert cell.value == "Docs"

    def test_internal_hyperlink(self, executor: DispatchExecutor, document) -> None:
        run(executor, {"type": "hyperlink", "range": "E1", "hyperlinkConfig": {"address": "#Data!A1"}})
        assert document.sheet()["E1"].hyperlink.location == "Data!A1"


@pytest.mark.unit
class TestProtection:
    def test_protect_and_unprotect_with_password(self, executor: DispatchExecutor, document) -> None:
        run(executor, {"type": "protect", "protectionConfig": {"password": "s3cret", "allowSort": True}})
        prot = document.sheet().protection
        assert prot.sheet is True
        assert prot.sort is False

        wrong = run(executor, {"type": "unprotect", "protectionConfig": {"password": "nope"}})
        assert not wrong.success
        assert prot.sheet is True

        assert run(executor, {"type": "unprotect", "protectionConfig": {"password": "s3cret"}}).success
        assert prot.sheet is False


@pytest.mark.unit
class TestPanesAndOutline:
    def test_freeze_rows(self, executor: DispatchExecutor, document) -> None:
        run(executor, {"type": "freezePanes", "freezeConfig": {"rows": 1}})
        assert document.sheet().freeze_panes == "A2"
        run(executor, {"type": "unfreezePane"})
        assert document.sheet().freeze_panes is None

    def test_hide_and_show_columns(self, executor: DispatchExecutor, document) -> None:
        run(executor, {"type": "hideColumns", "range": "B1:C1"})
        assert document.sheet().column_dimensions["C"].hidden
        run(executor, {"type": "showColumns", "range": "B1:C1"})
        assert not document.sheet().column_dimensions["C"].hidden

    def test_group_rows(self, executor: DispatchExecutor, document) -> None:
        result = run(executor, {"type": "groupRows", "range": "A2:A6"})
        assert result.message == "Grouped rows 2:6"
        assert document.sheet().row_dimensions[3].outline_level == 1
