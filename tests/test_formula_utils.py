"""Unit tests — formula text helpers and A1 coordinates."""

from __future__ import annotations

import pytest

from utils.addressing import column_index, column_letter, coord, is_column_letter, parse_coord
from utils.formula import (
    error_code,
    is_error_value,
    is_formula,
    normalize_formula,
    qualify_formula_references,
    referenced_columns,
    uses_array_function,
)


@pytest.mark.unit
class TestNormalize:
    def test_adds_marker(self) -> None:
        assert normalize_formula("SUM(A1:A3)") == "=SUM(A1:A3)"

    def test_keeps_existing_marker_and_trims(self) -> None:
        assert normalize_formula("  =A1+1 ") == "=A1+1"

    def test_is_formula(self) -> None:
        assert is_formula("=A1")
        assert not is_formula("=")
        assert not is_formula("A1")
        assert not is_formula(12)


@pytest.mark.unit
class TestErrorSentinels:
    @pytest.mark.parametrize("value", ["#SPILL!", "#ref!", " #N/A ", "#DIV/0!"])
    def test_recognised(self, value: str) -> None:
        assert is_error_value(value)

    @pytest.mark.parametrize("value", [None, 0, 1.5, True, "", "hello", "#hashtag"])
    def test_not_errors(self, value: object) -> None:
        assert not is_error_value(value)

    def test_error_code_is_upper(self) -> None:
        assert error_code("#spill!") == "#SPILL!"
        assert error_code(3) is None

    def test_array_functions(self) -> None:
        assert uses_array_function("=unique(A2:A10)")
        assert not uses_array_function("=SUM(A2:A10)")


@pytest.mark.unit
class TestQualify:
    def test_prefixes_unqualified_references(self) -> None:
        assert (
            qualify_formula_references('=COUNTIF(I2:I99,"BOGOTA")', "Data")
            == '=COUNTIF(Data!I2:I99,"BOGOTA")'
        )

    def test_leaves_qualified_references_and_literals(self) -> None:
        formula = "=SUM(Other!A1:A3)+COUNTIF(B2:B5,\"A1\")"
        assert (
            qualify_formula_references(formula, "Data")
            == "=SUM(Other!A1:A3)+COUNTIF(Data!B2:B5,\"A1\")"
        )

    def test_quotes_sheet_names_with_spaces(self) -> None:
        assert qualify_formula_references("=A1*2", "My Data") == "='My Data'!A1*2"

    def test_function_names_are_not_references(self) -> None:
        assert qualify_formula_references("=LOG10(A1)", "Data") == "=LOG10(Data!A1)"


@pytest.mark.unit
class TestReferencedColumns:
    def test_ranges_expand_to_every_column(self) -> None:
        assert referenced_columns("=SUM(B2:D2)", "Data") == {
            ("Data", "B"), ("Data", "C"), ("Data", "D"),
        }

    def test_sheet_prefix_is_kept(self) -> None:
        found = referenced_columns("=SUMIF('Q1 Sales'!A:A,\"x\",'Q1 Sales'!C2:C9)+E1", "Data")
        assert ("Q1 Sales", "C") in found
        assert ("Data", "E") in found

    def test_string_literals_are_ignored(self) -> None:
        assert referenced_columns('=COUNTIF(A2:A9,"Z9")', "Data") == {("Data", "A")}


@pytest.mark.unit
class TestAddressing:
    def test_coord_roundtrip(self) -> None:
        assert coord(28, 12) == "AB12"
        assert parse_coord("$AB$12") == (12, 28)

    def test_letters(self) -> None:
        assert column_index("c") == 3
        assert column_letter(27) == "AA"

    @pytest.mark.parametrize("text,expected", [("K", True), ("abc", True), ("ABCD", False), ("A1", False), ("", False)])
    def test_is_column_letter(self, text: str, expected: bool) -> None:
        assert is_column_letter(text) is expected
