"""Unit tests — extracting the structured envelope from agent replies."""

from __future__ import annotations

import json

import pytest

from ai.response_parser import (
    DEFAULT_ACTION_MESSAGE,
    DEFAULT_QUERY_MESSAGE,
    iter_balanced_objects,
    parse_response,
)
from dto.actions import CalcAction, UnknownAction, WriteAction


@pytest.mark.unit
class TestStrategies:
    def test_json_fence(self) -> None:
        raw = 'Sure!\n```json\n{"message": "Writing", "actions": [{"type": "write", "range": "A1", "value": 5}]}\n```'
        response = parse_response(raw)
        assert response.message == "Writing"
        assert isinstance(response.actions[0], WriteAction)
        assert response.actions[0].value == 5

    def test_untagged_fence(self) -> None:
        raw = '```\n{"message": "ok", "actions": []}\n```'
        response = parse_response(raw)
        assert response.message == "ok"
        assert response.actions == []

    def test_bare_query_action_uses_leading_prose(self) -> None:
        raw = 'Let me count those.\n{"type": "calc", "range": "A1", "calcFormulas": ["=COUNTA(A2:A6)"]}'
        response = parse_response(raw)
        assert response.message == "Let me count those."
        assert isinstance(response.actions[0], CalcAction)
        assert response.actions[0].formula_list() == ["=COUNTA(A2:A6)"]

    def test_bare_query_action_without_prose(self) -> None:
        response = parse_response('{"type": "calc", "calcFormulas": ["=1+1"]}')
        assert response.message == DEFAULT_QUERY_MESSAGE

    def test_inline_envelope_after_prose(self) -> None:
        raw = 'Here you go: {"message": "Formatted", "actions": [{"type": "format", "range": "A1:C1"}]} hope it helps'
        response = parse_response(raw)
        assert response.message == "Formatted"
        assert response.actions[0].type == "format"

    def test_bare_mutation_action(self) -> None:
        response = parse_response('{"type": "merge", "range": "A1:B1"}')
        assert response.message == DEFAULT_ACTION_MESSAGE
        assert response.actions[0].type == "merge"

    def test_plain_text_answer_has_no_actions(self) -> None:
        response = parse_response("The total is 42")
        assert response.message == "The total is 42"
        assert response.actions is None

    @pytest.mark.parametrize("raw", [None, "", "{not json", "{}"])
    def test_never_raises(self, raw: object) -> None:
        response = parse_response(raw)  # type: ignore[arg-type]
        assert response.actions is None

    def test_non_string_message_is_rejected(self) -> None:
        response = parse_response('{"message": 5}')
        assert response.message == '{"message": 5}'
        assert response.actions is None

    def test_unknown_action_kind_is_kept(self) -> None:
        response = parse_response('{"message": "x", "actions": [{"type": "explode", "range": "A1"}]}')
        action = response.actions[0]
        assert isinstance(action, UnknownAction)
        assert action.type == "explode"
        assert "Unknown action type" in action.reason

    def test_thinking_is_carried(self) -> None:
        response = parse_response('{"message": "m", "thinking": "because"}')
        assert response.thinking == "because"


@pytest.mark.unit
class TestBraceScanning:
    def test_braces_inside_strings_are_ignored(self) -> None:
        text = 'a {"k": "}{"} b {"x": 1}'
        spans = list(iter_balanced_objects(text))
        assert [text[s:e] for s, e in spans] == ['{"k": "}{"}', '{"x": 1}']

    def test_unclosed_brace_is_skipped(self) -> None:
        text = '{ oops {"x": 1}'
        assert [text[s:e] for s, e in iter_balanced_objects(text)] == ['{"x": 1}']


@pytest.mark.unit
class TestReparse:
    @pytest.mark.parametrize(
        "raw",
        [
            'Here you go: {"message": "Totals", "actions": [{"type": "formula", "range": "D2", "formula": "=SUM(C2:C6)"}]} done.',
            '```json\n{"message": "Header", "actions": [{"type": "write", "range": "A1", "values": [["Zone", "Total"]]}], "thinking": "two columns"}\n```',
            'Bolding it.\n{"type": "format", "range": "A1:C1", "format": {"bold": true}}',
            'Counting.\n{"type": "countByCategory", "categoryColumn": "Zone"}',
            "The total is 42",
        ],
    )
    def test_own_output_parses_back_verbatim(self, raw: str) -> None:
        first = parse_response(raw)
        again = parse_response(json.dumps(first.to_wire()))
        assert again.message == first.message
        assert again.to_wire() == first.to_wire()
