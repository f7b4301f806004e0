"""Unit tests — AgentSession transcript handling."""

from __future__ import annotations

import pytest

from ai.session import AgentError, AgentSession, with_context
from tests.conftest import ScriptedService


@pytest.mark.unit
class TestAgentSession:
    def test_context_is_prefixed(self) -> None:
        service = ScriptedService(['{"message": "hi"}'])
        session = AgentSession(service, "SYSTEM")
        response = session.send("Sum column C", "Active sheet: Data")
        assert response.message == "hi"
        messages, system_prompt = service.requests[0]
        assert system_prompt == "SYSTEM"
        assert messages[-1].content == with_context("Sum column C", "Active sheet: Data")
        assert messages[-1].content.endswith("Request: Sum column C")

    def test_no_context_sends_the_message_as_is(self) -> None:
        assert with_context("hello", None) == "hello"

    def test_history_records_both_sides(self) -> None:
        session = AgentSession(ScriptedService(["The total is 42"]), "SYSTEM")
        response = session.send("What is the total?")
        assert response.actions is None
        assert [(m.role, m.content) for m in session.history] == [
            ("user", "What is the total?"),
            ("assistant", "The total is 42"),
        ]

    def test_history_is_trimmed_but_keeps_the_system_prompt(self) -> None:
        session = AgentSession(ScriptedService([]), "SYSTEM", max_history=4)
        for i in range(5):
            session.send(f"q{i}")
        assert len(session.history) <= 4
        assert session.history[-1].role == "assistant"
        assert session.system_prompt == "SYSTEM"

    def test_trimmed_transcript_starts_with_a_user_turn(self) -> None:
        service = ScriptedService([])
        session = AgentSession(service, "SYSTEM", max_history=3)
        for i in range(4):
            session.send(f"q{i}")
        for messages, _ in service.requests:
            assert messages[0].role == "user"
        assert [m.content for m in service.requests[-1][0]] == ["q3"]

    def test_tiny_history_is_clamped(self) -> None:
        service = ScriptedService([])
        session = AgentSession(service, "SYSTEM", max_history=1)
        assert session.max_history == 2
        for i in range(3):
            session.send(f"q{i}")
        assert [m.content for m in service.requests[-1][0]] == ["q2"]
        assert len(session.history) == 2

    def test_service_failure_raises_agent_error(self) -> None:
        session = AgentSession(ScriptedService([ConnectionError("boom")]), "SYSTEM")
        with pytest.raises(AgentError, match="boom"):
            session.send("hello")
        assert session.history == []

    def test_clear_history(self) -> None:
        session = AgentSession(ScriptedService([]), "SYSTEM")
        session.send("hello")
        session.clear_history()
        assert session.history == []

    def test_generate_formula(self) -> None:
        service = ScriptedService([{"message": "Sum", "actions": [{"type": "formula", "range": "D2", "formula": "=SUM(C2:C6)"}]}])
        response = AgentSession(service, "SYSTEM").generate_formula("total of column C", "Active sheet: Data")
        assert response.actions[0].formula == "=SUM(C2:C6)"
        assert "Generate an Excel formula for: total of column C" in service.prompts[0]

    def test_analyze_data_returns_the_message(self) -> None:
        service = ScriptedService(["Sales grow every month."])
        answer = AgentSession(service, "SYSTEM").analyze_data("Jan 1\nFeb 2", "What is the trend?")
        assert answer == "Sales grow every month."
        assert "Analyze this data and answer: What is the trend?" in service.prompts[0]
