"""
Conversation session with the agent.

Holds the system prompt and a bounded transcript, prefixes the workbook
context to each user request, and parses every reply into a
``StructuredResponse``.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional

from ai.response_parser import parse_response
from ai.service import AIService
from dto.response import ChatMessage, StructuredResponse

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY_LENGTH = 20


class AgentError(Exception):
    """The agent could not be reached (transport / authorization failure)."""


def with_context(user_message: str, context: Optional[str]) -> str:
    if not context:
        return user_message
    return (
        "Excel context (current selection):\n"
        f"```\n{context}\n```\n\n"
        f"Request: {user_message}"
    )


class AgentSession:
    def __init__(
        self,
        service: AIService,
        system_prompt: str,
        max_history: Optional[int] = None,
    ):
        self._service = service
        self._system = ChatMessage(role="system", content=system_prompt)
        # Room for the system prompt and at least the pending user turn.
        self.max_history = max(
            2,
            max_history or int(os.getenv("MAX_HISTORY_LENGTH", str(DEFAULT_MAX_HISTORY_LENGTH))),
        )
        self._messages: List[ChatMessage] = [self._system]

    @property
    def system_prompt(self) -> str:
        return self._system.content

    @property
    def history(self) -> List[ChatMessage]:
        """The transcript without the system prompt."""
        return self._messages[1:]

    def clear_history(self) -> None:
        self._messages = [self._system]

    def _trim(self) -> None:
        # The system prompt always survives; the kept transcript starts on a
        # user turn.
        recent = self._messages[1:]
        limit = self.max_history - 1
        if len(recent) <= limit:
            return
        recent = recent[-limit:]
        while recent and recent[0].role != "user":
            recent = recent[1:]
        self._messages = [self._system] + recent

    def send(self, user_message: str, context: Optional[str] = None) -> StructuredResponse:
        """
        Send one user turn and return the parsed reply.

        Raises ``AgentError`` when the service fails; the unanswered user
        message is removed from the transcript in that case.
        """
        self._messages.append(ChatMessage(role="user", content=with_context(user_message, context)))
        self._trim()
        try:
            raw = self._service.get_decision(self.history, system_prompt=self.system_prompt)
        except Exception as exc:
            if self._messages[-1].role == "user":
                self._messages.pop()
            logger.error("  [Session] Agent request failed: %s", exc)
            raise AgentError(f"Agent request failed: {exc}") from exc

        self._messages.append(ChatMessage(role="assistant", content=raw))
        response = parse_response(raw)
        logger.info(
            "  [Session] Reply received (%d action(s))", len(response.actions or [])
        )
        return response

    def generate_formula(self, description: str, context: Optional[str] = None) -> StructuredResponse:
        prompt = (
            f"Generate an Excel formula for: {description}\n\n"
            'Return ONLY the formula as JSON with a single action of type "formula".'
        )
        return self.send(prompt, context)

    def analyze_data(self, data: str, question: Optional[str] = None) -> str:
        prompt = (
            f"Analyze this data and answer: {question}"
            if question
            else "Analyze this data and provide relevant insights."
        )
        return self.send(prompt, data).message
