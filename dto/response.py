"""
Envelope returned by the agent for one turn, and the chat transcript entry.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, field_validator

from dto.actions import AnyAction, parse_actions


class StructuredResponse(BaseModel):
    """
    ``{message, actions?, thinking?}``.

    ``message`` is always present.  ``actions`` is ``None`` for a purely
    conversational reply (as opposed to ``[]``, an explicit empty batch).
    """

    message: str
    actions: Optional[List[AnyAction]] = None
    thinking: Optional[str] = None

    @field_validator("actions", mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> Any:
        if value is None:
            return None
        return parse_actions(list(value))

    @property
    def has_actions(self) -> bool:
        return bool(self.actions)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict in the shape the agent emits."""
        data: Dict[str, Any] = {"message": self.message}
        if self.actions is not None:
            data["actions"] = [action.to_wire() for action in self.actions]
        if self.thinking is not None:
            data["thinking"] = self.thinking
        return data


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str
