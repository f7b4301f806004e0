from abc import ABC, abstractmethod
from typing import List, Optional

from dto.response import ChatMessage


class AIService(ABC):
    """
    Base class for the conversational agent behind the assistant.

    One operation: send the conversation so far (plus an optional system
    prompt) and return the raw text of the model's reply.  Transport
    errors propagate to the caller once retries are exhausted.
    """

    @abstractmethod
    def get_decision(
        self, messages: List[ChatMessage], system_prompt: Optional[str] = None
    ) -> str:
        """Send the conversation to the LLM and return its response text."""
        ...
