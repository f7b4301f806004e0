"""
AIService implementation backed by the Anthropic Claude API.

Reads ANTHROPIC_API_KEY from the environment.
Default model: claude-opus-4-6 (override with AI_MODEL).

Retries transient errors (rate-limit, overloaded, connection, timeout)
with exponential backoff via tenacity.
"""

from __future__ import annotations

import logging
import os
from typing import List, Optional

from anthropic import (
    Anthropic,
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
)
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from ai.service import AIService
from dto.response import ChatMessage

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "claude-opus-4-6"

# Retry configuration
_MAX_RETRIES = 4
_MIN_WAIT_SECONDS = 2
_MAX_WAIT_SECONDS = 60

# Transient exception types that should trigger a retry.
_RETRYABLE_EXCEPTIONS = (
    APIConnectionError,
    APITimeoutError,
    RateLimitError,
    InternalServerError,
)

_retry_decorator = retry(
    retry=retry_if_exception_type(_RETRYABLE_EXCEPTIONS),
    stop=stop_after_attempt(_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=_MIN_WAIT_SECONDS, max=_MAX_WAIT_SECONDS),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


class ClaudeService(AIService):
    """AIService backed by the Anthropic Claude API."""

    def __init__(self, model: Optional[str] = None, max_tokens: Optional[int] = None):
        self._model = model or _DEFAULT_MODEL
        self._max_tokens = max_tokens or int(os.getenv("AI_MAX_TOKENS", "16000"))
        self._client = Anthropic()  # reads ANTHROPIC_API_KEY from env

    @_retry_decorator
    def get_decision(
        self, messages: List[ChatMessage], system_prompt: Optional[str] = None
    ) -> str:
        # Claude takes the system prompt as a separate parameter.
        system_parts = [system_prompt] if system_prompt else []
        system_parts += [m.content for m in messages if m.role == "system"]
        kwargs = {}
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)

        message = self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            messages=[
                {"role": m.role, "content": m.content}
                for m in messages
                if m.role != "system"
            ],
            **kwargs,
        )
        return message.content[0].text if message.content else ""
