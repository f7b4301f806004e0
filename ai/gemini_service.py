import logging
from typing import List, Optional

from google import genai
from google.genai import types

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

_DEFAULT_MODEL = "gemini-2.5-flash"

_MAX_RETRIES = 4
_MIN_WAIT_SECONDS = 2
_MAX_WAIT_SECONDS = 60

_RETRYABLE_EXCEPTIONS = (ConnectionError,)

_retry_decorator = retry(
    retry=retry_if_exception_type(_RETRYABLE_EXCEPTIONS),
    stop=stop_after_attempt(_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=_MIN_WAIT_SECONDS, max=_MAX_WAIT_SECONDS),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)

# Gemini calls the assistant role "model".
_ROLES = {"user": "user", "assistant": "model"}


class GeminiService(AIService):
    """AIService backed by the Google Gemini API."""

    def __init__(self, model: Optional[str] = None):
        self._model = model or _DEFAULT_MODEL
        self._client = genai.Client()  # reads GEMINI_API_KEY / GOOGLE_API_KEY from env

    @_retry_decorator
    def get_decision(
        self, messages: List[ChatMessage], system_prompt: Optional[str] = None
    ) -> str:
        contents = [
            types.Content(role=_ROLES[m.role], parts=[types.Part.from_text(text=m.content)])
            for m in messages
            if m.role in _ROLES
        ]
        config = None
        if system_prompt:
            config = types.GenerateContentConfig(system_instruction=system_prompt)
        response = self._client.models.generate_content(
            model=self._model,
            contents=contents,
            config=config,
        )
        return response.text or ""
