"""
AIService implementations backed by the OpenAI chat completions API.

  - OpenAIService       reads OPENAI_API_KEY
  - AzureOpenAIService  reads AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_API_KEY
                        and AZURE_OPENAI_API_VERSION; the model name is the
                        deployment name

Reasoning-style models (o3*, o4*, gpt-5.2/5.3) reject custom sampling
parameters and take ``max_completion_tokens``; classic models take
``max_tokens`` plus temperature / top_p.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from openai import (
    AzureOpenAI,
    OpenAI,
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

_DEFAULT_MODEL = "gpt-5.2"
_DEFAULT_AZURE_API_VERSION = "2024-12-01-preview"

_MAX_RETRIES = 4
_MIN_WAIT_SECONDS = 2
_MAX_WAIT_SECONDS = 60

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


def is_reasoning_model(model: str) -> bool:
    return (
        model.startswith("o3")
        or model.startswith("o4")
        or "5.2" in model
        or "5.3" in model
    )


def completion_params(model: str, max_tokens: int, temperature: float) -> Dict[str, Any]:
    """Token / sampling parameters accepted by *model*."""
    if is_reasoning_model(model):
        return {"max_completion_tokens": max_tokens}
    return {
        "max_tokens": max_tokens,
        "temperature": temperature,
        "top_p": 0.95,
        "frequency_penalty": 0,
        "presence_penalty": 0,
    }


class OpenAIService(AIService):
    """AIService backed by the OpenAI API."""

    def __init__(
        self,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ):
        self._model = model or _DEFAULT_MODEL
        self._max_tokens = max_tokens or int(os.getenv("AI_MAX_TOKENS", "16000"))
        self._temperature = (
            temperature if temperature is not None else float(os.getenv("AI_TEMPERATURE", "0.7"))
        )
        self._client = self._make_client()

    def _make_client(self):
        return OpenAI()  # reads OPENAI_API_KEY from env

    @_retry_decorator
    def get_decision(
        self, messages: List[ChatMessage], system_prompt: Optional[str] = None
    ) -> str:
        payload = []
        if system_prompt:
            payload.append({"role": "system", "content": system_prompt})
        payload += [{"role": m.role, "content": m.content} for m in messages]

        response = self._client.chat.completions.create(
            model=self._model,
            messages=payload,
            **completion_params(self._model, self._max_tokens, self._temperature),
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class AzureOpenAIService(OpenAIService):
    """OpenAIService talking to an Azure OpenAI deployment."""

    def _make_client(self):
        return AzureOpenAI(
            api_version=os.getenv("AZURE_OPENAI_API_VERSION", _DEFAULT_AZURE_API_VERSION),
        )  # reads AZURE_OPENAI_ENDPOINT / AZURE_OPENAI_API_KEY from env
