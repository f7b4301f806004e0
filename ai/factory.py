import os
from typing import Optional

from ai.service import AIService
from ai.openai_service import AzureOpenAIService, OpenAIService
from ai.gemini_service import GeminiService
from ai.claude_service import ClaudeService


def _make_service(provider: str, model: Optional[str] = None) -> AIService:
    """Instantiate the appropriate AIService for a provider name."""
    provider = provider.lower().strip()
    if provider == "gemini":
        return GeminiService(model=model)
    if provider in ("claude", "anthropic"):
        return ClaudeService(model=model)
    if provider == "openai":
        return OpenAIService(model=model)
    if provider in ("azure", "azure-openai"):
        return AzureOpenAIService(model=model)
    raise ValueError(f"Unknown AI provider: {provider!r}")


def get_decision_service(provider: Optional[str] = None) -> AIService:
    """
    Return the AIService that drives the assistant.

    The provider is chosen via the AI_PROVIDER env var (or *provider*):
      - "openai"     → OpenAIService
      - "azure"      → AzureOpenAIService
      - "gemini"     → GeminiService
      - "claude"     → ClaudeService  (default)

    AI_MODEL overrides the provider's default model / deployment.
    """
    provider = provider or os.getenv("AI_PROVIDER", "claude")
    return _make_service(provider, model=os.getenv("AI_MODEL") or None)
