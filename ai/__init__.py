from ai.service import AIService
from ai.factory import get_decision_service
from ai.response_parser import parse_response
from ai.session import AgentError, AgentSession

__all__ = [
    "AIService",
    "AgentError",
    "AgentSession",
    "get_decision_service",
    "parse_response",
]
