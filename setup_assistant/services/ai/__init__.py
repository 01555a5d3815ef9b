"""
AI Service Adapter
==================

Narrow boundary around the AI document-understanding service: the
client interface, the retry policy every call goes through, and JSON
recovery from free-text responses.
"""

from setup_assistant.services.ai.client import (
    AIAttachment,
    AIClient,
    AIConfig,
    AIResponse,
    AnthropicClient,
    MockAIClient,
    get_ai_client,
    reset_ai_client,
)
from setup_assistant.services.ai.response_parser import extract_json_object
from setup_assistant.services.ai.retry import RetryPolicy

__all__ = [
    "AIAttachment",
    "AIClient",
    "AIConfig",
    "AIResponse",
    "AnthropicClient",
    "MockAIClient",
    "get_ai_client",
    "reset_ai_client",
    "RetryPolicy",
    "extract_json_object",
]
