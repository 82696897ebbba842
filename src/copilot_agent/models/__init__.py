"""Convenience exports for oracle client implementations."""

from .copilot import CopilotChatClient
from .llm_client import (
    ChatRequest,
    LLMClient,
    LLMClientError,
    LLMResponseFormatError,
    LLMTransportError,
)

__all__ = [
    "ChatRequest",
    "CopilotChatClient",
    "LLMClient",
    "LLMClientError",
    "LLMResponseFormatError",
    "LLMTransportError",
]
