"""Model adapters."""

from .base import (
    BaseAdapter,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    LLMExecutionException,
    LLMException,
    LLMUnavailableException,
    Provider,
    Usage,
)
from .credentials import CredentialsManager
from .gemini import GeminiAdapter

__all__ = [
    "BaseAdapter",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "LLMException",
    "LLMUnavailableException",
    "LLMExecutionException",
    "Provider",
    "Usage",
    "CredentialsManager",
    "GeminiAdapter",
]
