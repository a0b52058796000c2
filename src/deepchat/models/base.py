"""Base abstractions for generative model adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence


class LLMException(Exception):
    """Base exception for LLM errors."""


class LLMUnavailableException(LLMException):
    """Raised when a provider cannot be used (e.g. no credentials)."""


class LLMExecutionException(LLMException):
    """Raised when a request to the provider fails."""


class Provider(Enum):
    GEMINI = "gemini"


@dataclass
class ChatMessage:
    """One conversational message; role is ``user`` or ``model``."""

    role: str
    content: str


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatRequest:
    messages: Sequence[ChatMessage]
    model: Optional[str] = None
    system_instruction: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatResponse:
    content: str
    provider: Provider
    model: str
    usage: Optional[Usage] = None
    finish_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BaseAdapter(ABC):
    """Common interface implemented by every provider adapter."""

    provider: Provider
    default_model: str

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a non-streaming request and return the generated text."""
