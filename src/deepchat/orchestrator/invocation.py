"""Single agent invocation against the model service."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from ..models.base import BaseAdapter, ChatMessage, ChatRequest
from ..state.conversation import Turn
from ..utils.usage_tracker import UsageTracker
from .instructions import StageInstruction


class AgentInvocationFailed(Exception):
    """An agent could not produce text; the cause is chained, never interpreted."""

    def __init__(self, message: str, *, index: Optional[int] = None, role: Optional[str] = None) -> None:
        super().__init__(message)
        self.index = index
        self.role = role


@dataclass(frozen=True)
class AgentRequest:
    """Everything one agent needs: its role, prior turns and the current payload."""

    instruction: StageInstruction
    history: Tuple[Turn, ...]
    turn_payload: str


@dataclass(frozen=True)
class AgentResult:
    index: int
    text: str


InvokeAgent = Callable[[AgentRequest], Awaitable[str]]


class AgentInvoker:
    """Turns an AgentRequest into exactly one chat call on a model adapter."""

    def __init__(
        self,
        adapter: BaseAdapter,
        *,
        model: Optional[str] = None,
        timeout: Optional[float] = 300.0,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        usage_tracker: Optional[UsageTracker] = None,
    ) -> None:
        self.adapter = adapter
        self.model = model or adapter.default_model
        self.timeout = timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.usage_tracker = usage_tracker

    async def __call__(self, request: AgentRequest) -> str:
        chat_request = self.build_chat_request(request)
        try:
            response = await asyncio.wait_for(self.adapter.chat(chat_request), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            self._record_failure()
            raise AgentInvocationFailed(
                f"{request.instruction.name} agent timed out after {self.timeout}s",
                role=request.instruction.name,
            ) from exc
        except Exception as exc:
            self._record_failure()
            raise AgentInvocationFailed(
                f"{request.instruction.name} agent failed: {exc}",
                role=request.instruction.name,
            ) from exc

        if self.usage_tracker is not None:
            try:
                self.usage_tracker.record_usage(response.provider.value, response.model, response.usage)
            except Exception:
                # Usage tracking should not break a run.
                pass
        return response.content

    def build_chat_request(self, request: AgentRequest) -> ChatRequest:
        """History first, then the current turn as a single user message."""
        messages: List[ChatMessage] = [
            ChatMessage(role=turn.role.value, content=turn.text) for turn in request.history
        ]
        messages.append(ChatMessage(role="user", content=request.turn_payload))
        return ChatRequest(
            messages=messages,
            model=self.model,
            system_instruction=request.instruction.text,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            metadata={"role": request.instruction.name},
        )

    def _record_failure(self) -> None:
        if self.usage_tracker is None:
            return
        self.usage_tracker.record_failure(self.adapter.provider.value, self.model)
