"""Concurrent fan-out of one pipeline stage."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .invocation import AgentInvocationFailed, AgentRequest, AgentResult, InvokeAgent


class StageFailed(Exception):
    """At least one invocation of a stage failed; the stage output is unusable."""

    def __init__(self, stage: str, index: Optional[int], role: Optional[str], reason: str) -> None:
        super().__init__(f"Stage '{stage}' failed at invocation {index} ({role}): {reason}")
        self.stage = stage
        self.index = index
        self.role = role
        self.reason = reason


@dataclass(frozen=True)
class StageOutput:
    """Every result of a stage, ordered by request index."""

    stage: str
    results: Tuple[AgentResult, ...]

    @property
    def texts(self) -> Tuple[str, ...]:
        return tuple(result.text for result in self.results)

    def __len__(self) -> int:
        return len(self.results)


class StageExecutor:
    """Runs a stage's agent requests concurrently and joins them fail-fast."""

    def __init__(self, invoke: InvokeAgent) -> None:
        self.invoke = invoke

    async def run(self, stage: str, requests: Sequence[AgentRequest]) -> StageOutput:
        """
        Execute every request concurrently.

        Returns:
            StageOutput whose results follow the order of ``requests``.

        Raises:
            StageFailed: on the first invocation failure; pending siblings are cancelled
            and any results already collected are discarded.
        """
        if not requests:
            raise ValueError(f"Stage '{stage}' has no requests")

        tasks = [asyncio.ensure_future(self._invoke(index, request)) for index, request in enumerate(requests)]
        slots: List[Optional[AgentResult]] = [None] * len(tasks)
        try:
            for next_done in asyncio.as_completed(tasks):
                result = await next_done
                slots[result.index] = result
        except AgentInvocationFailed as exc:
            raise StageFailed(stage, exc.index, exc.role, str(exc)) from exc
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            # Retrieve every outcome so no sibling exception is left unobserved.
            await asyncio.gather(*tasks, return_exceptions=True)

        return StageOutput(stage=stage, results=tuple(slots))  # type: ignore[arg-type]

    async def _invoke(self, index: int, request: AgentRequest) -> AgentResult:
        try:
            text = await self.invoke(request)
        except AgentInvocationFailed as exc:
            exc.index = index
            if exc.role is None:
                exc.role = request.instruction.name
            raise
        except Exception as exc:
            raise AgentInvocationFailed(
                f"{request.instruction.name} agent failed: {exc}",
                index=index,
                role=request.instruction.name,
            ) from exc
        return AgentResult(index=index, text=text)
