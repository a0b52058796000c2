"""Orchestration components."""

from .context import ContextAggregator, ContextTemplate
from .executor import StageExecutor, StageFailed, StageOutput
from .instructions import InstructionSet, StageInstruction
from .invocation import AgentInvocationFailed, AgentInvoker, AgentRequest, AgentResult
from .pipeline import (
    ERROR_NOTICE,
    PipelineFailed,
    PipelineOrchestrator,
    PipelineRun,
    PipelineState,
    StageStatus,
)

__all__ = [
    "AgentInvocationFailed",
    "AgentInvoker",
    "AgentRequest",
    "AgentResult",
    "ContextAggregator",
    "ContextTemplate",
    "ERROR_NOTICE",
    "InstructionSet",
    "PipelineFailed",
    "PipelineOrchestrator",
    "PipelineRun",
    "PipelineState",
    "StageExecutor",
    "StageFailed",
    "StageInstruction",
    "StageOutput",
    "StageStatus",
]
