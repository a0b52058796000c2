"""Initial → deep-dive → synthesis pipeline orchestration."""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..config import ConfigLoader
from ..models.credentials import CredentialsManager
from ..models.gemini import GeminiAdapter
from ..state.conversation import ConversationHistory, Turn
from ..utils.logger import Logger
from ..utils.usage_tracker import UsageTracker
from .context import ContextAggregator
from .executor import StageExecutor, StageFailed, StageOutput
from .instructions import InstructionSet, StageInstruction
from .invocation import AgentInvoker, AgentRequest, InvokeAgent

INITIAL_WIDTH = 4
ERROR_NOTICE = "Sorry, I encountered an error. Please try again."


class PipelineState(Enum):
    IDLE = "idle"
    STAGE1_RUNNING = "stage1_running"
    STAGE2_RUNNING = "stage2_running"
    STAGE3_RUNNING = "stage3_running"
    COMPLETED = "completed"
    FAILED = "failed"


class StageStatus(Enum):
    INITIALIZING = "initializing"
    DEEPENING = "deepening"
    SYNTHESIZING = "synthesizing"


STATUS_FOR_STATE: Dict[PipelineState, StageStatus] = {
    PipelineState.STAGE1_RUNNING: StageStatus.INITIALIZING,
    PipelineState.STAGE2_RUNNING: StageStatus.DEEPENING,
    PipelineState.STAGE3_RUNNING: StageStatus.SYNTHESIZING,
}

STAGE_NAMES: Dict[PipelineState, str] = {
    PipelineState.STAGE1_RUNNING: "initial",
    PipelineState.STAGE2_RUNNING: "deep_dive",
    PipelineState.STAGE3_RUNNING: "synthesis",
}

StatusObserver = Callable[[StageStatus], None]


class PipelineFailed(Exception):
    """A run was aborted, so the remaining stages were not run.

    `cause` is the `StageFailed` of the failing stage, or the unexpected
    exception that interrupted the run.
    """

    def __init__(self, stage: str, cause: Exception) -> None:
        super().__init__(f"Pipeline aborted in stage '{stage}': {cause}")
        self.stage = stage
        self.cause = cause


@dataclass
class PipelineRun:
    """Scratch state of one submission; discarded when the run ends."""

    run_id: str
    user_input: str
    prior_turns: Tuple[Turn, ...]
    outputs: List[StageOutput] = field(default_factory=list)
    started_at: float = field(default_factory=time.monotonic)

    def request(self, instruction: StageInstruction, payload: str) -> AgentRequest:
        return AgentRequest(instruction=instruction, history=self.prior_turns, turn_payload=payload)


class PipelineOrchestrator:
    """Answers each submission with three sequential stages of agent calls.

    Stage 1 fans out four identical initial-answer agents, stage 2 fans out one
    agent per deep-dive role over the aggregated initial answers, and stage 3
    synthesises the labelled analyses into the single model turn.
    """

    def __init__(
        self,
        invoke: InvokeAgent,
        *,
        history: Optional[ConversationHistory] = None,
        instructions: Optional[InstructionSet] = None,
        observer: Optional[StatusObserver] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self.executor = StageExecutor(invoke)
        self.aggregator = ContextAggregator()
        self.history = history or ConversationHistory()
        self.instructions = instructions or InstructionSet()
        self.observer = observer
        self.logger = logger
        self.state = PipelineState.IDLE
        self.last_error: Optional[PipelineFailed] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return self.history.turns

    async def submit(self, user_input: str) -> Optional[Turn]:
        """
        Run the pipeline for one user message.

        Returns:
            The appended model turn (answer or error notice), or None when the
            submission was rejected (blank input or a run already in progress).
        """
        if not user_input or not user_input.strip():
            return None
        if self._running:
            return None

        self._running = True
        try:
            self.history.append_user(user_input)
            run = PipelineRun(
                run_id=uuid.uuid4().hex[:8],
                user_input=user_input,
                prior_turns=self.history.snapshot_prior_turns(),
            )

            try:
                if self.logger:
                    self.logger.log_run_start(run.run_id, len(user_input), len(run.prior_turns))
                answer = await self._execute(run)
            except PipelineFailed as exc:
                return self._fail(run, exc)
            except asyncio.CancelledError:
                self.state = PipelineState.FAILED
                self.history.append_model(ERROR_NOTICE)
                raise
            except Exception as exc:
                return self._fail(run, PipelineFailed(STAGE_NAMES.get(self.state, "pipeline"), exc))

            self.last_error = None
            self.state = PipelineState.COMPLETED
            turn = self.history.append_model(answer)
            if self.logger:
                # The answer is already recorded; a failed write only loses the event.
                with contextlib.suppress(OSError):
                    self.logger.log_run_complete(run.run_id, time.monotonic() - run.started_at, len(answer))
            return turn
        finally:
            self._running = False

    def _fail(self, run: PipelineRun, error: PipelineFailed) -> Turn:
        self.last_error = error
        self.state = PipelineState.FAILED
        turn = self.history.append_model(ERROR_NOTICE)
        if self.logger:
            # The failure may be the log itself.
            with contextlib.suppress(OSError):
                self.logger.log_run_failed(run.run_id, error.stage, str(error.cause))
        return turn

    def reset(self) -> bool:
        """Start a fresh session; refused while a run is in flight."""
        if self._running:
            return False
        self.history.clear()
        self.state = PipelineState.IDLE
        self.last_error = None
        return True

    async def _execute(self, run: PipelineRun) -> str:
        initial = await self._run_stage(
            run,
            PipelineState.STAGE1_RUNNING,
            [run.request(self.instructions.initial, run.user_input) for _ in range(INITIAL_WIDTH)],
        )

        initial_context = self.aggregator.initial_context(initial)
        deep_payload = self.aggregator.compose_payload(run.user_input, initial_context)
        analyses = await self._run_stage(
            run,
            PipelineState.STAGE2_RUNNING,
            [run.request(instruction, deep_payload) for instruction in self.instructions.deep_dive],
        )

        analysis_context = self.aggregator.analysis_context(analyses, self.instructions.deep_dive_labels)
        synthesis_payload = self.aggregator.compose_payload(run.user_input, analysis_context)
        final = await self._run_stage(
            run,
            PipelineState.STAGE3_RUNNING,
            [run.request(self.instructions.synthesizer, synthesis_payload)],
        )
        return final.texts[0]

    async def _run_stage(self, run: PipelineRun, state: PipelineState, requests: List[AgentRequest]) -> StageOutput:
        stage = STAGE_NAMES[state]
        self._enter(run, state)
        if self.logger:
            self.logger.log_stage_start(run.run_id, stage, len(requests))

        started = time.monotonic()
        try:
            output = await self.executor.run(stage, requests)
        except StageFailed as exc:
            if self.logger:
                self.logger.log_stage_failed(run.run_id, stage, exc.index, exc.role, exc.reason)
            raise PipelineFailed(stage, exc) from exc

        if self.logger:
            self.logger.log_stage_complete(run.run_id, stage, time.monotonic() - started)
        run.outputs.append(output)
        return output

    def _enter(self, run: PipelineRun, state: PipelineState) -> None:
        self.state = state
        status = STATUS_FOR_STATE[state]
        if self.observer is None:
            return
        try:
            self.observer(status)
        except Exception as exc:
            # Status reporting is observational only.
            if self.logger:
                self.logger.log_observer_error(run.run_id, status.value, str(exc))

    @staticmethod
    def from_config(
        config: ConfigLoader,
        *,
        observer: Optional[StatusObserver] = None,
        usage_tracker: Optional[UsageTracker] = None,
    ) -> "PipelineOrchestrator":
        """Wire the Gemini adapter, invoker, instructions and logger from config."""
        adapter = GeminiAdapter(
            credentials=CredentialsManager(config),
            default_model=config.get("model.name", "gemini-2.5-pro"),
            timeout=config.get_float("model.request_timeout_seconds", 300.0),
        )
        invoker = AgentInvoker(
            adapter,
            timeout=config.get_float("pipeline.invocation_timeout_seconds", 300.0),
            temperature=config.get_float("model.temperature"),
            max_tokens=config.get_int("model.max_tokens"),
            usage_tracker=usage_tracker,
        )
        return PipelineOrchestrator(
            invoker,
            instructions=InstructionSet.from_config(config),
            observer=observer,
            logger=Logger(config.log_dir),
        )
