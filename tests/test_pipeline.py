import asyncio
from typing import Dict, Iterable, List, Optional

import pytest

from deepchat.orchestrator.context import INTERNAL_CONTEXT_MARKER
from deepchat.orchestrator.invocation import AgentInvocationFailed, AgentRequest
from deepchat.orchestrator.pipeline import (
    ERROR_NOTICE,
    PipelineOrchestrator,
    PipelineState,
    StageStatus,
)
from deepchat.state.conversation import ConversationHistory, Role, Turn
from deepchat.utils.logger import Logger

DEEP_DIVE_ANSWERS = {
    "strategy": "s-strategy",
    "challenge": "s-challenge",
    "expert": "s-expert",
    "insights": "s-insights",
    "checklist": "s-checklist",
}


class ScriptedAgents:
    """Stand-in for the model service: answers by role and records every request."""

    def __init__(
        self,
        fail_roles: Iterable[str] = (),
        final: str = "FINAL",
        gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.calls: List[AgentRequest] = []
        self.fail_roles = set(fail_roles)
        self.final = final
        self.gate = gate
        self._initial_seen = 0

    async def __call__(self, request: AgentRequest) -> str:
        self.calls.append(request)
        name = request.instruction.name
        if name == "initial":
            self._initial_seen += 1
            number = self._initial_seen
            # Earlier invocations finish later.
            await asyncio.sleep((5 - number) * 0.005)
            if self.gate is not None:
                await self.gate.wait()
        else:
            await asyncio.sleep(0)

        if name in self.fail_roles:
            raise AgentInvocationFailed(f"{name} exploded")
        if name == "initial":
            return f"a{number}"
        if name == "synthesizer":
            return self.final
        return DEEP_DIVE_ANSWERS[name]

    def calls_for(self, name: str) -> List[AgentRequest]:
        return [call for call in self.calls if call.instruction.name == name]


EXPECTED_INITIAL_CONTEXT = (
    "The following are the initial responses generated by 4 agents. Use these diverse "
    "perspectives as the foundation for the analysis that follows.\n"
    "\n"
    "--- Initial responses ---\n"
    "1. a1\n"
    "\n"
    "2. a2\n"
    "\n"
    "3. a3\n"
    "\n"
    "4. a4\n"
    "---"
)

EXPECTED_ANALYSIS_CONTEXT = (
    "Five specialist agents analysed the user's question from different angles, as follows. "
    "Integrate these analyses into the best possible final answer.\n"
    "\n"
    "--- Analysis results ---\n"
    '1.  **Strategy comparison**:\n    "s-strategy"\n'
    "\n"
    '2.  **Assumption challenge**:\n    "s-challenge"\n'
    "\n"
    '3.  **Expert compression**:\n    "s-expert"\n'
    "\n"
    '4.  **High-level insights**:\n    "s-insights"\n'
    "\n"
    '5.  **Success checklist**:\n    "s-checklist"\n'
    "---"
)


def test_end_to_end_scenario():
    agents = ScriptedAgents()
    orchestrator = PipelineOrchestrator(agents)

    turn = asyncio.run(orchestrator.submit("Compare options A and B"))

    assert turn == Turn(Role.MODEL, "FINAL")
    assert list(orchestrator.turns) == [
        Turn(Role.USER, "Compare options A and B"),
        Turn(Role.MODEL, "FINAL"),
    ]
    assert orchestrator.state is PipelineState.COMPLETED

    for call in agents.calls_for("initial"):
        assert call.turn_payload == "Compare options A and B"

    expected_deep_payload = f"Compare options A and B\n\n---INTERNAL CONTEXT---\n{EXPECTED_INITIAL_CONTEXT}"
    for name in DEEP_DIVE_ANSWERS:
        (call,) = agents.calls_for(name)
        assert call.turn_payload == expected_deep_payload

    (synthesis,) = agents.calls_for("synthesizer")
    assert synthesis.turn_payload == (
        f"Compare options A and B\n\n---INTERNAL CONTEXT---\n{EXPECTED_ANALYSIS_CONTEXT}"
    )


def test_fan_out_widths_and_role_order():
    agents = ScriptedAgents()
    orchestrator = PipelineOrchestrator(agents)

    asyncio.run(orchestrator.submit("What should we build next?"))

    assert len(agents.calls_for("initial")) == 4
    assert len(agents.calls_for("synthesizer")) == 1
    deep_dive = [c.instruction.name for c in agents.calls if c.instruction.name in DEEP_DIVE_ANSWERS]
    assert deep_dive == ["strategy", "challenge", "expert", "insights", "checklist"]
    assert len(agents.calls) == 10


def test_history_never_contains_internal_context():
    agents = ScriptedAgents()
    orchestrator = PipelineOrchestrator(agents)

    asyncio.run(orchestrator.submit("first question"))
    first_run_calls = len(agents.calls)
    asyncio.run(orchestrator.submit("second question"))

    assert [t.text for t in orchestrator.turns] == ["first question", "FINAL", "second question", "FINAL"]
    assert all(INTERNAL_CONTEXT_MARKER not in t.text for t in orchestrator.turns)

    # The second run sees exactly the two visible turns of the first run.
    for call in agents.calls[first_run_calls:]:
        assert call.history == (Turn(Role.USER, "first question"), Turn(Role.MODEL, "FINAL"))
        assert all(INTERNAL_CONTEXT_MARKER not in t.text for t in call.history)


def test_stage_two_failure_skips_synthesis():
    agents = ScriptedAgents(fail_roles={"challenge"})
    orchestrator = PipelineOrchestrator(agents)

    turn = asyncio.run(orchestrator.submit("Compare options A and B"))

    assert turn == Turn(Role.MODEL, ERROR_NOTICE)
    assert list(orchestrator.turns) == [
        Turn(Role.USER, "Compare options A and B"),
        Turn(Role.MODEL, ERROR_NOTICE),
    ]
    assert agents.calls_for("synthesizer") == []
    assert orchestrator.state is PipelineState.FAILED

    error = orchestrator.last_error
    assert error is not None
    assert error.stage == "deep_dive"
    assert error.cause.index == 1
    assert error.cause.role == "challenge"


def test_stage_one_failure_stops_before_deep_dive():
    agents = ScriptedAgents(fail_roles={"initial"})
    statuses: List[StageStatus] = []
    orchestrator = PipelineOrchestrator(agents, observer=statuses.append)

    turn = asyncio.run(orchestrator.submit("hello"))

    assert turn.text == ERROR_NOTICE
    assert statuses == [StageStatus.INITIALIZING]
    assert all(c.instruction.name == "initial" for c in agents.calls)
    assert orchestrator.last_error.stage == "initial"


def test_every_invocation_sees_the_prior_turn_snapshot():
    history = ConversationHistory()
    history.append_user("T1")
    history.append_model("T2")
    agents = ScriptedAgents()
    orchestrator = PipelineOrchestrator(agents, history=history)

    asyncio.run(orchestrator.submit("T3"))

    assert len(agents.calls) == 10
    for call in agents.calls:
        assert call.history == (Turn(Role.USER, "T1"), Turn(Role.MODEL, "T2"))
    assert [t.text for t in history.turns] == ["T1", "T2", "T3", "FINAL"]


def test_status_signals_follow_stage_entry():
    statuses: List[StageStatus] = []
    orchestrator = PipelineOrchestrator(ScriptedAgents(), observer=statuses.append)

    asyncio.run(orchestrator.submit("hello"))

    assert statuses == [StageStatus.INITIALIZING, StageStatus.DEEPENING, StageStatus.SYNTHESIZING]


def test_observer_errors_do_not_affect_the_run(tmp_path):
    def broken_observer(status: StageStatus) -> None:
        raise RuntimeError("display went away")

    logger = Logger(tmp_path / "logs")
    orchestrator = PipelineOrchestrator(ScriptedAgents(), observer=broken_observer, logger=logger)

    turn = asyncio.run(orchestrator.submit("hello"))

    assert turn.text == "FINAL"
    events = [e["event"] for e in logger.read_events()]
    assert events.count("observer_error") == 3


@pytest.mark.parametrize("blank", ["", "   ", "\n\t"])
def test_blank_input_is_ignored(blank):
    agents = ScriptedAgents()
    orchestrator = PipelineOrchestrator(agents)

    assert asyncio.run(orchestrator.submit(blank)) is None
    assert orchestrator.turns == ()
    assert agents.calls == []
    assert orchestrator.state is PipelineState.IDLE


def test_submission_while_running_is_rejected():
    async def scenario():
        gate = asyncio.Event()
        agents = ScriptedAgents(gate=gate)
        orchestrator = PipelineOrchestrator(agents)

        first = asyncio.ensure_future(orchestrator.submit("one"))
        while not orchestrator.is_running:
            await asyncio.sleep(0)

        second = await orchestrator.submit("two")
        gate.set()
        return orchestrator, await first, second

    orchestrator, first, second = asyncio.run(scenario())

    assert second is None
    assert first == Turn(Role.MODEL, "FINAL")
    assert [t.text for t in orchestrator.turns] == ["one", "FINAL"]
    assert not orchestrator.is_running


def test_cancelled_run_closes_the_turn():
    async def scenario():
        agents = ScriptedAgents(gate=asyncio.Event())
        orchestrator = PipelineOrchestrator(agents)
        run = asyncio.ensure_future(orchestrator.submit("one"))
        while not orchestrator.is_running:
            await asyncio.sleep(0)
        run.cancel()
        with pytest.raises(asyncio.CancelledError):
            await run
        return orchestrator

    orchestrator = asyncio.run(scenario())

    assert [t.text for t in orchestrator.turns] == ["one", ERROR_NOTICE]
    assert not orchestrator.is_running
    assert orchestrator.state is PipelineState.FAILED


def test_failed_stage_is_logged_with_invocation_details(tmp_path):
    logger = Logger(tmp_path / "logs")
    orchestrator = PipelineOrchestrator(ScriptedAgents(fail_roles={"checklist"}), logger=logger)

    asyncio.run(orchestrator.submit("hello"))

    events: Dict[str, dict] = {e["event"]: e for e in logger.read_events()}
    assert events["stage_failed"]["stage"] == "deep_dive"
    assert events["stage_failed"]["index"] == 4
    assert events["stage_failed"]["role"] == "checklist"
    assert events["run_failed"]["stage"] == "deep_dive"
    assert "run_complete" not in events


def test_successful_run_is_logged(tmp_path):
    logger = Logger(tmp_path / "logs")
    orchestrator = PipelineOrchestrator(ScriptedAgents(), logger=logger)

    asyncio.run(orchestrator.submit("hello"))

    events = logger.read_events()
    stage_starts = [(e["stage"], e["width"]) for e in events if e["event"] == "stage_start"]
    assert stage_starts == [("initial", 4), ("deep_dive", 5), ("synthesis", 1)]
    assert events[0]["event"] == "run_start"
    assert events[-1]["event"] == "run_complete"
    assert len({e["run_id"] for e in events}) == 1


def test_reset_starts_a_new_conversation():
    orchestrator = PipelineOrchestrator(ScriptedAgents())
    asyncio.run(orchestrator.submit("hello"))

    assert orchestrator.reset() is True
    assert orchestrator.turns == ()
    assert orchestrator.state is PipelineState.IDLE


def test_synthesis_failure_records_the_error_turn():
    agents = ScriptedAgents(fail_roles={"synthesizer"})
    statuses: List[StageStatus] = []
    orchestrator = PipelineOrchestrator(agents, observer=statuses.append)

    turn = asyncio.run(orchestrator.submit("hello"))

    assert turn == Turn(Role.MODEL, ERROR_NOTICE)
    assert statuses == [StageStatus.INITIALIZING, StageStatus.DEEPENING, StageStatus.SYNTHESIZING]
    assert orchestrator.state is PipelineState.FAILED
    assert orchestrator.last_error.stage == "synthesis"
    assert orchestrator.last_error.cause.index == 0
    assert orchestrator.last_error.cause.role == "synthesizer"


class DiskFullLogger(Logger):
    """Logger whose stage writes fail."""

    def __init__(self, log_dir, error: Exception) -> None:
        super().__init__(log_dir)
        self.error = error

    def log_stage_start(self, run_id: str, stage: str, width: int) -> None:
        raise self.error


def test_unexpected_error_still_closes_the_turn(tmp_path):
    logger = DiskFullLogger(tmp_path / "logs", OSError("disk full"))
    orchestrator = PipelineOrchestrator(ScriptedAgents(), logger=logger)

    turn = asyncio.run(orchestrator.submit("first"))

    assert turn == Turn(Role.MODEL, ERROR_NOTICE)
    assert orchestrator.state is PipelineState.FAILED
    assert not orchestrator.is_running
    error = orchestrator.last_error
    assert error.stage == "initial"
    assert isinstance(error.cause, OSError)
    assert [e["event"] for e in logger.read_events()] == ["run_start", "run_failed"]

    # The session keeps working once the fault is gone.
    orchestrator.logger = None
    second = asyncio.run(orchestrator.submit("second"))

    assert second == Turn(Role.MODEL, "FINAL")
    assert [t.text for t in orchestrator.turns] == ["first", ERROR_NOTICE, "second", "FINAL"]
    assert orchestrator.last_error is None


def test_failing_failure_log_does_not_escape(tmp_path):
    class NoFailureLog(DiskFullLogger):
        def log_run_failed(self, run_id: str, stage: str, reason: str) -> None:
            raise OSError("disk full")

    orchestrator = PipelineOrchestrator(
        ScriptedAgents(), logger=NoFailureLog(tmp_path / "logs", RuntimeError("bad write"))
    )

    turn = asyncio.run(orchestrator.submit("hello"))

    assert turn.text == ERROR_NOTICE
    assert isinstance(orchestrator.last_error.cause, RuntimeError)
