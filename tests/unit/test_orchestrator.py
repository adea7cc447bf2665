"""
Unit tests for HypothesisOrchestrator

Uses a scripted reasoning service that answers by prompt type, so the
tests exercise generation, per-hypothesis ReAct verification, evaluation
and the final report across many resumable steps.
"""

from unittest.mock import AsyncMock

import pytest

from failure_analyst.core.domain.checkpoint import decode_session, encode_session
from failure_analyst.core.domain.errors import RateLimitedError
from failure_analyst.core.domain.models import (
    CompletionReason,
    EngineMode,
    HypothesisStatus,
    ReactionState,
)
from failure_analyst.core.domain.orchestrator import HypothesisOrchestrator
from failure_analyst.core.tools.registry import ToolDefinition, ToolRegistry

HYPOTHESES = """
<Hypothesis 1>
Description: Disk full on db-1
Confidence: 60
Reasoning: write errors
</Hypothesis 1>
<Hypothesis 2>
Description: Connection pool exhausted
Confidence: 80
Reasoning: timeouts
</Hypothesis 2>
<Hypothesis 3>
Description: DNS outage
Confidence: 30
Reasoning: resolver errors
</Hypothesis 3>
"""


class ScriptedReasoning:
    """Answers each prompt according to its type."""

    def __init__(self, verdicts: dict[str, str], report: str | Exception | None = None):
        self.verdicts = verdicts
        self.report = report
        self.evaluated: list[str] = []
        self.submit = AsyncMock(side_effect=self._answer)

    async def _answer(self, prompt: str) -> str:
        if "Propose up to" in prompt:
            return HYPOTHESES
        if "Decide whether the evidence" in prompt:
            for description, status in self.verdicts.items():
                if f"Description: {description}" in prompt:
                    self.evaluated.append(description)
                    return f"<Evaluation>\nStatus: {status}\nConfidence: 85\nReasoning: checked {description}\n</Evaluation>"
            raise AssertionError("unexpected hypothesis in evaluation prompt")
        if "<ConfirmedRootCause>" in prompt:
            if isinstance(self.report, Exception):
                raise self.report
            return self.report or (
                "<Recommendations>\nRecommended Actions:\n1. Raise the pool size\n"
                "Prevention Measures:\n1. Alert on pool saturation\n</Recommendations>"
            )
        if "<AvailableTools>" in prompt:
            return 'Thought: check metrics\n<Action>{"tool": "metrics_tool", "parameters": {}}</Action>'
        return "Verification report"


@pytest.fixture
def registry():
    return ToolRegistry(
        [
            ToolDefinition(
                name="metrics_tool",
                description="metrics",
                execute=AsyncMock(return_value="pool usage 100/100"),
            )
        ]
    )


def make_orchestrator(reasoning, registry, max_cycles=1):
    return HypothesisOrchestrator(reasoning, registry, max_cycles=max_cycles, max_hypotheses=3)


async def drive(orchestrator, session, limit=50):
    steps = 0
    while not session.is_completed:
        result = await orchestrator.execute_step(session)
        session = result.session
        assert session.cycle_count == len(session.history)
        steps += 1
        assert steps <= limit
    return session, steps


class TestGeneration:
    @pytest.mark.asyncio
    async def test_first_step_generates_sorted_hypotheses(self, registry):
        reasoning = ScriptedReasoning({})
        orchestrator = make_orchestrator(reasoning, registry)
        session = orchestrator.new_session("t-1", "checkout latency spike")

        result = await orchestrator.execute_step(session)

        assert session.engine == EngineMode.HYPOTHESIS
        assert not result.is_done
        hypotheses = result.session.hypotheses
        assert [h.confidence for h in hypotheses] == sorted(
            (h.confidence for h in hypotheses), reverse=True
        )
        assert hypotheses[0].description == "Connection pool exhausted"
        assert result.session.current_hypothesis_index == 0
        assert result.session.cycle_count == 1


class TestVerification:
    @pytest.mark.asyncio
    async def test_stops_at_first_confirmation(self, registry):
        reasoning = ScriptedReasoning(
            {
                "Connection pool exhausted": "rejected",
                "Disk full on db-1": "confirmed",
                "DNS outage": "confirmed",
            }
        )
        orchestrator = make_orchestrator(reasoning, registry)

        session, _ = await drive(orchestrator, orchestrator.new_session("t-2", "latency spike"))

        assert reasoning.evaluated == ["Connection pool exhausted", "Disk full on db-1"]
        assert session.state == ReactionState.COMPLETED
        assert session.completion_reason == CompletionReason.HYPOTHESIS_CONFIRMED
        statuses = {h.description: h.status for h in session.hypotheses}
        assert statuses["Connection pool exhausted"] == HypothesisStatus.REJECTED
        assert statuses["Disk full on db-1"] == HypothesisStatus.CONFIRMED
        assert statuses["DNS outage"] == HypothesisStatus.UNVERIFIED
        dns = next(h for h in session.hypotheses if h.description == "DNS outage")
        assert dns.react_session_state is None
        assert "Disk full on db-1" in session.final_answer
        assert "Raise the pool size" in session.final_answer

    @pytest.mark.asyncio
    async def test_sub_session_is_embedded(self, registry):
        reasoning = ScriptedReasoning({"Connection pool exhausted": "confirmed"})
        orchestrator = make_orchestrator(reasoning, registry)
        session = orchestrator.new_session("t-3", "latency spike")

        session = (await orchestrator.execute_step(session)).session
        session = (await orchestrator.execute_step(session)).session

        sub_session = session.hypotheses[0].react_session_state
        assert sub_session is not None
        assert sub_session.session_id == "t-3:H2"
        assert "Connection pool exhausted" in sub_session.context
        assert sub_session.is_completed
        assert session.history[-1].action.tool == "metrics_tool"
        assert session.history[-1].observation == "pool usage 100/100"

    @pytest.mark.asyncio
    async def test_all_inconclusive_summarizes_candidates(self, registry):
        reasoning = ScriptedReasoning(
            {
                "Connection pool exhausted": "inconclusive",
                "Disk full on db-1": "rejected",
                "DNS outage": "not confirmed",
            }
        )
        orchestrator = make_orchestrator(reasoning, registry)

        session, _ = await drive(orchestrator, orchestrator.new_session("t-4", "latency spike"))

        assert reasoning.evaluated == [
            "Connection pool exhausted",
            "Disk full on db-1",
            "DNS outage",
        ]
        assert session.completion_reason == CompletionReason.HYPOTHESES_EXHAUSTED
        assert "Root cause not confirmed" in session.final_answer
        assert all(h.status != HypothesisStatus.CONFIRMED for h in session.hypotheses)

    @pytest.mark.asyncio
    async def test_report_falls_back_when_rate_limited(self, registry):
        reasoning = ScriptedReasoning(
            {"Connection pool exhausted": "confirmed"}, report=RateLimitedError()
        )
        orchestrator = make_orchestrator(reasoning, registry)

        session, _ = await drive(orchestrator, orchestrator.new_session("t-5", "latency spike"))

        assert session.is_completed
        assert "## Recommended Actions" in session.final_answer
        assert "## Prevention Measures" in session.final_answer

    @pytest.mark.asyncio
    async def test_completed_session_is_idempotent(self, registry):
        reasoning = ScriptedReasoning({"Connection pool exhausted": "confirmed"})
        orchestrator = make_orchestrator(reasoning, registry)
        session, _ = await drive(orchestrator, orchestrator.new_session("t-6", "latency spike"))
        calls = reasoning.submit.await_count

        result = await orchestrator.execute_step(session)

        assert result.is_done
        assert result.session.cycle_count == session.cycle_count
        assert reasoning.submit.await_count == calls


class TestResume:
    @pytest.mark.asyncio
    async def test_checkpoint_round_trip_between_steps(self, registry):
        verdicts = {"Connection pool exhausted": "rejected", "Disk full on db-1": "confirmed"}

        reasoning = ScriptedReasoning(verdicts)
        orchestrator = make_orchestrator(reasoning, registry, max_cycles=2)
        reference, reference_steps = await drive(
            orchestrator, orchestrator.new_session("t-7", "latency spike")
        )

        resumed_reasoning = ScriptedReasoning(verdicts)
        session = orchestrator.new_session("t-7", "latency spike")
        steps = 0
        while not session.is_completed:
            fresh = make_orchestrator(resumed_reasoning, registry, max_cycles=2)
            result = await fresh.execute_step(decode_session(encode_session(session)))
            session = result.session
            steps += 1

        assert steps == reference_steps
        assert session.cycle_count == reference.cycle_count
        assert [h.status for h in session.hypotheses] == [h.status for h in reference.hypotheses]
        assert session.final_answer == reference.final_answer
