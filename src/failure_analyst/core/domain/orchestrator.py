"""
Hypothesis Orchestrator - Tree-of-Thought Investigation

Breadth first, then depth: generate competing root-cause hypotheses once,
then verify them one at a time, highest confidence first, each with its own
embedded ReAct sub-session. Every call to ``execute_step`` does one bounded
unit of work:

1. generate hypotheses (when the session has none yet)
2. run one ReAct step of the current hypothesis' sub-session
3. evaluate the current hypothesis once its sub-session has completed
4. write the final answer once a hypothesis is confirmed or none remain

The outer hypothesis index and every inner sub-session live on the Session,
so the whole tree survives a checkpoint round-trip.
"""

import copy

import structlog

from failure_analyst.core.domain.errors import ReasoningServiceError
from failure_analyst.core.domain.evaluator import Evaluator
from failure_analyst.core.domain.hypothesis_generator import HypothesisGenerator
from failure_analyst.core.domain.models import (
    CompletionReason,
    EngineMode,
    HistoryItem,
    Hypothesis,
    HypothesisStatus,
    ReactionState,
    Session,
    StepResult,
)
from failure_analyst.core.domain.parsing import confidence_level, parse_recommendations
from failure_analyst.core.domain.react_agent import DEFAULT_MAX_CYCLES, ReActAgent
from failure_analyst.core.interfaces.llm import ReasoningServiceProtocol
from failure_analyst.core.prompts.investigation_prompts import (
    build_hypothesis_context,
    build_report_prompt,
)
from failure_analyst.core.tools.registry import ToolRegistry

SUMMARY_CANDIDATES = 3

FALLBACK_ACTIONS = (
    "1. Mitigate the confirmed root cause in the affected component.\n"
    "2. Verify recovery with the same logs and metrics used during the investigation."
)
FALLBACK_PREVENTION = (
    "1. Add monitoring and alerting for the conditions that led to this failure.\n"
    "2. Review the change and capacity processes around the affected component."
)


class HypothesisOrchestrator:
    """
    Step-wise Tree-of-Thought engine.

    Hypotheses are verified in non-increasing confidence order. A confirmed
    hypothesis ends the investigation; later hypotheses are never evaluated.
    """

    mode = EngineMode.HYPOTHESIS

    def __init__(
        self,
        reasoning_service: ReasoningServiceProtocol,
        tool_registry: ToolRegistry,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        max_hypotheses: int = 3,
        knowledge_tool: str | None = None,
        response_language: str = "English",
    ):
        """
        Initialize HypothesisOrchestrator.

        Args:
            reasoning_service: Language-model client shared by all sub-components
            tool_registry: Diagnostic tools for the verification sub-sessions
            max_cycles: Cycle ceiling of each verification sub-session
            max_hypotheses: Number of hypotheses to generate
            knowledge_tool: Optional registered tool searched before generation
            response_language: Language requested for model answers
        """
        self.reasoning_service = reasoning_service
        self.response_language = response_language
        self.react_agent = ReActAgent(
            reasoning_service,
            tool_registry,
            max_cycles=max_cycles,
            response_language=response_language,
        )
        self.generator = HypothesisGenerator(
            reasoning_service,
            tool_registry,
            max_hypotheses=max_hypotheses,
            knowledge_tool=knowledge_tool,
            response_language=response_language,
        )
        self.evaluator = Evaluator(reasoning_service, response_language=response_language)
        self.logger = structlog.get_logger().bind(component="hypothesis_orchestrator")

    @property
    def max_cycles(self) -> int:
        return self.react_agent.max_cycles

    @property
    def max_hypotheses(self) -> int:
        return self.generator.max_hypotheses

    def new_session(self, session_id: str, context: str) -> Session:
        return Session(session_id=session_id, context=context, engine=EngineMode.HYPOTHESIS)

    async def execute_step(self, session: Session) -> StepResult:
        """
        Advance the investigation by one unit of work.

        Raises:
            ReasoningServiceError: If a verification sub-step could not reach the model
        """
        if session.is_completed:
            return StepResult(is_done=True, session=session, final_answer=session.final_answer)

        working = copy.deepcopy(session)

        if working.state != ReactionState.COMPLETING:
            if not working.hypotheses:
                await self._generate(working)
            else:
                hypothesis = working.current_hypothesis
                if hypothesis is None:
                    working.completion_reason = CompletionReason.HYPOTHESES_EXHAUSTED
                    working.state = ReactionState.COMPLETING
                elif (
                    hypothesis.react_session_state is not None
                    and hypothesis.react_session_state.is_completed
                ):
                    await self._evaluate(working, hypothesis)
                else:
                    await self._verify(working, hypothesis)

        if working.state == ReactionState.COMPLETING:
            await self._finalize(working)

        return StepResult(
            is_done=working.is_completed,
            session=working,
            final_answer=working.final_answer,
        )

    async def _generate(self, session: Session) -> None:
        hypotheses = await self.generator.generate(session.context)
        session.hypotheses = hypotheses
        session.current_hypothesis_index = 0
        session.append_history(
            HistoryItem(
                thinking=f"Generated {len(hypotheses)} root-cause hypotheses",
                observation="\n".join(
                    f"{h.id} (confidence {h.confidence:.2f}): {h.description}" for h in hypotheses
                ),
            )
        )
        self.logger.info(
            "hypotheses_ready",
            session_id=session.session_id,
            count=len(hypotheses),
        )

    async def _verify(self, session: Session, hypothesis: Hypothesis) -> None:
        sub_session = hypothesis.react_session_state
        if sub_session is None:
            sub_session = self.react_agent.new_session(
                f"{session.session_id}:{hypothesis.id}",
                build_hypothesis_context(session.context, hypothesis),
            )
            self.logger.info(
                "verification_started",
                session_id=session.session_id,
                hypothesis_id=hypothesis.id,
                confidence=hypothesis.confidence,
            )

        previous_cycles = sub_session.cycle_count
        result = await self.react_agent.execute_step(sub_session)
        hypothesis.react_session_state = result.session

        action = None
        observation = None
        if result.session.cycle_count > previous_cycles:
            latest = result.session.history[-1]
            action = latest.action
            observation = latest.observation
        if result.is_done:
            observation = "Verification finished" if observation is None else observation

        session.last_thinking = result.session.last_thinking
        session.last_action = action
        session.last_observation = observation
        session.append_history(
            HistoryItem(
                thinking=f"Verifying {hypothesis.id}: {hypothesis.description}",
                action=action,
                observation=observation,
            )
        )

    async def _evaluate(self, session: Session, hypothesis: Hypothesis) -> None:
        sub_session = hypothesis.react_session_state
        transcript = list(sub_session.history)
        if sub_session.final_answer:
            transcript.append(
                HistoryItem(
                    thinking="Conclusion of the verification",
                    observation=sub_session.final_answer,
                )
            )

        result = await self.evaluator.evaluate_hypothesis(hypothesis, session.context, transcript)
        hypothesis.apply_evaluation(result)
        session.append_history(
            HistoryItem(
                thinking=f"Evaluated {hypothesis.id}: {hypothesis.description}",
                observation=(
                    f"{result.status.value} (confidence {result.confidence:.2f}): {result.reasoning}"
                ),
            )
        )

        if result.status == HypothesisStatus.CONFIRMED:
            session.completion_reason = CompletionReason.HYPOTHESIS_CONFIRMED
            session.state = ReactionState.COMPLETING
            self.logger.info(
                "hypothesis_confirmed", session_id=session.session_id, hypothesis_id=hypothesis.id
            )
            return

        session.current_hypothesis_index += 1
        if session.current_hypothesis_index >= len(session.hypotheses):
            session.completion_reason = CompletionReason.HYPOTHESES_EXHAUSTED
            session.state = ReactionState.COMPLETING
            self.logger.info("hypotheses_exhausted", session_id=session.session_id)

    async def _finalize(self, session: Session) -> None:
        confirmed = next(
            (h for h in session.hypotheses if h.status == HypothesisStatus.CONFIRMED), None
        )
        if confirmed is not None:
            answer = await self._confirmed_report(session, confirmed)
        else:
            answer = self._unconfirmed_summary(session)

        session.complete(answer)
        self.logger.info(
            "investigation_completed",
            session_id=session.session_id,
            confirmed=confirmed.id if confirmed else None,
            reason=session.completion_reason.value if session.completion_reason else None,
        )

    async def _confirmed_report(self, session: Session, hypothesis: Hypothesis) -> str:
        sub_session = hypothesis.react_session_state
        history = sub_session.history if sub_session else []
        actions, prevention = None, None
        try:
            response = await self.reasoning_service.submit(
                build_report_prompt(
                    session.context, hypothesis, history, language=self.response_language
                )
            )
            actions, prevention = parse_recommendations(response)
        except ReasoningServiceError as e:
            self.logger.warning(
                "recommendations_unavailable", session_id=session.session_id, error=str(e)
            )

        lines = [
            "## Root Cause",
            hypothesis.description,
            "",
            f"Confidence: {round(hypothesis.confidence * 100)}% "
            f"({confidence_level(hypothesis.confidence)})",
        ]
        if hypothesis.evaluation is not None:
            lines += ["", "## Evidence", hypothesis.evaluation.reasoning]
        if sub_session is not None and sub_session.final_answer:
            lines += ["", "## Verification Findings", sub_session.final_answer]
        lines += [
            "",
            "## Recommended Actions",
            actions or FALLBACK_ACTIONS,
            "",
            "## Prevention Measures",
            prevention or FALLBACK_PREVENTION,
        ]
        return "\n".join(lines)

    def _unconfirmed_summary(self, session: Session) -> str:
        candidates = sorted(session.hypotheses, key=lambda h: h.confidence, reverse=True)
        lines = [
            "## Root cause not confirmed",
            f"None of the {len(session.hypotheses)} hypotheses could be confirmed "
            "with the data available. Most likely candidates:",
            "",
        ]
        for number, hypothesis in enumerate(candidates[:SUMMARY_CANDIDATES], start=1):
            reasoning = (
                hypothesis.evaluation.reasoning if hypothesis.evaluation else hypothesis.reasoning
            )
            lines.append(
                f"{number}. {hypothesis.description} "
                f"({hypothesis.status.value}, confidence {round(hypothesis.confidence * 100)}%)"
            )
            if reasoning:
                lines.append(f"   {reasoning}")
        if not candidates:
            lines.append("(no hypotheses were generated)")
        return "\n".join(lines)
