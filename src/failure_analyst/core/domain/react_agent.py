"""
ReAct Agent - Resumable Think / Act / Observe Loop

Implements the ReAct state machine as a trampoline: ``execute_step`` performs
exactly one think/act/observe cycle on a session and returns a continuation
signal. The caller persists the session and decides how the next step is
invoked; no loop over cycles runs inside the engine.

States:
    THINKING  -> ACTING      (model proposed a tool call)
    THINKING  -> COMPLETING  (model proposed a final answer, or unreadable output)
    ACTING    -> OBSERVING   (tool executed, or its failure recorded)
    OBSERVING -> THINKING    (cycle budget remains)
    OBSERVING -> COMPLETING  (cycle budget exhausted, forced completion)
    COMPLETING -> COMPLETED  (final answer text obtained)

COMPLETING always runs in the same step that entered it, so a session that hits
its cycle ceiling is finished on that call.
"""

import copy

import structlog

from failure_analyst.core.domain.errors import (
    RateLimitedError,
    ReasoningServiceError,
    ToolError,
)
from failure_analyst.core.domain.models import (
    CompletionReason,
    EngineMode,
    HistoryItem,
    ReactionState,
    Session,
    StepResult,
    ToolExecutionRecord,
)
from failure_analyst.core.domain.parsing import DecisionKind, parse_react_response
from failure_analyst.core.interfaces.llm import ReasoningServiceProtocol
from failure_analyst.core.prompts.investigation_prompts import (
    build_final_answer_prompt,
    build_forced_completion_prompt,
    build_thinking_prompt,
)
from failure_analyst.core.tools.registry import ToolRegistry

DEFAULT_MAX_CYCLES = 5


class ReActAgent:
    """
    Step-wise ReAct engine for root-cause investigation.

    Tool failures are recovered locally and become the cycle's observation.
    Reasoning-service failures while thinking propagate to the caller; the
    caller's session is left untouched because every step works on a copy.
    """

    mode = EngineMode.REACT

    def __init__(
        self,
        reasoning_service: ReasoningServiceProtocol,
        tool_registry: ToolRegistry,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        response_language: str = "English",
    ):
        """
        Initialize ReActAgent with injected dependencies.

        Args:
            reasoning_service: Language-model client used for thinking and completion
            tool_registry: Diagnostic tools the model may call
            max_cycles: Cycle ceiling before completion is forced
            response_language: Language requested for model answers
        """
        if max_cycles < 1:
            raise ValueError("max_cycles must be at least 1")
        self.reasoning_service = reasoning_service
        self.tool_registry = tool_registry
        self.max_cycles = max_cycles
        self.response_language = response_language
        self.logger = structlog.get_logger().bind(component="react_agent")

    def new_session(self, session_id: str, context: str) -> Session:
        """Create a fresh session in the THINKING state."""
        return Session(session_id=session_id, context=context, engine=EngineMode.REACT)

    async def execute_step(self, session: Session) -> StepResult:
        """
        Advance the session by one cycle.

        Args:
            session: Session to advance (not modified)

        Returns:
            StepResult with the updated copy of the session

        Raises:
            ReasoningServiceError: If the model could not be reached while thinking
        """
        if session.is_completed:
            return StepResult(is_done=True, session=session, final_answer=session.final_answer)

        working = copy.deepcopy(session)

        if working.state == ReactionState.THINKING:
            await self._think(working)
        if working.state == ReactionState.ACTING:
            await self._act(working)
        if working.state == ReactionState.OBSERVING:
            self._observe(working)
        if working.state == ReactionState.COMPLETING:
            await self._complete(working)

        self.logger.info(
            "step_completed",
            session_id=working.session_id,
            state=working.state.value,
            cycle_count=working.cycle_count,
        )
        return StepResult(
            is_done=working.is_completed,
            session=working,
            final_answer=working.final_answer,
        )

    def _force_completion(self, session: Session) -> None:
        session.forced_completion = True
        session.completion_reason = CompletionReason.CYCLE_LIMIT
        session.state = ReactionState.COMPLETING
        self.logger.warning(
            "cycle_limit_reached",
            session_id=session.session_id,
            cycle_count=session.cycle_count,
            max_cycles=self.max_cycles,
        )

    async def _think(self, session: Session) -> None:
        if session.cycle_count >= self.max_cycles:
            self._force_completion(session)
            return

        prompt = build_thinking_prompt(
            context=session.context,
            tools=self.tool_registry.list_tool_descriptions(),
            history=session.history,
            cycle=session.cycle_count + 1,
            max_cycles=self.max_cycles,
            language=self.response_language,
        )
        response = await self.reasoning_service.submit(prompt)
        decision = parse_react_response(response)
        session.last_thinking = decision.thought

        if decision.kind == DecisionKind.TOOL_CALL:
            session.last_action = decision.action
            session.state = ReactionState.ACTING
            self.logger.info(
                "thinking_completed",
                session_id=session.session_id,
                cycle=session.cycle_count + 1,
                tool=decision.action.tool,
            )
            return

        if decision.kind == DecisionKind.FINAL_ANSWER:
            session.append_history(HistoryItem(thinking=decision.thought))
            session.proposed_answer = decision.final_answer
            session.completion_reason = CompletionReason.FINAL_ANSWER
            session.state = ReactionState.COMPLETING
            self.logger.info(
                "final_answer_proposed",
                session_id=session.session_id,
                cycle=session.cycle_count,
            )
            return

        self.logger.warning(
            "malformed_model_output",
            session_id=session.session_id,
            cycle=session.cycle_count + 1,
            error=decision.error,
            response_preview=(response or "")[:200],
        )
        session.append_history(
            HistoryItem(
                thinking=decision.thought or (response or "")[:500],
                observation=f"Model output could not be parsed: {decision.error}",
            )
        )
        if session.cycle_count >= self.max_cycles:
            session.forced_completion = True
        session.completion_reason = CompletionReason.MALFORMED_OUTPUT
        session.state = ReactionState.COMPLETING

    async def _act(self, session: Session) -> None:
        action = session.last_action
        if action is None:
            session.last_observation = "Error: no action to execute"
            session.state = ReactionState.OBSERVING
            return

        try:
            result = await self.tool_registry.execute(action.tool, action.parameters)
            data_available = self.tool_registry.get_tool(action.tool).has_data(result)
        except ToolError as e:
            self.logger.warning(
                "tool_failed",
                session_id=session.session_id,
                tool=action.tool,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            result = f"Error: {e}"
            if not self.tool_registry.has_tool(action.tool):
                result += f". Available tools: {', '.join(self.tool_registry.tool_names()) or 'none'}"
            data_available = False

        session.tool_executions.append(
            ToolExecutionRecord(
                tool_name=action.tool,
                parameters=dict(action.parameters),
                result=result,
                data_available=data_available,
            )
        )
        session.last_observation = result
        session.state = ReactionState.OBSERVING

    def _observe(self, session: Session) -> None:
        session.append_history(
            HistoryItem(
                thinking=session.last_thinking or "",
                action=session.last_action,
                observation=session.last_observation,
            )
        )
        if session.cycle_count >= self.max_cycles:
            self._force_completion(session)
        else:
            session.state = ReactionState.THINKING

    async def _complete(self, session: Session) -> None:
        if session.forced_completion:
            prompt = build_forced_completion_prompt(
                session.context, session.history, language=self.response_language
            )
        else:
            prompt = build_final_answer_prompt(
                session.context,
                session.history,
                proposed_answer=session.proposed_answer,
                language=self.response_language,
            )

        answer = ""
        try:
            answer = (await self.reasoning_service.submit(prompt) or "").strip()
        except RateLimitedError as e:
            self.logger.warning(
                "completion_rate_limited", session_id=session.session_id, error=str(e)
            )
            session.completion_reason = CompletionReason.RATE_LIMITED
        except ReasoningServiceError as e:
            self.logger.error(
                "completion_failed", session_id=session.session_id, error=str(e)
            )

        if not answer:
            answer = self.degraded_answer(session)

        session.complete(answer, reason=CompletionReason.FINAL_ANSWER)
        self.logger.info(
            "session_completed",
            session_id=session.session_id,
            cycle_count=session.cycle_count,
            forced=session.forced_completion,
            reason=session.completion_reason.value if session.completion_reason else None,
        )

    def degraded_answer(self, session: Session) -> str:
        """Deterministic answer used when the model cannot write the report."""
        if session.proposed_answer:
            return session.proposed_answer

        with_data = sorted({r.tool_name for r in session.tool_executions if r.data_available})
        without_data = sorted(
            {r.tool_name for r in session.tool_executions if not r.data_available} - set(with_data)
        )
        lines = [
            "## Analysis incomplete",
            "The reasoning service could not produce a final report. "
            "Summary of the data collected so far:",
            "",
            f"- Failure: {session.context}",
            f"- Analysis cycles run: {session.cycle_count}",
            f"- Tools that returned data: {', '.join(with_data) or 'none'}",
            f"- Tools without data: {', '.join(without_data) or 'none'}",
        ]
        if session.last_thinking:
            lines.append(f"- Latest reasoning: {session.last_thinking[:500]}")
        return "\n".join(lines)
