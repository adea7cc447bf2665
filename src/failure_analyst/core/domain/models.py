"""
Core Domain Models

Data models for an investigation session: the ReAct state machine state, the
append-only history of think/act/observe cycles, and the hypotheses explored
by the Tree-of-Thought orchestrator.

A Session is the whole checkpoint. Everything the engine needs to resume after
an invocation boundary lives on it, including the embedded sub-session used to
verify each hypothesis.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class ReactionState(str, Enum):
    """States of the ReAct loop."""

    THINKING = "thinking"
    ACTING = "acting"
    OBSERVING = "observing"
    COMPLETING = "completing"
    COMPLETED = "completed"


class HypothesisStatus(str, Enum):
    """Verification verdict for a hypothesis."""

    UNVERIFIED = "unverified"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    INCONCLUSIVE = "inconclusive"


class HypothesisSource(str, Enum):
    """Where a hypothesis came from."""

    LLM = "llm"
    KNOWLEDGE_BASE = "knowledge_base"


class CompletionReason(str, Enum):
    """Why a session moved to COMPLETING."""

    FINAL_ANSWER = "final_answer"
    CYCLE_LIMIT = "cycle_limit"
    MALFORMED_OUTPUT = "malformed_output"
    RATE_LIMITED = "rate_limited"
    HYPOTHESIS_CONFIRMED = "hypothesis_confirmed"
    HYPOTHESES_EXHAUSTED = "hypotheses_exhausted"


class EngineMode(str, Enum):
    """Engine that owns a session."""

    REACT = "react"
    HYPOTHESIS = "hypothesis"


@dataclass(frozen=True)
class ToolAction:
    """A tool invocation proposed by the model."""

    tool: str
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HistoryItem:
    """
    One completed cycle of the loop.

    Attributes:
        thinking: The model's reasoning text for this cycle
        action: Tool call made in this cycle (None for answer/error cycles)
        observation: Tool result or error text (None if no tool was called)
        timestamp: ISO-8601 time the cycle was recorded
    """

    thinking: str
    action: ToolAction | None = None
    observation: str | None = None
    timestamp: str = field(default_factory=utc_now)


@dataclass(frozen=True)
class ToolExecutionRecord:
    """Audit record of a single tool call."""

    tool_name: str
    parameters: dict[str, Any]
    result: str
    data_available: bool
    timestamp: str = field(default_factory=utc_now)


@dataclass(frozen=True)
class EvaluationResult:
    """Verdict produced by the Evaluator for one hypothesis."""

    hypothesis_id: str
    status: HypothesisStatus
    confidence: float
    confidence_level: str
    reasoning: str


@dataclass
class Hypothesis:
    """
    A candidate root cause.

    Created once during generation. Only ``apply_evaluation`` changes its
    status and confidence afterwards.
    """

    id: str
    description: str
    confidence: float
    reasoning: str = ""
    status: HypothesisStatus = HypothesisStatus.UNVERIFIED
    source: HypothesisSource = HypothesisSource.LLM
    react_session_state: Session | None = None
    evaluation: EvaluationResult | None = None

    @property
    def is_verified(self) -> bool:
        return self.status != HypothesisStatus.UNVERIFIED

    def apply_evaluation(self, result: EvaluationResult) -> None:
        """Record an evaluator verdict on this hypothesis."""
        if result.hypothesis_id != self.id:
            raise ValueError(
                f"Evaluation for '{result.hypothesis_id}' applied to hypothesis '{self.id}'"
            )
        self.status = result.status
        self.confidence = result.confidence
        self.evaluation = result


@dataclass
class Session:
    """
    Resumable state of one investigation.

    Invariants:
        cycle_count == len(history)
        state == COMPLETED exactly when final_answer is set
    """

    session_id: str
    context: str
    engine: EngineMode = EngineMode.REACT
    state: ReactionState = ReactionState.THINKING
    cycle_count: int = 0
    history: list[HistoryItem] = field(default_factory=list)
    last_thinking: str | None = None
    last_action: ToolAction | None = None
    last_observation: str | None = None
    proposed_answer: str | None = None
    final_answer: str | None = None
    forced_completion: bool = False
    completion_reason: CompletionReason | None = None
    tool_executions: list[ToolExecutionRecord] = field(default_factory=list)
    hypotheses: list[Hypothesis] = field(default_factory=list)
    current_hypothesis_index: int = -1
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    version: int = 0

    @property
    def is_completed(self) -> bool:
        return self.state == ReactionState.COMPLETED

    @property
    def current_hypothesis(self) -> Hypothesis | None:
        if 0 <= self.current_hypothesis_index < len(self.hypotheses):
            return self.hypotheses[self.current_hypothesis_index]
        return None

    def append_history(self, item: HistoryItem) -> None:
        """Append a finished cycle. History is never rewritten."""
        self.history.append(item)
        self.cycle_count += 1
        self.updated_at = utc_now()

    def complete(self, answer: str, reason: CompletionReason | None = None) -> None:
        """Set the final answer and move to COMPLETED."""
        if not answer or not answer.strip():
            raise ValueError("Final answer must not be empty")
        self.final_answer = answer
        if reason is not None and self.completion_reason is None:
            self.completion_reason = reason
        self.state = ReactionState.COMPLETED
        self.updated_at = utc_now()


@dataclass(frozen=True)
class StepResult:
    """Continuation signal returned by ``execute_step``."""

    is_done: bool
    session: Session
    final_answer: str | None = None
