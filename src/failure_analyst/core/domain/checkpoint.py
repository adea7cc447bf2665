"""
Checkpoint Encoding

Converts a Session (including nested hypotheses and their embedded ReAct
sub-sessions) to plain JSON-compatible dicts and back. Decoding tolerates
missing optional keys so older checkpoints stay readable.
"""

import json
from typing import Any

from failure_analyst.core.domain.errors import CheckpointDecodeError
from failure_analyst.core.domain.models import (
    CompletionReason,
    EngineMode,
    EvaluationResult,
    HistoryItem,
    Hypothesis,
    HypothesisSource,
    HypothesisStatus,
    ReactionState,
    Session,
    ToolAction,
    ToolExecutionRecord,
    utc_now,
)

CHECKPOINT_SCHEMA_VERSION = 1


def _action_to_dict(action: ToolAction | None) -> dict[str, Any] | None:
    if action is None:
        return None
    return {"tool": action.tool, "parameters": dict(action.parameters)}


def _action_from_dict(data: dict[str, Any] | None) -> ToolAction | None:
    if not data:
        return None
    return ToolAction(tool=data["tool"], parameters=dict(data.get("parameters") or {}))


def _evaluation_to_dict(result: EvaluationResult | None) -> dict[str, Any] | None:
    if result is None:
        return None
    return {
        "hypothesis_id": result.hypothesis_id,
        "status": result.status.value,
        "confidence": result.confidence,
        "confidence_level": result.confidence_level,
        "reasoning": result.reasoning,
    }


def _evaluation_from_dict(data: dict[str, Any] | None) -> EvaluationResult | None:
    if not data:
        return None
    return EvaluationResult(
        hypothesis_id=data["hypothesis_id"],
        status=HypothesisStatus(data["status"]),
        confidence=float(data["confidence"]),
        confidence_level=data.get("confidence_level", "low"),
        reasoning=data.get("reasoning", ""),
    )


def _hypothesis_to_dict(hypothesis: Hypothesis) -> dict[str, Any]:
    return {
        "id": hypothesis.id,
        "description": hypothesis.description,
        "confidence": hypothesis.confidence,
        "reasoning": hypothesis.reasoning,
        "status": hypothesis.status.value,
        "source": hypothesis.source.value,
        "react_session_state": (
            session_to_dict(hypothesis.react_session_state)
            if hypothesis.react_session_state is not None
            else None
        ),
        "evaluation": _evaluation_to_dict(hypothesis.evaluation),
    }


def _hypothesis_from_dict(data: dict[str, Any]) -> Hypothesis:
    sub_session = data.get("react_session_state")
    return Hypothesis(
        id=data["id"],
        description=data["description"],
        confidence=float(data.get("confidence", 0.5)),
        reasoning=data.get("reasoning", ""),
        status=HypothesisStatus(data.get("status", HypothesisStatus.UNVERIFIED.value)),
        source=HypothesisSource(data.get("source", HypothesisSource.LLM.value)),
        react_session_state=session_from_dict(sub_session) if sub_session else None,
        evaluation=_evaluation_from_dict(data.get("evaluation")),
    )


def session_to_dict(session: Session) -> dict[str, Any]:
    """Convert a Session to a JSON-compatible dict."""
    return {
        "schema_version": CHECKPOINT_SCHEMA_VERSION,
        "session_id": session.session_id,
        "context": session.context,
        "engine": session.engine.value,
        "state": session.state.value,
        "cycle_count": session.cycle_count,
        "history": [
            {
                "thinking": item.thinking,
                "action": _action_to_dict(item.action),
                "observation": item.observation,
                "timestamp": item.timestamp,
            }
            for item in session.history
        ],
        "last_thinking": session.last_thinking,
        "last_action": _action_to_dict(session.last_action),
        "last_observation": session.last_observation,
        "proposed_answer": session.proposed_answer,
        "final_answer": session.final_answer,
        "forced_completion": session.forced_completion,
        "completion_reason": (
            session.completion_reason.value if session.completion_reason else None
        ),
        "tool_executions": [
            {
                "tool_name": record.tool_name,
                "parameters": dict(record.parameters),
                "result": record.result,
                "data_available": record.data_available,
                "timestamp": record.timestamp,
            }
            for record in session.tool_executions
        ],
        "hypotheses": [_hypothesis_to_dict(h) for h in session.hypotheses],
        "current_hypothesis_index": session.current_hypothesis_index,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
        "version": session.version,
    }


def session_from_dict(data: dict[str, Any]) -> Session:
    """
    Rebuild a Session from a dict produced by ``session_to_dict``.

    Raises:
        CheckpointDecodeError: If required keys are missing or values are invalid
    """
    try:
        history = [
            HistoryItem(
                thinking=item.get("thinking", ""),
                action=_action_from_dict(item.get("action")),
                observation=item.get("observation"),
                timestamp=item.get("timestamp") or utc_now(),
            )
            for item in data.get("history", [])
        ]
        reason = data.get("completion_reason")
        return Session(
            session_id=data["session_id"],
            context=data["context"],
            engine=EngineMode(data.get("engine", EngineMode.REACT.value)),
            state=ReactionState(data.get("state", ReactionState.THINKING.value)),
            cycle_count=int(data.get("cycle_count", len(history))),
            history=history,
            last_thinking=data.get("last_thinking"),
            last_action=_action_from_dict(data.get("last_action")),
            last_observation=data.get("last_observation"),
            proposed_answer=data.get("proposed_answer"),
            final_answer=data.get("final_answer"),
            forced_completion=bool(data.get("forced_completion", False)),
            completion_reason=CompletionReason(reason) if reason else None,
            tool_executions=[
                ToolExecutionRecord(
                    tool_name=record["tool_name"],
                    parameters=dict(record.get("parameters") or {}),
                    result=record.get("result", ""),
                    data_available=bool(record.get("data_available", False)),
                    timestamp=record.get("timestamp") or utc_now(),
                )
                for record in data.get("tool_executions", [])
            ],
            hypotheses=[_hypothesis_from_dict(h) for h in data.get("hypotheses", [])],
            current_hypothesis_index=int(data.get("current_hypothesis_index", -1)),
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
            version=int(data.get("version", 0)),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise CheckpointDecodeError(f"Invalid checkpoint: {type(e).__name__}: {e}") from e


def encode_session(session: Session) -> str:
    """Serialize a Session to a JSON string."""
    return json.dumps(session_to_dict(session), ensure_ascii=False, indent=2)


def decode_session(payload: str | bytes) -> Session:
    """
    Deserialize a JSON checkpoint.

    Raises:
        CheckpointDecodeError: If the payload is not valid JSON or not a session
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CheckpointDecodeError(f"Checkpoint is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise CheckpointDecodeError("Checkpoint must be a JSON object")
    return session_from_dict(data)
