"""
Model Output Parsing

All regular-expression extraction of semi-structured model output lives here:
ReAct decisions (<Action>/<FinalAnswer>), labelled fields, hypothesis blocks,
evaluation verdicts and confidence values. Labels may be English or Japanese
and may use a full- or half-width colon.
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from failure_analyst.core.domain.models import (
    EvaluationResult,
    HypothesisSource,
    HypothesisStatus,
    ToolAction,
)

FINAL_ANSWER_TOOL = "final_answer"
DEFAULT_CONFIDENCE = 0.5

DESCRIPTION_LABELS = ("Description", "説明")
CONFIDENCE_LABELS = ("Confidence", "信頼度")
REASONING_LABELS = ("Reasoning", "根拠")
STATUS_LABELS = ("Status", "状態")
SOURCE_LABELS = ("Source", "情報源")
RECOMMENDED_ACTIONS_LABELS = ("Recommended Actions", "推奨対策")
PREVENTION_LABELS = ("Prevention Measures", "再発防止策")

KNOWN_LABELS = (
    DESCRIPTION_LABELS
    + CONFIDENCE_LABELS
    + REASONING_LABELS
    + STATUS_LABELS
    + SOURCE_LABELS
    + RECOMMENDED_ACTIONS_LABELS
    + PREVENTION_LABELS
    + ("Thought", "思考", "Action", "行動")
)

_LABEL_PREFIX = r"^[ \t]*(?:[-*][ \t]*)?(?:\*\*)?"
_LABEL_SUFFIX = r"(?:\*\*)?[ \t]*[:：]"
_NEXT_LABEL = "|".join(re.escape(label) for label in KNOWN_LABELS)

_THOUGHT_RE = re.compile(
    _LABEL_PREFIX + r"(?:Thought|思考)" + _LABEL_SUFFIX + r"(.*?)(?=<Action>|<FinalAnswer>|\Z)",
    re.IGNORECASE | re.DOTALL | re.MULTILINE,
)
_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
_HYPOTHESIS_RE = re.compile(
    r"<Hypothesis\s*(\d+)\s*>(.*?)</Hypothesis\s*\1\s*>", re.IGNORECASE | re.DOTALL
)

# Checked in order: the first group that matches wins. Inconclusive phrases
# must come first because "not confirmed" contains "confirmed", and negatives
# before affirmatives because "invalid" contains "valid".
_STATUS_MARKERS: tuple[tuple[HypothesisStatus, tuple[str, ...]], ...] = (
    (
        HypothesisStatus.INCONCLUSIVE,
        ("inconclusive", "unconfirmed", "not confirmed", "undetermined", "保留", "不明", "未確定"),
    ),
    (
        HypothesisStatus.REJECTED,
        ("rejected", "invalid", "incorrect", "refuted", "disproven", "棄却", "否定"),
    ),
    (
        HypothesisStatus.CONFIRMED,
        ("confirmed", "valid", "correct", "supported", "確定", "支持", "確認"),
    ),
)

# A verdict that opens with one of these words is taken as is.
_STATUS_WORDS = {
    "confirmed": HypothesisStatus.CONFIRMED,
    "rejected": HypothesisStatus.REJECTED,
    "inconclusive": HypothesisStatus.INCONCLUSIVE,
    "確定": HypothesisStatus.CONFIRMED,
    "棄却": HypothesisStatus.REJECTED,
    "保留": HypothesisStatus.INCONCLUSIVE,
}
_LEADING_WORD_RE = re.compile(r"^[\W_]*([^\W_]+)")

# Negated affirmatives ("could not be confirmed", "確認できませんでした") are inconclusive.
_NEGATION_RE = re.compile(
    r"\b(?:not|no|never|cannot|can't|couldn't|isn't|wasn't|unsupported|unproven)\b"
)
_JA_NEGATIONS = ("できない", "できず", "ません", "されない", "ではない", "なかった")

_CONFIDENCE_WORDS = (
    (("high", "高"), 0.8),
    (("medium", "moderate", "中"), 0.5),
    (("low", "低"), 0.2),
)


class DecisionKind(str, Enum):
    """What the model asked the ReAct loop to do next."""

    TOOL_CALL = "tool_call"
    FINAL_ANSWER = "final_answer"
    MALFORMED_OUTPUT = "malformed_output"


@dataclass(frozen=True)
class ReactDecision:
    """Typed result of parsing one thinking response."""

    kind: DecisionKind
    thought: str
    action: ToolAction | None = None
    final_answer: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ParsedHypothesis:
    """A hypothesis block as emitted by the model, before ids are assigned."""

    description: str
    confidence: float
    reasoning: str
    source: HypothesisSource


def extract_tagged(text: str, tag: str) -> str | None:
    """Return the stripped content of the first <tag>...</tag> block, if any."""
    match = re.search(
        rf"<{re.escape(tag)}>(.*?)</{re.escape(tag)}>", text or "", re.IGNORECASE | re.DOTALL
    )
    if not match:
        return None
    return match.group(1).strip()


def extract_field(content: str, *labels: str) -> str | None:
    """
    Extract the value following a label such as ``Confidence: 80%``.

    The value runs until the next line that starts with a known label or the
    end of the text, so multi-line values are kept whole.

    Args:
        content: Text to search
        *labels: Alternative spellings of the label (e.g. "Status", "状態")

    Returns:
        Stripped value, or None if no label matched or the value is empty
    """
    if not content:
        return None
    for label in labels:
        pattern = re.compile(
            _LABEL_PREFIX
            + re.escape(label)
            + _LABEL_SUFFIX
            + r"(.*?)(?="
            + _LABEL_PREFIX
            + r"(?:"
            + _NEXT_LABEL
            + r")"
            + _LABEL_SUFFIX
            + r"|\Z)",
            re.IGNORECASE | re.DOTALL | re.MULTILINE,
        )
        match = pattern.search(content)
        if match:
            value = match.group(1).strip()
            if value:
                return value
    return None


def normalize_confidence(raw: Any, default: float = DEFAULT_CONFIDENCE) -> float:
    """
    Normalize a confidence value to the range [0.0, 1.0].

    Numbers greater than 1 are read as percentages. Words such as "high" or
    "低" map to fixed values. Anything unreadable yields ``default``.

    Examples:
        >>> normalize_confidence("85")
        0.85
        >>> normalize_confidence("140")
        1.0
    """
    if raw is None or isinstance(raw, bool):
        return default

    if isinstance(raw, (int, float)):
        value = float(raw)
    else:
        text = str(raw).strip().lower()
        match = _NUMBER_RE.search(text)
        if match:
            value = float(match.group(0))
        else:
            for words, word_value in _CONFIDENCE_WORDS:
                if any(word in text for word in words):
                    return word_value
            return default

    if value > 1:
        value = value / 100
    return max(0.0, min(1.0, value))


def confidence_level(confidence: float) -> str:
    """Bucket a normalized confidence into high / medium / low."""
    if confidence >= 0.7:
        return "high"
    if confidence >= 0.4:
        return "medium"
    return "low"


def map_status(text: str | None) -> HypothesisStatus:
    """Map a free-text verdict onto a HypothesisStatus (default inconclusive)."""
    if not text:
        return HypothesisStatus.INCONCLUSIVE
    lowered = text.strip().lower()
    leading = _LEADING_WORD_RE.match(lowered)
    if leading and leading.group(1) in _STATUS_WORDS:
        return _STATUS_WORDS[leading.group(1)]

    for status, markers in _STATUS_MARKERS:
        if status == HypothesisStatus.CONFIRMED and _is_negated(lowered):
            return HypothesisStatus.INCONCLUSIVE
        if any(marker in lowered for marker in markers):
            return status
    return HypothesisStatus.INCONCLUSIVE


def _is_negated(lowered: str) -> bool:
    return bool(_NEGATION_RE.search(lowered)) or any(n in lowered for n in _JA_NEGATIONS)


def _extract_thought(text: str) -> str:
    match = _THOUGHT_RE.search(text)
    if match:
        return match.group(1).strip()
    cut = len(text)
    for tag in ("<Action>", "<FinalAnswer>"):
        index = text.find(tag)
        if index != -1:
            cut = min(cut, index)
    return text[:cut].strip()


def _parse_action_payload(payload: str) -> tuple[ToolAction | None, str | None]:
    cleaned = _CODE_FENCE_RE.sub("", payload.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return None, f"Action is not valid JSON: {e.msg}"

    if not isinstance(data, dict):
        return None, "Action must be a JSON object"

    tool = data.get("tool")
    if not isinstance(tool, str) or not tool.strip():
        return None, "Action is missing the 'tool' field"

    parameters = data.get("parameters") or {}
    if not isinstance(parameters, dict):
        return None, "Action 'parameters' must be a JSON object"

    return ToolAction(tool=tool.strip(), parameters=parameters), None


def parse_react_response(text: str) -> ReactDecision:
    """
    Parse a thinking response into a typed decision.

    A <FinalAnswer> block wins over an <Action> block when both are present.
    An action naming the ``final_answer`` pseudo-tool is read as a final
    answer taken from ``parameters.content``. Anything else that cannot be
    read yields ``DecisionKind.MALFORMED_OUTPUT`` with an explanation.
    """
    text = text or ""
    thought = _extract_thought(text)

    final_answer = extract_tagged(text, "FinalAnswer")
    if final_answer:
        return ReactDecision(DecisionKind.FINAL_ANSWER, thought, final_answer=final_answer)

    payload = extract_tagged(text, "Action")
    if payload is None:
        return ReactDecision(
            DecisionKind.MALFORMED_OUTPUT,
            thought,
            error="Response contained neither <Action> nor <FinalAnswer>",
        )

    action, error = _parse_action_payload(payload)
    if action is None:
        return ReactDecision(DecisionKind.MALFORMED_OUTPUT, thought, error=error)

    if action.tool == FINAL_ANSWER_TOOL:
        content = action.parameters.get("content")
        if isinstance(content, str) and content.strip():
            return ReactDecision(DecisionKind.FINAL_ANSWER, thought, final_answer=content.strip())
        return ReactDecision(
            DecisionKind.MALFORMED_OUTPUT,
            thought,
            error="final_answer action without 'content'",
        )

    return ReactDecision(DecisionKind.TOOL_CALL, thought, action=action)


def _first_line(block: str) -> str:
    for line in block.splitlines():
        if line.strip():
            return line.strip()
    return ""


def parse_hypotheses(text: str) -> list[ParsedHypothesis]:
    """Parse every <Hypothesis N> block, in emission order."""
    parsed: list[ParsedHypothesis] = []
    for match in _HYPOTHESIS_RE.finditer(text or ""):
        block = match.group(2).strip()
        description = extract_field(block, *DESCRIPTION_LABELS) or _first_line(block)
        if not description:
            continue

        source_text = (extract_field(block, *SOURCE_LABELS) or "").lower()
        source = (
            HypothesisSource.KNOWLEDGE_BASE
            if "knowledge" in source_text or "ナレッジ" in source_text
            else HypothesisSource.LLM
        )

        parsed.append(
            ParsedHypothesis(
                description=description,
                confidence=normalize_confidence(extract_field(block, *CONFIDENCE_LABELS)),
                reasoning=extract_field(block, *REASONING_LABELS) or "",
                source=source,
            )
        )
    return parsed


def parse_evaluation(text: str, hypothesis_id: str) -> EvaluationResult:
    """Parse an evaluator response, reading the <Evaluation> block if present."""
    block = extract_tagged(text, "Evaluation") or (text or "").strip()
    status = map_status(extract_field(block, *STATUS_LABELS))
    confidence = normalize_confidence(extract_field(block, *CONFIDENCE_LABELS))
    reasoning = extract_field(block, *REASONING_LABELS) or block[:500]
    return EvaluationResult(
        hypothesis_id=hypothesis_id,
        status=status,
        confidence=confidence,
        confidence_level=confidence_level(confidence),
        reasoning=reasoning,
    )


def parse_recommendations(text: str) -> tuple[str | None, str | None]:
    """Return (recommended actions, prevention measures) from a report response."""
    block = extract_tagged(text, "Recommendations") or (text or "")
    return (
        extract_field(block, *RECOMMENDED_ACTIONS_LABELS),
        extract_field(block, *PREVENTION_LABELS),
    )
