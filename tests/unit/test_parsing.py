"""
Unit tests for model output parsing

One test group per delimiter pattern: ReAct decisions, labelled fields,
hypothesis blocks, evaluation verdicts and confidence normalization.
"""

import pytest

from failure_analyst.core.domain.models import HypothesisSource, HypothesisStatus
from failure_analyst.core.domain.parsing import (
    DecisionKind,
    confidence_level,
    extract_field,
    extract_tagged,
    map_status,
    normalize_confidence,
    parse_evaluation,
    parse_hypotheses,
    parse_react_response,
    parse_recommendations,
)


class TestReactResponse:
    def test_tool_call(self):
        decision = parse_react_response(
            'Thought: check CPU first\n<Action>{"tool": "metrics_tool", "parameters": {"target": "api"}}</Action>'
        )

        assert decision.kind == DecisionKind.TOOL_CALL
        assert decision.thought == "check CPU first"
        assert decision.action.tool == "metrics_tool"
        assert decision.action.parameters == {"target": "api"}

    def test_tool_call_in_code_fence(self):
        decision = parse_react_response(
            'Thought: look\n<Action>\n```json\n{"tool": "logs_tool", "parameters": {}}\n```\n</Action>'
        )

        assert decision.kind == DecisionKind.TOOL_CALL
        assert decision.action.tool == "logs_tool"

    def test_final_answer(self):
        decision = parse_react_response(
            "Thought: enough data\n<FinalAnswer>\nDisk full on db-1\n</FinalAnswer>"
        )

        assert decision.kind == DecisionKind.FINAL_ANSWER
        assert decision.final_answer == "Disk full on db-1"

    def test_final_answer_wins_over_action(self):
        decision = parse_react_response(
            '<Action>{"tool": "metrics_tool"}</Action>\n<FinalAnswer>Done</FinalAnswer>'
        )

        assert decision.kind == DecisionKind.FINAL_ANSWER

    def test_final_answer_pseudo_tool(self):
        decision = parse_react_response(
            '<Action>{"tool": "final_answer", "parameters": {"content": "Memory leak"}}</Action>'
        )

        assert decision.kind == DecisionKind.FINAL_ANSWER
        assert decision.final_answer == "Memory leak"

    def test_thought_without_label(self):
        decision = parse_react_response('Looking at logs.\n<Action>{"tool": "logs_tool"}</Action>')

        assert decision.thought == "Looking at logs."
        assert decision.action.parameters == {}

    def test_japanese_thought_label(self):
        decision = parse_react_response('思考：ログを確認します\n<Action>{"tool": "logs_tool"}</Action>')

        assert decision.thought == "ログを確認します"

    @pytest.mark.parametrize(
        "text",
        [
            "I think the database is slow.",
            "<Action>not json</Action>",
            '<Action>["metrics_tool"]</Action>',
            '<Action>{"parameters": {}}</Action>',
            '<Action>{"tool": "logs_tool", "parameters": "x"}</Action>',
            "<FinalAnswer>   </FinalAnswer>",
            "",
        ],
    )
    def test_malformed(self, text):
        decision = parse_react_response(text)

        assert decision.kind == DecisionKind.MALFORMED_OUTPUT
        assert decision.error


class TestExtractField:
    def test_single_line(self):
        assert extract_field("Status: confirmed\nConfidence: 80", "Status") == "confirmed"

    def test_multi_line_value_runs_to_next_label(self):
        text = "Reasoning: CPU is at 95%\nat 10:32 UTC the pool was exhausted\nStatus: confirmed"
        assert extract_field(text, "Reasoning") == (
            "CPU is at 95%\nat 10:32 UTC the pool was exhausted"
        )

    def test_case_insensitive_and_full_width_colon(self):
        assert extract_field("confidence： 70", "Confidence") == "70"

    def test_japanese_alternative(self):
        assert extract_field("状態: 確定\n根拠: ログに記録あり", "Status", "状態") == "確定"

    def test_markdown_decoration(self):
        assert extract_field("- **Status**: rejected", "Status") == "rejected"

    def test_missing(self):
        assert extract_field("nothing here", "Status") is None
        assert extract_field("", "Status") is None

    def test_extract_tagged(self):
        assert extract_tagged("a <Evaluation> x </Evaluation> b", "Evaluation") == "x"
        assert extract_tagged("no tags", "Evaluation") is None


class TestConfidence:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("85", 0.85),
            ("0.4", 0.4),
            ("140", 1.0),
            ("85%", 0.85),
            ("-3", 0.0),
            (0.7, 0.7),
            (90, 0.9),
            ("high", 0.8),
            ("中", 0.5),
            ("low", 0.2),
            (None, 0.5),
            ("unknown", 0.5),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_confidence(raw) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "value, level", [(0.9, "high"), (0.7, "high"), (0.5, "medium"), (0.39, "low")]
    )
    def test_level(self, value, level):
        assert confidence_level(value) == level


class TestMapStatus:
    @pytest.mark.parametrize(
        "text, status",
        [
            ("confirmed", HypothesisStatus.CONFIRMED),
            ("Valid", HypothesisStatus.CONFIRMED),
            ("確定", HypothesisStatus.CONFIRMED),
            ("rejected", HypothesisStatus.REJECTED),
            ("invalid", HypothesisStatus.REJECTED),
            ("incorrect", HypothesisStatus.REJECTED),
            ("棄却", HypothesisStatus.REJECTED),
            ("not confirmed", HypothesisStatus.INCONCLUSIVE),
            ("unconfirmed", HypothesisStatus.INCONCLUSIVE),
            ("inconclusive", HypothesisStatus.INCONCLUSIVE),
            ("maybe", HypothesisStatus.INCONCLUSIVE),
            (None, HypothesisStatus.INCONCLUSIVE),
        ],
    )
    def test_mapping(self, text, status):
        assert map_status(text) == status

    @pytest.mark.parametrize(
        "text",
        [
            "could not be confirmed",
            "not supported by the data",
            "cannot confirm without more logs",
            "unsupported",
            "確認できませんでした",
            "支持されない",
            "確定できない",
        ],
    )
    def test_negated_affirmatives_are_inconclusive(self, text):
        assert map_status(text) == HypothesisStatus.INCONCLUSIVE

    @pytest.mark.parametrize(
        "text, status",
        [
            ("Confirmed. Nothing else explains the 100% pool usage", HypothesisStatus.CONFIRMED),
            ("**Rejected**: the pool was never saturated", HypothesisStatus.REJECTED),
            ("Inconclusive, no logs for that window", HypothesisStatus.INCONCLUSIVE),
            ("確定", HypothesisStatus.CONFIRMED),
        ],
    )
    def test_leading_status_word_wins(self, text, status):
        assert map_status(text) == status


class TestHypotheses:
    def test_parse_blocks_in_emission_order(self):
        text = """
<Hypothesis 1>
Description: Connection pool exhausted
Confidence: 60
Reasoning: Timeouts in logs
Source: llm
</Hypothesis 1>
<Hypothesis 2>
説明: ディスク容量不足
信頼度: 80%
根拠: 書き込みエラー
情報源: knowledge_base
</Hypothesis 2>
"""
        parsed = parse_hypotheses(text)

        assert [h.description for h in parsed] == ["Connection pool exhausted", "ディスク容量不足"]
        assert parsed[0].confidence == pytest.approx(0.6)
        assert parsed[1].confidence == pytest.approx(0.8)
        assert parsed[1].reasoning == "書き込みエラー"
        assert parsed[0].source == HypothesisSource.LLM
        assert parsed[1].source == HypothesisSource.KNOWLEDGE_BASE

    def test_missing_confidence_defaults(self):
        parsed = parse_hypotheses("<Hypothesis 1>\nDescription: DNS failure\n</Hypothesis 1>")

        assert parsed[0].confidence == pytest.approx(0.5)

    def test_unlabelled_block_uses_first_line(self):
        parsed = parse_hypotheses("<Hypothesis 1>\nCertificate expired\n</Hypothesis 1>")

        assert parsed[0].description == "Certificate expired"

    def test_mismatched_tags_ignored(self):
        assert parse_hypotheses("<Hypothesis 1>Description: x</Hypothesis 2>") == []


class TestEvaluation:
    def test_parse_block(self):
        result = parse_evaluation(
            "Here is my verdict.\n<Evaluation>\nStatus: rejected\nConfidence: 30\n"
            "Reasoning: Disk usage is 40%\n</Evaluation>",
            "H1",
        )

        assert result.hypothesis_id == "H1"
        assert result.status == HypothesisStatus.REJECTED
        assert result.confidence == pytest.approx(0.3)
        assert result.confidence_level == "low"
        assert result.reasoning == "Disk usage is 40%"

    def test_without_block_or_status(self):
        result = parse_evaluation("I could not decide.", "H2")

        assert result.status == HypothesisStatus.INCONCLUSIVE
        assert result.confidence == pytest.approx(0.5)
        assert result.reasoning == "I could not decide."


class TestRecommendations:
    def test_parse(self):
        actions, prevention = parse_recommendations(
            "<Recommendations>\nRecommended Actions:\n1. Raise pool size\n"
            "Prevention Measures:\n1. Alert on pool usage\n</Recommendations>"
        )

        assert actions == "1. Raise pool size"
        assert prevention == "1. Alert on pool usage"
