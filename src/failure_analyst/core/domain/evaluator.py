"""
Evaluator - Hypothesis Verdicts

Judges one hypothesis against the transcript of the ReAct sub-session that
verified it. Never raises: a reasoning-service failure yields an inconclusive
verdict with low confidence so the orchestrator can move on.
"""

from collections.abc import Sequence

import structlog

from failure_analyst.core.domain.errors import RateLimitedError, ReasoningServiceError
from failure_analyst.core.domain.models import (
    EvaluationResult,
    HistoryItem,
    Hypothesis,
    HypothesisStatus,
)
from failure_analyst.core.domain.parsing import confidence_level, parse_evaluation
from failure_analyst.core.interfaces.llm import ReasoningServiceProtocol
from failure_analyst.core.prompts.investigation_prompts import build_evaluation_prompt

FAILURE_CONFIDENCE = 0.1


class Evaluator:
    def __init__(
        self,
        reasoning_service: ReasoningServiceProtocol,
        response_language: str = "English",
    ):
        self.reasoning_service = reasoning_service
        self.response_language = response_language
        self.logger = structlog.get_logger().bind(component="evaluator")

    async def evaluate_hypothesis(
        self,
        hypothesis: Hypothesis,
        context: str,
        history: Sequence[HistoryItem],
    ) -> EvaluationResult:
        """
        Evaluate a hypothesis against its verification transcript.

        Args:
            hypothesis: Hypothesis under review
            context: Original failure description
            history: Full history of the verification sub-session

        Returns:
            EvaluationResult; inconclusive with low confidence on service failure
        """
        prompt = build_evaluation_prompt(
            hypothesis, context, history, language=self.response_language
        )
        try:
            response = await self.reasoning_service.submit(prompt)
        except RateLimitedError as e:
            self.logger.warning("evaluation_rate_limited", hypothesis_id=hypothesis.id, error=str(e))
            return self._unavailable(hypothesis, "rate limited")
        except ReasoningServiceError as e:
            self.logger.error("evaluation_failed", hypothesis_id=hypothesis.id, error=str(e))
            return self._unavailable(hypothesis, "service error")

        result = parse_evaluation(response, hypothesis.id)
        self.logger.info(
            "hypothesis_evaluated",
            hypothesis_id=hypothesis.id,
            status=result.status.value,
            confidence=result.confidence,
        )
        return result

    def _unavailable(self, hypothesis: Hypothesis, cause: str) -> EvaluationResult:
        return EvaluationResult(
            hypothesis_id=hypothesis.id,
            status=HypothesisStatus.INCONCLUSIVE,
            confidence=FAILURE_CONFIDENCE,
            confidence_level=confidence_level(FAILURE_CONFIDENCE),
            reasoning=f"Evaluation could not be performed ({cause}).",
        )
