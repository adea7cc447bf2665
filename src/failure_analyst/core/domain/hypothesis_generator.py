"""
Hypothesis Generator - Tree-of-Thought Breadth Step

Asks the model for competing root-cause hypotheses, optionally grounded in a
knowledge-base tool, and returns them ordered by confidence. Generation never
fails: when the model is unavailable or its answer is unreadable a single
generic hypothesis is returned so verification always has a lead.
"""

import structlog

from failure_analyst.core.domain.errors import ReasoningServiceError, ToolError
from failure_analyst.core.domain.models import Hypothesis, HypothesisSource
from failure_analyst.core.domain.parsing import parse_hypotheses
from failure_analyst.core.interfaces.llm import ReasoningServiceProtocol
from failure_analyst.core.prompts.investigation_prompts import build_hypotheses_prompt
from failure_analyst.core.tools.registry import ToolRegistry

FALLBACK_CONFIDENCE = 0.5
KNOWLEDGE_QUERY_PARAMETER = "query"


class HypothesisGenerator:
    """Generates up to ``max_hypotheses`` candidate root causes for a failure."""

    def __init__(
        self,
        reasoning_service: ReasoningServiceProtocol,
        tool_registry: ToolRegistry,
        max_hypotheses: int = 3,
        knowledge_tool: str | None = None,
        response_language: str = "English",
    ):
        if max_hypotheses < 1:
            raise ValueError("max_hypotheses must be at least 1")
        self.reasoning_service = reasoning_service
        self.tool_registry = tool_registry
        self.max_hypotheses = max_hypotheses
        self.knowledge_tool = knowledge_tool
        self.response_language = response_language
        self.logger = structlog.get_logger().bind(component="hypothesis_generator")

    async def generate(self, context: str) -> list[Hypothesis]:
        """
        Generate hypotheses for a failure.

        Args:
            context: Failure description

        Returns:
            Non-empty list, at most ``max_hypotheses`` long, sorted by confidence
            descending with ties kept in the order the model emitted them
        """
        knowledge = await self._search_knowledge(context)
        prompt = build_hypotheses_prompt(
            context=context,
            max_hypotheses=self.max_hypotheses,
            tools=self.tool_registry.list_tool_descriptions(),
            knowledge=knowledge,
            language=self.response_language,
        )

        try:
            response = await self.reasoning_service.submit(prompt)
        except ReasoningServiceError as e:
            self.logger.warning(
                "hypothesis_generation_failed", error_type=type(e).__name__, error=str(e)
            )
            return [self._fallback_hypothesis(context)]

        parsed = parse_hypotheses(response)[: self.max_hypotheses]
        if not parsed:
            self.logger.warning("no_hypotheses_parsed", response_preview=(response or "")[:200])
            return [self._fallback_hypothesis(context)]

        hypotheses = [
            Hypothesis(
                id=f"H{number}",
                description=item.description,
                confidence=item.confidence,
                reasoning=item.reasoning,
                source=item.source,
            )
            for number, item in enumerate(parsed, start=1)
        ]
        # sorted() is stable, so equal confidences keep emission order
        hypotheses = sorted(hypotheses, key=lambda h: h.confidence, reverse=True)

        self.logger.info(
            "hypotheses_generated",
            count=len(hypotheses),
            confidences=[h.confidence for h in hypotheses],
            knowledge_used=knowledge is not None,
        )
        return hypotheses

    async def _search_knowledge(self, context: str) -> str | None:
        if not self.knowledge_tool:
            return None
        if not self.tool_registry.has_tool(self.knowledge_tool):
            self.logger.warning("knowledge_tool_not_registered", tool=self.knowledge_tool)
            return None
        try:
            result = await self.tool_registry.execute(
                self.knowledge_tool, {KNOWLEDGE_QUERY_PARAMETER: context}
            )
        except ToolError as e:
            self.logger.warning("knowledge_search_failed", tool=self.knowledge_tool, error=str(e))
            return None

        definition = self.tool_registry.get_tool(self.knowledge_tool)
        return result if definition.has_data(result) else None

    def _fallback_hypothesis(self, context: str) -> Hypothesis:
        return Hypothesis(
            id="H1",
            description=(
                "The failure is caused by an issue in the affected component; "
                "collect logs and metrics around the time of the failure to locate it."
            ),
            confidence=FALLBACK_CONFIDENCE,
            reasoning=f"No specific hypothesis could be generated for: {context[:200]}",
            source=HypothesisSource.LLM,
        )
