"""
Investigation Prompts

Prompt templates for the root-cause analysis engine:
- THINKING_PROMPT: one ReAct cycle (thought plus <Action> or <FinalAnswer>)
- FINAL_ANSWER_PROMPT / FORCED_COMPLETION_PROMPT: the root-cause report
- HYPOTHESES_PROMPT: Tree-of-Thought breadth step
- EVALUATION_PROMPT: verdict on a single hypothesis
- REPORT_PROMPT: recommendations for a confirmed hypothesis

The builder functions fill the templates. Output markers (<Action>,
<FinalAnswer>, <Hypothesis N>, <Evaluation>, <Recommendations>) and labels are
the ones read by ``failure_analyst.core.domain.parsing``.
"""

import json
from collections.abc import Iterable, Sequence

from failure_analyst.core.domain.models import HistoryItem, Hypothesis
from failure_analyst.core.tools.registry import ToolDescription

MAX_OBSERVATION_CHARS = 4000

THINKING_PROMPT = """You are an experienced site reliability engineer investigating an operational failure.
Work step by step: reason about what you know, then either query one diagnostic tool or give your conclusion.

<Context>
{context}
</Context>

<AnalysisHistory>
{history}
</AnalysisHistory>

<AvailableTools>
{tools}
</AvailableTools>

Respond in exactly this format:

Thought: <your reasoning about the evidence so far and what is still missing>

Then EITHER one tool call:
<Action>{{"tool": "<tool name>", "parameters": {{"<name>": "<value>"}}}}</Action>

OR, when the evidence identifies the root cause (or no tool can add anything useful):
<FinalAnswer>
<root cause, the evidence supporting it, and its impact>
</FinalAnswer>

Rules:
- Use only the tools listed above, with their declared parameters.
- Do not repeat a tool call whose result is already in the analysis history.
- Cycle {cycle} of {max_cycles}.{nudge}
- Respond in {language}."""

CLOSING_NUDGE = (
    "\n- This is the last cycle. Unless one more query is essential, "
    "give your <FinalAnswer> now."
)

REPORT_SECTIONS = """## Issue Summary
## Root Cause
Severity: <critical|high|medium|low>
Confidence: <0-100>%
## Referenced Logs / Metrics
## Timeline Analysis
## Recommended Actions
## Prevention Measures"""

FINAL_ANSWER_PROMPT = """You are an experienced site reliability engineer. Write the root-cause analysis for the failure below
based on the investigation so far.

<Context>
{context}
</Context>

<AnalysisHistory>
{history}
</AnalysisHistory>
{draft}
Structure the report with these Markdown sections:
{sections}

Only cite evidence that appears in the analysis history. Respond in {language}."""

FORCED_COMPLETION_PROMPT = """You are an experienced site reliability engineer. The investigation below has reached its step limit.
No further data can be collected. Using ONLY the data gathered so far, give your best root-cause analysis,
say clearly which conclusions are uncertain and what data would confirm them.

<Context>
{context}
</Context>

<AnalysisHistory>
{history}
</AnalysisHistory>

Structure the report with these Markdown sections:
{sections}

Respond in {language}."""

HYPOTHESES_PROMPT = """You are an experienced site reliability engineer. Propose up to {max_hypotheses} distinct,
testable hypotheses for the root cause of the failure below, most likely first.

<Context>
{context}
</Context>
{knowledge}
Available diagnostic tools (each hypothesis must be checkable with them):
{tools}

Use exactly this format for each hypothesis:

<Hypothesis 1>
Description: <one-sentence root-cause hypothesis>
Confidence: <0-100>
Reasoning: <why this is plausible and what would prove it>
Source: <knowledge_base if it comes from the knowledge base results, otherwise llm>
</Hypothesis 1>

Respond in {language}, but keep the labels and tags exactly as shown."""

KNOWLEDGE_SECTION = """
<KnowledgeBase>
{knowledge}
</KnowledgeBase>
"""

EVALUATION_PROMPT = """You are reviewing a root-cause hypothesis against the evidence collected to verify it.

<Context>
{context}
</Context>

<Hypothesis>
{hypothesis}
</Hypothesis>

<VerificationTranscript>
{history}
</VerificationTranscript>

Decide whether the evidence confirms or rejects the hypothesis. If the evidence is insufficient, say inconclusive.
Answer in exactly this format:

<Evaluation>
Status: <confirmed|rejected|inconclusive>
Confidence: <0-100>
Reasoning: <the specific evidence behind the verdict>
</Evaluation>

Respond in {language}, but keep the labels and status words exactly as shown."""

REPORT_PROMPT = """The following root cause was confirmed for the failure below.

<Context>
{context}
</Context>

<ConfirmedRootCause>
{hypothesis}
Evaluator reasoning: {evaluation}
</ConfirmedRootCause>

<VerificationTranscript>
{history}
</VerificationTranscript>

Give concrete remediation advice in exactly this format:

<Recommendations>
Recommended Actions:
<numbered list of immediate actions>
Prevention Measures:
<numbered list of measures that prevent recurrence>
</Recommendations>

Respond in {language}, but keep the labels and tags exactly as shown."""

HYPOTHESIS_CONTEXT = """{context}

Hypothesis under verification:
{description}
(Reasoning: {reasoning})

Collect evidence that confirms or rules out this hypothesis."""


def format_tool_catalogue(tools: Iterable[ToolDescription]) -> str:
    """Render the tool catalogue with each tool's parameter schema."""
    lines = []
    for tool in tools:
        lines.append(f"- {tool.name}: {tool.description}")
        lines.append(f"  parameters: {json.dumps(tool.to_schema(), ensure_ascii=False)}")
    return "\n".join(lines) if lines else "(no tools available)"


def _truncate(text: str, limit: int = MAX_OBSERVATION_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"\n... [truncated {len(text) - limit} characters]"


def format_history(history: Sequence[HistoryItem]) -> str:
    """Render the full analysis history, oldest cycle first."""
    if not history:
        return "(no analysis yet)"
    blocks = []
    for number, item in enumerate(history, start=1):
        block = [f"## Cycle {number}", f"Thought: {item.thinking}"]
        if item.action is not None:
            block.append(
                "Action: "
                + json.dumps(
                    {"tool": item.action.tool, "parameters": item.action.parameters},
                    ensure_ascii=False,
                    default=str,
                )
            )
        if item.observation is not None:
            block.append(f"Observation: {_truncate(item.observation)}")
        blocks.append("\n".join(block))
    return "\n\n".join(blocks)


def format_hypothesis(hypothesis: Hypothesis) -> str:
    return (
        f"Description: {hypothesis.description}\n"
        f"Confidence: {round(hypothesis.confidence * 100)}\n"
        f"Reasoning: {hypothesis.reasoning or '-'}"
    )


def build_thinking_prompt(
    context: str,
    tools: Iterable[ToolDescription],
    history: Sequence[HistoryItem],
    cycle: int,
    max_cycles: int,
    language: str = "English",
) -> str:
    """
    Build the prompt for one ReAct cycle.

    Args:
        context: Failure description
        tools: Tool catalogue in registration order
        history: Every prior cycle
        cycle: 1-based number of the cycle about to run
        max_cycles: Cycle ceiling
        language: Language for the model's answer
    """
    return THINKING_PROMPT.format(
        context=context,
        history=format_history(history),
        tools=format_tool_catalogue(tools),
        cycle=cycle,
        max_cycles=max_cycles,
        nudge=CLOSING_NUDGE if cycle >= max_cycles else "",
        language=language,
    )


def build_final_answer_prompt(
    context: str,
    history: Sequence[HistoryItem],
    proposed_answer: str | None = None,
    language: str = "English",
) -> str:
    draft = ""
    if proposed_answer:
        draft = f"\n<DraftAnswer>\n{proposed_answer}\n</DraftAnswer>\n"
    return FINAL_ANSWER_PROMPT.format(
        context=context,
        history=format_history(history),
        draft=draft,
        sections=REPORT_SECTIONS,
        language=language,
    )


def build_forced_completion_prompt(
    context: str, history: Sequence[HistoryItem], language: str = "English"
) -> str:
    return FORCED_COMPLETION_PROMPT.format(
        context=context,
        history=format_history(history),
        sections=REPORT_SECTIONS,
        language=language,
    )


def build_hypotheses_prompt(
    context: str,
    max_hypotheses: int,
    tools: Iterable[ToolDescription],
    knowledge: str | None = None,
    language: str = "English",
) -> str:
    return HYPOTHESES_PROMPT.format(
        max_hypotheses=max_hypotheses,
        context=context,
        knowledge=KNOWLEDGE_SECTION.format(knowledge=_truncate(knowledge)) if knowledge else "",
        tools=format_tool_catalogue(tools),
        language=language,
    )


def build_evaluation_prompt(
    hypothesis: Hypothesis,
    context: str,
    history: Sequence[HistoryItem],
    language: str = "English",
) -> str:
    return EVALUATION_PROMPT.format(
        context=context,
        hypothesis=format_hypothesis(hypothesis),
        history=format_history(history),
        language=language,
    )


def build_report_prompt(
    context: str,
    hypothesis: Hypothesis,
    history: Sequence[HistoryItem],
    language: str = "English",
) -> str:
    evaluation = hypothesis.evaluation.reasoning if hypothesis.evaluation else "-"
    return REPORT_PROMPT.format(
        context=context,
        hypothesis=format_hypothesis(hypothesis),
        evaluation=evaluation,
        history=format_history(history),
        language=language,
    )


def build_hypothesis_context(context: str, hypothesis: Hypothesis) -> str:
    """Context for the ReAct sub-session that verifies a hypothesis."""
    return HYPOTHESIS_CONTEXT.format(
        context=context,
        description=hypothesis.description,
        reasoning=hypothesis.reasoning or "-",
    )
