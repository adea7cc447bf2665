"""
Investigation Engine Protocol

Both the ReAct agent and the hypothesis orchestrator expose the same
step-wise interface, so the executor can drive either one.
"""

from typing import Protocol

from failure_analyst.core.domain.models import EngineMode, Session, StepResult


class InvestigationEngineProtocol(Protocol):
    """Advances a session by one bounded unit of work."""

    mode: EngineMode

    def new_session(self, session_id: str, context: str) -> Session:
        ...

    async def execute_step(self, session: Session) -> StepResult:
        ...
