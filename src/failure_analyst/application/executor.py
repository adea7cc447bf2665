"""
Application Layer - Investigation Executor

Drives an investigation engine one step per invocation:

    load (or start) session -> execute one step -> save checkpoint
        -> done:      mark the session complete
        -> not done:  ask the continuation scheduler for the next invocation

The engine never loops over steps itself. ``handle_invocation`` is the
trampoline entry point for the API; ``run_to_completion`` bounces locally for
the CLI.
"""

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog

from failure_analyst.core.domain.errors import InvestigationFailedError, ReasoningServiceError
from failure_analyst.core.domain.models import Session, StepResult
from failure_analyst.core.interfaces.driver import ContinuationSchedulerProtocol
from failure_analyst.core.interfaces.engine import InvestigationEngineProtocol
from failure_analyst.core.interfaces.state import SessionStoreProtocol

logger = structlog.get_logger()

DEFAULT_MAX_INVOCATIONS = 100


@dataclass
class InvocationRequest:
    """Payload of one engine invocation."""

    session_id: str
    context: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"session_id": self.session_id}
        if self.context is not None:
            payload["context"] = self.context
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "InvocationRequest":
        if not payload.get("session_id"):
            raise ValueError("Invocation payload requires 'session_id'")
        return cls(session_id=payload["session_id"], context=payload.get("context"))


@dataclass
class InvocationOutcome:
    """What a single invocation did."""

    session_id: str
    is_done: bool
    cycle_count: int
    final_answer: str | None = None
    continuation_scheduled: bool = False


@dataclass
class ProgressUpdate:
    """Progress update during local execution.

    Attributes:
        timestamp: When this update occurred
        event_type: started, step or completed
        message: Human-readable message describing the event
        details: Additional structured data about the event
    """

    timestamp: datetime
    event_type: str
    message: str
    details: dict = field(default_factory=dict)


class InvestigationExecutor:
    """Service layer shared by the CLI and API entrypoints."""

    def __init__(
        self,
        engine: InvestigationEngineProtocol,
        store: SessionStoreProtocol,
        scheduler: ContinuationSchedulerProtocol | None = None,
    ):
        """
        Initialize InvestigationExecutor.

        Args:
            engine: ReActAgent or HypothesisOrchestrator
            store: Durable session store
            scheduler: Continuation scheduler; without one, ``handle_invocation``
                       leaves unfinished sessions for a manual resume
        """
        self.engine = engine
        self.store = store
        self.scheduler = scheduler
        self.logger = logger.bind(component="investigation_executor")

    @staticmethod
    def generate_session_id() -> str:
        return uuid.uuid4().hex

    async def start_or_resume_session(
        self, session_id: str, failure_context: str | None = None
    ) -> Session:
        """
        Load an existing session or start a new one.

        Args:
            session_id: Session to resume or create
            failure_context: Failure description; required for a new session,
                             ignored when resuming

        Raises:
            ValueError: If the session does not exist and no context is given
        """
        existing = await self.store.load(session_id)
        if existing is not None:
            self.logger.info(
                "investigation.session.resumed",
                session_id=session_id,
                state=existing.state.value,
                cycle_count=existing.cycle_count,
            )
            return existing

        if not failure_context or not failure_context.strip():
            raise ValueError(f"Session {session_id} does not exist and no failure context was given")

        session = self.engine.new_session(session_id, failure_context.strip())
        await self.store.save(session_id, session)
        self.logger.info(
            "investigation.session.started",
            session_id=session_id,
            engine=session.engine.value,
            context=failure_context[:100],
        )
        return session

    async def execute_step(self, session: Session) -> StepResult:
        """
        Run one engine step.

        Raises:
            InvestigationFailedError: If the reasoning service failed hard
        """
        try:
            return await self.engine.execute_step(session)
        except ReasoningServiceError as e:
            self.logger.error(
                "investigation.step.failed",
                session_id=session.session_id,
                cycle_count=session.cycle_count,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise InvestigationFailedError(session.session_id, str(e)) from e

    async def _persist(self, result: StepResult) -> None:
        session_id = result.session.session_id
        await self.store.save(session_id, result.session)
        if result.is_done:
            await self.store.mark_complete(session_id)
            self.logger.info(
                "investigation.completed",
                session_id=session_id,
                cycle_count=result.session.cycle_count,
                forced=result.session.forced_completion,
            )

    async def handle_invocation(self, request: InvocationRequest) -> InvocationOutcome:
        """
        Process one invocation: one step, one checkpoint, one continuation.

        Raises:
            InvestigationFailedError: If the step failed hard
            ContinuationError: If the next invocation could not be scheduled
        """
        session = await self.start_or_resume_session(request.session_id, request.context)
        if session.is_completed:
            return InvocationOutcome(
                session_id=session.session_id,
                is_done=True,
                cycle_count=session.cycle_count,
                final_answer=session.final_answer,
            )

        result = await self.execute_step(session)
        await self._persist(result)

        scheduled = False
        if not result.is_done and self.scheduler is not None:
            await self.scheduler.schedule_continuation(
                request.session_id, InvocationRequest(request.session_id).to_payload()
            )
            scheduled = True

        return InvocationOutcome(
            session_id=request.session_id,
            is_done=result.is_done,
            cycle_count=result.session.cycle_count,
            final_answer=result.final_answer,
            continuation_scheduled=scheduled,
        )

    async def run_to_completion(
        self,
        failure_context: str | None,
        session_id: str | None = None,
        max_invocations: int = DEFAULT_MAX_INVOCATIONS,
        progress_callback: Callable[[ProgressUpdate], None] | None = None,
    ) -> Session:
        """
        Drive a session to completion in this process.

        Every step is checkpointed, so an interrupted run can be resumed with
        the same session id.

        Raises:
            InvestigationFailedError: If a step fails or ``max_invocations`` is exhausted
        """
        session_id = session_id or self.generate_session_id()
        session = await self.start_or_resume_session(session_id, failure_context)

        def notify(event_type: str, message: str, **details: Any) -> None:
            if progress_callback:
                progress_callback(ProgressUpdate(datetime.now(), event_type, message, details))

        notify("started", f"Investigating session {session_id}", session_id=session_id)

        for _ in range(max_invocations):
            if session.is_completed:
                break
            result = await self.execute_step(session)
            await self._persist(result)
            session = result.session
            notify(
                "step",
                session.last_thinking or f"Step {session.cycle_count} completed",
                cycle_count=session.cycle_count,
                state=session.state.value,
            )
        else:
            if not session.is_completed:
                raise InvestigationFailedError(
                    session_id, f"no answer after {max_invocations} invocations"
                )

        notify("completed", "Investigation completed", session_id=session_id)
        return session
