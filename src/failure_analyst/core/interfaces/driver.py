"""
Continuation Scheduler Protocol

The engine performs one bounded step per invocation. When a step is not the
last one, the executor asks a scheduler to start the next invocation for the
same session. Scheduling is fire-and-forget.
"""

from typing import Any, Protocol


class ContinuationSchedulerProtocol(Protocol):
    """Starts a fresh invocation for a session asynchronously."""

    async def schedule_continuation(self, session_id: str, payload: dict[str, Any]) -> None:
        """
        Request another invocation.

        Args:
            session_id: Session to continue
            payload: Invocation request payload (see InvocationRequest.to_payload)
        """
        ...
