"""
In-Process Continuation Scheduler

Schedules the next invocation as an asyncio task on the running loop. Used
by the API server when no external re-invocation is configured.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from failure_analyst.core.domain.errors import ContinuationError

InvocationHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class AsyncioContinuationScheduler:
    """Fire-and-forget scheduler running each continuation as a task."""

    def __init__(self, handler: InvocationHandler | None = None):
        self._handler = handler
        self._tasks: set[asyncio.Task] = set()
        self.logger = structlog.get_logger().bind(component="asyncio_scheduler")

    def set_handler(self, handler: InvocationHandler) -> None:
        """Set the coroutine that processes an invocation payload."""
        self._handler = handler

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def schedule_continuation(self, session_id: str, payload: dict[str, Any]) -> None:
        if self._handler is None:
            raise ContinuationError(session_id, RuntimeError("no invocation handler configured"))

        task = asyncio.create_task(self._handler(payload), name=f"continuation-{session_id}")
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(session_id, t))
        self.logger.debug("continuation_scheduled", session_id=session_id)

    def _on_done(self, session_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.logger.warning("continuation_cancelled", session_id=session_id)
            return
        error = task.exception()
        if error is not None:
            self.logger.error(
                "continuation_failed",
                session_id=session_id,
                error_type=type(error).__name__,
                error=str(error),
            )

    async def drain(self) -> None:
        """Wait until no continuation tasks remain (including ones they schedule)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
