"""
In-Memory Session Store

Keeps encoded checkpoints in a dict. Sessions go through the same JSON codec
as the file store, so callers never share objects with the store.
"""

import structlog

from failure_analyst.core.domain.checkpoint import decode_session, encode_session
from failure_analyst.core.domain.errors import SessionStoreError
from failure_analyst.core.domain.models import Session, utc_now

DEFAULT_COMPLETION_MESSAGE = "Analysis completed."


class InMemorySessionStore:
    """Session store for tests and single-process runs."""

    def __init__(self):
        self._checkpoints: dict[str, str] = {}
        self.logger = structlog.get_logger().bind(component="memory_session_store")

    async def load(self, session_id: str) -> Session | None:
        payload = self._checkpoints.get(session_id)
        return decode_session(payload) if payload is not None else None

    async def save(self, session_id: str, session: Session) -> None:
        session.version += 1
        session.updated_at = utc_now()
        self._checkpoints[session_id] = encode_session(session)
        self.logger.debug("session_saved", session_id=session_id, version=session.version)

    async def mark_complete(self, session_id: str) -> None:
        session = await self.load(session_id)
        if session is None:
            raise SessionStoreError(f"Session {session_id} not found")
        if not session.is_completed:
            session.complete(session.final_answer or DEFAULT_COMPLETION_MESSAGE)
            await self.save(session_id, session)

    async def delete(self, session_id: str) -> bool:
        return self._checkpoints.pop(session_id, None) is not None

    async def list_sessions(self) -> list[str]:
        return sorted(self._checkpoints)
