"""
Session Store Protocol

Contract for durable storage of investigation checkpoints between
invocations. A store must round-trip every Session field, history order
included.
"""

from typing import Protocol

from failure_analyst.core.domain.models import Session


class SessionStoreProtocol(Protocol):
    """Durable owner of Session checkpoints."""

    async def load(self, session_id: str) -> Session | None:
        """Return the stored session, or None if it does not exist."""
        ...

    async def save(self, session_id: str, session: Session) -> None:
        """Persist the session, replacing any previous checkpoint."""
        ...

    async def mark_complete(self, session_id: str) -> None:
        """Flag a stored session as finished (sets a final answer if missing)."""
        ...

    async def delete(self, session_id: str) -> bool:
        """Remove a session. Returns False if it did not exist."""
        ...

    async def list_sessions(self) -> list[str]:
        """Return the ids of all stored sessions."""
        ...
