"""
File-Based Session Store

Persists investigation checkpoints as JSON files, one per session:

    {work_dir}/sessions/{session_id}.json

Writes are atomic (temp file + rename) and serialized per session with an
asyncio lock. Each save bumps ``Session.version``. There is no cross-process
locking: a single writer per session is assumed.
"""

import asyncio
import os
import re
import tempfile
import time
from pathlib import Path

import aiofiles
import structlog

from failure_analyst.core.domain.checkpoint import decode_session, encode_session
from failure_analyst.core.domain.errors import SessionStoreError
from failure_analyst.core.domain.models import Session, utc_now

DEFAULT_TTL_DAYS = 30
DEFAULT_COMPLETION_MESSAGE = "Analysis completed."

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]{0,127}$")


class FileSessionStore:
    """Session store backed by JSON files in a work directory."""

    def __init__(self, work_dir: str = ".failure_analyst"):
        self.sessions_dir = Path(work_dir) / "sessions"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.locks: dict[str, asyncio.Lock] = {}
        self.logger = structlog.get_logger().bind(component="file_session_store")

    def _get_lock(self, session_id: str) -> asyncio.Lock:
        if session_id not in self.locks:
            self.locks[session_id] = asyncio.Lock()
        return self.locks[session_id]

    def _session_path(self, session_id: str) -> Path:
        if not _SESSION_ID_RE.match(session_id):
            raise SessionStoreError(f"Invalid session id: {session_id!r}")
        return self.sessions_dir / f"{session_id}.json"

    async def _write(self, path: Path, payload: str) -> None:
        fd, temp_path = tempfile.mkstemp(dir=self.sessions_dir, suffix=".tmp")
        os.close(fd)
        try:
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
            os.replace(temp_path, path)
        except OSError:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    async def _read(self, session_id: str) -> Session | None:
        path = self._session_path(session_id)
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except OSError as e:
            raise SessionStoreError(f"Could not read session {session_id}: {e}") from e
        return decode_session(content)

    async def load(self, session_id: str) -> Session | None:
        """
        Load a session checkpoint.

        Raises:
            CheckpointDecodeError: If the stored file is not a valid checkpoint
        """
        session = await self._read(session_id)
        if session is not None:
            self.logger.debug("session_loaded", session_id=session_id, version=session.version)
        return session

    async def save(self, session_id: str, session: Session) -> None:
        """Persist a session and bump its version."""
        path = self._session_path(session_id)
        async with self._get_lock(session_id):
            session.version += 1
            session.updated_at = utc_now()
            try:
                await self._write(path, encode_session(session))
            except OSError as e:
                raise SessionStoreError(f"Could not save session {session_id}: {e}") from e
        self.logger.info("session_saved", session_id=session_id, version=session.version)

    async def mark_complete(self, session_id: str) -> None:
        """
        Mark a stored session COMPLETED, adding a default answer if none is set.

        Raises:
            SessionStoreError: If the session does not exist
        """
        session = await self._read(session_id)
        if session is None:
            raise SessionStoreError(f"Session {session_id} not found")
        if not session.is_completed:
            session.complete(session.final_answer or DEFAULT_COMPLETION_MESSAGE)
            await self.save(session_id, session)
        self.locks.pop(session_id, None)
        self.logger.info("session_marked_complete", session_id=session_id)

    async def delete(self, session_id: str) -> bool:
        path = self._session_path(session_id)
        async with self._get_lock(session_id):
            if not path.exists():
                return False
            path.unlink()
        self.locks.pop(session_id, None)
        self.logger.info("session_deleted", session_id=session_id)
        return True

    async def list_sessions(self) -> list[str]:
        return sorted(p.stem for p in self.sessions_dir.glob("*.json"))

    def cleanup_old_sessions(self, days: int = DEFAULT_TTL_DAYS) -> list[str]:
        """Remove checkpoints not written for ``days`` days. Returns removed ids."""
        cutoff_time = time.time() - (days * 24 * 60 * 60)
        removed = []
        for session_file in self.sessions_dir.glob("*.json"):
            if session_file.stat().st_mtime < cutoff_time:
                session_file.unlink()
                self.locks.pop(session_file.stem, None)
                removed.append(session_file.stem)
                self.logger.info("old_session_removed", session_id=session_file.stem)
        return removed
