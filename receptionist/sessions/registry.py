"""
In-memory registry of live sessions with an optional durable side-store.

The registry is the only structure shared by concurrent calls, so every
change to its map happens under an ``asyncio.Lock``. Field changes reported
by a session are marked dirty and flushed by one writer per session,
which reads the current values at write time and retries with backoff;
the in-memory session stays the source of truth. When a session
ends it is flushed and archived once, then dropped from memory after a
grace delay that lets trailing writes land.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional

from receptionist.interfaces import DurableSessionStore, SessionArchive
from receptionist.schemas.conversation_schema import SessionStatus
from receptionist.sessions.session import Session
from receptionist.telemetry import LoggingTelemetry, SafeTelemetry, Telemetry

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Live sessions keyed by call id."""

    def __init__(
        self,
        store: Optional[DurableSessionStore] = None,
        archive: Optional[SessionArchive] = None,
        telemetry: Optional[Telemetry] = None,
        cleanup_delay_sec: float = 120.0,
        ttl_seconds: int = 3600,
        sync_retries: int = 3,
        sync_retry_delay_sec: float = 1.0,
    ) -> None:
        if sync_retries < 1:
            raise ValueError(f"sync_retries must be >= 1, got {sync_retries}")
        self.store = store
        self.archive = archive
        self.telemetry = SafeTelemetry(telemetry or LoggingTelemetry())
        self.cleanup_delay_sec = cleanup_delay_sec
        self.ttl_seconds = ttl_seconds
        self.sync_retries = sync_retries
        self.sync_retry_delay_sec = sync_retry_delay_sec
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._finalized: set[str] = set()
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._dirty: dict[str, set[str]] = {}
        self._flush_scheduled: set[str] = set()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    async def add(self, session: Session) -> Session:
        """Register ``session``; if the call id is already live, the existing session wins."""
        async with self._lock:
            existing = self._sessions.get(session.id)
            if existing is not None:
                return existing
            self._sessions[session.id] = session
        session.add_listener(self._on_field_change)
        if self.store is not None:
            self._spawn(self._save_snapshot(session), f"save {session.id}")
        logger.info("Registered session %s for business %s (%d live)", session.id, session.business_id, len(self))
        return session

    async def get(self, session_id: str, business_id: Optional[str] = None) -> Optional[Session]:
        """Live session for ``session_id``, rehydrating from the durable store on a miss."""
        session = self._sessions.get(session_id)
        if session is not None or self.store is None or business_id is None:
            return session

        snapshot = await self.store.load(session_id, business_id)
        if not snapshot:
            return None
        restored = Session.from_snapshot(snapshot)
        if restored.status == SessionStatus.ENDED:
            logger.info("Session %s found in store but already ended", session_id)
            return None
        async with self._lock:
            existing = self._sessions.get(session_id)
            if existing is not None:
                return existing
            self._sessions[session_id] = restored
        restored.add_listener(self._on_field_change)
        logger.info("Rehydrated session %s from durable store", session_id)
        return restored

    async def remove(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is not None:
            session.remove_listener(self._on_field_change)
            self._write_locks.pop(session_id, None)
            self._dirty.pop(session_id, None)
            self._flush_scheduled.discard(session_id)
            logger.debug("Removed session %s (%d live)", session_id, len(self))
        return session

    # --- background work ---

    def _spawn(self, coro: Awaitable[Any], label: str) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; dropping background %s", label)
            coro.close()  # type: ignore[attr-defined]
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait until all scheduled syncs, flushes and removals have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding background work; used at shutdown."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    def _on_field_change(self, session: Session, field_name: str, value: Any) -> None:
        if self.store is not None:
            self._dirty.setdefault(session.id, set()).add(field_name)
            if session.id not in self._flush_scheduled:
                self._flush_scheduled.add(session.id)
                self._spawn(self._flush_fields(session), f"sync {session.id}")
        if field_name == "status" and value == SessionStatus.ENDED.value:
            if session.id not in self._finalized:
                self._finalized.add(session.id)
                self._spawn(self._finalize(session), f"finalize {session.id}")

    def _write_lock(self, session_id: str) -> asyncio.Lock:
        lock = self._write_locks.get(session_id)
        if lock is None:
            lock = self._write_locks[session_id] = asyncio.Lock()
        return lock

    async def _flush_fields(self, session: Session) -> bool:
        """Write every dirty field of ``session`` with its value at write time."""
        async with self._write_lock(session.id):
            self._flush_scheduled.discard(session.id)
            names = sorted(self._dirty.pop(session.id, ()))
            if not names:
                return True
            written = await self._with_retry(
                lambda: self._write_fields(session, names),
                f"sync {','.join(names)}",
                session,
            )
            if not written:
                # Picked up again by the next change or the end-of-call flush.
                self._dirty.setdefault(session.id, set()).update(names)
            return written

    async def _write_fields(self, session: Session, names: list[str]) -> None:
        fields = {name: session.serialize_field(name) for name in names}
        await self.store.save_fields(session.id, session.business_id, fields)
        await self.store.extend_ttl(session.id, session.business_id, self.ttl_seconds)

    async def _save_snapshot(self, session: Session) -> bool:
        async with self._write_lock(session.id):
            return await self._with_retry(
                lambda: self.store.save(session.to_snapshot()), "save session", session
            )

    async def _with_retry(self, operation, label: str, session: Session) -> bool:
        """Run ``operation`` with exponential backoff. Final failure is reported, not raised."""
        for attempt in range(1, self.sync_retries + 1):
            try:
                await operation()
                return True
            except Exception as exc:
                if attempt == self.sync_retries:
                    logger.warning(
                        "Durable %s failed for session %s after %d attempts: %s",
                        label, session.id, attempt, exc,
                    )
                    self.telemetry.report_error(exc, {
                        "session_id": session.id,
                        "business_id": session.business_id,
                        "operation": label,
                        "attempts": attempt,
                    })
                    return False
                await asyncio.sleep(self.sync_retry_delay_sec * (2 ** (attempt - 1)))
        return False

    async def _finalize(self, session: Session) -> None:
        """Flush and archive an ended session once, then drop it after the grace delay."""
        if self.store is not None:
            await self._save_snapshot(session)
        if self.archive is not None:
            snapshot = session.to_snapshot()
            await self._with_retry(
                lambda: self.archive.archive(snapshot, list(session.interactions)),
                "archive session",
                session,
            )
        if self.cleanup_delay_sec > 0:
            await asyncio.sleep(self.cleanup_delay_sec)
        await self.remove(session.id)
        self._finalized.discard(session.id)
        logger.info("Session %s cleaned up", session.id)
