"""Live reading fan-out to Server-Sent Events viewers."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator, Mapping
from contextlib import suppress
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

PING_EVENT = 'event: ping\ndata: "ok"\n\n'
_CLOSE_SENTINEL = ""


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_event(payload: Mapping[str, Any]) -> str:
    """Encode one reading as an SSE ``data:`` frame."""
    return f"data: {json.dumps(dict(payload), default=str)}\n\n"


class ViewerGone(ConnectionError):
    """Raised when a frame cannot be delivered to a viewer."""


class ViewerSession:
    """One open live connection with a bounded buffer of pending frames.

    A viewer that lets its buffer fill up is treated as dead: the failing
    ``send`` gets it dropped by the broadcaster.
    """

    def __init__(self, *, max_pending: int = 100) -> None:
        self.id = uuid.uuid4().hex
        self.opened_at = _utcnow()
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_pending)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, frame: str) -> None:
        if self._closed:
            raise ViewerGone(f"viewer {self.id} is closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull as exc:
            raise ViewerGone(f"viewer {self.id} is not keeping up") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake a reader blocked on an empty queue; a full queue needs no wake-up.
        with suppress(asyncio.QueueFull):
            self._queue.put_nowait(_CLOSE_SENTINEL)

    async def frames(self) -> AsyncIterator[str]:
        """Yield queued frames until the session is closed and drained."""
        while True:
            frame = await self._queue.get()
            if frame == _CLOSE_SENTINEL:
                return
            yield frame
            if self._closed and self._queue.empty():
                return


class LiveBroadcaster:
    """Track connected viewers and push every stored reading to them."""

    def __init__(self, *, max_pending: int = 100) -> None:
        self._max_pending = max_pending
        self._sessions: set[ViewerSession] = set()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def subscribe(self, session: ViewerSession | None = None) -> ViewerSession:
        """Register a viewer and queue the initial keepalive frame."""
        session = session or ViewerSession(max_pending=self._max_pending)
        await session.send(PING_EVENT)
        async with self._lock:
            self._sessions.add(session)
        logger.info("Viewer %s connected; %d viewers active", session.id, self.get_connection_count())
        return session

    async def unsubscribe(self, session: ViewerSession) -> None:
        """Remove a viewer. Safe to call for viewers that are already gone."""
        async with self._lock:
            removed = session in self._sessions
            self._sessions.discard(session)
        session.close()
        if removed:
            logger.info(
                "Viewer %s disconnected; %d viewers remaining",
                session.id,
                self.get_connection_count(),
            )

    async def disconnect_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions)
            self._sessions.clear()
        for session in sessions:
            session.close()

    def get_connection_count(self) -> int:
        return len(self._sessions)

    # ------------------------------------------------------------------
    # Broadcasting
    # ------------------------------------------------------------------
    async def publish(self, record: Mapping[str, Any]) -> int:
        """Send ``record`` to every viewer; returns how many received it."""
        async with self._lock:
            sessions = list(self._sessions)
        if not sessions:
            return 0
        frame = format_event(record)
        logger.debug("Broadcasting to %d viewers: %s", len(sessions), frame[:100])
        delivered = await self._send_all(sessions, frame)
        return delivered

    async def cleanup_stale(self) -> int:
        """Ping every viewer and drop the ones that cannot receive."""
        async with self._lock:
            sessions = list(self._sessions)
        delivered = await self._send_all(sessions, PING_EVENT)
        return len(sessions) - delivered

    async def _send_all(self, sessions: list[ViewerSession], frame: str) -> int:
        failed: list[ViewerSession] = []
        for session in sessions:
            try:
                await session.send(frame)
            except Exception as exc:
                logger.warning("Write to viewer %s failed, removing: %s", session.id, exc)
                failed.append(session)
        for session in failed:
            await self.unsubscribe(session)
        return len(sessions) - len(failed)


async def event_stream(
    broadcaster: LiveBroadcaster, session: ViewerSession
) -> AsyncIterator[str]:
    """Drain ``session`` for a streaming response and unsubscribe on exit."""
    try:
        async for frame in session.frames():
            yield frame
    finally:
        with suppress(Exception):
            await broadcaster.unsubscribe(session)


__all__ = [
    "PING_EVENT",
    "LiveBroadcaster",
    "ViewerGone",
    "ViewerSession",
    "event_stream",
    "format_event",
]
