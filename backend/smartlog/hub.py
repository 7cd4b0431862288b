"""Broadcast hub routing parsed records to connected viewer sessions.

Every session owns a bounded outbound queue that a WebSocket writer task
drains.  Publishing only ever calls ``put_nowait`` on those queues, so a slow
viewer loses messages instead of stalling ingestion or other viewers.

All hub state lives on the event loop and no method suspends part-way
through a mutation, so each publish/subscribe is atomic per source.  A
record published at the same instant a session subscribes may show up in
both the history snapshot and the live stream, or be missed by it; that
window is accepted.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any

from smartlog.log_buffer import DEFAULT_CAPACITY, RingBuffer
from smartlog.records import LogRecord

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

_session_ids = itertools.count(1)


class Session:
    """One connected viewer: outbound queue plus the paths it watches."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.id = next(_session_ids)
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self.subscriptions: set[str] = set()
        self.dropped = 0

    def __repr__(self) -> str:
        return f"Session(id={self.id}, subscriptions={sorted(self.subscriptions)})"

    def deliver(self, message: dict[str, Any]) -> bool:
        """Queue *message* for sending; drop it if the viewer is backed up."""
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Dropping %s message for slow session %d (%d dropped so far)",
                message.get("type"),
                self.id,
                self.dropped,
            )
            return False
        return True


@dataclass
class _Channel:
    buffer: RingBuffer
    subscribers: set[Session] = field(default_factory=set)


class BroadcastHub:
    """Per-source history and subscriber sets shared by tails and viewers."""

    def __init__(
        self,
        history_size: int = DEFAULT_CAPACITY,
        session_queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._history_size = history_size
        self._session_queue_size = session_queue_size
        self._channels: dict[str, _Channel] = {}
        self._sessions: set[Session] = set()

    def _channel(self, path: str) -> _Channel:
        channel = self._channels.get(path)
        if channel is None:
            channel = _Channel(RingBuffer(self._history_size))
            self._channels[path] = channel
        return channel

    # ── Sessions ─────────────────────────────────────────────────────────────

    def open_session(self) -> Session:
        session = Session(self._session_queue_size)
        self._sessions.add(session)
        logger.info("Session %d connected (%d total)", session.id, len(self._sessions))
        return session

    def subscribe(self, session: Session, path: str) -> None:
        """Add *path* to the session and send it that source's history."""
        channel = self._channel(path)
        channel.subscribers.add(session)
        session.subscriptions.add(path)
        entries = [record.as_dict() for record in channel.buffer.snapshot()]
        session.deliver({"type": "buffer", "file_path": path, "entries": entries})
        logger.debug("Session %d selected %s (%d history entries)", session.id, path, len(entries))

    def unsubscribe_all(self, session: Session) -> None:
        for path in session.subscriptions:
            channel = self._channels.get(path)
            if channel is None:
                continue
            channel.subscribers.discard(session)
            if not channel.subscribers and not len(channel.buffer):
                del self._channels[path]
        session.subscriptions.clear()
        self._sessions.discard(session)
        logger.info("Session %d disconnected (%d remaining)", session.id, len(self._sessions))

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def subscribers(self, path: str) -> set[Session]:
        channel = self._channels.get(path)
        return set(channel.subscribers) if channel else set()

    # ── Records ──────────────────────────────────────────────────────────────

    def publish(self, path: str, record: LogRecord) -> None:
        """Store *record* in the source's history and fan it out."""
        channel = self._channel(path)
        channel.buffer.append(record)
        if not channel.subscribers:
            return
        message = {"type": "log", "file_path": path, "entry": record.as_dict()}
        for session in list(channel.subscribers):
            try:
                session.deliver(message)
            except Exception:
                logger.exception("Delivery to session %d failed", session.id)

    def history(
        self,
        path: str,
        limit: int | None = None,
        level: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return retained records for *path* (newest last), optionally filtered."""
        channel = self._channels.get(path)
        if channel is None:
            return []
        records = channel.buffer.snapshot()
        if level:
            wanted = level.upper()
            records = [r for r in records if r.level == wanted]
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return [r.as_dict() for r in records]

    def clear_history(self, path: str) -> None:
        channel = self._channels.get(path)
        if channel is None:
            return
        channel.buffer.clear()
        if not channel.subscribers:
            del self._channels[path]
