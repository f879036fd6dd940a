"""
In-memory conversation sessions, keyed by conversation key (room-<a>-<b>).

SessionRegistry is the only owner of the key -> session map. It is created once
per process (app lifespan) and passed to whoever needs it; there is no module-level
store. Other components get a session reference for one operation only.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Callable, Literal, Optional

from callscribe.audio.models import AudioChunk
from callscribe.schemas.transcript import TranscriptEntry

logger = logging.getLogger(__name__)

SessionState = Literal["active", "ended"]
Clock = Callable[[], int]


def unix_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ConversationSession:
    """
    One in-progress call transcript job.

    participants only grows; transcripts is append-only; start_time and
    last_processed_time never decrease. audio_chunks is bounded by the ingest
    buffer's retention window. pass_in_flight / pass_task are owned by the
    scheduler and engine (at most one processing pass per session).
    """

    id: str
    start_time: int
    participants: set[str] = field(default_factory=set)
    audio_chunks: list[AudioChunk] = field(default_factory=list)
    transcripts: list[TranscriptEntry] = field(default_factory=list)
    last_processed_time: int = 0
    last_activity_time: int = 0
    state: SessionState = "active"
    pass_in_flight: bool = False
    pass_task: Optional["asyncio.Task[None]"] = field(default=None, repr=False)

    def append_transcript(self, entry: TranscriptEntry) -> None:
        self.transcripts.append(entry)
        self.last_activity_time = max(self.last_activity_time, entry.timestamp)


class SessionRegistry:
    """Owned map of conversation key -> ConversationSession with an injected clock."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or unix_ms
        self._lock = RLock()
        self._sessions: dict[str, ConversationSession] = {}

    @property
    def clock(self) -> Clock:
        return self._clock

    def get_or_create(self, key: str) -> ConversationSession:
        """Return the live session for key, creating it (start_time = now) if absent. Idempotent."""
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                now = self._clock()
                session = ConversationSession(id=key, start_time=now, last_activity_time=now)
                self._sessions[key] = session
                logger.info("[%s] session created", key)
            return session

    def get(self, key: str) -> ConversationSession | None:
        with self._lock:
            return self._sessions.get(key)

    def remove(self, key: str) -> ConversationSession | None:
        """Remove and return the session (marked ended), or None if it was not registered."""
        with self._lock:
            session = self._sessions.pop(key, None)
        if session is not None:
            session.state = "ended"
            logger.info("[%s] session removed", key)
        return session

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._sessions)

    def idle_keys(self, now: int, idle_ms: int) -> list[str]:
        """Keys whose last activity is at least idle_ms before now."""
        with self._lock:
            return [
                key
                for key, session in self._sessions.items()
                if now - session.last_activity_time >= idle_ms
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._sessions
