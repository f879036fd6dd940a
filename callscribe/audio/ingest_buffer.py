"""
AudioIngestBuffer: time-based retention window of recent chunks per session.

- Chunks from both participants go into one ordered list on the session (arrival order).
- On every append, chunks with timestamp <= now - AUDIO_RETENTION_MS are evicted,
  so a session never holds more than ~10s of audio regardless of call length.
- "now" is the server clock (injected); chunk timestamps come from the producer.
"""
from __future__ import annotations

from typing import TYPE_CHECKING

from callscribe.audio.models import AudioChunk
from callscribe.config import get_settings

if TYPE_CHECKING:
    from callscribe.session_store import ConversationSession


class AudioIngestBuffer:
    """Appends chunks to a session and enforces the retention window."""

    def __init__(self, retention_ms: int | None = None) -> None:
        settings = get_settings()
        self._retention_ms = retention_ms if retention_ms is not None else settings.AUDIO_RETENTION_MS

    @property
    def retention_ms(self) -> int:
        return self._retention_ms

    def append(self, session: "ConversationSession", chunk: AudioChunk, now: int) -> int:
        """Insert chunk, record its participant, evict stale chunks. Returns number evicted."""
        session.audio_chunks.append(chunk)
        session.participants.add(chunk.participant_id)
        session.last_activity_time = max(session.last_activity_time, now)
        return self.evict(session, now)

    def evict(self, session: "ConversationSession", now: int) -> int:
        cutoff = now - self._retention_ms
        before = len(session.audio_chunks)
        session.audio_chunks = [c for c in session.audio_chunks if c.timestamp > cutoff]
        return before - len(session.audio_chunks)
