"""SpeakerGrouper: select the processing window and split it per participant."""
from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

from callscribe.audio.models import AudioChunk
from callscribe.config import get_settings

if TYPE_CHECKING:
    from callscribe.session_store import ConversationSession


class SpeakerGrouper:
    def __init__(self, window_ms: int | None = None) -> None:
        settings = get_settings()
        self._window_ms = window_ms if window_ms is not None else settings.PROCESS_WINDOW_MS

    def select_window(
        self,
        session: "ConversationSession",
        now: int,
        duration_ms: int | None = None,
    ) -> list[AudioChunk]:
        """Retained chunks with timestamp > now - duration_ms, in arrival order."""
        cutoff = now - (duration_ms if duration_ms is not None else self._window_ms)
        return [c for c in session.audio_chunks if c.timestamp > cutoff]

    @staticmethod
    def group_by_participant(chunks: Iterable[AudioChunk]) -> dict[str, list[AudioChunk]]:
        """participant_id -> chunks. Keys in first-seen order; arrival order kept within each list."""
        grouped: dict[str, list[AudioChunk]] = {}
        for chunk in chunks:
            grouped.setdefault(chunk.participant_id, []).append(chunk)
        return grouped

    @staticmethod
    def combine(chunks: Iterable[AudioChunk]) -> bytes:
        """Concatenate payloads in order; this is what the transcription backend receives."""
        return b"".join(c.payload for c in chunks)
