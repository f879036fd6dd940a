"""Audio chunk as delivered by the transport layer (already gated and chunked on the capture side)."""
from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AudioChunk:
    """
    One chunk of one participant's audio.

    timestamp: unix ms, supplied by the producer.
    payload: raw PCM 16-bit mono bytes; concatenated per participant before transcription.
    audio_level: non-negative activity heuristic computed upstream (0 = silence).
    """

    participant_id: str
    timestamp: int
    payload: bytes
    audio_level: float = 0.0
