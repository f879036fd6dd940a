"""MockTranscriptionClient: fixed-delay stub returning canned phrases (no model, no network)."""
from __future__ import annotations

import asyncio
import itertools

from callscribe.asr.base import TranscriptionClient, TranscriptionResult

CANNED_PHRASES = (
    "Hello, how are you today?",
    "I'm calling about the project",
    "Can you help me with this?",
    "Thank you for your time",
    "Let's schedule a meeting",
)


class MockTranscriptionClient(TranscriptionClient):
    """Cycles through CANNED_PHRASES so runs are reproducible."""

    def __init__(self, delay_sec: float = 0.5, confidence: float = 0.9) -> None:
        self._delay_sec = delay_sec
        self._confidence = confidence
        self._phrases = itertools.cycle(CANNED_PHRASES)

    async def transcribe(self, payload: bytes, participant_id: str) -> TranscriptionResult:
        if self._delay_sec > 0:
            await asyncio.sleep(self._delay_sec)
        if not payload:
            return TranscriptionResult(text="", confidence=0.0)
        return TranscriptionResult(text=next(self._phrases), confidence=self._confidence)

    @property
    def name(self) -> str:
        return "mock"
