"""
TranscriptionClient: capability interface for the external speech-to-text backend.

Implementations: MockTranscriptionClient (canned text), LocalWhisperClient
(faster-whisper), CloudflareWhisperClient (Workers AI). The engine assumes nothing
about them beyond this contract: calls may be slow, may fail, and may complete in
any order across participants. Blocking work runs in an executor.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class TranscriptionResult:
    """Result of one transcribe call for one participant's combined audio."""

    text: str
    confidence: float  # 0.0–1.0 estimate


class TranscriptionFailure(RuntimeError):
    """Backend error or timeout for one participant's audio in one pass."""

    def __init__(self, message: str, provider_name: str = "", participant_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.provider_name = provider_name
        self.participant_id = participant_id


class TranscriptionClient(ABC):
    """Accepts raw PCM 16-bit mono bytes (one participant, concatenated chunks)."""

    @abstractmethod
    async def transcribe(self, payload: bytes, participant_id: str) -> TranscriptionResult:
        """
        Transcribe one participant's audio for one processing pass.
        Raise TranscriptionFailure on backend errors. Blank text is a valid result.
        Must not block the event loop.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        ...
