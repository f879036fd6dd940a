"""ASR: swappable transcription backends behind TranscriptionClient."""
from __future__ import annotations

from typing import Any

from .base import TranscriptionClient, TranscriptionFailure, TranscriptionResult
from .cloudflare import CloudflareWhisperClient
from .local_whisper import LocalWhisperClient, load_whisper_model, pcm_bytes_to_float32
from .mock import MockTranscriptionClient

__all__ = [
    "TranscriptionClient",
    "TranscriptionFailure",
    "TranscriptionResult",
    "CloudflareWhisperClient",
    "LocalWhisperClient",
    "MockTranscriptionClient",
    "create_transcription_client",
    "load_whisper_model",
    "pcm_bytes_to_float32",
]


def create_transcription_client(backend: str, whisper_model: Any = None, mock_delay_sec: float = 0.5) -> TranscriptionClient:
    """Return client for ASR_BACKEND. Local uses the singleton model loaded at startup."""
    if backend == "cloudflare":
        return CloudflareWhisperClient()
    if backend == "local":
        return LocalWhisperClient(model=whisper_model)
    return MockTranscriptionClient(delay_sec=mock_delay_sec)
