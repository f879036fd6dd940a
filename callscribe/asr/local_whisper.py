"""
LocalWhisperClient: transcription with faster-whisper.

- Model loaded ONCE at startup (singleton, injected at construction).
- Audio: PCM 16-bit mono bytes converted to float32 [-1, 1] here.
- Runs in executor so event loop stays responsive.
"""
from __future__ import annotations

import asyncio
import math
from typing import Any

import numpy as np

from callscribe.asr.base import TranscriptionClient, TranscriptionFailure, TranscriptionResult
from callscribe.config import get_settings

# Type for shared WhisperModel (loaded at startup)
WhisperModelT = Any

WHISPER_SAMPLE_RATE = 16000


def pcm_bytes_to_float32(pcm_bytes: bytes, sample_rate: int = WHISPER_SAMPLE_RATE) -> np.ndarray:
    """
    Convert PCM 16-bit mono bytes to float32 [-1.0, 1.0] at 16kHz. A trailing odd byte is dropped.
    Input at another sample_rate is linearly resampled.
    """
    usable = len(pcm_bytes) - (len(pcm_bytes) % 2)
    samples = np.frombuffer(pcm_bytes[:usable], dtype=np.int16).astype(np.float32) / 32768.0
    if sample_rate == WHISPER_SAMPLE_RATE or samples.size == 0:
        return samples
    n_out = int(round(samples.size * WHISPER_SAMPLE_RATE / sample_rate))
    src_t = np.arange(samples.size) / sample_rate
    dst_t = np.arange(n_out) / WHISPER_SAMPLE_RATE
    return np.interp(dst_t, src_t, samples).astype(np.float32)


def load_whisper_model():
    """Load faster-whisper model once. Called at startup when ASR_BACKEND=local."""
    try:
        from faster_whisper import WhisperModel
    except ImportError as err:
        raise ImportError(
            "faster-whisper is required for ASR_BACKEND=local. "
            "Install with: pip install 'callscribe[whisper]'"
        ) from err
    settings = get_settings()
    return WhisperModel(
        settings.LOCAL_WHISPER_MODEL,
        device=settings.LOCAL_WHISPER_DEVICE,
        compute_type=settings.LOCAL_WHISPER_COMPUTE_TYPE,
    )


class LocalWhisperClient(TranscriptionClient):
    """
    Local Whisper via faster-whisper. Uses shared model (singleton).
    Confidence is the mean segment probability (exp of avg_logprob).
    """

    def __init__(self, model: WhisperModelT | None = None) -> None:
        self._model = model

    def _transcribe_sync(self, payload: bytes) -> TranscriptionResult:
        if self._model is None:
            raise TranscriptionFailure("Whisper model not loaded", provider_name=self.name)

        settings = get_settings()
        audio = pcm_bytes_to_float32(payload, settings.SAMPLE_RATE)
        if audio.size == 0:
            return TranscriptionResult(text="", confidence=0.0)

        segments, _ = self._model.transcribe(
            audio,
            beam_size=settings.LOCAL_WHISPER_BEAM_SIZE,
            language=settings.LOCAL_WHISPER_LANGUAGE or None,
            vad_filter=True,
            vad_parameters=dict(min_silence_duration_ms=300, speech_pad_ms=100),
            condition_on_previous_text=False,
        )

        parts: list[str] = []
        probs: list[float] = []
        for seg in segments:
            t = (seg.text or "").strip()
            if t:
                parts.append(t)
                avg_logprob = getattr(seg, "avg_logprob", None)
                if avg_logprob is not None:
                    probs.append(math.exp(avg_logprob))

        text = " ".join(parts).strip()
        if not text:
            return TranscriptionResult(text="", confidence=0.0)
        confidence = sum(probs) / len(probs) if probs else 1.0
        return TranscriptionResult(text=text, confidence=min(1.0, max(0.0, confidence)))

    async def transcribe(self, payload: bytes, participant_id: str) -> TranscriptionResult:
        """Run _transcribe_sync in executor so event loop is not blocked."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._transcribe_sync, payload)
        except TranscriptionFailure:
            raise
        except Exception as err:
            raise TranscriptionFailure(
                f"Whisper transcription failed: {err}",
                provider_name=self.name,
                participant_id=participant_id,
            ) from err

    @property
    def name(self) -> str:
        return "local_whisper"
