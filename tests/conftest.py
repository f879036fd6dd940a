"""Pytest configuration and fixtures for callscribe tests."""
from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from callscribe.asr.base import TranscriptionClient, TranscriptionFailure, TranscriptionResult
from callscribe.audio import AudioChunk, AudioIngestBuffer, SpeakerGrouper, WindowScheduler
from callscribe.engine import ConversationEngine
from callscribe.identity import derive_key
from callscribe.session_store import SessionRegistry
from callscribe.transcript import BroadcastDispatcher, JsonTranscriptStore

T0 = 1_700_000_000_000
PHONE_A = "+65 9033 9936"
PHONE_B = "90339937"
ROOM = derive_key(PHONE_A, PHONE_B)  # room-6590339936-6590339937


class FakeClock:
    """Manually advanced unix-ms clock."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class RecordingSubscriber:
    """Stands in for a WebSocket: records every text frame sent to it."""

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send_text(self, data: str) -> None:
        self.sent.append(data)

    def messages(self, type_: str | None = None) -> list[dict[str, Any]]:
        decoded = [json.loads(s) for s in self.sent]
        if type_ is None:
            return decoded
        return [m for m in decoded if m.get("type") == type_]


class BrokenSubscriber:
    async def send_text(self, data: str) -> None:
        raise RuntimeError("connection reset")


HANG = object()


class ScriptedTranscriber(TranscriptionClient):
    """
    Per-participant scripted responses. A script value may be a TranscriptionResult,
    an exception instance (raised), or HANG (never returns). Unknown participants get
    "hello from <id>". `gate`, when set, makes every call wait for it first.
    """

    def __init__(self, script: dict[str, Any] | None = None) -> None:
        self.script = dict(script or {})
        self.calls: list[tuple[str, bytes]] = []
        self.active = 0
        self.max_active = 0
        self.gate: asyncio.Event | None = None

    async def transcribe(self, payload: bytes, participant_id: str) -> TranscriptionResult:
        self.calls.append((participant_id, payload))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            response = self.script.get(participant_id)
            if response is HANG:
                await asyncio.Event().wait()
            if isinstance(response, BaseException):
                raise response
            if response is None:
                return TranscriptionResult(text=f"hello from {participant_id}", confidence=0.9)
            return response
        finally:
            self.active -= 1

    @property
    def name(self) -> str:
        return "scripted"


def chunk(participant_id: str, timestamp: int, level: float = 0.5, payload: bytes = b"\x01\x00") -> AudioChunk:
    return AudioChunk(participant_id=participant_id, timestamp=timestamp, payload=payload, audio_level=level)


def make_engine(
    clock: FakeClock,
    transcriber: TranscriptionClient,
    store=None,
    transcript_dir: str = "",
    **kwargs: Any,
) -> ConversationEngine:
    return ConversationEngine(
        registry=SessionRegistry(clock=clock),
        transcriber=transcriber,
        store=store if store is not None else JsonTranscriptStore(transcript_dir),
        dispatcher=BroadcastDispatcher(),
        ingest_buffer=AudioIngestBuffer(retention_ms=10_000),
        scheduler=WindowScheduler(interval_ms=2_000, recency_ms=3_000, level_threshold=0.01),
        grouper=SpeakerGrouper(window_ms=5_000),
        transcribe_timeout_sec=kwargs.pop("transcribe_timeout_sec", 5.0),
        end_pass_wait_sec=kwargs.pop("end_pass_wait_sec", 5.0),
        idle_timeout_sec=kwargs.pop("idle_timeout_sec", 0),
        **kwargs,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transcript_dir(tmp_path) -> str:
    path = tmp_path / "transcripts"
    return str(path)
