"""Transcript handling: persistence, conversation summary, broadcast to subscribers."""
from .broadcast import BroadcastDispatcher
from .store import (
    JsonTranscriptStore,
    NoOpTranscriptStore,
    PersistenceFailure,
    TranscriptStoreBase,
    create_transcript_store,
)
from .summary import build_summary

__all__ = [
    "BroadcastDispatcher",
    "JsonTranscriptStore",
    "NoOpTranscriptStore",
    "PersistenceFailure",
    "TranscriptStoreBase",
    "build_summary",
    "create_transcript_store",
]
