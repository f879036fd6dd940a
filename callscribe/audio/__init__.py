"""Audio pipeline: ingest window, processing cadence, per-speaker grouping."""
from .models import AudioChunk
from .ingest_buffer import AudioIngestBuffer
from .scheduler import WindowScheduler
from .grouping import SpeakerGrouper

__all__ = [
    "AudioChunk",
    "AudioIngestBuffer",
    "WindowScheduler",
    "SpeakerGrouper",
]
