"""Conversation summary computed from finalized transcript entries."""
from __future__ import annotations

import math
from collections import Counter
from typing import Sequence

from callscribe.diarization import SPEAKER_LABELS
from callscribe.schemas.transcript import ConversationSummary, TranscriptEntry


def build_summary(entries: Sequence[TranscriptEntry]) -> ConversationSummary:
    """
    total_entries, per-speaker counts (A and B always present), duration (last - first
    timestamp) and mean confidence. Zero entries -> all zeros.
    """
    counts: Counter[str] = Counter({label: 0 for label in SPEAKER_LABELS})
    counts.update(e.speaker_label for e in entries)
    if not entries:
        return ConversationSummary(speaker_counts=dict(counts))
    return ConversationSummary(
        total_entries=len(entries),
        speaker_counts=dict(counts),
        duration_ms=max(0, entries[-1].timestamp - entries[0].timestamp),
        average_confidence=math.fsum(e.confidence for e in entries) / len(entries),
    )
