"""
Speaker attribution (labels only; no audio separation).

Each participant arrives on its own track from the transport layer, so attribution is
a deterministic A/B mapping of the participant identifier. See speaker_labels.py.
"""
from __future__ import annotations

from callscribe.diarization.speaker_labels import SPEAKER_LABELS, speaker_label

__all__ = ["SPEAKER_LABELS", "speaker_label"]
